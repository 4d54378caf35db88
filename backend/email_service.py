"""
Service d'envoi d'emails transactionnels via l'API Resend
Sans RESEND_API_KEY le service tourne en mode développement : les messages
sont seulement journalisés
"""
from typing import List, Optional
from dataclasses import dataclass
from decimal import Decimal
import logging
import os

import httpx
from fastapi import Request

from constants import APP_NAME, DEFAULT_FROM_EMAIL, DEFAULT_FRONTEND_URL, RESEND_API_URL

logger = logging.getLogger(__name__)


@dataclass
class EmailRecipient:
    """Destinataire d'un email"""
    email: str
    name: Optional[str] = None


@dataclass
class EmailMessage:
    """Message email"""
    subject: str
    html_content: str
    text_content: Optional[str] = None


def _layout(title: str, body: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <head><meta charset="utf-8"><title>{title}</title></head>
    <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
        <h1 style="color: #2563eb;">{APP_NAME}</h1>
        <h2 style="color: #374151;">{title}</h2>
        {body}
        <hr style="border: none; border-top: 1px solid #e5e7eb; margin: 30px 0;">
        <p style="font-size: 12px; color: #9ca3af;">{APP_NAME} - Secure deposit management</p>
    </body>
    </html>
    """


class EmailService:
    """Envoi via Resend, journalisation seule en mode dev"""

    def __init__(self, api_key: Optional[str] = None, from_email: str = DEFAULT_FROM_EMAIL,
                 frontend_url: str = DEFAULT_FRONTEND_URL, timeout: float = 10.0):
        self.api_key = api_key
        self.from_email = from_email
        self.frontend_url = frontend_url.rstrip("/")
        self.timeout = timeout
        self.enabled = bool(api_key)
        if not self.enabled:
            logger.info("EmailService initialisé en mode développement (envois désactivés)")

    @classmethod
    def from_env(cls) -> "EmailService":
        return cls(
            api_key=os.getenv("RESEND_API_KEY"),
            from_email=os.getenv("RESEND_FROM_EMAIL", DEFAULT_FROM_EMAIL),
            frontend_url=os.getenv("FRONTEND_URL", DEFAULT_FRONTEND_URL),
        )

    async def send_email(self, recipients: List[EmailRecipient], message: EmailMessage) -> bool:
        """
        Envoie un email aux destinataires.
        Un échec est journalisé et renvoie False, il n'est jamais propagé
        """
        if not self.enabled:
            logger.info("[DEV MODE] Email non envoyé à %s: %s", [r.email for r in recipients], message.subject)
            logger.debug("  Contenu: %s", message.text_content or "HTML uniquement")
            return True

        payload = {
            "from": self.from_email,
            "to": [r.email for r in recipients],
            "subject": message.subject,
            "html": message.html_content,
        }
        if message.text_content:
            payload["text"] = message.text_content

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(RESEND_API_URL, headers=headers, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Erreur lors de l'envoi d'email '%s': %s", message.subject, e)
            return False

        logger.info("Email '%s' envoyé à %s", message.subject, [r.email for r in recipients])
        return True

    # ==================== TEMPLATES ====================

    async def send_password_reset_email(self, to_email: str, name: str, token: str) -> bool:
        reset_url = f"{self.frontend_url}/reset-password?token={token}"
        message = EmailMessage(
            subject=f"Reset your {APP_NAME} password",
            html_content=_layout("Password reset", f"""
                <p>Hello {name},</p>
                <p>We received a request to reset your password. This link expires in 1 hour.</p>
                <p><a href="{reset_url}">Reset my password</a></p>
                <p>If you did not request this, you can ignore this email.</p>
            """),
            text_content=f"Hello {name},\nReset your password: {reset_url}\nThis link expires in 1 hour."
        )
        return await self.send_email([EmailRecipient(to_email, name)], message)

    async def send_email_verification(self, to_email: str, name: str, token: str) -> bool:
        verify_url = f"{self.frontend_url}/verify-email?token={token}"
        message = EmailMessage(
            subject=f"Verify your {APP_NAME} email",
            html_content=_layout("Verify your email", f"""
                <p>Hello {name},</p>
                <p>Thanks for signing up. Please confirm your email address.</p>
                <p><a href="{verify_url}">Verify my email</a></p>
            """),
            text_content=f"Hello {name},\nVerify your email: {verify_url}"
        )
        return await self.send_email([EmailRecipient(to_email, name)], message)

    async def send_deposit_confirmation(self, to_email: str, name: str, amount: Decimal,
                                        currency: str, property_address: str) -> bool:
        message = EmailMessage(
            subject="Deposit payment confirmed",
            html_content=_layout("Deposit received", f"""
                <p>Hello {name},</p>
                <p>Your deposit of <strong>{amount} {currency}</strong> for {property_address}
                has been received and is now held securely.</p>
            """),
            text_content=f"Hello {name},\nYour deposit of {amount} {currency} for {property_address} has been received."
        )
        return await self.send_email([EmailRecipient(to_email, name)], message)

    async def send_dispute_notification(self, to_email: str, name: str, dispute_id: int, reason: str) -> bool:
        dispute_url = f"{self.frontend_url}/disputes/{dispute_id}"
        message = EmailMessage(
            subject="A dispute has been raised on your deposit",
            html_content=_layout("New dispute", f"""
                <p>Hello {name},</p>
                <p>A dispute ({reason}) has been raised on a deposit you are party to.</p>
                <p><a href="{dispute_url}">View the dispute</a></p>
            """),
            text_content=f"Hello {name},\nA dispute ({reason}) has been raised: {dispute_url}"
        )
        return await self.send_email([EmailRecipient(to_email, name)], message)


def get_email_service(request: Request) -> EmailService:
    return request.app.state.email_service
