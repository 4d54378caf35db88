"""
Service Stripe : vérification et traitement des webhooks de paiement
Chaque événement est traité une seule fois (clé d'idempotence = id d'événement)
"""
import json
import logging
import os
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

import stripe
from fastapi import Request
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from constants import STRIPE_PROVIDER, STRIPE_WEBHOOK_TOLERANCE_SECONDS
from enums import DepositStatus, NotificationType, TransactionStatus, TransactionType
from errors import InternalError, ValidationError
from models import Deposit, ProcessedWebhookEvent, Transaction, User
from services.deposit_lifecycle import DEPOSIT_TRANSITIONS, DepositService, to_money
from services.status_guard import apply_transition
from services.user_notification_service import UserNotificationService

logger = logging.getLogger(__name__)


class StripeConfig:
    """Configuration Stripe lue dans l'environnement"""

    def __init__(self, webhook_secret: Optional[str] = None, api_key: Optional[str] = None,
                 tolerance: int = STRIPE_WEBHOOK_TOLERANCE_SECONDS):
        self.webhook_secret = webhook_secret
        self.api_key = api_key
        self.tolerance = tolerance

    @classmethod
    def from_env(cls) -> "StripeConfig":
        return cls(
            webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET"),
            api_key=os.getenv("STRIPE_SECRET_KEY"),
        )


class InvalidWebhookSignature(ValidationError):
    """Signature absente ou invalide : aucun détail interne n'est renvoyé"""
    default_code = "INVALID_SIGNATURE"


class StripeWebhookVerifier:
    """Vérifie la signature d'un webhook puis décode le JSON"""

    def __init__(self, config: StripeConfig):
        self.config = config

    def verify(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        if not self.config.webhook_secret:
            raise InternalError("Stripe webhook secret is not configured")
        if not signature:
            raise InvalidWebhookSignature("Missing signature")
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"), signature, self.config.webhook_secret, self.config.tolerance
            )
        except stripe.error.SignatureVerificationError:
            raise InvalidWebhookSignature("Invalid signature")
        except UnicodeDecodeError:
            raise InvalidWebhookSignature("Invalid payload")

        try:
            event = json.loads(payload)
        except ValueError:
            raise ValidationError("Invalid payload")
        if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
            raise ValidationError("Invalid payload")
        if not isinstance(event.get("data"), dict) or not isinstance(event["data"].get("object"), dict):
            raise ValidationError("Invalid payload")
        return event


def cents_to_amount(cents: Optional[int]) -> Decimal:
    """Montant Stripe (centimes) vers Decimal"""
    return to_money(Decimal(cents or 0) / 100)


class StripeWebhookService:
    """Répartition des événements Stripe vers les mises à jour en base"""

    def __init__(self, db: Session):
        self.db = db
        self.handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {
            "payment_intent.succeeded": self.handle_payment_succeeded,
            "payment_intent.payment_failed": self.handle_payment_failed,
            "charge.succeeded": self.handle_charge_succeeded,
            "charge.refunded": self.handle_charge_refunded,
            "customer.subscription.created": self.handle_subscription_changed,
            "customer.subscription.updated": self.handle_subscription_changed,
            "customer.subscription.deleted": self.handle_subscription_changed,
        }

    def handle_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        event_id = event["id"]
        event_type = event["type"]

        if not self._claim_event(event_id, event_type):
            logger.info("Événement Stripe %s déjà traité, ignoré", event_id)
            return {"received": True, "duplicate": True}

        handler = self.handlers.get(event_type)
        if handler is None:
            logger.info("Événement Stripe non géré: %s (%s)", event_type, event_id)
        else:
            handler((event.get("data") or {}).get("object") or {})

        # Marqueur d'idempotence et effets committés ensemble
        self.db.commit()
        return {"received": True}

    def _claim_event(self, event_id: str, event_type: str) -> bool:
        already = self.db.query(ProcessedWebhookEvent).filter(
            ProcessedWebhookEvent.provider == STRIPE_PROVIDER,
            ProcessedWebhookEvent.event_id == event_id
        ).first()
        if already:
            return False

        self.db.add(ProcessedWebhookEvent(provider=STRIPE_PROVIDER, event_id=event_id, event_type=event_type))
        try:
            self.db.flush()
        except IntegrityError:
            # Livraison concurrente du même événement
            self.db.rollback()
            return False
        return True

    def _find_deposit(self, metadata: Dict[str, Any]) -> Optional[Deposit]:
        deposit_id = (metadata or {}).get("deposit_id")
        if not deposit_id:
            return None
        try:
            return self.db.query(Deposit).filter(Deposit.id == int(deposit_id)).first()
        except (TypeError, ValueError):
            logger.warning("deposit_id invalide dans les métadonnées Stripe: %r", deposit_id)
            return None

    def _find_transaction(self, payment_intent_id: Optional[str]) -> Optional[Transaction]:
        if not payment_intent_id:
            return None
        return self.db.query(Transaction).filter(
            Transaction.reference == payment_intent_id
        ).order_by(Transaction.id.desc()).first()

    # ==================== HANDLERS ====================

    def handle_payment_succeeded(self, intent: Dict[str, Any]):
        """Encaissement du dépôt : PENDING_PAYMENT -> HELD et transaction DEPOSIT"""
        deposit = self._find_deposit(intent.get("metadata"))
        if deposit is None:
            logger.warning("payment_intent.succeeded %s sans dépôt associé", intent.get("id"))
            return
        if deposit.status != DepositStatus.PENDING_PAYMENT:
            logger.warning("Dépôt %s déjà encaissé (statut %s), paiement %s ignoré",
                           deposit.id, deposit.status.value, intent.get("id"))
            return

        apply_transition(self.db, deposit, DEPOSIT_TRANSITIONS["collect"])
        amount = cents_to_amount(intent.get("amount_received", intent.get("amount")))
        DepositService.record_transaction(
            self.db, deposit, TransactionType.DEPOSIT, amount,
            reference=intent.get("id"), description="Deposit payment (Stripe)",
        )
        UserNotificationService.create_notification(
            self.db, deposit.lease.landlord_id, NotificationType.DEPOSIT_RECEIVED,
            "Deposit Received", f"The deposit of {amount} {deposit.currency} has been paid.",
            data={"deposit_id": deposit.id},
        )

    def handle_payment_failed(self, intent: Dict[str, Any]):
        """Paiement refusé : la transaction correspondante passe en FAILED"""
        error = intent.get("last_payment_error") or {}
        reason = (error.get("message") or "Payment failed")[:500]
        tx = self._find_transaction(intent.get("id"))
        if tx is not None:
            tx.status = TransactionStatus.FAILED
            tx.failure_reason = reason
            return

        deposit = self._find_deposit(intent.get("metadata"))
        if deposit is None:
            logger.warning("payment_intent.payment_failed %s sans transaction ni dépôt", intent.get("id"))
            return
        tx = DepositService.record_transaction(
            self.db, deposit, TransactionType.DEPOSIT, cents_to_amount(intent.get("amount")),
            status=TransactionStatus.FAILED, reference=intent.get("id"), description="Deposit payment (Stripe)",
        )
        tx.failure_reason = reason

    def handle_charge_succeeded(self, charge: Dict[str, Any]):
        """Rattache l'identifiant de charge à la transaction du PaymentIntent"""
        tx = self._find_transaction(charge.get("payment_intent"))
        if tx is None:
            logger.warning("charge.succeeded %s sans transaction associée", charge.get("id"))
            return
        tx.stripe_charge_id = charge.get("id")

    def handle_charge_refunded(self, charge: Dict[str, Any]):
        """Remboursement : transaction REFUND, dépôt RETURNED si remboursement total"""
        tx = self._find_transaction(charge.get("payment_intent"))
        deposit = tx.deposit if tx is not None else self._find_deposit(charge.get("metadata"))
        if deposit is None:
            logger.warning("charge.refunded %s sans dépôt associé", charge.get("id"))
            return

        # amount_refunded est cumulatif sur la charge
        refunded = cents_to_amount(charge.get("amount_refunded"))
        already = self.db.query(func.coalesce(func.sum(Transaction.amount), 0)).filter(
            Transaction.deposit_id == deposit.id,
            Transaction.type == TransactionType.REFUND,
            Transaction.reference == charge.get("id")
        ).scalar()
        delta = refunded - to_money(already)
        if delta > 0:
            DepositService.record_transaction(
                self.db, deposit, TransactionType.REFUND, delta,
                reference=charge.get("id"), description="Stripe refund",
            )
        else:
            logger.info("charge.refunded %s sans nouveau montant remboursé", charge.get("id"))
        rule = DEPOSIT_TRANSITIONS["refund"]
        if charge.get("refunded") and deposit.status in rule.source:
            now = datetime.utcnow()
            apply_transition(self.db, deposit, rule, final_amount=refunded, returned_at=now)

    def handle_subscription_changed(self, subscription: Dict[str, Any]):
        """Recopie le statut d'abonnement Stripe sur l'utilisateur"""
        customer_id = subscription.get("customer")
        user = None
        if customer_id:
            user = self.db.query(User).filter(User.stripe_customer_id == customer_id).first()
        if user is None:
            user_id = (subscription.get("metadata") or {}).get("user_id")
            if user_id and str(user_id).isdigit():
                user = self.db.query(User).filter(User.id == int(user_id)).first()
        if user is None:
            logger.warning("Abonnement Stripe %s sans utilisateur associé", subscription.get("id"))
            return

        user.stripe_customer_id = customer_id or user.stripe_customer_id
        user.subscription_status = subscription.get("status")
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            price = items[0].get("price") or {}
            user.subscription_plan = price.get("nickname") or price.get("id")
        period_end = subscription.get("current_period_end")
        user.subscription_current_period_end = datetime.utcfromtimestamp(period_end) if period_end else None


def get_webhook_verifier(request: Request) -> StripeWebhookVerifier:
    return request.app.state.stripe_webhook_verifier
