"""
Routes API pour les webhooks Stripe
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from audit_logger import AuditLogger
from constants import STRIPE_SIGNATURE_HEADER
from database import get_db
from enums import ActionType, EntityType
from stripe_service import StripeWebhookService, StripeWebhookVerifier, get_webhook_verifier

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    verifier: StripeWebhookVerifier = Depends(get_webhook_verifier)
):
    """Point d'entrée des webhooks Stripe (signature vérifiée avant tout traitement)"""
    payload = await request.body()
    event = verifier.verify(payload, request.headers.get(STRIPE_SIGNATURE_HEADER))

    result = StripeWebhookService(db).handle_event(event)

    if not result.get("duplicate"):
        AuditLogger.log_action(
            db=db,
            action=ActionType.WEBHOOK,
            entity_type=EntityType.WEBHOOK_EVENT,
            description=f"Webhook Stripe traité: {event['type']} ({event['id']})",
            details={"event_id": event["id"], "event_type": event["type"]},
            request=request,
            status_code=200
        )
    return result
