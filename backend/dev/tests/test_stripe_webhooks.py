"""
Tests des webhooks Stripe : signature, idempotence, effets sur les dépôts
"""
from datetime import datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app_config import AppConfigurator
from enums import DepositStatus, EntityType, TransactionStatus, TransactionType, UserRole
from rate_limiter import RateLimiter
from stripe_service import StripeConfig, StripeWebhookVerifier
import models

from conftest import stripe_event, stripe_signature

URL = "/api/v1/webhooks/stripe"


def post_event(client, payload, signature=None):
    headers = {"content-type": "application/json"}
    if signature is not False:
        headers["stripe-signature"] = signature or stripe_signature(payload)
    return client.post(URL, content=payload, headers=headers)


@pytest.fixture
def deposit(db, make_user, make_active_lease):
    lease = make_active_lease(make_user(UserRole.LANDLORD), make_user(UserRole.TENANT))
    return lease.deposit


def payment_succeeded(deposit, event_id="evt_paid", intent_id="pi_1"):
    return stripe_event(event_id, "payment_intent.succeeded", {
        "id": intent_id, "object": "payment_intent", "amount": 100000, "amount_received": 100000,
        "metadata": {"deposit_id": str(deposit.id)},
    })


def reload(db, deposit):
    db.expire_all()
    return db.get(models.Deposit, deposit.id)


def test_missing_signature_is_rejected(client, db, deposit):
    response = post_event(client, payment_succeeded(deposit), signature=False)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_SIGNATURE"
    assert reload(db, deposit).status == DepositStatus.PENDING_PAYMENT


def test_bad_signature_is_rejected(client, db, deposit):
    payload = payment_succeeded(deposit)

    response = post_event(client, payload, signature=stripe_signature(payload, secret="whsec_other"))

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_SIGNATURE"
    assert response.json()["error"]["message"] == "Invalid signature"
    assert db.query(models.ProcessedWebhookEvent).count() == 0


def test_stale_timestamp_is_rejected(client, deposit):
    payload = payment_succeeded(deposit)

    response = post_event(client, payload, signature=stripe_signature(payload, timestamp=1_000_000_000))

    assert response.status_code == 400


def test_unconfigured_secret_is_internal_error(email_service):
    app = AppConfigurator.create_app(
        email_service=email_service,
        rate_limiter=RateLimiter(enabled=False),
        webhook_verifier=StripeWebhookVerifier(StripeConfig()),
    )
    payload = stripe_event("evt_1", "charge.succeeded", {"id": "ch_1"})
    with TestClient(app) as client:
        response = post_event(client, payload)

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "INTERNAL_ERROR"


def test_payment_succeeded_collects_deposit(client, db, deposit):
    response = post_event(client, payment_succeeded(deposit))

    assert response.status_code == 200
    assert response.json() == {"received": True}
    deposit = reload(db, deposit)
    assert deposit.status == DepositStatus.HELD
    [tx] = deposit.transactions
    assert tx.type == TransactionType.DEPOSIT
    assert tx.amount == Decimal("1000.00")
    assert tx.reference == "pi_1"
    assert db.query(models.AuditLog).filter(models.AuditLog.entity_type == EntityType.WEBHOOK_EVENT).count() == 1


def test_replayed_event_is_ignored(client, db, deposit):
    payload = payment_succeeded(deposit)
    post_event(client, payload)

    response = post_event(client, payload)

    assert response.status_code == 200
    assert response.json() == {"received": True, "duplicate": True}
    assert len(reload(db, deposit).transactions) == 1
    assert db.query(models.ProcessedWebhookEvent).count() == 1


def test_second_payment_for_held_deposit_is_skipped(client, db, deposit):
    post_event(client, payment_succeeded(deposit))

    response = post_event(client, payment_succeeded(deposit, event_id="evt_paid_again", intent_id="pi_2"))

    assert response.status_code == 200
    assert len(reload(db, deposit).transactions) == 1


def test_payment_failed_marks_transaction(client, db, deposit):
    post_event(client, payment_succeeded(deposit))

    post_event(client, stripe_event("evt_failed", "payment_intent.payment_failed", {
        "id": "pi_1", "last_payment_error": {"message": "Your card was declined."},
    }))

    [tx] = reload(db, deposit).transactions
    assert tx.status == TransactionStatus.FAILED
    assert tx.failure_reason == "Your card was declined."


def test_payment_failed_without_transaction_records_one(client, db, deposit):
    post_event(client, stripe_event("evt_failed", "payment_intent.payment_failed", {
        "id": "pi_9", "amount": 100000, "metadata": {"deposit_id": str(deposit.id)},
    }))

    deposit = reload(db, deposit)
    assert deposit.status == DepositStatus.PENDING_PAYMENT
    [tx] = deposit.transactions
    assert tx.status == TransactionStatus.FAILED
    assert tx.failure_reason == "Payment failed"


def test_charge_succeeded_links_charge(client, db, deposit):
    post_event(client, payment_succeeded(deposit))

    post_event(client, stripe_event("evt_charge", "charge.succeeded", {"id": "ch_1", "payment_intent": "pi_1"}))

    [tx] = reload(db, deposit).transactions
    assert tx.stripe_charge_id == "ch_1"


def test_full_refund_returns_deposit(client, db, deposit):
    post_event(client, payment_succeeded(deposit))

    post_event(client, stripe_event("evt_refund", "charge.refunded", {
        "id": "ch_1", "payment_intent": "pi_1", "amount_refunded": 100000, "refunded": True,
    }))

    deposit = reload(db, deposit)
    assert deposit.status == DepositStatus.RETURNED
    assert deposit.final_amount == Decimal("1000.00")
    refund = deposit.transactions[-1]
    assert refund.type == TransactionType.REFUND
    assert refund.reference == "ch_1"


def test_partial_refund_keeps_status(client, db, deposit):
    post_event(client, payment_succeeded(deposit))

    post_event(client, stripe_event("evt_refund", "charge.refunded", {
        "id": "ch_1", "payment_intent": "pi_1", "amount_refunded": 25000, "refunded": False,
    }))

    deposit = reload(db, deposit)
    assert deposit.status == DepositStatus.HELD
    assert deposit.transactions[-1].amount == Decimal("250.00")


def test_successive_partial_refunds_record_only_new_amounts(client, db, deposit):
    post_event(client, payment_succeeded(deposit))

    for event_id, refunded in (("evt_refund_1", 25000), ("evt_refund_2", 40000)):
        post_event(client, stripe_event(event_id, "charge.refunded", {
            "id": "ch_1", "payment_intent": "pi_1", "amount_refunded": refunded, "refunded": False,
        }))

    refunds = [tx.amount for tx in reload(db, deposit).transactions if tx.type == TransactionType.REFUND]
    assert refunds == [Decimal("250.00"), Decimal("150.00")]
    assert sum(refunds) == Decimal("400.00")


def test_repeated_refund_total_adds_nothing(client, db, deposit):
    post_event(client, payment_succeeded(deposit))
    refund = {"id": "ch_1", "payment_intent": "pi_1", "amount_refunded": 25000, "refunded": False}

    post_event(client, stripe_event("evt_refund_1", "charge.refunded", refund))
    post_event(client, stripe_event("evt_refund_2", "charge.refunded", refund))

    refunds = [tx for tx in reload(db, deposit).transactions if tx.type == TransactionType.REFUND]
    assert len(refunds) == 1


def test_event_without_data_object_is_rejected(client, db):
    payload = '{"id": "evt_x", "type": "charge.succeeded", "data": null}'

    response = post_event(client, payload)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"
    assert db.query(models.ProcessedWebhookEvent).count() == 0


def test_subscription_update_syncs_user(client, db, make_user):
    landlord = make_user(UserRole.LANDLORD)
    landlord.stripe_customer_id = "cus_1"
    db.commit()

    post_event(client, stripe_event("evt_sub", "customer.subscription.updated", {
        "id": "sub_1", "customer": "cus_1", "status": "active",
        "current_period_end": 1767225600,
        "items": {"data": [{"price": {"id": "price_1", "nickname": "Landlord Pro"}}]},
    }))

    db.expire_all()
    user = db.get(models.User, landlord.id)
    assert user.subscription_status == "active"
    assert user.subscription_plan == "Landlord Pro"
    assert user.subscription_current_period_end == datetime(2026, 1, 1)


def test_unknown_event_is_acknowledged(client, db):
    response = post_event(client, stripe_event("evt_misc", "invoice.created", {"id": "in_1"}))

    assert response.status_code == 200
    assert response.json() == {"received": True}
    assert db.query(models.ProcessedWebhookEvent).filter_by(event_id="evt_misc").count() == 1
