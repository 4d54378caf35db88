"""
Fixtures communes : base sqlite en mémoire, client de test, jeux de données
"""
import hashlib
import hmac
import json
import os
import time
from datetime import date, timedelta
from decimal import Decimal

# Configuration avant tout import applicatif (le moteur est créé à l'import)
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["JWT_SECRET_KEY"] = "test-access-secret"
os.environ["JWT_REFRESH_SECRET_KEY"] = "test-refresh-secret"
os.environ.pop("REDIS_URL", None)
os.environ.pop("RESEND_API_KEY", None)

import pytest
from fastapi.testclient import TestClient

from app_config import AppConfigurator
from auth import get_password_hash, issue_session
from database import SessionLocal, engine
from email_service import EmailService
from enums import LeaseStatus, PropertyType, UserRole
from rate_limiter import RateLimiter
from services.deposit_lifecycle import DepositService
from stripe_service import StripeConfig, StripeWebhookVerifier
import models

WEBHOOK_SECRET = "whsec_test_secret"
PASSWORD = "Str0ng!Pass"


class RecordingEmailService(EmailService):
    """Service email qui garde les messages au lieu de les envoyer"""

    def __init__(self):
        super().__init__(api_key=None)
        self.sent = []

    async def send_email(self, recipients, message):
        self.sent.append({"to": [r.email for r in recipients], "subject": message.subject})
        return True


@pytest.fixture(autouse=True)
def reset_database():
    models.Base.metadata.drop_all(bind=engine)
    models.Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def email_service():
    return RecordingEmailService()


@pytest.fixture
def app(email_service):
    return AppConfigurator.create_app(
        email_service=email_service,
        rate_limiter=RateLimiter(enabled=False),
        webhook_verifier=StripeWebhookVerifier(StripeConfig(webhook_secret=WEBHOOK_SECRET)),
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


# ==================== FABRIQUES ====================

@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role=UserRole.TENANT, email=None, password=PASSWORD):
        counter["n"] += 1
        user = models.User(
            email=email or f"{role.value.lower()}{counter['n']}@deposife-test.com",
            hashed_password=get_password_hash(password),
            role=role,
            first_name=role.value.title(),
            last_name=f"User{counter['n']}",
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_headers(db):
    """En-têtes Bearer d'une session fraîchement émise"""
    def _headers(user):
        _, access_token, _ = issue_session(db, user)
        db.commit()
        return {"Authorization": f"Bearer {access_token}"}

    return _headers


@pytest.fixture
def make_property(db):
    def _make(landlord, state="CA", monthly_rent="1000.00"):
        prop = models.Property(
            landlord_id=landlord.id,
            address_line1="1 Main Street",
            city="Springfield",
            state=state,
            zip_code="90210",
            property_type=PropertyType.APARTMENT,
            bedrooms=2,
            monthly_rent=Decimal(monthly_rent),
        )
        db.add(prop)
        db.commit()
        db.refresh(prop)
        return prop

    return _make


@pytest.fixture
def make_active_lease(db, make_property):
    """Bail signé par les deux parties avec son dépôt en attente de paiement"""
    def _make(landlord, tenant, state="CA", deposit_amount="1000.00", start_date=None, status=LeaseStatus.ACTIVE):
        prop = make_property(landlord, state=state)
        start = start_date or date.today() - timedelta(days=5)
        lease = models.Lease(
            property_id=prop.id,
            tenant_id=tenant.id,
            landlord_id=landlord.id,
            start_date=start,
            end_date=start + timedelta(days=365),
            monthly_rent=Decimal("1000.00"),
            deposit_amount=Decimal(deposit_amount),
            status=status,
        )
        db.add(lease)
        db.flush()
        DepositService.create_for_lease(db, lease)
        db.commit()
        db.refresh(lease)
        return lease

    return _make


@pytest.fixture
def set_status(db):
    """Force un statut en base (mise en place de scénarios)"""
    def _set(instance, status, **values):
        instance.status = status
        for key, value in values.items():
            setattr(instance, key, value)
        db.commit()
        db.refresh(instance)
        return instance

    return _set


def stripe_signature(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """En-tête Stripe-Signature (schéma v1 : HMAC-SHA256 de 't.payload')"""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def stripe_event(event_id: str, event_type: str, obj: dict) -> str:
    return json.dumps({"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}})
