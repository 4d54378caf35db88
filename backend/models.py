from sqlalchemy import (
    Column, Integer, String, Boolean, ForeignKey, Enum, DateTime, Date, Text,
    Numeric, Index, JSON, UniqueConstraint
)
from sqlalchemy.orm import relationship
from database import Base
import datetime

# Import centralisé des enums
from enums import (
    UserRole, PropertyType, LeaseStatus, DepositStatus, ProtectionScheme,
    TransactionType, TransactionStatus, DisputeReason, DisputeStatus,
    EvidenceType, DocumentType, NotificationType, ActionType, EntityType
)

# Montants en virgule fixe (centimes)
Money = Numeric(12, 2)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(Enum(UserRole), default=UserRole.TENANT, nullable=False)
    first_name = Column(String(100))
    last_name = Column(String(100))
    phone = Column(String(50), nullable=True)

    email_verified = Column(Boolean, default=False)
    email_verified_at = Column(DateTime, nullable=True)
    two_factor_enabled = Column(Boolean, default=False)

    # Réinitialisation du mot de passe
    password_reset_token = Column(String(64), nullable=True, index=True)
    password_reset_expires_at = Column(DateTime, nullable=True)

    # Champs alimentés par les webhooks Stripe
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    subscription_status = Column(String(50), nullable=True)
    subscription_plan = Column(String(255), nullable=True)
    subscription_current_period_end = Column(DateTime, nullable=True)

    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")
    properties = relationship("Property", back_populates="landlord")


class UserSession(Base):
    __tablename__ = "user_sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    session_id = Column(String(36), unique=True, index=True)  # UUID porté par les deux tokens
    access_token = Column(Text)
    refresh_token = Column(Text)
    expires_at = Column(DateTime, nullable=False)  # Expiration du refresh token (7 jours)
    ip_address = Column(String(50), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    user = relationship("User", back_populates="sessions")


class Property(Base):
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True)
    landlord_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    address_line1 = Column(String(255), nullable=False)
    address_line2 = Column(String(255), nullable=True)
    city = Column(String(100), nullable=False)
    state = Column(String(2), nullable=False)  # Code d'état US (CA, NY, ...)
    zip_code = Column(String(10), nullable=False)
    country = Column(String(2), default="US")
    property_type = Column(Enum(PropertyType), nullable=False)
    bedrooms = Column(Integer, default=0)
    bathrooms = Column(Numeric(3, 1), default=0)
    square_feet = Column(Integer, nullable=True)
    monthly_rent = Column(Money, nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    landlord = relationship("User", back_populates="properties")
    leases = relationship("Lease", back_populates="property")


class Lease(Base):
    __tablename__ = "leases"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False)
    tenant_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    landlord_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    monthly_rent = Column(Money, nullable=False)
    deposit_amount = Column(Money, nullable=False)
    status = Column(Enum(LeaseStatus), default=LeaseStatus.DRAFT, nullable=False)
    tenant_signed_at = Column(DateTime, nullable=True)
    landlord_signed_at = Column(DateTime, nullable=True)
    terms = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    property = relationship("Property", back_populates="leases")
    tenant = relationship("User", foreign_keys=[tenant_id])
    landlord = relationship("User", foreign_keys=[landlord_id])
    deposit = relationship("Deposit", back_populates="lease", uselist=False)
    documents = relationship("Document", back_populates="lease", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_lease_property_status", "property_id", "status"),
    )


class Deposit(Base):
    __tablename__ = "deposits"

    id = Column(Integer, primary_key=True, index=True)
    lease_id = Column(Integer, ForeignKey("leases.id"), unique=True, nullable=False)
    amount = Column(Money, nullable=False)
    currency = Column(String(3), default="USD")
    status = Column(Enum(DepositStatus), default=DepositStatus.PENDING_PAYMENT, nullable=False)

    # Protection
    protection_scheme = Column(Enum(ProtectionScheme), nullable=True)
    protection_reference = Column(String(255), nullable=True)
    protected_at = Column(DateTime, nullable=True)
    interest_rate = Column(Numeric(5, 4), nullable=True)

    # Restitution
    return_amount = Column(Money, nullable=True)
    final_amount = Column(Money, nullable=True)
    return_requested_at = Column(DateTime, nullable=True)
    return_approved_at = Column(DateTime, nullable=True)
    returned_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    lease = relationship("Lease", back_populates="deposit")
    transactions = relationship("Transaction", back_populates="deposit", order_by="Transaction.id")
    deductions = relationship("Deduction", back_populates="deposit", order_by="Deduction.id")
    disputes = relationship("Dispute", back_populates="deposit", order_by="Dispute.id")


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    deposit_id = Column(Integer, ForeignKey("deposits.id"), nullable=False, index=True)
    type = Column(Enum(TransactionType), nullable=False)
    amount = Column(Money, nullable=False)
    currency = Column(String(3), default="USD")
    status = Column(Enum(TransactionStatus), default=TransactionStatus.PENDING, nullable=False)
    reference = Column(String(255), nullable=True, index=True)  # PaymentIntent Stripe ou référence libre
    stripe_charge_id = Column(String(255), nullable=True)
    failure_reason = Column(String(500), nullable=True)
    description = Column(String(500), nullable=True)
    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    deposit = relationship("Deposit", back_populates="transactions")


class Deduction(Base):
    __tablename__ = "deductions"

    id = Column(Integer, primary_key=True, index=True)
    deposit_id = Column(Integer, ForeignKey("deposits.id"), nullable=False, index=True)
    reason = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    amount = Column(Money, nullable=False)
    approved = Column(Boolean, default=False)
    approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    deposit = relationship("Deposit", back_populates="deductions")


class Dispute(Base):
    __tablename__ = "disputes"

    id = Column(Integer, primary_key=True, index=True)
    deposit_id = Column(Integer, ForeignKey("deposits.id"), nullable=False, index=True)
    raised_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    reason = Column(Enum(DisputeReason), nullable=False)
    description = Column(Text, nullable=False)
    claimed_amount = Column(Money, nullable=True)
    status = Column(Enum(DisputeStatus), default=DisputeStatus.OPEN, nullable=False)

    # Résolution
    resolved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    resolution = Column(Text, nullable=True)
    tenant_amount = Column(Money, nullable=True)
    landlord_amount = Column(Money, nullable=True)
    reasoning = Column(Text, nullable=True)
    resolved_at = Column(DateTime, nullable=True)

    deadline = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    deposit = relationship("Deposit", back_populates="disputes")
    raiser = relationship("User", foreign_keys=[raised_by])
    evidence = relationship("Evidence", back_populates="dispute", order_by="Evidence.id")
    messages = relationship("DisputeMessage", back_populates="dispute", order_by="DisputeMessage.id")


class Evidence(Base):
    __tablename__ = "evidence"

    id = Column(Integer, primary_key=True, index=True)
    dispute_id = Column(Integer, ForeignKey("disputes.id"), nullable=False, index=True)
    type = Column(Enum(EvidenceType), nullable=False)
    url = Column(String(1000), nullable=False)
    description = Column(Text, nullable=True)
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    dispute = relationship("Dispute", back_populates="evidence")


class DisputeMessage(Base):
    __tablename__ = "dispute_messages"

    id = Column(Integer, primary_key=True, index=True)
    dispute_id = Column(Integer, ForeignKey("disputes.id"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    message = Column(Text, nullable=False)
    is_internal = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    dispute = relationship("Dispute", back_populates="messages")
    sender = relationship("User")


class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    lease_id = Column(Integer, ForeignKey("leases.id"), nullable=False, index=True)
    type = Column(Enum(DocumentType), nullable=False)
    name = Column(String(255), nullable=False)
    url = Column(String(1000), nullable=False)  # Stockage externe, seules les métadonnées sont gardées
    size = Column(Integer, nullable=True)
    mime_type = Column(String(100), nullable=True)
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    lease = relationship("Lease", back_populates="documents")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(Enum(NotificationType), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)
    read = Column(Boolean, default=False)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    user = relationship("User", back_populates="notifications")

    __table_args__ = (
        Index("idx_notification_user_read", "user_id", "read"),
    )


class ProcessedWebhookEvent(Base):
    """Clés d'idempotence des événements fournisseur déjà traités"""
    __tablename__ = "processed_webhook_events"

    id = Column(Integer, primary_key=True, index=True)
    provider = Column(String(50), nullable=False)
    event_id = Column(String(255), nullable=False)
    event_type = Column(String(100), nullable=True)
    processed_at = Column(DateTime, default=datetime.datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("provider", "event_id", name="uq_webhook_provider_event"),
    )


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=True)  # Null pour les actions anonymes
    action = Column(Enum(ActionType))
    entity_type = Column(Enum(EntityType))
    entity_id = Column(Integer, nullable=True)
    description = Column(String(500))
    details = Column(Text, nullable=True)  # JSON sérialisé
    ip_address = Column(String(50), nullable=True)
    user_agent = Column(String(500), nullable=True)
    endpoint = Column(String(200), nullable=True)
    method = Column(String(10), nullable=True)
    status_code = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)
