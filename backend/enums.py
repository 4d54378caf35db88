"""
Enums partagés pour l'application Deposife
Centralisation de toutes les énumérations pour éviter la duplication
"""
import enum


class UserRole(str, enum.Enum):
    """Rôles des utilisateurs de la plateforme"""
    TENANT = "TENANT"
    LANDLORD = "LANDLORD"
    PROPERTY_MANAGER = "PROPERTY_MANAGER"
    ADMIN = "ADMIN"
    DISPUTE_RESOLVER = "DISPUTE_RESOLVER"

# Rôles accessibles à l'inscription publique
SELF_SERVICE_ROLES = (UserRole.TENANT, UserRole.LANDLORD, UserRole.PROPERTY_MANAGER)


class PropertyType(str, enum.Enum):
    """Types de biens"""
    APARTMENT = "APARTMENT"
    HOUSE = "HOUSE"
    CONDO = "CONDO"
    TOWNHOUSE = "TOWNHOUSE"
    STUDIO = "STUDIO"


class LeaseStatus(str, enum.Enum):
    """Statuts des baux"""
    DRAFT = "DRAFT"
    PENDING_SIGNATURES = "PENDING_SIGNATURES"
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    TERMINATED = "TERMINATED"


class DepositStatus(str, enum.Enum):
    """Statuts du dépôt de garantie"""
    PENDING_PAYMENT = "PENDING_PAYMENT"
    HELD = "HELD"
    PROTECTED = "PROTECTED"
    PENDING_RETURN = "PENDING_RETURN"
    PARTIALLY_RETURNED = "PARTIALLY_RETURNED"  # présent dans le modèle, jamais atteint
    RETURNED = "RETURNED"
    DISPUTED = "DISPUTED"


class ProtectionScheme(str, enum.Enum):
    """Organismes de protection des dépôts"""
    TDS = "TDS"
    DPS = "DPS"
    MYDEPOSITS = "MYDEPOSITS"
    INTERNAL = "INTERNAL"


class TransactionType(str, enum.Enum):
    DEPOSIT = "DEPOSIT"
    PROTECTION_FEE = "PROTECTION_FEE"
    RETURN = "RETURN"
    DEDUCTION = "DEDUCTION"
    REFUND = "REFUND"


class TransactionStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class DisputeReason(str, enum.Enum):
    """Motifs de litige"""
    DAMAGE = "DAMAGE"
    CLEANING = "CLEANING"
    UNPAID_RENT = "UNPAID_RENT"
    UNPAID_BILLS = "UNPAID_BILLS"
    MISSING_ITEMS = "MISSING_ITEMS"
    OTHER = "OTHER"


class DisputeStatus(str, enum.Enum):
    """Statuts d'un litige"""
    OPEN = "OPEN"
    IN_REVIEW = "IN_REVIEW"
    AWAITING_EVIDENCE = "AWAITING_EVIDENCE"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    ESCALATED = "ESCALATED"


class EvidenceType(str, enum.Enum):
    PHOTO = "PHOTO"
    VIDEO = "VIDEO"
    DOCUMENT = "DOCUMENT"
    INVOICE = "INVOICE"
    RECEIPT = "RECEIPT"
    CORRESPONDENCE = "CORRESPONDENCE"


class DocumentType(str, enum.Enum):
    """Types de documents rattachés à un bail"""
    LEASE_AGREEMENT = "LEASE_AGREEMENT"
    INVENTORY = "INVENTORY"
    INSPECTION_REPORT = "INSPECTION_REPORT"
    PROOF_OF_PAYMENT = "PROOF_OF_PAYMENT"
    IDENTITY = "IDENTITY"
    OTHER = "OTHER"


class NotificationType(str, enum.Enum):
    """Types de notifications utilisateur"""
    DEPOSIT_RECEIVED = "DEPOSIT_RECEIVED"
    DEPOSIT_PROTECTED = "DEPOSIT_PROTECTED"
    DEPOSIT_RETURN_REQUESTED = "DEPOSIT_RETURN_REQUESTED"
    DEPOSIT_RETURNED = "DEPOSIT_RETURNED"
    DISPUTE_RAISED = "DISPUTE_RAISED"
    DISPUTE_UPDATE = "DISPUTE_UPDATE"
    DISPUTE_RESOLVED = "DISPUTE_RESOLVED"
    DOCUMENT_UPLOADED = "DOCUMENT_UPLOADED"
    LEASE_SIGNED = "LEASE_SIGNED"
    PAYMENT_DUE = "PAYMENT_DUE"


class ActionType(str, enum.Enum):
    """Types d'actions pour l'audit logging"""
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    REFRESH_TOKEN = "REFRESH_TOKEN"
    TRANSITION = "TRANSITION"
    WEBHOOK = "WEBHOOK"
    ACCESS_DENIED = "ACCESS_DENIED"
    ERROR = "ERROR"


class EntityType(str, enum.Enum):
    """Types d'entités dans l'application"""
    USER = "USER"
    SESSION = "SESSION"
    PROPERTY = "PROPERTY"
    LEASE = "LEASE"
    DEPOSIT = "DEPOSIT"
    TRANSACTION = "TRANSACTION"
    DEDUCTION = "DEDUCTION"
    DISPUTE = "DISPUTE"
    DOCUMENT = "DOCUMENT"
    NOTIFICATION = "NOTIFICATION"
    WEBHOOK_EVENT = "WEBHOOK_EVENT"
