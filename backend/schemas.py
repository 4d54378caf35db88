from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from typing import Annotated, Optional, List, Any, Dict
from datetime import date, datetime
from decimal import Decimal
import re

# Import centralisé des enums
from enums import (
    UserRole, SELF_SERVICE_ROLES, PropertyType, LeaseStatus, DepositStatus,
    ProtectionScheme, TransactionType, TransactionStatus, DisputeReason,
    DisputeStatus, EvidenceType, DocumentType, NotificationType
)
from constants import (
    MIN_PASSWORD_LENGTH, MAX_PASSWORD_LENGTH, PASSWORD_SPECIAL_CHARACTERS,
    MIN_DISPUTE_DESCRIPTION_LENGTH
)

# Montant strictement positif, deux décimales au plus
PositiveMoney = Annotated[Decimal, Field(gt=0, max_digits=12, decimal_places=2)]
# Montant positif ou nul (répartitions de litige)
NonNegativeMoney = Annotated[Decimal, Field(ge=0, max_digits=12, decimal_places=2)]


def check_password_strength(v: str) -> str:
    """Règles de complexité communes à l'inscription et à la réinitialisation"""
    if not re.search(r'[A-Z]', v):
        raise ValueError('Password must contain at least one uppercase letter')
    if not re.search(r'[a-z]', v):
        raise ValueError('Password must contain at least one lowercase letter')
    if not re.search(r'\d', v):
        raise ValueError('Password must contain at least one number')
    if not any(c in PASSWORD_SPECIAL_CHARACTERS for c in v):
        raise ValueError('Password must contain at least one special character')
    return v


class PasswordConfirmation(BaseModel):
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH, description="Mot de passe")
    confirm_password: str = Field(..., description="Confirmation du mot de passe")

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        return check_password_strength(v)

    @model_validator(mode='after')
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords don't match")
        return self


# ==================== AUTH ====================

class RegisterRequest(PasswordConfirmation):
    email: EmailStr = Field(..., description="Adresse email")
    first_name: str = Field(..., min_length=1, max_length=100, description="Prénom")
    last_name: str = Field(..., min_length=1, max_length=100, description="Nom de famille")
    phone: Optional[str] = Field(None, max_length=50, description="Numéro de téléphone")
    role: UserRole = Field(UserRole.TENANT, description="Rôle demandé")

    @field_validator('first_name', 'last_name')
    @classmethod
    def validate_names(cls, v):
        if not v.strip():
            raise ValueError('This field cannot be empty')
        return v.strip()

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        if v and not re.match(r'^[0-9+\-\s\(\)]{10,20}$', v):
            raise ValueError('Invalid phone number')
        return v

    @field_validator('role')
    @classmethod
    def validate_role(cls, v):
        if v not in SELF_SERVICE_ROLES:
            raise ValueError('This role cannot be self-assigned')
        return v


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(PasswordConfirmation):
    token: str = Field(..., min_length=1)


class VerifyEmailRequest(BaseModel):
    token: str = Field(..., min_length=1)


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


# ==================== UTILISATEURS ====================

class UserOut(BaseModel):
    id: int
    email: EmailStr
    role: UserRole
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email_verified: bool = False
    two_factor_enabled: bool = False
    subscription_status: Optional[str] = None
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class UserUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)


# ==================== BIENS ====================

class PropertyBase(BaseModel):
    address_line1: str = Field(..., min_length=1, max_length=255, description="Adresse")
    address_line2: Optional[str] = Field(None, max_length=255, description="Complément d'adresse")
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=2, max_length=2, description="Code d'État (CA, NY, ...)")
    zip_code: str = Field(..., description="Code postal US")
    country: str = Field("US", min_length=2, max_length=2)
    property_type: PropertyType
    bedrooms: int = Field(0, ge=0, le=50)
    bathrooms: Decimal = Field(Decimal("0"), ge=0, le=50, decimal_places=1)
    square_feet: Optional[int] = Field(None, gt=0)
    monthly_rent: Optional[PositiveMoney] = None
    description: Optional[str] = None

    @field_validator('state')
    @classmethod
    def validate_state(cls, v):
        if not re.match(r'^[A-Za-z]{2}$', v):
            raise ValueError('State must be a 2 letter code')
        return v.upper()

    @field_validator('zip_code')
    @classmethod
    def validate_zip_code(cls, v):
        if not re.match(r'^\d{5}(-\d{4})?$', v):
            raise ValueError('Invalid ZIP code')
        return v


class PropertyCreate(PropertyBase):
    landlord_id: Optional[int] = Field(None, description="Propriétaire (admin et gestionnaires uniquement)")


class PropertyUpdate(BaseModel):
    address_line1: Optional[str] = Field(None, min_length=1, max_length=255)
    address_line2: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, min_length=1, max_length=100)
    property_type: Optional[PropertyType] = None
    bedrooms: Optional[int] = Field(None, ge=0, le=50)
    bathrooms: Optional[Decimal] = Field(None, ge=0, le=50, decimal_places=1)
    square_feet: Optional[int] = Field(None, gt=0)
    monthly_rent: Optional[PositiveMoney] = None
    description: Optional[str] = None


class PropertyOut(PropertyBase):
    id: int
    landlord_id: int
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ==================== BAUX ====================

class LeaseCreate(BaseModel):
    property_id: int
    tenant_id: int
    start_date: date
    end_date: date
    monthly_rent: PositiveMoney
    deposit_amount: PositiveMoney
    terms: Optional[str] = None

    @model_validator(mode='after')
    def check_dates(self):
        if self.end_date <= self.start_date:
            raise ValueError('End date must be after start date')
        return self


class LeaseTerminate(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class LeaseOut(BaseModel):
    id: int
    property_id: int
    tenant_id: int
    landlord_id: int
    start_date: date
    end_date: date
    monthly_rent: Decimal
    deposit_amount: Decimal
    status: LeaseStatus
    tenant_signed_at: Optional[datetime] = None
    landlord_signed_at: Optional[datetime] = None
    terms: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ==================== DÉPÔTS ====================

class DepositPay(BaseModel):
    payment_reference: Optional[str] = Field(None, max_length=255, description="Référence du paiement")


class DepositProtect(BaseModel):
    scheme: ProtectionScheme
    reference: str = Field(..., min_length=1, max_length=255)


class DeductionIn(BaseModel):
    reason: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    amount: PositiveMoney


class ReturnRequest(BaseModel):
    requested_amount: NonNegativeMoney
    deductions: List[DeductionIn] = Field(default_factory=list)


class TransactionOut(BaseModel):
    id: int
    deposit_id: int
    type: TransactionType
    amount: Decimal
    currency: str
    status: TransactionStatus
    reference: Optional[str] = None
    stripe_charge_id: Optional[str] = None
    failure_reason: Optional[str] = None
    description: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class DeductionOut(BaseModel):
    id: int
    deposit_id: int
    reason: str
    description: Optional[str] = None
    amount: Decimal
    approved: bool
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class DepositOut(BaseModel):
    id: int
    lease_id: int
    amount: Decimal
    currency: str
    status: DepositStatus
    protection_scheme: Optional[ProtectionScheme] = None
    protection_reference: Optional[str] = None
    protected_at: Optional[datetime] = None
    interest_rate: Optional[Decimal] = None
    return_amount: Optional[Decimal] = None
    final_amount: Optional[Decimal] = None
    return_requested_at: Optional[datetime] = None
    return_approved_at: Optional[datetime] = None
    returned_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class DepositDetailOut(DepositOut):
    transactions: List[TransactionOut] = []
    deductions: List[DeductionOut] = []


# ==================== LITIGES ====================

class DisputeCreate(BaseModel):
    deposit_id: int
    reason: DisputeReason
    description: str = Field(..., min_length=MIN_DISPUTE_DESCRIPTION_LENGTH)
    claimed_amount: Optional[PositiveMoney] = None


class DisputeStatusUpdate(BaseModel):
    status: DisputeStatus


class DisputeResolve(BaseModel):
    tenant_amount: NonNegativeMoney
    landlord_amount: NonNegativeMoney
    reasoning: str = Field(..., min_length=1)
    resolution: Optional[str] = None


class DisputeMessageCreate(BaseModel):
    message: str = Field(..., min_length=1)
    is_internal: bool = False


class EvidenceCreate(BaseModel):
    type: EvidenceType
    url: str = Field(..., min_length=1, max_length=1000)
    description: Optional[str] = None


class DisputeMessageOut(BaseModel):
    id: int
    dispute_id: int
    sender_id: int
    message: str
    is_internal: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class EvidenceOut(BaseModel):
    id: int
    dispute_id: int
    type: EvidenceType
    url: str
    description: Optional[str] = None
    uploaded_by: int
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class DisputeOut(BaseModel):
    id: int
    deposit_id: int
    raised_by: int
    reason: DisputeReason
    description: str
    claimed_amount: Optional[Decimal] = None
    status: DisputeStatus
    resolved_by: Optional[int] = None
    resolution: Optional[str] = None
    tenant_amount: Optional[Decimal] = None
    landlord_amount: Optional[Decimal] = None
    reasoning: Optional[str] = None
    resolved_at: Optional[datetime] = None
    deadline: datetime
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class DisputeDetailOut(DisputeOut):
    evidence: List[EvidenceOut] = []
    messages: List[DisputeMessageOut] = []


# ==================== DOCUMENTS ====================

class DocumentCreate(BaseModel):
    lease_id: int
    type: DocumentType
    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1, max_length=1000)
    size: Optional[int] = Field(None, ge=0)
    mime_type: Optional[str] = Field(None, max_length=100)


class DocumentOut(BaseModel):
    id: int
    lease_id: int
    type: DocumentType
    name: str
    url: str
    size: Optional[int] = None
    mime_type: Optional[str] = None
    uploaded_by: int
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ==================== NOTIFICATIONS ====================

class NotificationOut(BaseModel):
    id: int
    type: NotificationType
    title: str
    message: str
    data: Optional[Dict[str, Any]] = None
    read: bool
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
