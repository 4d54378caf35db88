"""
Service des baux : création, signatures, fin de bail
L'activation (double signature) crée le dépôt de garantie associé
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from enums import DepositStatus, LeaseStatus, NotificationType, UserRole
from errors import AuthorizationError, BusinessLogicError, ConflictError, NotFoundError, ValidationError
from services.deposit_lifecycle import DepositService, to_money
from services.status_guard import (
    apply_transition, compare_and_set_status, is_admin, is_lease_landlord, is_lease_party,
    is_lease_tenant, transition
)
from services.user_notification_service import UserNotificationService
import models
import schemas
import state_laws

BLOCKING_LEASE_STATUSES = (LeaseStatus.ACTIVE, LeaseStatus.PENDING_SIGNATURES)
# Une restitution ou un litige en cours empêche de résilier le bail
TERMINATION_BLOCKING_DEPOSIT_STATUSES = {DepositStatus.PENDING_RETURN, DepositStatus.DISPUTED}

LEASE_TRANSITIONS = {
    "activate": transition(
        "activate", {LeaseStatus.PENDING_SIGNATURES}, LeaseStatus.ACTIVE,
        conflict_message="Lease is not pending signatures",
    ),
    "terminate": transition(
        "terminate", {LeaseStatus.ACTIVE}, LeaseStatus.TERMINATED,
        actors=(is_lease_party, is_admin),
        conflict_message="Only active leases can be terminated",
    ),
    "expire": transition(
        "expire", {LeaseStatus.ACTIVE}, LeaseStatus.EXPIRED,
        actors=(is_lease_party, is_admin),
        conflict_message="Only active leases can expire",
    ),
}

LEASE_MANAGERS = (UserRole.LANDLORD, UserRole.PROPERTY_MANAGER, UserRole.ADMIN)
LEASE_READERS = (UserRole.ADMIN, UserRole.PROPERTY_MANAGER, UserRole.DISPUTE_RESOLVER)


def can_view_lease(user: models.User, lease: models.Lease) -> bool:
    return user.role in LEASE_READERS or is_lease_party(user, lease)


class LeaseService:
    """Opérations sur les baux"""

    @staticmethod
    def get_lease(db: Session, lease_id: int) -> models.Lease:
        lease = db.query(models.Lease).filter(models.Lease.id == lease_id).first()
        if not lease:
            raise NotFoundError("Lease")
        return lease

    @staticmethod
    def get_for_user(db: Session, lease_id: int, user: models.User) -> models.Lease:
        lease = LeaseService.get_lease(db, lease_id)
        if not can_view_lease(user, lease):
            raise AuthorizationError("Access denied")
        return lease

    @staticmethod
    def visible_query(db: Session, user: models.User, status: Optional[LeaseStatus] = None,
                      property_id: Optional[int] = None):
        query = db.query(models.Lease)
        if user.role not in LEASE_READERS:
            query = query.filter(or_(models.Lease.tenant_id == user.id, models.Lease.landlord_id == user.id))
        if status:
            query = query.filter(models.Lease.status == status)
        if property_id:
            query = query.filter(models.Lease.property_id == property_id)
        return query.order_by(models.Lease.created_at.desc(), models.Lease.id.desc())

    @staticmethod
    def create(db: Session, user: models.User, data: schemas.LeaseCreate) -> models.Lease:
        if user.role not in LEASE_MANAGERS:
            raise AuthorizationError("Only landlords and property managers can create leases")

        prop = db.query(models.Property).filter(models.Property.id == data.property_id).first()
        if not prop:
            raise NotFoundError("Property")
        if user.role == UserRole.LANDLORD and prop.landlord_id != user.id:
            raise AuthorizationError("You can only create leases for your own properties")

        tenant = db.query(models.User).filter(models.User.id == data.tenant_id).first()
        if not tenant:
            raise NotFoundError("Tenant")
        if tenant.role != UserRole.TENANT:
            raise ValidationError("Lease tenant must have the tenant role", details={"tenant_id": tenant.id})

        existing = db.query(models.Lease).filter(
            models.Lease.property_id == prop.id,
            models.Lease.status.in_(BLOCKING_LEASE_STATUSES)
        ).first()
        if existing:
            raise ConflictError("Property already has an active lease", details={"lease_id": existing.id})

        check = state_laws.validate_deposit_amount(prop.state, data.deposit_amount, data.monthly_rent)
        if not check["valid"]:
            raise BusinessLogicError(
                check["message"], "DEPOSIT_EXCEEDS_STATE_LIMIT",
                details={"state": prop.state, "max_allowed": str(to_money(check["max_allowed"]))},
            )

        lease = models.Lease(
            property_id=prop.id,
            tenant_id=tenant.id,
            landlord_id=prop.landlord_id,
            start_date=data.start_date,
            end_date=data.end_date,
            monthly_rent=to_money(data.monthly_rent),
            deposit_amount=to_money(data.deposit_amount),
            terms=data.terms,
            status=LeaseStatus.PENDING_SIGNATURES,
        )
        db.add(lease)
        prop.monthly_rent = to_money(data.monthly_rent)
        db.commit()
        db.refresh(lease)
        return lease

    @staticmethod
    def sign(db: Session, lease_id: int, user: models.User) -> models.Lease:
        lease = LeaseService.get_lease(db, lease_id)
        if is_lease_tenant(user, lease):
            field, other_party = "tenant_signed_at", lease.landlord_id
        elif is_lease_landlord(user, lease):
            field, other_party = "landlord_signed_at", lease.tenant_id
        else:
            raise AuthorizationError("Only lease parties can sign")

        if lease.status != LeaseStatus.PENDING_SIGNATURES:
            raise ConflictError("Lease is not pending signatures",
                                details={"lease_status": lease.status.value})
        if getattr(lease, field) is not None:
            raise ConflictError("Lease already signed by this party")

        compare_and_set_status(db, lease, {LeaseStatus.PENDING_SIGNATURES}, {field: datetime.utcnow()})

        # Activation seulement quand les deux signatures sont présentes
        if lease.tenant_signed_at is not None and lease.landlord_signed_at is not None:
            apply_transition(db, lease, LEASE_TRANSITIONS["activate"])
            DepositService.create_for_lease(db, lease)

        UserNotificationService.create_notification(
            db, other_party, NotificationType.LEASE_SIGNED,
            "Lease Signed", f"The lease #{lease.id} has been signed by the other party.",
            data={"lease_id": lease.id},
        )
        db.commit()
        db.refresh(lease)
        return lease

    @staticmethod
    def terminate(db: Session, lease_id: int, user: models.User, reason: Optional[str] = None) -> models.Lease:
        lease = LeaseService.get_lease(db, lease_id)
        rule = LEASE_TRANSITIONS["terminate"]
        rule.check(lease.status, user, lease)

        if lease.deposit and lease.deposit.status in TERMINATION_BLOCKING_DEPOSIT_STATUSES:
            raise ConflictError("Deposit return or dispute is in progress",
                                details={"deposit_status": lease.deposit.status.value})

        terms = lease.terms or ""
        if reason:
            terms = f"{terms}\n\nTermination reason: {reason}".strip()
        apply_transition(db, lease, rule, terms=terms or None)
        db.commit()
        db.refresh(lease)
        return lease

    @staticmethod
    def expire(db: Session, lease_id: int, user: models.User) -> models.Lease:
        lease = LeaseService.get_lease(db, lease_id)
        rule = LEASE_TRANSITIONS["expire"]
        rule.check(lease.status, user, lease)

        if lease.end_date > datetime.utcnow().date():
            raise ConflictError("Lease end date has not been reached",
                                details={"end_date": lease.end_date.isoformat()})
        apply_transition(db, lease, rule)
        db.commit()
        db.refresh(lease)
        return lease
