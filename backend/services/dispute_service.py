"""
Résolution des litiges sur les dépôts

OPEN -> IN_REVIEW -> AWAITING_EVIDENCE -> RESOLVED | CLOSED | ESCALATED
Un litige ouvert suspend le dépôt (DISPUTED) ; sa résolution répartit le
montant entre locataire et bailleur et restitue le dépôt (RETURNED).
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from constants import DISPUTE_RESOLUTION_DAYS, DISPUTE_SPLIT_TOLERANCE
from enums import DisputeStatus, NotificationType, TransactionType, UserRole
from errors import AuthorizationError, ConflictError, NotFoundError
from services.deposit_lifecycle import DEPOSIT_TRANSITIONS, DepositService, to_money
from services.status_guard import (
    apply_transition, compare_and_set_status, is_admin, is_dispute_resolver,
    is_lease_landlord, is_lease_tenant, transition
)
from services.user_notification_service import UserNotificationService
import models
import schemas

TERMINAL_STATUSES = {DisputeStatus.RESOLVED, DisputeStatus.CLOSED}
OPEN_STATUSES = set(DisputeStatus) - TERMINAL_STATUSES

# Statuts qu'un médiateur peut poser directement (RESOLVED passe par resolve)
MANUAL_TARGETS = {
    DisputeStatus.IN_REVIEW, DisputeStatus.AWAITING_EVIDENCE,
    DisputeStatus.ESCALATED, DisputeStatus.CLOSED,
}

DISPUTE_TRANSITIONS = {
    "resolve": transition(
        "resolve", OPEN_STATUSES, DisputeStatus.RESOLVED,
        actors=(is_admin, is_dispute_resolver),
        conflict_message="Dispute is already resolved or closed",
    ),
}

MEDIATORS = (UserRole.ADMIN, UserRole.DISPUTE_RESOLVER)


def is_mediator(user: models.User) -> bool:
    return user.role in MEDIATORS


def can_access_dispute(user: models.User, dispute: models.Dispute) -> bool:
    """Admin, médiateur, auteur du litige ou partie au bail"""
    lease = dispute.deposit.lease
    return (
        is_mediator(user)
        or dispute.raised_by == user.id
        or is_lease_tenant(user, lease)
        or is_lease_landlord(user, lease)
    )


def split_matches_amount(tenant_amount: Decimal, landlord_amount: Decimal, amount: Decimal) -> bool:
    return abs(to_money(tenant_amount) + to_money(landlord_amount) - to_money(amount)) <= DISPUTE_SPLIT_TOLERANCE


class DisputeService:
    """Opérations sur les litiges"""

    @staticmethod
    def get_dispute(db: Session, dispute_id: int) -> models.Dispute:
        dispute = db.query(models.Dispute).filter(models.Dispute.id == dispute_id).first()
        if not dispute:
            raise NotFoundError("Dispute")
        return dispute

    @staticmethod
    def get_for_user(db: Session, dispute_id: int, user: models.User) -> models.Dispute:
        dispute = DisputeService.get_dispute(db, dispute_id)
        if not can_access_dispute(user, dispute):
            raise AuthorizationError("Access denied")
        return dispute

    @staticmethod
    def visible_query(db: Session, user: models.User, status: Optional[DisputeStatus] = None):
        query = db.query(models.Dispute) \
            .join(models.Deposit, models.Dispute.deposit_id == models.Deposit.id) \
            .join(models.Lease, models.Deposit.lease_id == models.Lease.id)
        if not is_mediator(user):
            query = query.filter(or_(
                models.Dispute.raised_by == user.id,
                models.Lease.tenant_id == user.id,
                models.Lease.landlord_id == user.id,
            ))
        if status:
            query = query.filter(models.Dispute.status == status)
        return query.order_by(models.Dispute.created_at.desc(), models.Dispute.id.desc())

    @staticmethod
    def create(db: Session, user: models.User, data: schemas.DisputeCreate) -> models.Dispute:
        deposit = DepositService.get_deposit(db, data.deposit_id)
        lease = deposit.lease
        rule = DEPOSIT_TRANSITIONS["raise_dispute"]
        rule.check(deposit.status, user, lease)

        existing = db.query(models.Dispute).filter(
            models.Dispute.deposit_id == deposit.id,
            models.Dispute.status != DisputeStatus.CLOSED
        ).first()
        if existing:
            raise ConflictError("An active dispute already exists for this deposit",
                                details={"dispute_id": existing.id})

        apply_transition(db, deposit, rule)
        dispute = models.Dispute(
            deposit_id=deposit.id,
            raised_by=user.id,
            reason=data.reason,
            description=data.description,
            claimed_amount=to_money(data.claimed_amount) if data.claimed_amount is not None else None,
            status=DisputeStatus.OPEN,
            deadline=datetime.utcnow() + timedelta(days=DISPUTE_RESOLUTION_DAYS),
        )
        db.add(dispute)
        db.flush()

        other_party = lease.landlord_id if is_lease_tenant(user, lease) else lease.tenant_id
        UserNotificationService.create_notification(
            db, other_party, NotificationType.DISPUTE_RAISED,
            "New Dispute Raised", f"A dispute has been raised regarding the deposit: {data.reason.value}",
            data={"dispute_id": dispute.id, "deposit_id": deposit.id},
        )
        db.commit()
        db.refresh(dispute)
        return dispute

    @staticmethod
    def update_status(db: Session, dispute_id: int, user: models.User, new_status: DisputeStatus) -> models.Dispute:
        if not is_mediator(user):
            raise AuthorizationError("Only admins and dispute resolvers can change dispute status")
        dispute = DisputeService.get_dispute(db, dispute_id)
        if new_status not in MANUAL_TARGETS:
            raise ConflictError("Use the resolve endpoint to resolve a dispute")
        if dispute.status in TERMINAL_STATUSES:
            raise ConflictError("Dispute is already resolved or closed")

        previous = dispute.status
        compare_and_set_status(db, dispute, {previous}, {"status": new_status})
        lease = dispute.deposit.lease
        for party_id in {lease.tenant_id, lease.landlord_id}:
            UserNotificationService.create_notification(
                db, party_id, NotificationType.DISPUTE_UPDATE,
                "Dispute Updated", f"Dispute status changed to {new_status.value}.",
                data={"dispute_id": dispute.id},
            )
        db.commit()
        db.refresh(dispute)
        return dispute

    @staticmethod
    def resolve(db: Session, dispute_id: int, user: models.User, data: schemas.DisputeResolve) -> models.Dispute:
        dispute = DisputeService.get_dispute(db, dispute_id)
        deposit = dispute.deposit
        lease = deposit.lease
        rule = DISPUTE_TRANSITIONS["resolve"]
        rule.check(dispute.status, user, lease)

        if not split_matches_amount(data.tenant_amount, data.landlord_amount, deposit.amount):
            raise ConflictError(
                "Total distribution must equal deposit amount",
                details={
                    "tenant_amount": str(to_money(data.tenant_amount)),
                    "landlord_amount": str(to_money(data.landlord_amount)),
                    "deposit_amount": str(to_money(deposit.amount)),
                },
            )

        tenant_amount = to_money(data.tenant_amount)
        landlord_amount = to_money(data.landlord_amount)
        now = datetime.utcnow()

        apply_transition(
            db, dispute, rule,
            resolved_by=user.id,
            resolution=data.resolution or data.reasoning,
            tenant_amount=tenant_amount,
            landlord_amount=landlord_amount,
            reasoning=data.reasoning,
            resolved_at=now,
        )
        apply_transition(
            db, deposit, DEPOSIT_TRANSITIONS["resolve_dispute"],
            final_amount=tenant_amount,
            return_approved_at=now,
            returned_at=now,
        )
        if tenant_amount > 0:
            DepositService.record_transaction(
                db, deposit, TransactionType.RETURN, tenant_amount,
                description=f"Dispute {dispute.id} resolution: tenant portion",
            )
        if landlord_amount > 0:
            DepositService.record_transaction(
                db, deposit, TransactionType.DEDUCTION, landlord_amount,
                description=f"Dispute {dispute.id} resolution: landlord portion",
            )
        for party_id in {lease.tenant_id, lease.landlord_id}:
            UserNotificationService.create_notification(
                db, party_id, NotificationType.DISPUTE_RESOLVED,
                "Dispute Resolved",
                f"The dispute has been resolved: {tenant_amount} to the tenant, {landlord_amount} to the landlord.",
                data={"dispute_id": dispute.id, "deposit_id": deposit.id},
            )
        db.commit()
        db.refresh(dispute)
        return dispute

    @staticmethod
    def add_message(db: Session, dispute_id: int, user: models.User,
                    data: schemas.DisputeMessageCreate) -> models.DisputeMessage:
        dispute = DisputeService.get_for_user(db, dispute_id, user)
        if data.is_internal and not is_mediator(user):
            raise AuthorizationError("Only admins and dispute resolvers can post internal notes")
        message = models.DisputeMessage(
            dispute_id=dispute.id,
            sender_id=user.id,
            message=data.message,
            is_internal=data.is_internal,
        )
        db.add(message)
        db.commit()
        db.refresh(message)
        return message

    @staticmethod
    def add_evidence(db: Session, dispute_id: int, user: models.User,
                     data: schemas.EvidenceCreate) -> models.Evidence:
        dispute = DisputeService.get_for_user(db, dispute_id, user)
        if dispute.status in TERMINAL_STATUSES:
            raise ConflictError("Evidence cannot be added to a resolved or closed dispute")
        evidence = models.Evidence(
            dispute_id=dispute.id,
            type=data.type,
            url=data.url,
            description=data.description,
            uploaded_by=user.id,
        )
        db.add(evidence)
        db.commit()
        db.refresh(evidence)
        return evidence

    @staticmethod
    def visible_messages(dispute: models.Dispute, user: models.User):
        """Les notes internes ne sont visibles que des médiateurs"""
        if is_mediator(user):
            return list(dispute.messages)
        return [m for m in dispute.messages if not m.is_internal]
