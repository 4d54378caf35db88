"""
Cycle de vie du dépôt de garantie

PENDING_PAYMENT -> HELD -> PROTECTED -> PENDING_RETURN -> RETURNED | DISPUTED
DISPUTED -> RETURNED (résolution du litige)

Chaque opération : chargement, contrôle de la règle (acteur puis statut),
règles métier (lois des États, montants), transition conditionnelle, effets de
bord (transactions, déductions, notifications), commit unique.
"""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from constants import MONEY_QUANTUM, PROTECTION_FEE_AMOUNT
from enums import (
    DepositStatus, LeaseStatus, NotificationType, TransactionStatus, TransactionType, UserRole
)
from errors import AuthorizationError, BusinessLogicError, ConflictError, NotFoundError
from services.status_guard import (
    apply_transition, is_admin, is_dispute_resolver, is_lease_landlord, is_lease_tenant,
    transition
)
from services.user_notification_service import UserNotificationService
import models
import schemas
import state_laws

DEPOSIT_TRANSITIONS = {
    "pay": transition(
        "pay", {DepositStatus.PENDING_PAYMENT}, DepositStatus.HELD,
        actors=(is_lease_tenant, is_admin),
        conflict_message="Deposit has already been paid",
    ),
    "protect": transition(
        "protect", {DepositStatus.HELD}, DepositStatus.PROTECTED,
        actors=(is_lease_landlord, is_admin),
        conflict_message="Deposit must be held before it can be protected",
    ),
    "request_return": transition(
        "request_return", {DepositStatus.HELD, DepositStatus.PROTECTED}, DepositStatus.PENDING_RETURN,
        actors=(is_lease_tenant, is_lease_landlord, is_admin),
        conflict_message="Deposit is not in a returnable state",
    ),
    "approve_return": transition(
        "approve_return", {DepositStatus.PENDING_RETURN}, DepositStatus.RETURNED,
        actors=(is_lease_landlord, is_admin, is_dispute_resolver),
        conflict_message="No pending return request",
    ),
    "raise_dispute": transition(
        "raise_dispute", {DepositStatus.PENDING_RETURN}, DepositStatus.DISPUTED,
        actors=(is_lease_tenant, is_lease_landlord),
        conflict_message="Can only dispute deposits pending return",
    ),
    "resolve_dispute": transition(
        "resolve_dispute", {DepositStatus.DISPUTED}, DepositStatus.RETURNED,
        actors=(is_admin, is_dispute_resolver),
        conflict_message="Deposit is not under dispute",
    ),
    # Transitions déclenchées par le fournisseur de paiement (acteur système)
    "collect": transition(
        "collect", {DepositStatus.PENDING_PAYMENT}, DepositStatus.HELD,
        conflict_message="Deposit is not awaiting payment",
    ),
    "refund": transition(
        "refund", {DepositStatus.HELD, DepositStatus.PROTECTED}, DepositStatus.RETURNED,
        conflict_message="Deposit cannot be refunded in its current status",
    ),
}

# Déductions : pas de changement de statut, mêmes acteurs que l'approbation du retour
DEDUCTION_APPROVERS = (is_lease_landlord, is_admin, is_dispute_resolver)

RETURNABLE_LEASE_STATUSES = {LeaseStatus.EXPIRED, LeaseStatus.TERMINATED}


def to_money(value) -> Decimal:
    """Décimal arrondi au centime"""
    return Decimal(value).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def compute_final_amount(amount: Decimal, deductions: List[models.Deduction]) -> Decimal:
    """Montant restitué : dépôt moins les déductions approuvées, borné à [0, dépôt]"""
    approved = sum((to_money(d.amount) for d in deductions if d.approved), Decimal("0"))
    final = to_money(amount) - approved
    return min(max(final, Decimal("0.00")), to_money(amount))


def can_view_deposit(user: models.User, lease: models.Lease) -> bool:
    return (
        is_admin(user) or is_dispute_resolver(user)
        or is_lease_tenant(user, lease) or is_lease_landlord(user, lease)
    )


class DepositService:
    """Opérations du cycle de vie des dépôts"""

    @staticmethod
    def get_deposit(db: Session, deposit_id: int) -> models.Deposit:
        deposit = db.query(models.Deposit).filter(models.Deposit.id == deposit_id).first()
        if not deposit:
            raise NotFoundError("Deposit")
        return deposit

    @staticmethod
    def get_for_user(db: Session, deposit_id: int, user: models.User) -> models.Deposit:
        deposit = DepositService.get_deposit(db, deposit_id)
        if not can_view_deposit(user, deposit.lease):
            raise AuthorizationError("Access denied")
        return deposit

    @staticmethod
    def visible_query(db: Session, user: models.User, status: Optional[DepositStatus] = None):
        query = db.query(models.Deposit).join(models.Lease, models.Deposit.lease_id == models.Lease.id)
        if user.role not in (UserRole.ADMIN, UserRole.DISPUTE_RESOLVER):
            query = query.filter(or_(models.Lease.tenant_id == user.id, models.Lease.landlord_id == user.id))
        if status:
            query = query.filter(models.Deposit.status == status)
        return query.order_by(models.Deposit.created_at.desc(), models.Deposit.id.desc())

    @staticmethod
    def create_for_lease(db: Session, lease: models.Lease) -> models.Deposit:
        """Dépôt créé à l'activation du bail (sans commit)"""
        deposit = models.Deposit(
            lease_id=lease.id,
            amount=to_money(lease.deposit_amount),
            currency="USD",
            status=DepositStatus.PENDING_PAYMENT,
        )
        state_code = lease.property.state if lease.property else None
        if state_code and state_laws.is_interest_required(state_code):
            deposit.interest_rate = state_laws.get_interest_rate(state_code)
        db.add(deposit)
        return deposit

    @staticmethod
    def record_transaction(db: Session, deposit: models.Deposit, tx_type: TransactionType, amount,
                           status: TransactionStatus = TransactionStatus.COMPLETED,
                           reference: str = None, description: str = None) -> models.Transaction:
        tx = models.Transaction(
            deposit_id=deposit.id,
            type=tx_type,
            amount=to_money(amount),
            currency=deposit.currency,
            status=status,
            reference=reference,
            description=description,
            processed_at=datetime.utcnow() if status == TransactionStatus.COMPLETED else None,
        )
        db.add(tx)
        return tx

    # ==================== TRANSITIONS ====================

    @staticmethod
    def pay(db: Session, deposit_id: int, user: models.User, payment_reference: str = None) -> models.Deposit:
        deposit = DepositService.get_deposit(db, deposit_id)
        lease = deposit.lease
        rule = DEPOSIT_TRANSITIONS["pay"]
        rule.check(deposit.status, user, lease)

        apply_transition(db, deposit, rule)
        DepositService.record_transaction(
            db, deposit, TransactionType.DEPOSIT, deposit.amount,
            reference=payment_reference, description="Deposit payment",
        )
        UserNotificationService.create_notification(
            db, lease.landlord_id, NotificationType.DEPOSIT_RECEIVED,
            "Deposit Received", f"The deposit of {deposit.amount} {deposit.currency} has been paid.",
            data={"deposit_id": deposit.id},
        )
        db.commit()
        db.refresh(deposit)
        return deposit

    @staticmethod
    def protect(db: Session, deposit_id: int, user: models.User, data: schemas.DepositProtect) -> models.Deposit:
        deposit = DepositService.get_deposit(db, deposit_id)
        lease = deposit.lease
        rule = DEPOSIT_TRANSITIONS["protect"]
        rule.check(deposit.status, user, lease)

        state_code = lease.property.state
        protection_required = state_laws.is_protection_required(state_code)
        if protection_required:
            deadline = state_laws.get_protection_deadline(state_code, lease.start_date)
            if deadline and datetime.utcnow().date() > deadline:
                raise BusinessLogicError(
                    "Protection deadline has passed",
                    "PROTECTION_DEADLINE_PASSED",
                    details={"deadline": deadline.isoformat(), "state": state_code},
                )

        apply_transition(
            db, deposit, rule,
            protection_scheme=data.scheme,
            protection_reference=data.reference,
            protected_at=datetime.utcnow(),
        )
        if protection_required:
            DepositService.record_transaction(
                db, deposit, TransactionType.PROTECTION_FEE, PROTECTION_FEE_AMOUNT,
                reference=data.reference, description=f"{data.scheme.value} protection fee",
            )
        UserNotificationService.create_notification(
            db, lease.tenant_id, NotificationType.DEPOSIT_PROTECTED,
            "Deposit Protected", f"Your deposit is now protected by {data.scheme.value}.",
            data={"deposit_id": deposit.id, "reference": data.reference},
        )
        db.commit()
        db.refresh(deposit)
        return deposit

    @staticmethod
    def request_return(db: Session, deposit_id: int, user: models.User, data: schemas.ReturnRequest) -> models.Deposit:
        deposit = DepositService.get_deposit(db, deposit_id)
        lease = deposit.lease
        rule = DEPOSIT_TRANSITIONS["request_return"]
        rule.check(deposit.status, user, lease)

        if lease.status not in RETURNABLE_LEASE_STATUSES:
            raise ConflictError(
                "Lease must be expired or terminated to request a return",
                details={"lease_status": lease.status.value},
            )

        total_deductions = sum((to_money(d.amount) for d in data.deductions), Decimal("0"))
        if total_deductions > to_money(deposit.amount):
            raise BusinessLogicError(
                "Total deductions cannot exceed deposit amount",
                "EXCESSIVE_DEDUCTIONS",
                details={"deductions": str(total_deductions), "amount": str(to_money(deposit.amount))},
            )

        now = datetime.utcnow()
        apply_transition(
            db, deposit, rule,
            return_amount=to_money(data.requested_amount),
            return_requested_at=now,
        )

        # Les déductions proposées par le bailleur lui-même sont approuvées d'office
        auto_approve = is_lease_landlord(user, lease)
        for item in data.deductions:
            db.add(models.Deduction(
                deposit_id=deposit.id,
                reason=item.reason,
                description=item.description,
                amount=to_money(item.amount),
                approved=auto_approve,
                approved_by=user.id if auto_approve else None,
                approved_at=now if auto_approve else None,
            ))

        other_party = lease.landlord_id if is_lease_tenant(user, lease) else lease.tenant_id
        UserNotificationService.create_notification(
            db, other_party, NotificationType.DEPOSIT_RETURN_REQUESTED,
            "Deposit Return Requested", f"A return of {to_money(data.requested_amount)} {deposit.currency} has been requested.",
            data={"deposit_id": deposit.id},
        )
        db.commit()
        db.refresh(deposit)
        return deposit

    @staticmethod
    def approve_deduction(db: Session, deduction_id: int, user: models.User) -> models.Deduction:
        deduction = db.query(models.Deduction).filter(models.Deduction.id == deduction_id).first()
        if not deduction:
            raise NotFoundError("Deduction")
        deposit = deduction.deposit
        if not any(capability(user, deposit.lease) for capability in DEDUCTION_APPROVERS):
            raise AuthorizationError("Not allowed to approve deductions")
        if deposit.status != DepositStatus.PENDING_RETURN:
            raise ConflictError("Deductions can only be approved while a return is pending")

        if not deduction.approved:
            deduction.approved = True
            deduction.approved_by = user.id
            deduction.approved_at = datetime.utcnow()
            db.commit()
            db.refresh(deduction)
        return deduction

    @staticmethod
    def approve_return(db: Session, deposit_id: int, user: models.User) -> models.Deposit:
        deposit = DepositService.get_deposit(db, deposit_id)
        lease = deposit.lease
        rule = DEPOSIT_TRANSITIONS["approve_return"]
        rule.check(deposit.status, user, lease)

        final_amount = compute_final_amount(deposit.amount, deposit.deductions)
        now = datetime.utcnow()
        apply_transition(
            db, deposit, rule,
            final_amount=final_amount,
            return_approved_at=now,
            returned_at=now,
        )
        if final_amount > 0:
            DepositService.record_transaction(
                db, deposit, TransactionType.RETURN, final_amount, description="Deposit return",
            )
        UserNotificationService.create_notification(
            db, lease.tenant_id, NotificationType.DEPOSIT_RETURNED,
            "Deposit Returned", f"{final_amount} {deposit.currency} of your deposit has been returned.",
            data={"deposit_id": deposit.id, "final_amount": str(final_amount)},
        )
        db.commit()
        db.refresh(deposit)
        return deposit
