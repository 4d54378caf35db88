"""
Routes API du cycle de vie des dépôts de garantie
"""
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from audit_logger import AuditLogger
from auth import get_current_user
from database import get_db
from email_service import EmailService, get_email_service
from enums import ActionType, DepositStatus, EntityType
from responses import PaginationParams, paginate, serialize, serialize_list, success_response
from services.deposit_lifecycle import DepositService
import models
import schemas

router = APIRouter(prefix="/api/v1/deposits", tags=["deposits"])


def _deposit_detail(deposit: models.Deposit):
    return serialize(schemas.DepositDetailOut, deposit)


def _log_transition(db: Session, deposit: models.Deposit, user: models.User, previous: DepositStatus,
                    request: Request, details: dict = None):
    AuditLogger.log_transition(
        db, EntityType.DEPOSIT, deposit.id, user.id, previous, deposit.status, request, details
    )


@router.get("")
async def list_deposits(
    status: Optional[DepositStatus] = None,
    pagination: PaginationParams = Depends(),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    query = DepositService.visible_query(db, current_user, status)
    deposits, meta = paginate(query, pagination)
    return success_response(serialize_list(schemas.DepositOut, deposits), meta=meta)


@router.get("/{deposit_id}")
async def get_deposit(
    deposit_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Dépôt avec ses transactions et déductions"""
    deposit = DepositService.get_for_user(db, deposit_id, current_user)
    return success_response(_deposit_detail(deposit))


@router.post("/{deposit_id}/pay")
async def pay_deposit(
    deposit_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    data: Optional[schemas.DepositPay] = None,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service)
):
    """Paiement du dépôt par le locataire : PENDING_PAYMENT -> HELD"""
    reference = data.payment_reference if data else None
    previous = DepositService.get_deposit(db, deposit_id).status
    deposit = DepositService.pay(db, deposit_id, current_user, reference)
    _log_transition(db, deposit, current_user, previous, request, {"reference": reference})

    lease = deposit.lease
    tenant = lease.tenant
    prop = lease.property
    address = f"{prop.address_line1}, {prop.city} {prop.state}"
    background_tasks.add_task(
        email_service.send_deposit_confirmation,
        tenant.email, f"{tenant.first_name or ''} {tenant.last_name or ''}".strip() or tenant.email,
        deposit.amount, deposit.currency, address,
    )
    return success_response(_deposit_detail(deposit))


@router.post("/{deposit_id}/protect")
async def protect_deposit(
    deposit_id: int,
    data: schemas.DepositProtect,
    request: Request,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Enregistrement auprès d'un organisme de protection : HELD -> PROTECTED"""
    previous = DepositService.get_deposit(db, deposit_id).status
    deposit = DepositService.protect(db, deposit_id, current_user, data)
    _log_transition(db, deposit, current_user, previous, request,
                    {"scheme": data.scheme.value, "reference": data.reference})
    return success_response(_deposit_detail(deposit))


@router.post("/{deposit_id}/return-request")
async def request_return(
    deposit_id: int,
    data: schemas.ReturnRequest,
    request: Request,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    previous = DepositService.get_deposit(db, deposit_id).status
    deposit = DepositService.request_return(db, deposit_id, current_user, data)
    _log_transition(db, deposit, current_user, previous, request,
                    {"requested_amount": str(data.requested_amount), "deductions": len(data.deductions)})
    return success_response(_deposit_detail(deposit))


@router.post("/{deposit_id}/approve-return")
async def approve_return(
    deposit_id: int,
    request: Request,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Restitution : montant final = dépôt - déductions approuvées"""
    previous = DepositService.get_deposit(db, deposit_id).status
    deposit = DepositService.approve_return(db, deposit_id, current_user)
    _log_transition(db, deposit, current_user, previous, request,
                    {"final_amount": str(deposit.final_amount)})
    return success_response(_deposit_detail(deposit))


@router.post("/deductions/{deduction_id}/approve")
async def approve_deduction(
    deduction_id: int,
    request: Request,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    deduction = DepositService.approve_deduction(db, deduction_id, current_user)
    AuditLogger.log_action(
        db=db,
        action=ActionType.UPDATE,
        entity_type=EntityType.DEDUCTION,
        description=f"Déduction {deduction.id} approuvée",
        user_id=current_user.id,
        entity_id=deduction.id,
        details={"deposit_id": deduction.deposit_id, "amount": str(deduction.amount)},
        request=request,
        status_code=200
    )
    return success_response(serialize(schemas.DeductionOut, deduction))
