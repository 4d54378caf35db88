"""
Routes API de consultation des transactions (grand livre des dépôts)
"""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import or_
from sqlalchemy.orm import Session

from auth import get_current_user
from database import get_db
from enums import TransactionStatus, TransactionType, UserRole
from errors import AuthorizationError, NotFoundError
from responses import PaginationParams, paginate, serialize, serialize_list, success_response
from services.deposit_lifecycle import can_view_deposit
import models
import schemas

router = APIRouter(prefix="/api/v1/transactions", tags=["transactions"])


@router.get("")
async def list_transactions(
    deposit_id: Optional[int] = None,
    type: Optional[TransactionType] = None,
    status: Optional[TransactionStatus] = None,
    pagination: PaginationParams = Depends(),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    query = db.query(models.Transaction) \
        .join(models.Deposit, models.Transaction.deposit_id == models.Deposit.id) \
        .join(models.Lease, models.Deposit.lease_id == models.Lease.id)
    if current_user.role not in (UserRole.ADMIN, UserRole.DISPUTE_RESOLVER):
        query = query.filter(or_(
            models.Lease.tenant_id == current_user.id,
            models.Lease.landlord_id == current_user.id,
        ))
    if deposit_id:
        query = query.filter(models.Transaction.deposit_id == deposit_id)
    if type:
        query = query.filter(models.Transaction.type == type)
    if status:
        query = query.filter(models.Transaction.status == status)

    query = query.order_by(models.Transaction.created_at.desc(), models.Transaction.id.desc())
    transactions, meta = paginate(query, pagination)
    return success_response(serialize_list(schemas.TransactionOut, transactions), meta=meta)


@router.get("/{transaction_id}")
async def get_transaction(
    transaction_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    transaction = db.query(models.Transaction).filter(models.Transaction.id == transaction_id).first()
    if not transaction:
        raise NotFoundError("Transaction")
    if not can_view_deposit(current_user, transaction.deposit.lease):
        raise AuthorizationError("Access denied")
    return success_response(serialize(schemas.TransactionOut, transaction))
