"""
Routes API pour la gestion des baux
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from audit_logger import AuditLogger, get_model_data
from auth import get_current_user
from database import get_db
from enums import ActionType, EntityType, LeaseStatus
from responses import PaginationParams, paginate, serialize, serialize_list, success_response
from services.lease_service import LeaseService
import models
import schemas

router = APIRouter(prefix="/api/v1/leases", tags=["leases"])


@router.get("")
async def list_leases(
    status: Optional[LeaseStatus] = None,
    property_id: Optional[int] = None,
    pagination: PaginationParams = Depends(),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Liste des baux visibles par l'utilisateur"""
    query = LeaseService.visible_query(db, current_user, status, property_id)
    leases, meta = paginate(query, pagination)
    return success_response(serialize_list(schemas.LeaseOut, leases), meta=meta)


@router.get("/{lease_id}")
async def get_lease(
    lease_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    lease = LeaseService.get_for_user(db, lease_id, current_user)
    return success_response(serialize(schemas.LeaseOut, lease))


@router.post("", status_code=201)
async def create_lease(
    data: schemas.LeaseCreate,
    request: Request,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Création d'un bail en attente de signatures"""
    lease = LeaseService.create(db, current_user, data)

    AuditLogger.log_crud_action(
        db=db,
        action=ActionType.CREATE,
        entity_type=EntityType.LEASE,
        entity_id=lease.id,
        user_id=current_user.id,
        description=f"Création du bail {lease.id} pour le bien {lease.property_id}",
        after_data=get_model_data(lease),
        request=request
    )
    return success_response(serialize(schemas.LeaseOut, lease))


@router.post("/{lease_id}/sign")
async def sign_lease(
    lease_id: int,
    request: Request,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Signature par une partie ; la seconde signature active le bail et crée le dépôt"""
    lease = LeaseService.sign(db, lease_id, current_user)

    if lease.status == LeaseStatus.ACTIVE:
        AuditLogger.log_transition(
            db, EntityType.LEASE, lease.id, current_user.id,
            LeaseStatus.PENDING_SIGNATURES, LeaseStatus.ACTIVE, request,
            details={"deposit_id": lease.deposit.id if lease.deposit else None}
        )
    else:
        AuditLogger.log_crud_action(
            db=db,
            action=ActionType.UPDATE,
            entity_type=EntityType.LEASE,
            entity_id=lease.id,
            user_id=current_user.id,
            description=f"Signature du bail {lease.id}",
            request=request
        )
    return success_response(serialize(schemas.LeaseOut, lease))


@router.post("/{lease_id}/terminate")
async def terminate_lease(
    lease_id: int,
    request: Request,
    data: Optional[schemas.LeaseTerminate] = None,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    reason = data.reason if data else None
    lease = LeaseService.terminate(db, lease_id, current_user, reason)
    AuditLogger.log_transition(
        db, EntityType.LEASE, lease.id, current_user.id,
        LeaseStatus.ACTIVE, LeaseStatus.TERMINATED, request,
        details={"reason": reason} if reason else None
    )
    return success_response(serialize(schemas.LeaseOut, lease))


@router.post("/{lease_id}/expire")
async def expire_lease(
    lease_id: int,
    request: Request,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    lease = LeaseService.expire(db, lease_id, current_user)
    AuditLogger.log_transition(
        db, EntityType.LEASE, lease.id, current_user.id,
        LeaseStatus.ACTIVE, LeaseStatus.EXPIRED, request
    )
    return success_response(serialize(schemas.LeaseOut, lease))
