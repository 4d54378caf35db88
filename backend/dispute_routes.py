"""
Routes API pour la gestion des litiges
"""
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from audit_logger import AuditLogger
from auth import get_current_user
from database import get_db
from email_service import EmailService, get_email_service
from enums import ActionType, DepositStatus, DisputeStatus, EntityType
from responses import PaginationParams, paginate, serialize, serialize_list, success_response
from services.dispute_service import DisputeService
from services.status_guard import is_lease_tenant
import models
import schemas

router = APIRouter(prefix="/api/v1/disputes", tags=["disputes"])


def _dispute_detail(dispute: models.Dispute, user: models.User):
    """Litige avec preuves et messages (notes internes filtrées)"""
    data = serialize(schemas.DisputeOut, dispute)
    data["evidence"] = serialize_list(schemas.EvidenceOut, dispute.evidence)
    data["messages"] = serialize_list(schemas.DisputeMessageOut, DisputeService.visible_messages(dispute, user))
    return data


@router.get("")
async def list_disputes(
    status: Optional[DisputeStatus] = None,
    pagination: PaginationParams = Depends(),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    query = DisputeService.visible_query(db, current_user, status)
    disputes, meta = paginate(query, pagination)
    return success_response(serialize_list(schemas.DisputeOut, disputes), meta=meta)


@router.get("/{dispute_id}")
async def get_dispute(
    dispute_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    dispute = DisputeService.get_for_user(db, dispute_id, current_user)
    return success_response(_dispute_detail(dispute, current_user))


@router.post("", status_code=201)
async def create_dispute(
    data: schemas.DisputeCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service)
):
    """Ouverture d'un litige : le dépôt passe en DISPUTED"""
    dispute = DisputeService.create(db, current_user, data)

    AuditLogger.log_crud_action(
        db=db,
        action=ActionType.CREATE,
        entity_type=EntityType.DISPUTE,
        entity_id=dispute.id,
        user_id=current_user.id,
        description=f"Litige {dispute.id} ouvert sur le dépôt {dispute.deposit_id}",
        request=request
    )
    AuditLogger.log_transition(
        db, EntityType.DEPOSIT, dispute.deposit_id, current_user.id,
        DepositStatus.PENDING_RETURN, DepositStatus.DISPUTED, request,
        details={"dispute_id": dispute.id}
    )

    lease = dispute.deposit.lease
    other = lease.landlord if is_lease_tenant(current_user, lease) else lease.tenant
    background_tasks.add_task(
        email_service.send_dispute_notification,
        other.email, f"{other.first_name or ''} {other.last_name or ''}".strip() or other.email,
        dispute.id, dispute.reason.value,
    )
    return success_response(_dispute_detail(dispute, current_user))


@router.patch("/{dispute_id}/status")
async def update_dispute_status(
    dispute_id: int,
    data: schemas.DisputeStatusUpdate,
    request: Request,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    previous = DisputeService.get_dispute(db, dispute_id).status
    dispute = DisputeService.update_status(db, dispute_id, current_user, data.status)
    AuditLogger.log_transition(db, EntityType.DISPUTE, dispute.id, current_user.id, previous, dispute.status, request)
    return success_response(serialize(schemas.DisputeOut, dispute))


@router.post("/{dispute_id}/resolve")
async def resolve_dispute(
    dispute_id: int,
    data: schemas.DisputeResolve,
    request: Request,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Répartition du dépôt entre locataire et bailleur"""
    previous = DisputeService.get_dispute(db, dispute_id).status
    dispute = DisputeService.resolve(db, dispute_id, current_user, data)
    split = {"tenant_amount": str(dispute.tenant_amount), "landlord_amount": str(dispute.landlord_amount)}
    AuditLogger.log_transition(db, EntityType.DISPUTE, dispute.id, current_user.id,
                               previous, dispute.status, request, details=split)
    AuditLogger.log_transition(db, EntityType.DEPOSIT, dispute.deposit_id, current_user.id,
                               DepositStatus.DISPUTED, DepositStatus.RETURNED, request,
                               details={"dispute_id": dispute.id, **split})
    return success_response(_dispute_detail(dispute, current_user))


@router.post("/{dispute_id}/messages", status_code=201)
async def add_dispute_message(
    dispute_id: int,
    data: schemas.DisputeMessageCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    message = DisputeService.add_message(db, dispute_id, current_user, data)
    return success_response(serialize(schemas.DisputeMessageOut, message))


@router.post("/{dispute_id}/evidence", status_code=201)
async def add_dispute_evidence(
    dispute_id: int,
    data: schemas.EvidenceCreate,
    request: Request,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    evidence = DisputeService.add_evidence(db, dispute_id, current_user, data)
    AuditLogger.log_action(
        db=db,
        action=ActionType.CREATE,
        entity_type=EntityType.DISPUTE,
        description=f"Preuve ajoutée au litige {dispute_id}: {data.type.value}",
        user_id=current_user.id,
        entity_id=dispute_id,
        details={"evidence_id": evidence.id, "url": evidence.url},
        request=request,
        status_code=201
    )
    return success_response(serialize(schemas.EvidenceOut, evidence))
