"""
Routes API pour les documents rattachés aux baux
Seules les métadonnées sont stockées, le fichier vit sur un stockage externe
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from audit_logger import AuditLogger, get_model_data
from auth import get_current_user
from database import get_db
from enums import ActionType, EntityType, NotificationType, UserRole
from errors import AuthorizationError, NotFoundError
from responses import PaginationParams, paginate, serialize, serialize_list, success_response
from services.lease_service import LeaseService, can_view_lease
from services.status_guard import is_admin, is_lease_party, is_lease_tenant
from services.user_notification_service import UserNotificationService
import models
import schemas

router = APIRouter(prefix="/api/v1/documents", tags=["documents"])


def check_document_access(document_id: int, user: models.User, db: Session) -> models.Document:
    """Vérifie que l'utilisateur a accès au document"""
    document = db.query(models.Document).filter(models.Document.id == document_id).first()
    if not document:
        raise NotFoundError("Document")
    if not can_view_lease(user, document.lease):
        raise AuthorizationError("Access denied")
    return document


@router.get("")
async def list_documents(
    lease_id: int,
    pagination: PaginationParams = Depends(),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Documents d'un bail"""
    lease = LeaseService.get_for_user(db, lease_id, current_user)
    query = db.query(models.Document).filter(models.Document.lease_id == lease.id) \
        .order_by(models.Document.created_at.desc(), models.Document.id.desc())
    documents, meta = paginate(query, pagination)
    return success_response(serialize_list(schemas.DocumentOut, documents), meta=meta)


@router.get("/{document_id}")
async def get_document(
    document_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    document = check_document_access(document_id, current_user, db)
    return success_response(serialize(schemas.DocumentOut, document))


@router.post("", status_code=201)
async def create_document(
    data: schemas.DocumentCreate,
    request: Request,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    lease = LeaseService.get_lease(db, data.lease_id)
    if not (is_lease_party(current_user, lease) or is_admin(current_user)):
        raise AuthorizationError("Only lease parties can upload documents")

    document = models.Document(
        lease_id=lease.id,
        type=data.type,
        name=data.name,
        url=data.url,
        size=data.size,
        mime_type=data.mime_type,
        uploaded_by=current_user.id,
    )
    db.add(document)

    other_party = lease.landlord_id if is_lease_tenant(current_user, lease) else lease.tenant_id
    UserNotificationService.create_notification(
        db, other_party, NotificationType.DOCUMENT_UPLOADED,
        "Document Uploaded", f"A new document '{data.name}' was added to lease #{lease.id}.",
        data={"lease_id": lease.id},
    )
    db.commit()
    db.refresh(document)

    AuditLogger.log_crud_action(
        db=db,
        action=ActionType.CREATE,
        entity_type=EntityType.DOCUMENT,
        entity_id=document.id,
        user_id=current_user.id,
        description=f"Document ajouté au bail {lease.id}: {document.name}",
        after_data=get_model_data(document),
        request=request
    )
    return success_response(serialize(schemas.DocumentOut, document))


@router.delete("/{document_id}")
async def delete_document(
    document_id: int,
    request: Request,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    document = check_document_access(document_id, current_user, db)
    if document.uploaded_by != current_user.id and current_user.role != UserRole.ADMIN:
        raise AuthorizationError("Only the uploader can delete this document")

    before = get_model_data(document)
    db.delete(document)
    db.commit()

    AuditLogger.log_crud_action(
        db=db,
        action=ActionType.DELETE,
        entity_type=EntityType.DOCUMENT,
        entity_id=document_id,
        user_id=current_user.id,
        description=f"Suppression du document {document_id}",
        before_data=before,
        request=request
    )
    return success_response(message="Document deleted")
