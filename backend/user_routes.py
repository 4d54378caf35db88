"""
Routes API pour la gestion des utilisateurs
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from audit_logger import AuditLogger, get_model_data
from auth import get_current_user, require_roles
from database import get_db
from enums import ActionType, EntityType, UserRole
from errors import AuthorizationError, ConflictError, NotFoundError
from responses import PaginationParams, paginate, serialize, serialize_list, success_response
import models
import schemas

router = APIRouter(prefix="/api/v1/users", tags=["users"])


def _get_user(db: Session, user_id: int) -> models.User:
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise NotFoundError("User")
    return user


@router.get("")
async def list_users(
    role: Optional[UserRole] = None,
    pagination: PaginationParams = Depends(),
    current_user: models.User = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db)
):
    """Liste des utilisateurs (admin)"""
    query = db.query(models.User)
    if role:
        query = query.filter(models.User.role == role)
    users, meta = paginate(query.order_by(models.User.id), pagination)
    return success_response(serialize_list(schemas.UserOut, users), meta=meta)


@router.get("/{user_id}")
async def get_user(
    user_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    # Un autre compte que le sien est invisible pour un non-admin
    if current_user.id != user_id and current_user.role != UserRole.ADMIN:
        raise NotFoundError("User")
    return success_response(serialize(schemas.UserOut, _get_user(db, user_id)))


@router.patch("/{user_id}")
async def update_user(
    user_id: int,
    data: schemas.UserUpdate,
    request: Request,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    if current_user.id != user_id and current_user.role != UserRole.ADMIN:
        raise AuthorizationError("You can only update your own profile")

    user = _get_user(db, user_id)
    before = get_model_data(user)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    db.commit()
    db.refresh(user)

    AuditLogger.log_crud_action(
        db=db,
        action=ActionType.UPDATE,
        entity_type=EntityType.USER,
        entity_id=user.id,
        user_id=current_user.id,
        description=f"Mise à jour du profil: {user.email}",
        before_data=before,
        after_data=get_model_data(user),
        request=request
    )
    return success_response(serialize(schemas.UserOut, user))


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    request: Request,
    current_user: models.User = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db)
):
    user = _get_user(db, user_id)
    if user.id == current_user.id:
        raise ConflictError("Administrators cannot delete their own account")

    has_leases = db.query(models.Lease).filter(
        (models.Lease.tenant_id == user.id) | (models.Lease.landlord_id == user.id)
    ).first()
    if has_leases or user.properties:
        raise ConflictError("User still owns properties or is party to leases")

    before = get_model_data(user)
    db.delete(user)
    db.commit()

    AuditLogger.log_crud_action(
        db=db,
        action=ActionType.DELETE,
        entity_type=EntityType.USER,
        entity_id=user_id,
        user_id=current_user.id,
        description=f"Suppression de l'utilisateur: {before.get('email')}",
        before_data=before,
        request=request
    )
    return success_response(message="User deleted")
