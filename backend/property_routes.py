"""
Routes API pour la gestion des biens immobiliers
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from audit_logger import AuditLogger, get_model_data
from auth import get_current_user
from database import get_db
from enums import ActionType, EntityType, UserRole
from errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from responses import PaginationParams, paginate, serialize, serialize_list, success_response
from services.deposit_lifecycle import to_money
import models
import schemas

router = APIRouter(prefix="/api/v1/properties", tags=["properties"])

PROPERTY_CREATORS = (UserRole.LANDLORD, UserRole.PROPERTY_MANAGER, UserRole.ADMIN)
# Gestionnaires et admins agissent pour le compte d'un bailleur
DELEGATED_ROLES = (UserRole.PROPERTY_MANAGER, UserRole.ADMIN)


def check_property_access(property_id: int, user: models.User, db: Session) -> models.Property:
    """Charge le bien et vérifie que l'utilisateur peut le consulter"""
    prop = db.query(models.Property).filter(models.Property.id == property_id).first()
    if not prop:
        raise NotFoundError("Property")

    if user.role == UserRole.LANDLORD and prop.landlord_id != user.id:
        raise AuthorizationError("Access denied")
    if user.role == UserRole.TENANT:
        leased = db.query(models.Lease).filter(
            models.Lease.property_id == prop.id,
            models.Lease.tenant_id == user.id
        ).first()
        if not leased:
            raise AuthorizationError("Access denied")
    return prop


def check_property_management(prop: models.Property, user: models.User):
    if user.role in DELEGATED_ROLES:
        return
    if user.role == UserRole.LANDLORD and prop.landlord_id == user.id:
        return
    raise AuthorizationError("Only the owner can modify this property")


@router.get("")
async def list_properties(
    pagination: PaginationParams = Depends(),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Bailleurs : leurs biens ; locataires : les biens loués ; autres : tout"""
    query = db.query(models.Property)
    if current_user.role == UserRole.LANDLORD:
        query = query.filter(models.Property.landlord_id == current_user.id)
    elif current_user.role == UserRole.TENANT:
        leased_ids = db.query(models.Lease.property_id).filter(models.Lease.tenant_id == current_user.id)
        query = query.filter(models.Property.id.in_(leased_ids))

    properties, meta = paginate(query.order_by(models.Property.id.desc()), pagination)
    return success_response(serialize_list(schemas.PropertyOut, properties), meta=meta)


@router.get("/{property_id}")
async def get_property(
    property_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    prop = check_property_access(property_id, current_user, db)
    return success_response(serialize(schemas.PropertyOut, prop))


@router.post("", status_code=201)
async def create_property(
    data: schemas.PropertyCreate,
    request: Request,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    if current_user.role not in PROPERTY_CREATORS:
        raise AuthorizationError("Only landlords and property managers can create properties")

    landlord_id = current_user.id
    if current_user.role in DELEGATED_ROLES:
        if data.landlord_id is None:
            raise ValidationError("landlord_id is required", details={"landlord_id": "Field required"})
        landlord = db.query(models.User).filter(models.User.id == data.landlord_id).first()
        if not landlord or landlord.role != UserRole.LANDLORD:
            raise ValidationError("landlord_id must reference a landlord", details={"landlord_id": data.landlord_id})
        landlord_id = landlord.id

    values = data.model_dump(exclude={"landlord_id"})
    if values.get("monthly_rent") is not None:
        values["monthly_rent"] = to_money(values["monthly_rent"])
    prop = models.Property(landlord_id=landlord_id, **values)
    db.add(prop)
    db.commit()
    db.refresh(prop)

    AuditLogger.log_crud_action(
        db=db,
        action=ActionType.CREATE,
        entity_type=EntityType.PROPERTY,
        entity_id=prop.id,
        user_id=current_user.id,
        description=f"Création du bien: {prop.address_line1}, {prop.city} {prop.state}",
        after_data=get_model_data(prop),
        request=request
    )
    return success_response(serialize(schemas.PropertyOut, prop))


@router.patch("/{property_id}")
async def update_property(
    property_id: int,
    data: schemas.PropertyUpdate,
    request: Request,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    prop = check_property_access(property_id, current_user, db)
    check_property_management(prop, current_user)

    before = get_model_data(prop)
    for field, value in data.model_dump(exclude_unset=True).items():
        if field == "monthly_rent" and value is not None:
            value = to_money(value)
        setattr(prop, field, value)
    db.commit()
    db.refresh(prop)

    AuditLogger.log_crud_action(
        db=db,
        action=ActionType.UPDATE,
        entity_type=EntityType.PROPERTY,
        entity_id=prop.id,
        user_id=current_user.id,
        description=f"Mise à jour du bien {prop.id}",
        before_data=before,
        after_data=get_model_data(prop),
        request=request
    )
    return success_response(serialize(schemas.PropertyOut, prop))


@router.delete("/{property_id}")
async def delete_property(
    property_id: int,
    request: Request,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    prop = check_property_access(property_id, current_user, db)
    if current_user.role != UserRole.ADMIN and prop.landlord_id != current_user.id:
        raise AuthorizationError("Only the owner can delete this property")
    if prop.leases:
        raise ConflictError("Property has leases and cannot be deleted",
                            details={"lease_count": len(prop.leases)})

    before = get_model_data(prop)
    db.delete(prop)
    db.commit()

    AuditLogger.log_crud_action(
        db=db,
        action=ActionType.DELETE,
        entity_type=EntityType.PROPERTY,
        entity_id=property_id,
        user_id=current_user.id,
        description=f"Suppression du bien {property_id}",
        before_data=before,
        request=request
    )
    return success_response(message="Property deleted")
