"""
Routes API des notifications de l'utilisateur connecté
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth import get_current_user
from constants import get_success_message
from database import get_db
from responses import PaginationParams, paginate, serialize_list, success_response
from services.user_notification_service import UserNotificationService
import models
import schemas

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(
    unread_only: bool = False,
    pagination: PaginationParams = Depends(),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    query = UserNotificationService.user_query(db, current_user.id, unread_only)
    notifications, meta = paginate(query, pagination)
    meta["unread_count"] = UserNotificationService.count_unread(db, current_user.id)
    return success_response(serialize_list(schemas.NotificationOut, notifications), meta=meta)


@router.patch("/read-all")
async def mark_all_notifications_read(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    count = UserNotificationService.mark_all_as_read(db, current_user.id)
    return success_response({"updated": count}, message=get_success_message("NOTIFICATIONS_READ"))


@router.patch("/{notification_id}/read")
async def mark_notification_read(
    notification_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Absente ou appartenant à un autre utilisateur : succès sans effet"""
    UserNotificationService.mark_as_read(db, notification_id, current_user.id)
    return success_response(message="Notification marked as read")


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    UserNotificationService.delete_notification(db, notification_id, current_user.id)
    return success_response(message="Notification deleted")
