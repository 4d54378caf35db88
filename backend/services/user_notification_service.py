"""
Service de notifications utilisateur
Les notifications sont créées comme effet de bord des transitions, dans la
transaction de l'opération appelante (pas de commit ici à la création)
"""
from sqlalchemy.orm import Session
from sqlalchemy import desc
from typing import Dict, Any, Optional
from datetime import datetime

from models import Notification
from enums import NotificationType


class UserNotificationService:
    """
    Service de gestion des notifications utilisateur
    """

    @staticmethod
    def create_notification(
        db: Session,
        user_id: int,
        notification_type: NotificationType,
        title: str,
        message: str,
        data: Dict[str, Any] = None
    ) -> Notification:
        """
        Ajoute une notification à la session courante, committée avec l'opération
        """
        notification = Notification(
            user_id=user_id,
            type=notification_type,
            title=title,
            message=message,
            data=data
        )
        db.add(notification)
        return notification

    @staticmethod
    def user_query(db: Session, user_id: int, unread_only: bool = False):
        query = db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.read == False)  # noqa: E712
        return query.order_by(desc(Notification.created_at), desc(Notification.id))

    @staticmethod
    def count_unread(db: Session, user_id: int) -> int:
        return db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.read == False  # noqa: E712
        ).count()

    @staticmethod
    def mark_as_read(db: Session, notification_id: int, user_id: int) -> Optional[Notification]:
        """Marque une notification comme lue ; absente ou étrangère = sans effet"""
        notification = db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).first()
        if notification and not notification.read:
            notification.read = True
            notification.read_at = datetime.utcnow()
            db.commit()
        return notification

    @staticmethod
    def mark_all_as_read(db: Session, user_id: int) -> int:
        count = db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.read == False  # noqa: E712
        ).update({"read": True, "read_at": datetime.utcnow()}, synchronize_session=False)
        db.commit()
        return count

    @staticmethod
    def delete_notification(db: Session, notification_id: int, user_id: int) -> int:
        count = db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).delete(synchronize_session=False)
        db.commit()
        return count
