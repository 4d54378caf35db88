"""
Journal d'audit en base : actions métier, transitions de statut, refus d'accès
et erreurs serveur
"""
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from fastapi import Request
from decimal import Decimal
import models
import enum
import json
import logging
from typing import Optional, Dict, Any
from datetime import date, datetime

from enums import ActionType, EntityType

logger = logging.getLogger(__name__)

# Colonnes jamais recopiées dans les détails d'audit
SECRET_COLUMNS = {"hashed_password", "password_reset_token", "access_token", "refresh_token"}


def _request_context(request: Optional[Request]) -> Dict[str, Optional[str]]:
    """IP, user-agent, chemin et méthode de la requête"""
    if request is None:
        return {"ip_address": None, "user_agent": None, "endpoint": None, "method": None}
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": (request.headers.get("user-agent") or "")[:500] or None,
        "endpoint": str(request.url.path)[:200],
        "method": request.method,
    }


def _serialize_details(details: Optional[Dict]) -> Optional[str]:
    if not details:
        return None
    try:
        return json.dumps(details, default=str, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        return f"Erreur de sérialisation: {e}"


class AuditLogger:
    """Écriture des entrées d'audit"""

    @staticmethod
    def log_action(
        db: Session,
        action: ActionType,
        entity_type: EntityType,
        description: str,
        user_id: Optional[int] = None,
        entity_id: Optional[int] = None,
        details: Optional[Dict[Any, Any]] = None,
        request: Optional[Request] = None,
        status_code: Optional[int] = None
    ):
        """
        Enregistre une entrée d'audit.

        À appeler après le commit de l'opération métier : l'entrée est committée
        à part et un échec d'écriture est journalisé sans interrompre la requête.
        """
        db.add(models.AuditLog(
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description[:500],
            details=_serialize_details(details),
            status_code=status_code,
            **_request_context(request)
        ))
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Erreur lors de l'enregistrement du log d'audit: %s", e)

    @staticmethod
    def log_auth_action(db: Session, action: ActionType, user_id: int, description: str,
                        request: Request = None, details: Dict = None):
        """Connexion, déconnexion, rafraîchissement, réinitialisation"""
        AuditLogger.log_action(db, action, EntityType.USER, description, user_id=user_id,
                               entity_id=user_id, details=details, request=request, status_code=200)

    @staticmethod
    def log_crud_action(db: Session, action: ActionType, entity_type: EntityType,
                        entity_id: int, user_id: int, description: str,
                        before_data: Dict = None, after_data: Dict = None, request: Request = None):
        details = {}
        if before_data:
            details["before"] = before_data
        if after_data:
            details["after"] = after_data
        AuditLogger.log_action(db, action, entity_type, description, user_id=user_id,
                               entity_id=entity_id, details=details, request=request, status_code=200)

    @staticmethod
    def log_transition(db: Session, entity_type: EntityType, entity_id: int, user_id: Optional[int],
                       from_status, to_status, request: Request = None, details: Dict = None):
        """Changement de statut d'un dépôt, d'un litige ou d'un bail"""
        payload = {"from": _plain(from_status), "to": _plain(to_status)}
        if details:
            payload.update(details)
        AuditLogger.log_action(
            db, ActionType.TRANSITION, entity_type,
            f"{entity_type.value} {entity_id}: {payload['from']} -> {payload['to']}",
            user_id=user_id, entity_id=entity_id, details=payload, request=request, status_code=200
        )

    @staticmethod
    def log_error(db: Session, description: str, user_id: int = None,
                  error_details: Any = None, request: Request = None, status_code: int = 500):
        details = {"error": error_details} if error_details else None
        AuditLogger.log_action(db, ActionType.ERROR, EntityType.USER, description, user_id=user_id,
                               details=details, request=request, status_code=status_code)

    @staticmethod
    def log_access_denied(db: Session, description: str, user_id: int = None, request: Request = None):
        AuditLogger.log_action(db, ActionType.ACCESS_DENIED, EntityType.USER, description,
                               user_id=user_id, request=request, status_code=403)


def _plain(value):
    """Valeur JSON simple (enums, montants, dates)"""
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def get_model_data(obj) -> Dict:
    """Colonnes d'un objet SQLAlchemy, sans les secrets"""
    if obj is None:
        return {}
    return {
        column.name: _plain(getattr(obj, column.name))
        for column in obj.__table__.columns
        if column.name not in SECRET_COLUMNS
    }
