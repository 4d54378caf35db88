"""
Identité et sessions : inscription, connexion, rafraîchissement, révocation
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from auth import (
    ACCESS_TOKEN_EXPIRE_MINUTES, get_password_hash, issue_session, revoke_all_sessions,
    revoke_session, rotate_session_tokens, verify_password, verify_purpose_token,
    verify_refresh_token
)
from constants import PASSWORD_RESET_TOKEN_EXPIRE_HOURS, get_error_message
from errors import AuthenticationError, ConflictError, ValidationError
import models
import schemas

logger = logging.getLogger(__name__)


def token_pair(access_token: str, refresh_token: str) -> schemas.TokenPair:
    return schemas.TokenPair(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


class IdentityService:
    """Cycle de vie des comptes et des sessions"""

    @staticmethod
    def register(db: Session, data: schemas.RegisterRequest, user_agent: str = None,
                 ip_address: str = None) -> Tuple[models.User, schemas.TokenPair]:
        existing = db.query(models.User).filter(models.User.email == data.email.lower()).first()
        if existing:
            raise ConflictError(get_error_message("EMAIL_EXISTS"))

        user = models.User(
            email=data.email.lower(),
            hashed_password=get_password_hash(data.password),
            role=data.role,
            first_name=data.first_name,
            last_name=data.last_name,
            phone=data.phone,
        )
        db.add(user)
        db.flush()

        _, access_token, refresh_token = issue_session(db, user, user_agent, ip_address)
        db.commit()
        db.refresh(user)
        return user, token_pair(access_token, refresh_token)

    @staticmethod
    def login(db: Session, email: str, password: str, user_agent: str = None,
              ip_address: str = None) -> Tuple[models.User, schemas.TokenPair]:
        user = db.query(models.User).filter(models.User.email == email.lower()).first()
        # Même message que l'email soit inconnu ou le mot de passe faux
        if not user or not verify_password(password, user.hashed_password):
            raise AuthenticationError(get_error_message("INVALID_CREDENTIALS"))

        _, access_token, refresh_token = issue_session(db, user, user_agent, ip_address)
        user.last_login_at = datetime.utcnow()
        db.commit()
        db.refresh(user)
        return user, token_pair(access_token, refresh_token)

    @staticmethod
    def refresh(db: Session, refresh_token: str) -> Tuple[models.User, schemas.TokenPair]:
        """
        Rotation : la session reçoit une nouvelle paire et l'ancien refresh token
        devient invalide. Un ancien token encore signé présenté à nouveau signale
        une fuite : la session est supprimée.
        """
        payload = verify_refresh_token(refresh_token)
        session = db.query(models.UserSession).filter(
            models.UserSession.session_id == payload.get("session_id")
        ).first()
        if session is None or session.expires_at <= datetime.utcnow():
            raise AuthenticationError(get_error_message("SESSION_EXPIRED"), code="INVALID_TOKEN")

        if session.refresh_token != refresh_token:
            logger.warning("Réutilisation d'un refresh token détectée, session %s révoquée", session.session_id)
            revoke_session(db, session.session_id)
            db.commit()
            raise AuthenticationError("Refresh token reuse detected, session revoked", code="TOKEN_REUSED")

        user = session.user
        access_token, new_refresh_token = rotate_session_tokens(session, user)
        db.commit()
        return user, token_pair(access_token, new_refresh_token)

    @staticmethod
    def logout(db: Session, session: models.UserSession) -> None:
        revoke_session(db, session.session_id)
        db.commit()

    @staticmethod
    def logout_all(db: Session, user_id: int) -> int:
        count = revoke_all_sessions(db, user_id)
        db.commit()
        return count

    @staticmethod
    def start_password_reset(db: Session, email: str) -> Optional[Tuple[models.User, str]]:
        """Crée un token de réinitialisation ; None si l'email est inconnu (non divulgué)"""
        user = db.query(models.User).filter(models.User.email == email.lower()).first()
        if not user:
            return None
        token = secrets.token_urlsafe(32)
        user.password_reset_token = token
        user.password_reset_expires_at = datetime.utcnow() + timedelta(hours=PASSWORD_RESET_TOKEN_EXPIRE_HOURS)
        db.commit()
        return user, token

    @staticmethod
    def reset_password(db: Session, token: str, new_password: str) -> models.User:
        user = db.query(models.User).filter(models.User.password_reset_token == token).first()
        if not user or not user.password_reset_expires_at or user.password_reset_expires_at <= datetime.utcnow():
            raise ValidationError("Invalid or expired reset token", code="INVALID_TOKEN")

        user.hashed_password = get_password_hash(new_password)
        user.password_reset_token = None
        user.password_reset_expires_at = None
        revoke_all_sessions(db, user.id)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def verify_email(db: Session, token: str) -> models.User:
        payload = verify_purpose_token(token, "email_verification")
        user = db.query(models.User).filter(models.User.id == int(payload["sub"])).first()
        if not user or user.email != payload.get("email"):
            raise ValidationError("Invalid verification token", code="INVALID_TOKEN")
        if not user.email_verified:
            user.email_verified = True
            user.email_verified_at = datetime.utcnow()
            db.commit()
            db.refresh(user)
        return user
