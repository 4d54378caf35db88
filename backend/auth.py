from datetime import datetime, timedelta
from typing import Optional, Tuple
from jose import ExpiredSignatureError, JWTError, jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from database import get_db
from constants import (
    API_BASE_PATH, DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES, DEFAULT_REFRESH_TOKEN_EXPIRE_DAYS,
    JWT_ALGORITHM, get_error_message
)
from enums import UserRole
from errors import AuthenticationError, AuthorizationError
import models
import logging
import os
import secrets
import uuid

logger = logging.getLogger(__name__)


def _load_secret(env_name: str) -> str:
    """Clé de signature depuis l'environnement, clé temporaire en dev"""
    value = os.getenv(env_name)
    if not value:
        value = secrets.token_urlsafe(32)
        logger.warning("%s non définie, utilisation d'une clé temporaire (dev uniquement)", env_name)
    return value


SECRET_KEY = _load_secret("JWT_SECRET_KEY")
REFRESH_SECRET_KEY = _load_secret("JWT_REFRESH_SECRET_KEY")

ALGORITHM = JWT_ALGORITHM
ACCESS_TOKEN_EXPIRE_MINUTES = DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES
REFRESH_TOKEN_EXPIRE_DAYS = DEFAULT_REFRESH_TOKEN_EXPIRE_DAYS

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{API_BASE_PATH}/auth/login", auto_error=False)

# Argon2id avec les paramètres par défaut de argon2-cffi
password_hasher = PasswordHasher()


def get_password_hash(password: str) -> str:
    """Hash un mot de passe avec Argon2id"""
    return password_hasher.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Vérifie un mot de passe contre son hash Argon2"""
    try:
        return password_hasher.verify(hashed_password, plain_password)
    except (VerificationError, InvalidHashError):
        return False


def create_access_token(user: models.User, session_id: str, expires_delta: timedelta | None = None) -> str:
    now = datetime.utcnow()
    expire = now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    payload = {
        "sub": str(user.id),
        "user_id": user.id,
        "email": user.email,
        "role": user.role.value,
        "session_id": session_id,
        "type": "access",
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def create_refresh_token(user_id: int, session_id: str) -> str:
    now = datetime.utcnow()
    payload = {
        "sub": str(user_id),
        "session_id": session_id,
        "type": "refresh",
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS),
    }
    return jwt.encode(payload, REFRESH_SECRET_KEY, algorithm=ALGORITHM)


def create_purpose_token(user: models.User, purpose: str, hours: int) -> str:
    """Token à usage unique (vérification d'email, ...)"""
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "type": purpose,
        "exp": datetime.utcnow() + timedelta(hours=hours),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def _decode(token: str, key: str, expected_type: str) -> dict:
    try:
        payload = jwt.decode(token, key, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise AuthenticationError(get_error_message("TOKEN_EXPIRED"), code="TOKEN_EXPIRED")
    except JWTError:
        raise AuthenticationError(get_error_message("TOKEN_INVALID"), code="INVALID_TOKEN")
    if payload.get("type") != expected_type or payload.get("sub") is None:
        raise AuthenticationError(get_error_message("TOKEN_INVALID"), code="INVALID_TOKEN")
    return payload


def verify_access_token(token: str) -> dict:
    return _decode(token, SECRET_KEY, "access")


def verify_refresh_token(token: str) -> dict:
    return _decode(token, REFRESH_SECRET_KEY, "refresh")


def verify_purpose_token(token: str, purpose: str) -> dict:
    return _decode(token, SECRET_KEY, purpose)


# ==================== SESSIONS ====================

def issue_session(db: Session, user: models.User, user_agent: str = None,
                  ip_address: str = None) -> Tuple[models.UserSession, str, str]:
    """Crée une session et sa paire de tokens (sans commit)"""
    session_id = str(uuid.uuid4())
    access_token = create_access_token(user, session_id)
    refresh_token = create_refresh_token(user.id, session_id)

    session = models.UserSession(
        user_id=user.id,
        session_id=session_id,
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=datetime.utcnow() + timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS),
        user_agent=user_agent,
        ip_address=ip_address
    )
    db.add(session)
    return session, access_token, refresh_token


def rotate_session_tokens(session: models.UserSession, user: models.User) -> Tuple[str, str]:
    """Réémet les deux tokens d'une session existante et repousse son expiration"""
    access_token = create_access_token(user, session.session_id)
    refresh_token = create_refresh_token(user.id, session.session_id)
    session.access_token = access_token
    session.refresh_token = refresh_token
    session.expires_at = datetime.utcnow() + timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS)
    return access_token, refresh_token


def find_live_session(db: Session, session_id: str) -> Optional[models.UserSession]:
    """Session existante et non expirée (une session expirée est traitée comme absente)"""
    return db.query(models.UserSession).filter(
        models.UserSession.session_id == session_id,
        models.UserSession.expires_at > datetime.utcnow()
    ).first()


def revoke_session(db: Session, session_id: str) -> int:
    """Supprime une session ; idempotent"""
    return db.query(models.UserSession).filter(
        models.UserSession.session_id == session_id
    ).delete(synchronize_session=False)


def revoke_all_sessions(db: Session, user_id: int) -> int:
    return db.query(models.UserSession).filter(
        models.UserSession.user_id == user_id
    ).delete(synchronize_session=False)


# ==================== DÉPENDANCES FASTAPI ====================

def get_current_session(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> models.UserSession:
    if not token:
        raise AuthenticationError(get_error_message("NO_TOKEN"))

    payload = verify_access_token(token)
    session = find_live_session(db, payload.get("session_id", ""))
    # Le token doit être le dernier émis pour cette session
    if session is None or session.access_token != token:
        raise AuthenticationError(get_error_message("SESSION_EXPIRED"), code="INVALID_TOKEN")

    user = session.user
    if user is None or str(user.id) != payload["sub"]:
        raise AuthenticationError(get_error_message("TOKEN_INVALID"), code="INVALID_TOKEN")

    request.state.user_id = user.id
    return session


def get_current_user(session: models.UserSession = Depends(get_current_session)) -> models.User:
    return session.user


def require_roles(*roles: UserRole):
    """Dépendance qui restreint une route à une liste de rôles"""
    allowed = set(roles)

    def dependency(current_user: models.User = Depends(get_current_user)) -> models.User:
        if current_user.role not in allowed:
            raise AuthorizationError(get_error_message("INSUFFICIENT_PERMISSIONS"))
        return current_user

    return dependency
