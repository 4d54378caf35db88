"""
Contrôleur pour l'authentification
Inscription, connexion, rotation des tokens, sessions et mots de passe
"""
from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from audit_logger import AuditLogger, get_model_data
from auth import create_purpose_token, get_current_session, get_current_user
from constants import EMAIL_VERIFICATION_TOKEN_EXPIRE_HOURS, get_success_message
from database import get_db
from email_service import EmailService, get_email_service
from enums import ActionType, EntityType
from errors import AuthenticationError, ConflictError
from rate_limiter import check_rate_limit
from responses import serialize, success_response
from services.identity_service import IdentityService
import models
import schemas

router = APIRouter(prefix="/api/v1/auth", tags=["Authentification"])


def _client_info(request: Request):
    ip_address = request.client.host if request.client else None
    return request.headers.get("user-agent"), ip_address


def _display_name(user: models.User) -> str:
    return f"{user.first_name or ''} {user.last_name or ''}".strip() or user.email


def _queue_verification_email(background_tasks: BackgroundTasks, email_service: EmailService,
                              user: models.User):
    """Email de vérification envoyé après la réponse"""
    token = create_purpose_token(user, "email_verification", EMAIL_VERIFICATION_TOKEN_EXPIRE_HOURS)
    background_tasks.add_task(email_service.send_email_verification, user.email, _display_name(user), token)


@router.post("/register", status_code=201)
async def register(
    data: schemas.RegisterRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
    _: bool = Depends(check_rate_limit("register"))
):
    """
    Inscription d'un nouvel utilisateur
    """
    user_agent, ip_address = _client_info(request)
    user, tokens = IdentityService.register(db, data, user_agent, ip_address)

    AuditLogger.log_crud_action(
        db=db,
        action=ActionType.CREATE,
        entity_type=EntityType.USER,
        entity_id=user.id,
        user_id=user.id,
        description=f"Inscription d'un nouvel utilisateur: {user.email}",
        after_data=get_model_data(user),
        request=request
    )
    _queue_verification_email(background_tasks, email_service, user)

    return success_response({"user": serialize(schemas.UserOut, user), **tokens.model_dump()})


@router.post("/login")
async def login(
    data: schemas.LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    _: bool = Depends(check_rate_limit("login"))
):
    """
    Connexion utilisateur
    """
    user_agent, ip_address = _client_info(request)
    try:
        user, tokens = IdentityService.login(db, data.email, data.password, user_agent, ip_address)
    except AuthenticationError:
        AuditLogger.log_error(
            db=db,
            description=f"Tentative de connexion échouée pour: {data.email}",
            error_details="Invalid credentials",
            request=request,
            status_code=401
        )
        raise

    AuditLogger.log_auth_action(db, ActionType.LOGIN, user.id, f"Connexion réussie: {user.email}", request)
    return success_response({"user": serialize(schemas.UserOut, user), **tokens.model_dump()})


@router.post("/refresh")
async def refresh_token(
    data: schemas.RefreshRequest,
    request: Request,
    db: Session = Depends(get_db),
    _: bool = Depends(check_rate_limit("refresh"))
):
    """
    Renouvellement de la paire de tokens (l'ancien refresh token est invalidé)
    """
    user, tokens = IdentityService.refresh(db, data.refresh_token)
    AuditLogger.log_auth_action(db, ActionType.REFRESH_TOKEN, user.id, f"Renouvellement de token: {user.email}", request)
    return success_response(tokens.model_dump())


@router.post("/logout")
async def logout(
    request: Request,
    session: models.UserSession = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    user_id = session.user_id
    IdentityService.logout(db, session)
    AuditLogger.log_auth_action(db, ActionType.LOGOUT, user_id, "Déconnexion", request)
    return success_response(message=get_success_message("LOGOUT"))


@router.post("/logout-all")
async def logout_all(
    request: Request,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    user_id = current_user.id
    count = IdentityService.logout_all(db, user_id)
    AuditLogger.log_auth_action(
        db, ActionType.LOGOUT, user_id, "Déconnexion de toutes les sessions", request,
        details={"revoked_sessions": count}
    )
    return success_response({"revoked_sessions": count}, message=get_success_message("LOGOUT_ALL"))


@router.post("/forgot-password")
async def forgot_password(
    data: schemas.ForgotPasswordRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
    _: bool = Depends(check_rate_limit("password_reset"))
):
    """
    Demande de réinitialisation : même réponse que l'email existe ou non
    """
    result = IdentityService.start_password_reset(db, data.email)
    if result is not None:
        user, token = result
        background_tasks.add_task(email_service.send_password_reset_email, user.email, _display_name(user), token)
        AuditLogger.log_auth_action(db, ActionType.UPDATE, user.id, "Demande de réinitialisation du mot de passe", request)
    return success_response(message=get_success_message("PASSWORD_RESET_SENT"))


@router.post("/reset-password")
async def reset_password(
    data: schemas.ResetPasswordRequest,
    request: Request,
    db: Session = Depends(get_db),
    _: bool = Depends(check_rate_limit("password_reset"))
):
    user = IdentityService.reset_password(db, data.token, data.password)
    AuditLogger.log_auth_action(db, ActionType.UPDATE, user.id, "Mot de passe réinitialisé", request)
    return success_response(message=get_success_message("PASSWORD_RESET"))


@router.post("/verify-email")
async def verify_email(
    data: schemas.VerifyEmailRequest,
    request: Request,
    db: Session = Depends(get_db)
):
    user = IdentityService.verify_email(db, data.token)
    AuditLogger.log_auth_action(db, ActionType.UPDATE, user.id, f"Email vérifié: {user.email}", request)
    return success_response(serialize(schemas.UserOut, user), message=get_success_message("EMAIL_VERIFIED"))


@router.post("/resend-verification")
async def resend_verification(
    background_tasks: BackgroundTasks,
    current_user: models.User = Depends(get_current_user),
    email_service: EmailService = Depends(get_email_service),
    _: bool = Depends(check_rate_limit("password_reset"))
):
    if current_user.email_verified:
        raise ConflictError("Email already verified")
    _queue_verification_email(background_tasks, email_service, current_user)
    return success_response(message="Verification email sent")


@router.get("/me")
async def get_current_user_info(
    current_user: models.User = Depends(get_current_user)
):
    """
    Récupère les informations de l'utilisateur connecté
    """
    return success_response(serialize(schemas.UserOut, current_user))
