"""
Gestionnaires d'erreurs centralisés pour l'application Deposife
Toutes les erreurs levées par les routes et services passent par ici :
journalisation complète côté serveur, détail assaini côté client
"""
import logging
import os
from typing import Dict, Any, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from audit_logger import AuditLogger
from constants import get_error_message
from database import SessionLocal
from errors import ApiError, ConflictError, InternalError, RateLimitError

logger = logging.getLogger(__name__)

# Codes machine par défaut pour les HTTPException levées par le framework
HTTP_STATUS_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    429: "RATE_LIMIT_EXCEEDED",
}


def is_development() -> bool:
    return os.getenv("ENVIRONMENT", "production") == "development"


class ErrorResponse:
    """Enveloppe standardisée des réponses d'erreur"""

    def __init__(
        self,
        message: str,
        error_code: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 400,
        headers: Optional[Dict[str, str]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details
        self.status_code = status_code
        self.headers = headers

    @classmethod
    def from_api_error(cls, error: ApiError) -> "ErrorResponse":
        headers = None
        if isinstance(error, RateLimitError):
            headers = {"Retry-After": str(error.retry_after)}
        return cls(error.message, error.code, error.details, error.status_code, headers)

    def to_dict(self) -> Dict[str, Any]:
        """Convertit en dictionnaire pour la réponse JSON"""
        error = {"code": self.error_code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"success": False, "error": error}

    def to_json_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.to_dict(), headers=self.headers)


class DatabaseErrorHandler:
    """Traduction des erreurs d'intégrité en erreurs applicatives"""

    @staticmethod
    def handle_integrity_error(error: IntegrityError) -> ConflictError:
        error_message = str(error.orig).lower()

        if "foreign key" in error_message or "parent row" in error_message:
            return ConflictError(
                "Operation conflicts with related records",
                code="FOREIGN_KEY_VIOLATION",
            )
        # Doublon sur contrainte unique (MySQL "Duplicate entry", sqlite "UNIQUE constraint failed")
        return ConflictError(get_error_message("DUPLICATE_ENTRY"), code="DUPLICATE_ENTRY")


def format_validation_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Formate les erreurs pydantic en liste {field, message, type}"""
    formatted = []
    for error in errors:
        location = [str(loc) for loc in error.get("loc", ()) if loc not in ("body", "query", "path")]
        formatted.append({
            "field": ".".join(location) or None,
            "message": error.get("msg"),
            "type": error.get("type"),
        })
    return formatted


def _audit_error(request: Request, status_code: int, description: str, details: Any = None):
    """Trace les erreurs 403 et 5xx dans la table d'audit avec une session dédiée"""
    user_id = getattr(request.state, "user_id", None)
    db = SessionLocal()
    try:
        if status_code == status.HTTP_403_FORBIDDEN:
            AuditLogger.log_access_denied(db, description, user_id=user_id, request=request)
        else:
            AuditLogger.log_error(db, description, user_id=user_id, error_details=details,
                                  request=request, status_code=status_code)
    except SQLAlchemyError as e:
        logger.error("Impossible d'auditer l'erreur: %s", e)
    finally:
        db.close()


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Erreurs applicatives typées"""
    if exc.status_code >= 500:
        logger.error("%s %s -> %r", request.method, request.url.path, exc)
    else:
        logger.warning("%s %s -> %r", request.method, request.url.path, exc)

    if exc.status_code == status.HTTP_403_FORBIDDEN or exc.status_code >= 500:
        _audit_error(request, exc.status_code, f"{exc.code}: {exc.message}", exc.details)

    if exc.status_code >= 500 and not is_development():
        return ErrorResponse(get_error_message("INTERNAL"), exc.code, status_code=exc.status_code).to_json_response()
    return ErrorResponse.from_api_error(exc).to_json_response()


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Erreurs de validation des requêtes (corps, query, path)"""
    details = format_validation_errors(exc.errors())
    logger.warning("Validation échouée sur %s %s: %s", request.method, request.url.path, details)
    return ErrorResponse(
        get_error_message("VALIDATION_FAILED"),
        "VALIDATION_ERROR",
        {"errors": details},
        status.HTTP_400_BAD_REQUEST,
    ).to_json_response()


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Violations de contraintes non interceptées par les services"""
    logger.warning("Erreur d'intégrité sur %s %s: %s", request.method, request.url.path, exc.orig)
    return await api_error_handler(request, DatabaseErrorHandler.handle_integrity_error(exc))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """HTTPException du framework (404 de route, 405, ...)"""
    code = HTTP_STATUS_CODES.get(exc.status_code, "HTTP_ERROR")
    return ErrorResponse(str(exc.detail), code, status_code=exc.status_code,
                         headers=getattr(exc, "headers", None)).to_json_response()


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Toute exception inattendue devient une InternalError"""
    logger.exception("Erreur non gérée sur %s %s", request.method, request.url.path)
    _audit_error(request, 500, f"Unhandled {type(exc).__name__}", str(exc))

    message = str(exc) if is_development() else get_error_message("INTERNAL")
    error = InternalError(message)
    return ErrorResponse(error.message, error.code, status_code=error.status_code).to_json_response()


def register_exception_handlers(app: FastAPI):
    """Branche le traducteur central sur l'application"""
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
