"""
Hiérarchie des erreurs applicatives
Chaque erreur porte son code HTTP et son code machine, le traducteur central
(error_handlers.py) les transforme en réponse standardisée
"""
from typing import Any, Dict, Optional


class ApiError(Exception):
    """Erreur de base de l'API"""
    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def __repr__(self):
        return f"{self.__class__.__name__}({self.code}: {self.message})"


class ValidationError(ApiError):
    status_code = 400
    default_code = "VALIDATION_ERROR"


class AuthenticationError(ApiError):
    status_code = 401
    default_code = "UNAUTHORIZED"

    def __init__(self, message: str = "Authentication required", code: Optional[str] = None, **kwargs):
        super().__init__(message, code, **kwargs)


class AuthorizationError(ApiError):
    status_code = 403
    default_code = "FORBIDDEN"

    def __init__(self, message: str = "Insufficient permissions", code: Optional[str] = None, **kwargs):
        super().__init__(message, code, **kwargs)


class NotFoundError(ApiError):
    status_code = 404
    default_code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource", code: Optional[str] = None, **kwargs):
        super().__init__(f"{resource} not found", code, **kwargs)


class ConflictError(ApiError):
    status_code = 409
    default_code = "CONFLICT"


class StaleStateError(ConflictError):
    """La mise à jour conditionnelle n'a touché aucune ligne : état modifié entre-temps"""
    default_code = "STALE_STATE"

    def __init__(self, entity: str, entity_id: int, expected):
        expected_values = sorted(getattr(s, "value", str(s)) for s in expected)
        super().__init__(
            f"{entity} {entity_id} was modified by another request",
            details={"entity": entity, "id": entity_id, "expected_status": expected_values},
        )


class BusinessLogicError(ApiError):
    """Règle métier violée, le code machine est fourni par l'appelant"""
    status_code = 400

    def __init__(self, message: str, code: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code, details)


class RateLimitError(ApiError):
    status_code = 429
    default_code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, message: str = "Too many requests", retry_after: int = 60):
        super().__init__(message, details={"retry_after": retry_after})
        self.retry_after = retry_after


class InternalError(ApiError):
    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(self, message: str = "Internal server error", **kwargs):
        super().__init__(message, **kwargs)
