"""
Constantes centralisées pour l'application Deposife
Standardisation des valeurs et conventions utilisées dans l'application
"""
from decimal import Decimal

# ==================== CONFIGURATION GÉNÉRALE ====================

APP_NAME = "Deposife"
APP_VERSION = "1.0.0"
APP_DESCRIPTION = "Gestion des dépôts de garantie locatifs"
API_BASE_PATH = "/api/v1"

# ==================== CONFIGURATION DE SÉCURITÉ ====================

# JWT
DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES = 15
DEFAULT_REFRESH_TOKEN_EXPIRE_DAYS = 7
JWT_ALGORITHM = "HS256"
PASSWORD_RESET_TOKEN_EXPIRE_HOURS = 1
EMAIL_VERIFICATION_TOKEN_EXPIRE_HOURS = 24

# Mots de passe
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128
PASSWORD_SPECIAL_CHARACTERS = "@$!%*?&"

# Rate limiting
RATE_LIMITS = {
    "login": {"requests": 5, "window": 300},           # 5 tentatives par 5 minutes
    "register": {"requests": 3, "window": 3600},       # 3 inscriptions par heure
    "refresh": {"requests": 30, "window": 300},
    "password_reset": {"requests": 3, "window": 3600},
}

# ==================== PAGINATION ====================

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# ==================== LIMITES MÉTIER ====================

# Montants
MONEY_QUANTUM = Decimal("0.01")
DISPUTE_SPLIT_TOLERANCE = Decimal("0.01")
DEPOSIT_MIN_AMOUNT = Decimal("100")
DEPOSIT_MAX_AMOUNT = Decimal("50000")
PROTECTION_FEE_AMOUNT = Decimal("25.00")

DEFAULT_CURRENCY = "USD"
SUPPORTED_CURRENCIES = ["USD", "GBP", "EUR", "CAD", "AUD"]

# Litiges
DISPUTE_RESOLUTION_DAYS = 28
DISPUTE_EVIDENCE_SUBMISSION_DAYS = 14
MIN_DISPUTE_DESCRIPTION_LENGTH = 10

# ==================== WEBHOOKS ====================

STRIPE_PROVIDER = "stripe"
STRIPE_SIGNATURE_HEADER = "stripe-signature"
STRIPE_WEBHOOK_TOLERANCE_SECONDS = 300

# ==================== EMAIL ====================

RESEND_API_URL = "https://api.resend.com/emails"
DEFAULT_FROM_EMAIL = "noreply@deposife.com"
DEFAULT_FRONTEND_URL = "http://localhost:3000"

# ==================== MESSAGES D'ERREUR STANDARDS ====================

ERROR_MESSAGES = {
    # Authentification
    "INVALID_CREDENTIALS": "Invalid credentials",
    "NO_TOKEN": "No token provided",
    "TOKEN_EXPIRED": "Token expired",
    "TOKEN_INVALID": "Invalid token",
    "SESSION_EXPIRED": "Session expired or revoked",

    # Permissions
    "ACCESS_DENIED": "Access denied",
    "INSUFFICIENT_PERMISSIONS": "Insufficient permissions",

    # Validation
    "VALIDATION_FAILED": "Validation failed",
    "DUPLICATE_ENTRY": "Duplicate entry",

    # Métier
    "EMAIL_EXISTS": "User with this email already exists",
    "STALE_STATE": "Resource was modified by another request",
    "INTERNAL": "Internal server error",
}

# ==================== MESSAGES DE SUCCÈS STANDARDS ====================

SUCCESS_MESSAGES = {
    "LOGOUT": "Logged out successfully",
    "LOGOUT_ALL": "Logged out from all devices",
    "PASSWORD_RESET_SENT": "If an account exists with this email, a password reset link has been sent",
    "PASSWORD_RESET": "Password has been reset",
    "EMAIL_VERIFIED": "Email verified",
    "NOTIFICATIONS_READ": "All notifications marked as read",
}


# ==================== FONCTIONS UTILITAIRES ====================

def get_error_message(key: str) -> str:
    """Retourne un message d'erreur standardisé"""
    return ERROR_MESSAGES.get(key, "Unknown error")


def get_success_message(key: str) -> str:
    """Retourne un message de succès standardisé"""
    return SUCCESS_MESSAGES.get(key, "OK")
