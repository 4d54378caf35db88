"""
Configuration centralisée de l'application Deposife
Organisation des routes, middleware et configuration
"""
import logging
import os
import time
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Import des modules de configuration
from database import engine
import models

from email_service import EmailService
from error_handlers import register_exception_handlers
from rate_limiter import RateLimiter
from stripe_service import StripeConfig, StripeWebhookVerifier

# Import des contrôleurs et routes
from controllers.auth_controller import router as auth_router
import deposit_routes
import dispute_routes
import document_routes
import health_routes
import lease_routes
import notification_routes
import property_routes
import state_law_routes
import stripe_routes
import transaction_routes
import user_routes

# Import des constantes
from constants import APP_NAME, APP_VERSION, APP_DESCRIPTION

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]

# Configuration des en-têtes de sécurité
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
}


def get_cors_origins() -> list:
    """CORS_ORIGINS : liste séparée par des virgules"""
    raw = os.getenv("CORS_ORIGINS")
    if not raw:
        return DEFAULT_CORS_ORIGINS
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


class AppConfigurator:
    """
    Configurateur centralisé pour l'application FastAPI
    """

    @staticmethod
    def create_app(
        email_service: Optional[EmailService] = None,
        rate_limiter: Optional[RateLimiter] = None,
        webhook_verifier: Optional[StripeWebhookVerifier] = None,
    ) -> FastAPI:
        """
        Crée et configure l'application FastAPI

        Les collaborateurs (email, rate limiting, webhooks) sont construits depuis
        l'environnement sauf s'ils sont fournis (tests).
        """
        load_dotenv()
        AppConfigurator._configure_logging()

        # Créer les tables
        models.Base.metadata.create_all(bind=engine)

        # Créer l'application
        app = FastAPI(
            title=APP_NAME,
            version=APP_VERSION,
            description=APP_DESCRIPTION
        )

        app.state.started_at = time.time()
        app.state.email_service = email_service or EmailService.from_env()
        app.state.rate_limiter = rate_limiter or RateLimiter.from_env()
        app.state.stripe_webhook_verifier = webhook_verifier or StripeWebhookVerifier(StripeConfig.from_env())

        # Configurer les middlewares
        AppConfigurator._configure_middlewares(app)

        # Configurer les gestionnaires d'exceptions
        register_exception_handlers(app)

        # Configurer les routes
        AppConfigurator._configure_routes(app)

        return app

    @staticmethod
    def _configure_logging():
        level = os.getenv("LOG_LEVEL", "INFO").upper()
        logging.basicConfig(
            level=getattr(logging, level, logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )

    @staticmethod
    def _configure_middlewares(app: FastAPI):
        """
        Configure tous les middlewares
        """
        @app.middleware("http")
        async def security_headers(request: Request, call_next):
            response = await call_next(request)
            for header, value in SECURITY_HEADERS.items():
                response.headers[header] = value
            return response

        # CORS
        app.add_middleware(
            CORSMiddleware,
            allow_origins=get_cors_origins(),
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            allow_headers=[
                "Authorization",
                "Content-Type",
                "Accept",
                "Origin",
                "X-Requested-With",
                "Stripe-Signature",
            ],
        )

    @staticmethod
    def _configure_routes(app: FastAPI):
        """
        Configure toutes les routes de l'application
        """
        # Routes d'authentification
        app.include_router(auth_router)

        # Routes métier
        app.include_router(user_routes.router)
        app.include_router(property_routes.router)
        app.include_router(lease_routes.router)
        app.include_router(deposit_routes.router)
        app.include_router(dispute_routes.router)
        app.include_router(transaction_routes.router)
        app.include_router(document_routes.router)
        app.include_router(notification_routes.router)
        app.include_router(state_law_routes.router)

        # Webhooks et santé
        app.include_router(stripe_routes.router)
        app.include_router(health_routes.router)
