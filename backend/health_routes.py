"""
Route de santé : disponibilité de l'API et de la base
"""
import logging
import os
import time
from datetime import datetime

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from constants import APP_VERSION
from database import check_database_connection, get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["health"])


@router.get("/health")
def health_check(request: Request, db: Session = Depends(get_db)):
    started_at = getattr(request.app.state, "started_at", time.time())
    data = {
        "timestamp": datetime.utcnow().isoformat(),
        "uptime": round(time.time() - started_at, 3),
        "environment": os.getenv("ENVIRONMENT", "production"),
        "version": APP_VERSION,
    }
    try:
        check_database_connection(db)
    except SQLAlchemyError as e:
        logger.error("Base de données indisponible: %s", e)
        data.update(status="unhealthy", database="unreachable")
        return JSONResponse(status_code=503, content={"success": False, "data": data})

    data.update(status="healthy", database="ok")
    return {"success": True, "data": data}
