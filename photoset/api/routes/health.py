from fastapi import APIRouter, Depends, Response
import redis
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from photoset.core.config import settings
from photoset.db.session import get_db
from photoset.services.app_settings.settings_service import AppSettingsService


router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Liveness check."""
    return {"status": "ok"}


@router.get("/ready")
def readiness(response: Response, db: Session = Depends(get_db)) -> dict:
    """Readiness: database and Redis reachable. Queue/gateway configuration is reported, not required."""
    checks: dict[str, str] = {}
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except SQLAlchemyError as e:
        checks["database"] = f"error: {type(e).__name__}"

    try:
        redis.Redis.from_url(settings.redis_url, socket_connect_timeout=2).ping()
        checks["redis"] = "ok"
    except redis.RedisError as e:
        checks["redis"] = f"error: {type(e).__name__}"

    checks["queue"] = "configured" if settings.has_queue else "absent"
    checks["payment_gateway"] = "configured" if settings.has_payment_gateway else "absent"

    ready = checks["database"] == "ok" and checks["redis"] == "ok"
    maintenance = ready and AppSettingsService(db).is_maintenance()
    if not ready:
        response.status_code = 503
    return {
        "status": "ready" if ready else "not_ready",
        "maintenance": maintenance,
        "checks": checks,
    }
