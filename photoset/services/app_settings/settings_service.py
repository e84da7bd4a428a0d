"""Глобальные настройки приложения из админки: режим обслуживания."""
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from photoset.core.errors import ErrorCode, ServiceError
from photoset.models.app_settings import AppSettings

DEFAULT_MAINTENANCE_MESSAGE = "Сервис на техническом обслуживании. Попробуйте позже."


class AppSettingsService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self) -> AppSettings | None:
        return self.db.query(AppSettings).filter(AppSettings.id == 1).first()

    def get_or_create(self) -> AppSettings:
        row = self.get()
        if row:
            return row
        row = AppSettings(id=1, maintenance_mode=False)
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def is_maintenance(self) -> bool:
        row = self.get()
        return bool(row and row.maintenance_mode)

    def ensure_accepting_jobs(self) -> None:
        """Raise SERVICE_UNAVAILABLE while maintenance mode is on."""
        row = self.get()
        if row and row.maintenance_mode:
            raise ServiceError(
                row.maintenance_message or DEFAULT_MAINTENANCE_MESSAGE,
                code=ErrorCode.SERVICE_UNAVAILABLE,
                details={"refunded": False},
            )

    def update(self, data: dict[str, Any]) -> AppSettings:
        row = self.get_or_create()
        if data.get("maintenance_mode") is not None:
            row.maintenance_mode = bool(data["maintenance_mode"])
        if "maintenance_message" in data:
            row.maintenance_message = data["maintenance_message"]
        row.updated_at = datetime.now(timezone.utc)
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row
