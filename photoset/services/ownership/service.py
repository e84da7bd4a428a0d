"""
Ownership gate for polling endpoints.
Separates "does not exist" from "exists but belongs to someone else".
"""
from dataclasses import dataclass

from sqlalchemy.orm import Session

from photoset.models.avatar import Avatar
from photoset.models.generation_job import GenerationJob
from photoset.models.user import User


@dataclass(frozen=True)
class OwnershipCheck:
    authorized: bool
    resource_exists: bool


class OwnershipService:
    def __init__(self, db: Session):
        self.db = db

    def check_avatar(self, telegram_user_id: int, avatar_id: int) -> OwnershipCheck:
        row = (
            self.db.query(User.telegram_user_id)
            .join(Avatar, Avatar.user_id == User.id)
            .filter(Avatar.id == avatar_id)
            .one_or_none()
        )
        return self._result(row, telegram_user_id)

    def check_job(self, telegram_user_id: int, job_id: int) -> OwnershipCheck:
        row = (
            self.db.query(User.telegram_user_id)
            .join(Avatar, Avatar.user_id == User.id)
            .join(GenerationJob, GenerationJob.avatar_id == Avatar.id)
            .filter(GenerationJob.id == job_id)
            .one_or_none()
        )
        return self._result(row, telegram_user_id)

    def check(self, telegram_user_id: int, resource_type: str, resource_id: int) -> OwnershipCheck:
        if resource_type == "job":
            return self.check_job(telegram_user_id, resource_id)
        if resource_type == "avatar":
            return self.check_avatar(telegram_user_id, resource_id)
        raise ValueError(f"unknown resource type: {resource_type}")

    @staticmethod
    def _result(row, telegram_user_id: int) -> OwnershipCheck:
        if row is None:
            return OwnershipCheck(authorized=False, resource_exists=False)
        return OwnershipCheck(authorized=row[0] == telegram_user_id, resource_exists=True)
