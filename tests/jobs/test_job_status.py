"""Tests for job status polling: ownership, progress, photos."""
from datetime import datetime, timedelta, timezone

import pytest

from photoset.core.errors import ForbiddenError, NotFoundError, UnauthorizedError, ValidationError
from photoset.services.jobs.status import JobStatusService, progress_percentage


@pytest.mark.parametrize(
    "completed, total, expected",
    [(0, 0, 0), (0, 7, 0), (1, 3, 33), (2, 3, 66), (7, 7, 100), (5, 23, 21)],
)
def test_progress_percentage(completed, total, expected):
    assert progress_percentage(completed, total) == expected


class TestGetStatus:
    def test_by_job_id(self, db, factory):
        user = factory.user(telegram_user_id=555)
        avatar = factory.avatar(user)
        job = factory.job(avatar, status="processing", total_photos=3, completed_photos=2)
        now = datetime.now(timezone.utc)
        factory.photo(avatar, job, "Prompt 2", created_at=now)
        factory.photo(avatar, job, "Prompt 1", created_at=now - timedelta(minutes=1))

        status = JobStatusService(db).get_status(555, job_id=job.id)

        assert status.job_id == job.id
        assert status.status == "processing"
        assert (status.progress.completed, status.progress.total, status.progress.percentage) == (2, 3, 66)
        assert status.photos == [
            "https://cdn.example.com/Prompt_1.webp",
            "https://cdn.example.com/Prompt_2.webp",
        ]
        assert status.error is None

    def test_latest_job_by_avatar(self, db, factory):
        user = factory.user(telegram_user_id=556)
        avatar = factory.avatar(user)
        now = datetime.now(timezone.utc)
        factory.job(avatar, status="completed", created_at=now - timedelta(days=1))
        newest = factory.job(avatar, status="pending", created_at=now)

        assert JobStatusService(db).get_status(556, avatar_id=avatar.id).job_id == newest.id

    def test_error_only_for_failed(self, db, factory):
        user = factory.user(telegram_user_id=557)
        avatar = factory.avatar(user)
        failed = factory.job(avatar, status="failed", error_message="Queue unavailable")
        running = factory.job(avatar, status="processing", error_message="Photo #2 failed: timeout")

        service = JobStatusService(db)
        assert service.get_status(557, job_id=failed.id).error == "Queue unavailable"
        assert service.get_status(557, job_id=running.id).error is None

    def test_other_users_job_is_forbidden(self, db, factory):
        owner = factory.user(telegram_user_id=600)
        factory.user(telegram_user_id=601)
        job = factory.job(factory.avatar(owner))

        with pytest.raises(ForbiddenError):
            JobStatusService(db).get_status(601, job_id=job.id)

    def test_other_users_avatar_is_forbidden(self, db, factory):
        owner = factory.user(telegram_user_id=602)
        avatar = factory.avatar(owner)
        factory.job(avatar)

        with pytest.raises(ForbiddenError):
            JobStatusService(db).get_status(603, avatar_id=avatar.id)

    def test_missing_job(self, db, factory):
        factory.user(telegram_user_id=604)
        with pytest.raises(NotFoundError):
            JobStatusService(db).get_status(604, job_id=999)

    def test_avatar_without_jobs(self, db, factory):
        user = factory.user(telegram_user_id=605)
        avatar = factory.avatar(user)
        with pytest.raises(NotFoundError):
            JobStatusService(db).get_status(605, avatar_id=avatar.id)

    def test_requires_identity(self, db):
        with pytest.raises(UnauthorizedError):
            JobStatusService(db).get_status(None, job_id=1)

    @pytest.mark.parametrize("job_id, avatar_id", [(None, None), (1, 2)])
    def test_exactly_one_selector(self, db, job_id, avatar_id):
        with pytest.raises(ValidationError):
            JobStatusService(db).get_status(1, job_id=job_id, avatar_id=avatar_id)
