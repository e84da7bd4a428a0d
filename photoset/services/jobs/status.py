from sqlalchemy.orm import Session

from photoset.core.errors import ForbiddenError, NotFoundError, UnauthorizedError, ValidationError
from photoset.models.generated_photo import GeneratedPhoto
from photoset.models.generation_job import JOB_STATUS_FAILED, GenerationJob
from photoset.schemas.generation import JobStatusOut, Progress
from photoset.services.jobs.service import JobService
from photoset.services.ownership.service import OwnershipService


def progress_percentage(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    return completed * 100 // total


class JobStatusService:
    def __init__(self, db: Session):
        self.db = db
        self.jobs = JobService(db)
        self.ownership = OwnershipService(db)

    def get_status(
        self,
        telegram_user_id: int | None,
        job_id: int | None = None,
        avatar_id: int | None = None,
    ) -> JobStatusOut:
        if telegram_user_id is None:
            raise UnauthorizedError("Требуется авторизация")
        if (job_id is None) == (avatar_id is None):
            raise ValidationError("Укажите ровно один параметр: job_id или avatar_id")

        resource_type, resource_id = ("job", job_id) if job_id is not None else ("avatar", avatar_id)
        check = self.ownership.check(telegram_user_id, resource_type, resource_id)
        if not check.resource_exists:
            raise NotFoundError("Задача не найдена" if resource_type == "job" else "Аватар не найден")
        if not check.authorized:
            raise ForbiddenError("Нет доступа к этому ресурсу")

        job = self.jobs.get(job_id) if job_id is not None else self.jobs.latest_for_avatar(avatar_id)
        if job is None:
            raise NotFoundError("Задача не найдена")
        return self.build(job)

    def build(self, job: GenerationJob) -> JobStatusOut:
        photos = [
            row[0]
            for row in self.db.query(GeneratedPhoto.image_url)
            .filter(GeneratedPhoto.job_id == job.id)
            .order_by(GeneratedPhoto.created_at.asc(), GeneratedPhoto.id.asc())
            .all()
        ]
        total = job.total_photos or 0
        completed = job.completed_photos or 0
        return JobStatusOut(
            job_id=job.id,
            status=job.status,
            progress=Progress(
                completed=completed,
                total=total,
                percentage=progress_percentage(completed, total),
            ),
            error=job.error_message if job.status == JOB_STATUS_FAILED else None,
            photos=photos,
            created_at=job.created_at.isoformat() if job.created_at else None,
            updated_at=job.updated_at.isoformat() if job.updated_at else None,
        )
