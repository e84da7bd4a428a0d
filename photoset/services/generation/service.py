"""
Write path of POST /api/generate.

Order: maintenance -> style -> user/ban -> duplicate guard -> entitlement ->
avatar & references -> unused prompts -> dispatch. No job row exists before dispatch.
"""
import logging

from sqlalchemy.orm import Session

from photoset.core.errors import (
    ErrorCode,
    InvalidStyleError,
    PaymentRequiredError,
    ServiceError,
    UnauthorizedError,
)
from photoset.schemas.catalog import PromptCatalog
from photoset.schemas.generation import GenerateRequest, GenerateResponse
from photoset.services.app_settings.settings_service import AppSettingsService
from photoset.services.avatars.service import AvatarService, parse_avatar_hint
from photoset.services.idempotency import IdempotencyStore
from photoset.services.jobs.config import GenerationConfig, clamp_photo_count, get_generation_config
from photoset.services.jobs.dispatcher import JobDispatcher
from photoset.services.payments.service import PaymentService
from photoset.services.prompts.service import PromptDeduplicator
from photoset.services.users.service import UserService

logger = logging.getLogger(__name__)


class GenerationService:
    def __init__(
        self,
        db: Session,
        catalog: PromptCatalog,
        payments: PaymentService | None = None,
        dispatcher: JobDispatcher | None = None,
        idempotency: IdempotencyStore | None = None,
        config: GenerationConfig | None = None,
    ):
        self.db = db
        self.catalog = catalog
        self.config = config or get_generation_config()
        self.payments = payments or PaymentService(db)
        self.dispatcher = dispatcher or JobDispatcher(db, config=self.config)
        self.idempotency = idempotency
        self.users = UserService(db)
        self.avatars = AvatarService(db)
        self.prompts = PromptDeduplicator(db, catalog)

    def start(
        self,
        telegram_user_id: int | None,
        request: GenerateRequest,
        idempotency_key: str | None = None,
    ) -> GenerateResponse:
        if telegram_user_id is None:
            raise UnauthorizedError("Требуется авторизация через Telegram")

        AppSettingsService(self.db).ensure_accepting_jobs()

        if not self.catalog.has_style(request.style_id):
            raise InvalidStyleError(
                f"Неизвестный стиль: {request.style_id}",
                details={"availableStyles": sorted(self.catalog.styles)},
            )

        user = self.users.get_or_create_user(telegram_user_id)
        self.users.ensure_not_banned(user)

        guard_key = f"generate:{user.id}:{idempotency_key}" if idempotency_key else None
        if guard_key and self.idempotency is not None:
            if not self.idempotency.check_and_set(guard_key):
                raise ServiceError(
                    "Запрос уже обрабатывается",
                    code=ErrorCode.CONFLICT,
                )

        try:
            return self._start(user.id, request)
        except ServiceError:
            if guard_key and self.idempotency is not None:
                self.idempotency.release(guard_key)
            raise

    def _start(self, user_id: int, request: GenerateRequest) -> GenerateResponse:
        if not self.payments.has_entitlement(user_id):
            logger.info("generation_payment_required", extra={"user_id": user_id})
            raise PaymentRequiredError("Требуется оплата")
        funding = self.payments.get_latest_succeeded(user_id)

        resolved = self.avatars.resolve(
            user_id,
            parse_avatar_hint(request.avatar_id),
            request.reference_images,
            use_stored_references=request.use_stored_references,
        )

        requested = clamp_photo_count(request.photo_count, self.config.max_photos)
        prompts = self.prompts.available_prompts(resolved.avatar_id, request.style_id, requested)

        result = self.dispatcher.dispatch(
            user_id=user_id,
            avatar_id=resolved.avatar_id,
            style_id=request.style_id,
            prompts=prompts,
            reference_images=resolved.reference_images,
            payment_id=funding.id if funding else None,
        )
        return GenerateResponse(
            job_id=result.job.id,
            avatar_id=resolved.avatar_id,
            total_photos=result.total_photos,
            processing_mode=result.processing_mode,
            reference_images_used=len(resolved.reference_images),
            reference_images_rejected=len(resolved.rejected),
            style=request.style_id,
        )
