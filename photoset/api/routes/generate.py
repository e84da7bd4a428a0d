from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session

from photoset.api.deps import (
    get_caller_identity,
    get_idempotency_store,
    get_payment_gateway,
    get_queue_publisher,
    resolve_telegram_user_id,
)
from photoset.db.session import get_db
from photoset.schemas.catalog import PromptCatalog
from photoset.schemas.generation import GenerateRequest
from photoset.services.compensations.service import CompensationService
from photoset.services.generation.service import GenerationService
from photoset.services.idempotency import IdempotencyStore
from photoset.services.jobs.dispatcher import JobDispatcher
from photoset.services.jobs.status import JobStatusService
from photoset.services.payments.gateway import TBankClient
from photoset.services.payments.service import PaymentService
from photoset.services.prompts.catalog import get_prompt_catalog
from photoset.services.queue.publisher import QueuePublisher


router = APIRouter(prefix="/api", tags=["generation"])


@router.post("/generate")
def start_generation(
    body: GenerateRequest,
    identity: tuple[str | None, str | None] = Depends(get_caller_identity),
    idempotency_key: str | None = Header(None, alias="Idempotency-Key"),
    db: Session = Depends(get_db),
    catalog: PromptCatalog = Depends(get_prompt_catalog),
    publisher: QueuePublisher = Depends(get_queue_publisher),
    gateway: TBankClient = Depends(get_payment_gateway),
    idempotency: IdempotencyStore = Depends(get_idempotency_store),
) -> dict:
    telegram_user_id = resolve_telegram_user_id(*identity, body.telegram_user_id)
    payments = PaymentService(db, gateway)
    dispatcher = JobDispatcher(db, publisher, CompensationService(db, payments))
    service = GenerationService(db, catalog, payments, dispatcher, idempotency)
    result = service.start(telegram_user_id, body, idempotency_key=idempotency_key)
    return result.model_dump(by_alias=True)


@router.get("/generate")
def get_generation_status(
    job_id: int | None = Query(None),
    avatar_id: int | None = Query(None),
    identity: tuple[str | None, str | None] = Depends(get_caller_identity),
    db: Session = Depends(get_db),
) -> dict:
    telegram_user_id = resolve_telegram_user_id(*identity)
    status = JobStatusService(db).get_status(telegram_user_id, job_id=job_id, avatar_id=avatar_id)
    return status.model_dump(by_alias=True, exclude_none=True)
