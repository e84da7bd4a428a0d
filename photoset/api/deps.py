"""
Shared FastAPI dependencies: caller identity and injectable integrations.
Tests override the integration getters via app.dependency_overrides.
"""
from fastapi import Header, Query

from photoset.services.idempotency import IdempotencyStore
from photoset.services.payments.gateway import TBankClient
from photoset.services.queue.publisher import QueuePublisher


def _parse_telegram_id(value) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = int(str(value).strip())
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def resolve_telegram_user_id(
    header_value: str | None,
    query_value: str | None,
    body_value: int | None = None,
) -> int | None:
    """Header X-Telegram-User-Id wins, then ?telegram_user_id=, then the body field."""
    for candidate in (header_value, query_value, body_value):
        parsed = _parse_telegram_id(candidate)
        if parsed is not None:
            return parsed
    return None


def get_caller_identity(
    x_telegram_user_id: str | None = Header(None, alias="X-Telegram-User-Id"),
    telegram_user_id: str | None = Query(None),
) -> tuple[str | None, str | None]:
    return x_telegram_user_id, telegram_user_id


def get_queue_publisher() -> QueuePublisher:
    return QueuePublisher()


def get_payment_gateway() -> TBankClient:
    return TBankClient.from_settings()


def get_idempotency_store() -> IdempotencyStore:
    return IdempotencyStore()
