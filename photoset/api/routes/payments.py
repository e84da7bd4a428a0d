from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from photoset.api.deps import get_payment_gateway
from photoset.core.errors import ForbiddenError
from photoset.db.session import get_db
from photoset.services.payments.gateway import TBankClient
from photoset.services.payments.service import PaymentService


router = APIRouter(prefix="/api/payment", tags=["payments"])


@router.post("/webhook", response_class=PlainTextResponse)
def payment_webhook(
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    gateway: TBankClient = Depends(get_payment_gateway),
) -> str:
    """T-Bank notification. The only writer of payment status 'succeeded'."""
    if not PaymentService(db, gateway).process_notification(payload):
        raise ForbiddenError("Invalid signature")
    return "OK"
