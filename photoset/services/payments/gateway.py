"""
T-Bank acquiring API client (Cancel / GetState).
Calls go through the "payment_gateway" circuit breaker; no retries here.
"""
import logging
import time
from typing import Any

import httpx
import pybreaker

from photoset.core.config import settings
from photoset.services.circuit_breaker import get_circuit_breaker
from photoset.services.payments.signature import generate_token
from photoset.utils.metrics import payment_gateway_duration_seconds

logger = logging.getLogger(__name__)

BREAKER_NAME = "payment_gateway"


class PaymentGatewayError(Exception):
    """Gateway rejected the call or could not be reached."""

    def __init__(self, message: str, detail: dict[str, Any] | None = None):
        super().__init__(message)
        self.detail = detail or {}


class TBankClient:
    def __init__(
        self,
        terminal_key: str,
        password: str,
        api_url: str = "https://securepay.tinkoff.ru/v2",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.terminal_key = terminal_key
        self.password = password
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "TBankClient":
        return cls(
            terminal_key=settings.tbank_terminal_key,
            password=settings.tbank_password,
            api_url=settings.tbank_api_url,
            timeout=settings.tbank_timeout,
        )

    def is_available(self) -> bool:
        return bool(self.terminal_key and self.password)

    def cancel_payment(
        self,
        provider_payment_id: str,
        amount_kopeks: int | None = None,
        receipt: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Full cancel when amount is omitted, partial otherwise."""
        params: dict[str, Any] = {
            "TerminalKey": self.terminal_key,
            "PaymentId": provider_payment_id,
        }
        if amount_kopeks is not None:
            params["Amount"] = amount_kopeks
        if receipt:
            params["Receipt"] = receipt
        return self._call("Cancel", params)

    def get_state(self, provider_payment_id: str) -> dict[str, Any]:
        return self._call(
            "GetState",
            {"TerminalKey": self.terminal_key, "PaymentId": provider_payment_id},
        )

    def _call(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        if not self.is_available():
            raise PaymentGatewayError("T-Bank credentials not configured")
        body = {**params, "Token": generate_token(params, self.password)}
        try:
            return get_circuit_breaker(BREAKER_NAME).call(self._post, method, body)
        except pybreaker.CircuitBreakerError as e:
            raise PaymentGatewayError("Payment gateway circuit open", {"method": method}) from e

    def _post(self, method: str, body: dict[str, Any]) -> dict[str, Any]:
        started = time.monotonic()
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(f"{self.api_url}/{method}", json=body)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise PaymentGatewayError(
                f"T-Bank {method} HTTP {e.response.status_code}",
                {"method": method, "http_status": e.response.status_code},
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise PaymentGatewayError(f"T-Bank {method} request failed: {e}", {"method": method}) from e
        finally:
            payment_gateway_duration_seconds.labels(method=method).observe(time.monotonic() - started)

        if not data.get("Success"):
            message = data.get("Message") or data.get("Details") or data.get("ErrorCode")
            logger.warning(
                "payment_gateway_rejected",
                extra={"error": f"{method}: {message}"},
            )
            raise PaymentGatewayError(
                f"T-Bank {method} failed: {message}",
                {"method": method, "error_code": data.get("ErrorCode")},
            )
        return data
