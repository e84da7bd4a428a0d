"""TBankClient against httpx.MockTransport: request signing and error mapping."""
import json

import httpx
import pytest

from photoset.services.payments.gateway import PaymentGatewayError, TBankClient
from photoset.services.payments.signature import generate_token


def _client(handler) -> TBankClient:
    return TBankClient(
        terminal_key="Term",
        password="secret",
        api_url="https://gateway.test/v2",
        transport=httpx.MockTransport(handler),
    )


def test_cancel_posts_signed_body():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"Success": True, "Status": "REFUNDED", "PaymentId": "55"})

    receipt = {"Email": "a@b.c", "Items": []}
    data = _client(handler).cancel_payment("55", amount_kopeks=1000, receipt=receipt)

    assert data["Status"] == "REFUNDED"
    assert seen["url"] == "https://gateway.test/v2/Cancel"
    body = seen["body"]
    assert body["TerminalKey"] == "Term"
    assert body["Amount"] == 1000
    assert body["Receipt"] == receipt
    unsigned = {k: v for k, v in body.items() if k != "Token"}
    assert body["Token"] == generate_token(unsigned, "secret")


def test_full_cancel_omits_amount():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured.update(json.loads(request.content))
        return httpx.Response(200, json={"Success": True})

    _client(handler).cancel_payment("55")
    assert "Amount" not in captured


def test_gateway_rejection_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"Success": False, "ErrorCode": "9999", "Message": "Неверные параметры"})

    with pytest.raises(PaymentGatewayError) as exc:
        _client(handler).get_state("55")
    assert exc.value.detail["error_code"] == "9999"


def test_http_error_raises_with_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway")

    with pytest.raises(PaymentGatewayError) as exc:
        _client(handler).cancel_payment("55")
    assert exc.value.detail["http_status"] == 502


def test_network_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(PaymentGatewayError):
        _client(handler).cancel_payment("55")


def test_not_configured():
    client = TBankClient(terminal_key="", password="")
    with pytest.raises(PaymentGatewayError):
        client.cancel_payment("55")
