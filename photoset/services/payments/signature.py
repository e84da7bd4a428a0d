"""
T-Bank request/notification signatures.

Token = sha256 over the concatenated values of all top-level scalar params plus
Password, ordered by key. Nested objects (Receipt, DATA) and the Token itself are
never part of the signature.
"""
import hashlib
import hmac
from typing import Any


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def generate_token(params: dict[str, Any], password: str) -> str:
    signed = {
        key: value
        for key, value in params.items()
        if key != "Token" and value is not None and not isinstance(value, (dict, list))
    }
    signed["Password"] = password
    raw = "".join(_stringify(signed[key]) for key in sorted(signed))
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def verify_notification(payload: Any, password: str) -> bool:
    """Check the Token of an incoming notification. Never raises."""
    if not password or not isinstance(payload, dict):
        return False
    received = payload.get("Token")
    if not isinstance(received, str) or not received:
        return False
    expected = generate_token(payload, password)
    return hmac.compare_digest(expected.encode("utf-8"), received.lower().encode("utf-8"))
