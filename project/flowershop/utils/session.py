# flowershop/utils/session.py

"""
Подписанная cookie сессии покупателя.

Формат: base64url(JSON payload) + "." + base64url(HMAC-SHA256(secret, body)).
Серверного хранилища сессий нет: всё необходимое лежит в самой cookie.
"""

import base64
import hashlib
import hmac
import json
import time
from typing import Optional, TypedDict

CUSTOMER_COOKIE = "vadiler_customer_auth"


class SessionPayload(TypedDict):
    customerId: str
    email: str
    issuedAt: int   # epoch ms
    expiresAt: int  # epoch ms


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64url_decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


def _sign(secret: str, body: str) -> str:
    return _b64url_encode(hmac.new(secret.encode("utf-8"), body.encode("ascii"), hashlib.sha256).digest())


def now_ms() -> int:
    return int(time.time() * 1000)


def build_session_payload(customer_id: str, email: str, days: int) -> SessionPayload:
    issued = now_ms()
    return {
        "customerId": str(customer_id),
        "email": email,
        "issuedAt": issued,
        "expiresAt": issued + days * 24 * 60 * 60 * 1000,
    }


def sign_customer_session(secret: str, payload: SessionPayload) -> str:
    body = _b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    return f"{body}.{_sign(secret, body)}"


def verify_customer_session(secret: str, token: str | None, now: int | None = None) -> Optional[SessionPayload]:
    """Возвращает payload, если подпись верна и срок не истёк, иначе None."""
    body, _, sig = (token or "").partition(".")
    if not body or not sig:
        return None

    if not hmac.compare_digest(_sign(secret, body), sig):
        return None

    try:
        payload = json.loads(_b64url_decode(body).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None

    if not isinstance(payload, dict):
        return None
    if not payload.get("customerId") or not payload.get("email") or not payload.get("expiresAt"):
        return None

    try:
        expires_at = int(payload["expiresAt"])
        issued_at = int(payload.get("issuedAt") or 0)
    except (TypeError, ValueError):
        return None

    if (now if now is not None else now_ms()) > expires_at:
        return None

    return {
        "customerId": str(payload["customerId"]),
        "email": str(payload["email"]),
        "issuedAt": issued_at,
        "expiresAt": expires_at,
    }
