# flowershop/utils/otp.py

"""
Одноразовые коды подтверждения по e-mail (вход, регистрация, сброс пароля).

В базе хранится только sha256-хэш кода, «посоленный» секретом, назначением
и адресом, поэтому один и тот же код для другого назначения не подходит.
"""

import datetime
import hashlib
import re
import secrets
from typing import Literal

from flowershop.config import settings

OTP_CODE_LENGTH = 6
OTP_TTL_MINUTES = 10
OTP_MAX_ATTEMPTS = 5
OTP_RESEND_COOLDOWN_SECONDS = 30

OtpPurpose = Literal["login", "register", "password-reset"]

_OTP_RE = re.compile(rf"^[0-9]{{{OTP_CODE_LENGTH}}}$")


def normalize_email(email: str | None) -> str:
    return str(email or "").strip().lower()


def generate_otp_code() -> str:
    return str(secrets.randbelow(10 ** OTP_CODE_LENGTH)).zfill(OTP_CODE_LENGTH)


def hash_otp_code(code: str, email: str, purpose: OtpPurpose) -> str:
    raw = f"{settings.OTP_SECRET}:{purpose}:{normalize_email(email)}:{str(code or '').strip()}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def is_otp_code(code: str | None) -> bool:
    return bool(_OTP_RE.match(str(code or "").strip()))


def expires_at_from_now(now: datetime.datetime | None = None) -> datetime.datetime:
    now = now or datetime.datetime.now(datetime.timezone.utc)
    return now + datetime.timedelta(minutes=OTP_TTL_MINUTES)


def can_resend(last_sent_at: datetime.datetime | None, now: datetime.datetime | None = None) -> bool:
    """Повторная отправка разрешена не раньше чем через OTP_RESEND_COOLDOWN_SECONDS."""
    if last_sent_at is None:
        return True
    now = now or datetime.datetime.now(datetime.timezone.utc)
    if last_sent_at.tzinfo is None:
        last_sent_at = last_sent_at.replace(tzinfo=datetime.timezone.utc)
    return (now - last_sent_at).total_seconds() >= OTP_RESEND_COOLDOWN_SECONDS
