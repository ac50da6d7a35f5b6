# flowershop/services/customer_auth.py

"""
Вход, регистрация и сброс пароля покупателя через одноразовый код на e-mail.

Все три сценария устроены одинаково: *start* проверяет данные и высылает код,
*verify* проверяет код (срок, число попыток, однократность) и завершает действие.
"""

from fastapi import HTTPException, Request
from sqlalchemy.future import select

from flowershop.config import settings
from flowershop.models.customer import Customer as CustomerModel
from flowershop.models.otp import CustomerEmailOtp
from flowershop.schemas.auth import LoginStart, OtpVerify, PasswordResetStart, PasswordResetVerify, RegisterStart
from flowershop.utils.database import as_utc, utcnow
from flowershop.utils.db_service import to_api
from flowershop.utils.otp import (
    OTP_MAX_ATTEMPTS,
    OTP_RESEND_COOLDOWN_SECONDS,
    OTP_TTL_MINUTES,
    OtpPurpose,
    can_resend,
    expires_at_from_now,
    generate_otp_code,
    hash_otp_code,
    is_otp_code,
    normalize_email,
)
from flowershop.utils.security import hash_password, verify_password
from flowershop.utils.session import build_session_payload, sign_customer_session, verify_customer_session

SEND_FAILED = "E-posta gönderilemedi. Lütfen tekrar deneyin."
SEND_FAILED_INVALID = "Girdiğiniz e-posta adresine kod gönderilemedi. E-posta adresinizi kontrol edip tekrar deneyin."
RESET_NEUTRAL = "Eğer bu e-posta adresi sistemimizde kayıtlıysa, şifre sıfırlama kodu gönderilecektir."


def public_customer(customer: CustomerModel) -> dict:
    """Покупатель для ответа API, без пароля."""
    return to_api(customer, exclude=("password",))


def session_token_for(customer: CustomerModel) -> str | None:
    if not settings.AUTH_SESSION_SECRET:
        return None
    payload = build_session_payload(customer.id, customer.email, settings.AUTH_SESSION_DAYS)
    return sign_customer_session(settings.AUTH_SESSION_SECRET, payload)


async def _find_customer(db, email: str) -> CustomerModel | None:
    result = await db.execute(select(CustomerModel).where(CustomerModel.email == email))
    return result.scalar_one_or_none()


async def issue_otp(request: Request, email: str, purpose: OtpPurpose) -> dict:
    """
    Выдаёт код: переиспользует последнюю непогашенную запись (сбрасывая попытки)
    или создаёт новую, затем отправляет письмо.

    429: если предыдущий код отправлен меньше 30 секунд назад.
    400: если письмо не ушло.
    """
    db = request.state.db
    log = request.app.state.log
    mailer = request.app.state.email

    result = await db.execute(
        select(CustomerEmailOtp)
        .where(CustomerEmailOtp.email == email)
        .where(CustomerEmailOtp.purpose == purpose)
        .where(CustomerEmailOtp.consumed_at.is_(None))
        .order_by(CustomerEmailOtp.created_at.desc())
        .limit(1)
    )
    otp = result.scalar_one_or_none()

    if otp is not None and not can_resend(as_utc(otp.last_sent_at)):
        await log.log_warning("otp", "Повторный запрос кода до истечения паузы", {"email": email, "purpose": purpose})
        raise HTTPException(
            status_code=429,
            detail={
                "error": f"Lütfen yeni kod istemeden önce {OTP_RESEND_COOLDOWN_SECONDS} saniye bekleyin.",
                "otpRequired": True,
                "otpId": otp.id,
                "email": email,
                "purpose": purpose,
            },
        )

    code = generate_otp_code()
    now = utcnow()
    if otp is None:
        otp = CustomerEmailOtp(email=email, purpose=purpose, created_at=now)
        db.add(otp)
    otp.code_hash = hash_otp_code(code, email, purpose)
    otp.attempts = 0
    otp.last_sent_at = now
    otp.expires_at = expires_at_from_now(now)
    otp.consumed_at = None
    await db.commit()
    await db.refresh(otp)

    sent = await mailer.send_customer_otp(email, code, purpose)
    if not sent.success:
        # код не доставлен: пауза на повторную отправку не действует
        otp.last_sent_at = None
        await db.commit()
        await log.log_error("otp", "Код не отправлен", {"email": email, "purpose": purpose, "error": sent.error})
        raise HTTPException(
            status_code=400,
            detail=SEND_FAILED_INVALID if sent.error_code == "INVALID_EMAIL" else SEND_FAILED,
        )

    await log.log_info("otp", "Код отправлен", {"email": email, "purpose": purpose, "otp_id": otp.id})
    return {
        "otpRequired": True,
        "otpId": otp.id,
        "email": email,
        "purpose": purpose,
        "ttlMinutes": OTP_TTL_MINUTES,
        "maxAttempts": OTP_MAX_ATTEMPTS,
    }


async def consume_otp(request: Request, data: OtpVerify, purpose: OtpPurpose) -> str:
    """
    Проверяет код и помечает его использованным. Возвращает нормализованный e-mail.
    Неверный код увеличивает счётчик попыток.
    """
    db = request.state.db
    log = request.app.state.log

    otp_id = (data.otp_id or "").strip()
    email = normalize_email(data.email)
    code = (data.code or "").strip()

    if not otp_id or not email or not is_otp_code(code):
        raise HTTPException(status_code=400, detail="Geçersiz doğrulama bilgisi.")

    result = await db.execute(
        select(CustomerEmailOtp)
        .where(CustomerEmailOtp.id == otp_id)
        .where(CustomerEmailOtp.email == email)
        .where(CustomerEmailOtp.purpose == purpose)
    )
    otp = result.scalar_one_or_none()
    if otp is None:
        raise HTTPException(status_code=400, detail="Doğrulama kodu bulunamadı.")
    if otp.consumed_at is not None:
        raise HTTPException(status_code=400, detail="Bu kod zaten kullanıldı.")
    if otp.expires_at is None or utcnow() > as_utc(otp.expires_at):
        raise HTTPException(status_code=400, detail="Kodun süresi doldu. Lütfen tekrar deneyin.")
    if (otp.attempts or 0) >= OTP_MAX_ATTEMPTS:
        raise HTTPException(status_code=429, detail="Çok fazla deneme yapıldı. Lütfen yeni kod isteyin.")

    if otp.code_hash != hash_otp_code(code, email, purpose):
        otp.attempts = (otp.attempts or 0) + 1
        await db.commit()
        await log.log_warning("otp", "Неверный код", {"otp_id": otp_id, "attempts": otp.attempts})
        raise HTTPException(status_code=401, detail="Doğrulama kodu hatalı.")

    otp.consumed_at = utcnow()
    await db.commit()
    await log.log_info("otp", "Код подтверждён", {"otp_id": otp_id, "purpose": purpose})
    return email


# ────────────── Вход ──────────────
async def login_start_service(data: LoginStart, request: Request) -> dict:
    db = request.state.db
    log = request.app.state.log

    email = normalize_email(data.email)
    password = data.password or ""
    if not email or not password:
        raise HTTPException(status_code=400, detail="E-posta ve şifre gereklidir.")

    customer = await _find_customer(db, email)
    if customer is None or not verify_password(password, customer.password):
        await log.log_warning("otp", "Неудачная попытка входа", {"email": email})
        raise HTTPException(status_code=401, detail="E-posta veya şifre hatalı.")

    if customer.is_active is False:
        raise HTTPException(status_code=403, detail="Hesabınız pasif durumda. Lütfen destek ile iletişime geçin.")

    return await issue_otp(request, email, "login")


async def login_verify_service(data: OtpVerify, request: Request) -> CustomerModel:
    email = await consume_otp(request, data, "login")

    customer = await _find_customer(request.state.db, email)
    if customer is None:
        raise HTTPException(status_code=404, detail="Müşteri bulunamadı.")
    return customer


# ────────────── Регистрация ──────────────
async def register_start_service(data: RegisterStart, request: Request) -> dict:
    """
    Создаёт неподтверждённого покупателя и высылает код.
    Если письмо не ушло, покупатель удаляется, чтобы e-mail можно было использовать снова.
    """
    db = request.state.db
    log = request.app.state.log

    email = normalize_email(data.email)
    name = (data.name or "").strip()
    phone = (data.phone or "").strip()
    password = data.password or ""

    if not email or not name or not phone or not password:
        raise HTTPException(status_code=400, detail="E-posta, ad soyad, telefon ve şifre gereklidir.")

    if await _find_customer(db, email) is not None:
        raise HTTPException(status_code=400, detail="Bu e-posta adresi zaten kayıtlı.")

    customer = CustomerModel(
        email=email,
        name=name,
        phone=phone,
        password=hash_password(password),
        addresses=[],
        orders=[],
        favorites=[],
    )
    db.add(customer)
    await db.commit()
    await db.refresh(customer)
    await log.log_info("otp", "Покупатель создан, ожидает подтверждения", {"id": customer.id})

    try:
        return await issue_otp(request, email, "register")
    except HTTPException as e:
        if e.status_code == 400:
            await db.delete(customer)
            await db.commit()
            await log.log_warning("otp", "Регистрация отменена: письмо не отправлено", {"email": email})
        raise


async def register_verify_service(data: OtpVerify, request: Request) -> CustomerModel:
    db = request.state.db

    email = await consume_otp(request, data, "register")
    customer = await _find_customer(db, email)
    if customer is None:
        raise HTTPException(status_code=404, detail="Müşteri bulunamadı.")

    customer.email_verified = True
    await db.commit()
    await db.refresh(customer)
    return customer


# ────────────── Сброс пароля ──────────────
async def password_reset_start_service(data: PasswordResetStart, request: Request) -> dict:
    """Ответ одинаковый для известных и неизвестных адресов."""
    db = request.state.db
    log = request.app.state.log

    email = normalize_email(data.email)
    if not email:
        raise HTTPException(status_code=400, detail="E-posta adresi gereklidir.")

    if await _find_customer(db, email) is None:
        await log.log_info("otp", "Сброс пароля для неизвестного адреса", {"email": email})
        return {"success": True, "message": RESET_NEUTRAL}

    issued = await issue_otp(request, email, "password-reset")
    return {"success": True, "message": RESET_NEUTRAL, **issued}


async def password_reset_verify_service(data: PasswordResetVerify, request: Request) -> dict:
    db = request.state.db
    log = request.app.state.log

    if not (data.otp_id or "").strip() or not normalize_email(data.email) or not is_otp_code(data.code):
        raise HTTPException(status_code=400, detail="Geçersiz doğrulama bilgisi.")
    new_password = data.new_password or ""
    if len(new_password) < 6:
        raise HTTPException(status_code=400, detail="Yeni şifre en az 6 karakter olmalıdır.")

    email = await consume_otp(request, data, "password-reset")
    customer = await _find_customer(db, email)
    if customer is None:
        raise HTTPException(status_code=404, detail="Müşteri bulunamadı.")

    customer.password = hash_password(new_password)
    customer.updated_at = utcnow()
    await db.commit()

    await log.log_info("otp", "Пароль изменён по коду", {"id": customer.id})
    return {
        "success": True,
        "message": "Şifreniz başarıyla güncellendi. Şimdi yeni şifrenizle giriş yapabilirsiniz.",
    }


# ────────────── Сессия ──────────────
async def read_session_customer(token: str | None, request: Request) -> dict | None:
    if not settings.AUTH_SESSION_SECRET:
        raise HTTPException(status_code=500, detail="Missing env: AUTH_SESSION_SECRET")

    payload = verify_customer_session(settings.AUTH_SESSION_SECRET, token)
    if payload is None:
        return None

    customer = await request.state.db.get(CustomerModel, payload["customerId"])
    if customer is None:
        return None
    return public_customer(customer)
