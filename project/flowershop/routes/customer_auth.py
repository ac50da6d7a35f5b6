# flowershop/routes/customer_auth.py

from fastapi import APIRouter, Cookie, Request, Response, status

from flowershop.config import settings
from flowershop.schemas.auth import LoginStart, OtpVerify, PasswordResetStart, PasswordResetVerify, RegisterStart
from flowershop.services.customer_auth import (
    login_start_service,
    login_verify_service,
    password_reset_start_service,
    password_reset_verify_service,
    public_customer,
    read_session_customer,
    register_start_service,
    register_verify_service,
    session_token_for,
)
from flowershop.utils.session import CUSTOMER_COOKIE

router = APIRouter()

OTP_RESPONSES = {
    400: {"description": "Неверные данные или код"},
    401: {"description": "Неверный пароль или код"},
    429: {"description": "Слишком частые запросы / попытки"},
}


def _set_session_cookie(response: Response, customer) -> None:
    token = session_token_for(customer)
    if token is None:
        return
    response.set_cookie(
        CUSTOMER_COOKIE,
        token,
        max_age=settings.AUTH_SESSION_DAYS * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
        secure=settings.SITE_URL.startswith("https://"),
        path="/",
    )


# ────────────── Вход ──────────────
@router.post(
    "/customers/login/start",
    status_code=status.HTTP_200_OK,
    summary="Вход: проверка пароля и отправка кода",
    responses={**OTP_RESPONSES, 403: {"description": "Аккаунт неактивен"}},
)
async def login_start(data: LoginStart, request: Request):
    try:
        return {"success": True, **await login_start_service(data, request)}
    except Exception as e:
        await request.app.state.log.log_error("otp", f"Ошибка входа (start): {e}")
        raise


@router.post(
    "/customers/login/verify",
    status_code=status.HTTP_200_OK,
    summary="Вход: проверка кода, установка cookie",
    responses=OTP_RESPONSES,
)
async def login_verify(data: OtpVerify, request: Request, response: Response):
    try:
        customer = await login_verify_service(data, request)
        _set_session_cookie(response, customer)
        return {"success": True, "customer": public_customer(customer)}
    except Exception as e:
        await request.app.state.log.log_error("otp", f"Ошибка входа (verify): {e}")
        raise


# ────────────── Регистрация ──────────────
@router.post(
    "/customers/register/start",
    status_code=status.HTTP_200_OK,
    summary="Регистрация: создание покупателя и отправка кода",
    responses=OTP_RESPONSES,
)
async def register_start(data: RegisterStart, request: Request):
    try:
        return {"success": True, **await register_start_service(data, request)}
    except Exception as e:
        await request.app.state.log.log_error("otp", f"Ошибка регистрации (start): {e}")
        raise


@router.post(
    "/customers/register/verify",
    status_code=status.HTTP_200_OK,
    summary="Регистрация: подтверждение e-mail",
    responses=OTP_RESPONSES,
)
async def register_verify(data: OtpVerify, request: Request, response: Response):
    try:
        customer = await register_verify_service(data, request)
        _set_session_cookie(response, customer)
        return {"success": True, "customer": public_customer(customer)}
    except Exception as e:
        await request.app.state.log.log_error("otp", f"Ошибка регистрации (verify): {e}")
        raise


# ────────────── Сброс пароля ──────────────
@router.post(
    "/customers/password-reset/start",
    status_code=status.HTTP_200_OK,
    summary="Сброс пароля: отправка кода",
    responses=OTP_RESPONSES,
)
async def password_reset_start(data: PasswordResetStart, request: Request):
    try:
        return await password_reset_start_service(data, request)
    except Exception as e:
        await request.app.state.log.log_error("otp", f"Ошибка сброса пароля (start): {e}")
        raise


@router.post(
    "/customers/password-reset/verify",
    status_code=status.HTTP_200_OK,
    summary="Сброс пароля: новый пароль по коду",
    responses=OTP_RESPONSES,
)
async def password_reset_verify(data: PasswordResetVerify, request: Request):
    try:
        return await password_reset_verify_service(data, request)
    except Exception as e:
        await request.app.state.log.log_error("otp", f"Ошибка сброса пароля (verify): {e}")
        raise


# ────────────── Сессия ──────────────
@router.get(
    "/auth/session",
    status_code=status.HTTP_200_OK,
    summary="Текущий покупатель по cookie",
    responses={500: {"description": "Не задан AUTH_SESSION_SECRET"}},
)
async def read_session(request: Request, vadiler_customer_auth: str | None = Cookie(default=None)):
    customer = await read_session_customer(vadiler_customer_auth, request)
    return {"customer": customer}


@router.post("/auth/logout", status_code=status.HTTP_200_OK, summary="Выход покупателя")
async def logout(response: Response):
    response.delete_cookie(CUSTOMER_COOKIE, path="/")
    return {"success": True}
