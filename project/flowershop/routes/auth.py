# flowershop/routes/auth.py

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jwt import encode, decode, ExpiredSignatureError, InvalidTokenError
from datetime import datetime, timedelta, timezone
from typing import Optional
from sqlalchemy.future import select
from flowershop.config import settings
from flowershop.models.admin import Admin
from flowershop.schemas.admin import AdminResponse, TokenResponse
from flowershop.utils.security import verify_password

router = APIRouter()

# ────────────── JWT ──────────────
ALGORITHM = "HS256"
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    """
    Создаёт JWT токен администратора.
    Вход: dict (например {"sub": "admin"})
    Выход: JWT строка
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=15))
    to_encode.update({"exp": expire})
    return encode(to_encode, settings.AUTH_SECRET_KEY, algorithm=ALGORITHM)


async def _find_admin(request: Request, login: str) -> Admin | None:
    result = await request.state.db.execute(select(Admin).where(Admin.login == login))
    return result.scalar_one_or_none()


async def get_current_admin(request: Request, token: str = Depends(oauth2_scheme)) -> Admin:
    """
    Проверяет JWT токен и возвращает администратора.

    **Статусы:**
    - 401 Unauthorized – токен истёк, неверный или администратор не найден
    """
    log = request.app.state.log
    try:
        payload = decode(token, settings.AUTH_SECRET_KEY, algorithms=[ALGORITHM])
        login: str = payload.get("sub")
        if login is None:
            await log.log_error("auth", "Токен не содержит login")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Geçersiz oturum.")
    except ExpiredSignatureError:
        await log.log_warning("auth", "Токен истёк")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Oturum süresi doldu.")
    except InvalidTokenError:
        await log.log_warning("auth", "Неверный токен")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Geçersiz oturum.")

    admin = await _find_admin(request, login)
    if admin is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Yönetici bulunamadı.")
    return admin


# ────────────── TOKEN ──────────────
@router.post(
    "/token",
    response_model=TokenResponse,
    summary="Получение JWT токена администратора",
    responses={
        200: {"description": "✅ Токен выдан"},
        401: {"description": "❌ Неверный логин или пароль"},
        422: {"description": "⚠️ Ошибка валидации входных данных"},
    }
)
async def login_for_access_token(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends()
):
    """
    Вход в панель управления.

    **Входные данные (form-data):** `username`, `password`.
    **Выход:** `access_token`, `token_type` = `"bearer"`, `user`.
    """
    log = request.app.state.log

    admin = await _find_admin(request, form_data.username)
    if admin is None or not verify_password(form_data.password, admin.password):
        await log.log_warning("auth", "Неудачная попытка входа", {"username": form_data.username})
        raise HTTPException(
            status_code=401,
            detail="Kullanıcı adı veya şifre hatalı.",
            headers={"WWW-Authenticate": "Bearer"}
        )

    access_token = create_access_token(
        data={"sub": admin.login},
        expires_delta=timedelta(minutes=settings.AUTH_TOKEN_EXPIRE_MINUTES)
    )
    await log.log_info("auth", "Администратор авторизован", {"login": admin.login})

    return {
        "access_token": access_token,
        "token_type": "bearer",
        "user": AdminResponse.model_validate(admin),
    }


@router.get(
    "/me",
    response_model=AdminResponse,
    summary="Текущий администратор",
    responses={401: {"description": "Токен невалиден"}}
)
async def read_me(current_admin: Admin = Depends(get_current_admin)):
    return current_admin
