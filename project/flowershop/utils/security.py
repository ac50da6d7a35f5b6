# flowershop/utils/security.py

"""
Хэширование и проверка паролей (покупатели и администраторы).
Используется passlib с sha256_crypt, чтобы избежать проблем с bcrypt на Windows.
"""

import hmac
from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["sha256_crypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """
    Хэширует пароль.

    :param password: строка пароля пользователя
    :return: хэшированный пароль в виде строки
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    """
    Проверяет совпадение пароля с его хэшем.

    Старые записи покупателей могли хранить пароль открытым текстом,
    такие значения сравниваются напрямую.
    """
    if not hashed_password:
        return False
    if pwd_context.identify(hashed_password) is None:
        return hmac.compare_digest(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    return pwd_context.verify(plain_password, hashed_password)


def check_bearer(authorization: str | None, secret: str) -> bool:
    """Сравнивает заголовок Authorization с `Bearer <secret>`."""
    expected = f"Bearer {secret}"
    return hmac.compare_digest((authorization or "").encode("utf-8"), expected.encode("utf-8"))
