# flowershop/utils/transform.py

"""
Преобразование ключей между snake_case (колонки БД) и camelCase (ответы API),
плюс нормализация телефонных номеров.
"""

import re
from typing import Any

_CAMEL_RE = re.compile(r"_([a-z])")
_SNAKE_RE = re.compile(r"[A-Z]")


def camel_key(key: str) -> str:
    return _CAMEL_RE.sub(lambda m: m.group(1).upper(), key)


def snake_key(key: str) -> str:
    return _SNAKE_RE.sub(lambda m: f"_{m.group(0).lower()}", key)


def to_camel_case(obj: Any) -> Any:
    """Рекурсивно переводит ключи словарей в camelCase. Примитивы возвращаются как есть."""
    if isinstance(obj, list):
        return [to_camel_case(item) for item in obj]
    if isinstance(obj, dict):
        return {camel_key(str(k)): to_camel_case(v) for k, v in obj.items()}
    return obj


def to_snake_case(obj: Any) -> Any:
    """Рекурсивно переводит ключи словарей в snake_case."""
    if isinstance(obj, list):
        return [to_snake_case(item) for item in obj]
    if isinstance(obj, dict):
        return {snake_key(str(k)): to_snake_case(v) for k, v in obj.items()}
    return obj


def normalize_phone(phone: str | None) -> str:
    """
    Турецкий номер к 10 цифрам (5XXXXXXXXX):
    +90 532 000 00 00 → 5320000000, 0532... → 532...
    """
    digits = re.sub(r"\D", "", phone or "")
    if digits.startswith("90") and len(digits) >= 12:
        digits = digits[2:]
    if digits.startswith("0") and len(digits) >= 11:
        digits = digits[1:]
    return digits[:10]
