# flowershop/schemas/customer.py

from typing import Any, Optional
from flowershop.schemas.base import CamelModel


class CustomerUpdate(CamelModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    is_active: Optional[bool] = None
    addresses: Optional[list[dict[str, Any]]] = None
    favorites: Optional[list[Any]] = None
    notes: Optional[str] = None


class PasswordChange(CamelModel):
    current_password: Optional[str] = ""
    new_password: Optional[str] = ""
