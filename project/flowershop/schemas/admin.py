# flowershop/schemas/admin.py

from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class AdminResponse(BaseModel):
    """
    Схема ответа API с данными администратора (без пароля).
    """
    id: int
    name: Optional[str] = None
    login: str
    timestamp: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: AdminResponse
