# flowershop/schemas/delivery_off_day.py

from typing import Optional
from flowershop.schemas.base import CamelModel


class OffDayCreate(CamelModel):
    off_date: Optional[str] = ""
    note: Optional[str] = ""


class OffDayUpdate(CamelModel):
    off_date: Optional[str] = None
    note: Optional[str] = None
    is_active: Optional[bool] = None
