# flowershop/schemas/coupon.py

from datetime import datetime
from typing import Optional, Literal
from pydantic import Field
from flowershop.schemas.base import CamelModel


class CouponBase(CamelModel):
    code: Optional[str] = None
    description: Optional[str] = None
    type: Optional[Literal["percentage", "fixed"]] = None
    value: Optional[float] = Field(None, ge=0)
    min_order_amount: Optional[float] = None
    max_discount_amount: Optional[float] = None
    usage_limit: Optional[int] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: Optional[bool] = None


class CouponCreate(CouponBase):
    code: str
    type: Literal["percentage", "fixed"]
    value: float = Field(..., ge=0)
    valid_from: datetime
    valid_until: datetime


class CouponValidate(CamelModel):
    code: Optional[str] = ""
    order_total: float = 0
