# flowershop/schemas/order.py

from typing import Any, Optional, Literal
from pydantic import Field
from flowershop.schemas.base import CamelModel


class OrderCreate(CamelModel):
    products: Optional[list[dict[str, Any]]] = None
    delivery: Optional[dict[str, Any]] = None
    payment: Optional[dict[str, Any]] = None
    message: Optional[Any] = None

    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    is_guest: Optional[bool] = None

    discount: Optional[float] = 0
    delivery_fee: Optional[float] = 0
    status: Optional[str] = None
    order_time_group: Optional[str] = None
    timeline: Optional[list[dict[str, Any]]] = None
    notes: Optional[str] = ""
    tracking_url: Optional[str] = ""


class OrderUpdate(CamelModel):
    """Частичное обновление: меняются только переданные поля."""
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    is_guest: Optional[bool] = None
    status: Optional[str] = None
    products: Optional[list[dict[str, Any]]] = None
    delivery: Optional[dict[str, Any]] = None
    payment: Optional[dict[str, Any]] = None
    message: Optional[Any] = None
    subtotal: Optional[float] = None
    discount: Optional[float] = None
    delivery_fee: Optional[float] = None
    total: Optional[float] = None
    notes: Optional[str] = None
    tracking_url: Optional[str] = None
    order_time_group: Optional[str] = None
    timeline: Optional[list[dict[str, Any]]] = None


class RefundRequest(CamelModel):
    order_id: Optional[str] = None
    reason: Optional[str] = None
    amount: Optional[float] = None
    notes: Optional[str] = ""


class RestoreRequest(CamelModel):
    deleted_order_id: Optional[int] = None


class TrackRequest(CamelModel):
    order_number: Optional[Any] = None
    verification_type: Optional[Literal["email", "phone"]] = None
    verification_value: Optional[str] = ""


class CounterReset(CamelModel):
    start_number: int = Field(100001, ge=100000, le=999999)


class OrderIdRequest(CamelModel):
    order_id: Optional[str] = None
