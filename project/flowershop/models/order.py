# flowershop/models/order.py

import uuid
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, Float, JSON
from flowershop.utils.database import Base, utcnow


def new_id() -> str:
    return str(uuid.uuid4())


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)
    order_number = Column(Integer, unique=True, index=True, nullable=False)  # 100001, 100002, ...

    customer_id = Column(String(36), nullable=True, index=True)  # NULL: гостевой заказ
    customer_name = Column(String, nullable=True)
    customer_email = Column(String, nullable=True)
    customer_phone = Column(String, nullable=True)
    is_guest = Column(Boolean, default=True)

    products = Column(JSON, default=list)       # позиции заказа (снимок каталога)
    delivery = Column(JSON, default=dict)       # deliveryDate, deliveryTimeSlot, fullAddress, recipient...
    payment = Column(JSON, default=dict)        # method, status, token, tokenCreatedAt, ...
    refund = Column(JSON, nullable=True)
    message = Column(JSON, nullable=True)       # открытка

    subtotal = Column(Float, default=0)
    discount = Column(Float, default=0)
    delivery_fee = Column(Float, default=0)
    total = Column(Float, default=0)

    status = Column(String, default="pending", index=True)
    order_time_group = Column(String, nullable=True)   # noon / evening / overnight
    timeline = Column(JSON, default=list)               # только дописывается
    notes = Column(Text, default="")
    tracking_url = Column(String, default="")

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    delivered_at = Column(DateTime(timezone=True), nullable=True)


class DeletedOrder(Base):
    __tablename__ = "deleted_orders"

    id = Column(Integer, primary_key=True, index=True)
    original_id = Column(String(36), index=True)
    order_number = Column(Integer, nullable=True)
    order_data = Column(JSON, nullable=False)   # полная копия строки заказа
    deleted_at = Column(DateTime(timezone=True), default=utcnow)
    is_restored = Column(Boolean, default=False)
    restored_at = Column(DateTime(timezone=True), nullable=True)


class OrderNumberCounter(Base):
    """Однострочная таблица-последовательность номеров заказов."""
    __tablename__ = "order_number_counter"

    id = Column(Integer, primary_key=True)
    next_value = Column(Integer, nullable=False)
