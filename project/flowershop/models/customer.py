# flowershop/models/customer.py

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Float, JSON
from flowershop.utils.database import Base, utcnow
from flowershop.models.order import new_id


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    password = Column(String, nullable=True)            # хэш (passlib)
    is_active = Column(Boolean, default=True)
    email_verified = Column(Boolean, default=False)

    addresses = Column(JSON, default=list)
    favorites = Column(JSON, default=list)
    orders = Column(JSON, default=list)                 # id заказов

    order_count = Column(Integer, default=0)
    total_spent = Column(Float, default=0)
    last_order_date = Column(DateTime(timezone=True), nullable=True)
    notes = Column(String, default="")

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
