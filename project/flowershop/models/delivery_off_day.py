# flowershop/models/delivery_off_day.py

from sqlalchemy import Column, Integer, String, DateTime, Boolean
from flowershop.utils.database import Base, utcnow


class DeliveryOffDay(Base):
    __tablename__ = "delivery_off_days"

    id = Column(Integer, primary_key=True, index=True)
    off_date = Column(String(10), index=True, nullable=False)   # YYYY-MM-DD
    note = Column(String, default="")
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
