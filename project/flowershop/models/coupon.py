# flowershop/models/coupon.py

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Float
from flowershop.utils.database import Base, utcnow


class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, index=True, nullable=False)   # всегда в верхнем регистре
    description = Column(String, default="")
    type = Column(String, nullable=False, default="percentage")      # percentage / fixed
    value = Column(Float, nullable=False, default=0)
    min_order_amount = Column(Float, default=0)
    max_discount_amount = Column(Float, nullable=True)
    usage_limit = Column(Integer, default=1)
    used_count = Column(Integer, default=0)
    valid_from = Column(DateTime(timezone=True), nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
