# flowershop/models/review.py

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean
from flowershop.utils.database import Base, utcnow


class Review(Base):
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, index=True, nullable=False)
    customer_id = Column(String(36), nullable=True)
    customer_name = Column(String, default="")
    rating = Column(Integer, nullable=False)
    title = Column(String, default="")
    comment = Column(Text, default="")
    is_approved = Column(Boolean, default=False)
    is_verified_purchase = Column(Boolean, default=False)
    helpful_count = Column(Integer, default=0)
    unhelpful_count = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
