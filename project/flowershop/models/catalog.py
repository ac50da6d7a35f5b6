# flowershop/models/catalog.py

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, Float, JSON
from flowershop.utils.database import Base, utcnow


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    description = Column(Text, default="")
    image = Column(String, default="")
    sort_order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    description = Column(Text, default="")
    price = Column(Float, nullable=False, default=0)
    old_price = Column(Float, nullable=True)
    image = Column(String, default="")
    hover_image = Column(String, default="")
    gallery = Column(JSON, default=list)
    category = Column(String, index=True, default="")        # slug категории
    category_name = Column(String, default="")
    secondary_categories = Column(JSON, default=list)
    in_stock = Column(Boolean, default=True)
    rating = Column(Float, default=0)
    review_count = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
