# flowershop/schemas/catalog.py

from typing import Optional
from pydantic import Field
from flowershop.schemas.base import CamelModel


class CategoryBase(CamelModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None


class CategoryCreate(CategoryBase):
    name: str
    slug: str


class ProductBase(CamelModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    old_price: Optional[float] = None
    image: Optional[str] = None
    hover_image: Optional[str] = None
    gallery: Optional[list[str]] = None
    category: Optional[str] = None
    category_name: Optional[str] = None
    secondary_categories: Optional[list[str]] = None
    in_stock: Optional[bool] = None


class ProductCreate(ProductBase):
    name: str
    slug: str
    price: float = Field(..., ge=0)


class BulkPriceUpdate(CamelModel):
    """Изменение цен на процент (+10: подорожание, -15: скидка)."""
    percentage: float = Field(..., gt=-100, le=1000)
    product_ids: Optional[list[int]] = None
    category: Optional[str] = None
    preview: bool = False
