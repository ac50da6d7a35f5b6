# flowershop/schemas/review.py

from typing import Optional
from pydantic import Field
from flowershop.schemas.base import CamelModel


class ReviewCreate(CamelModel):
    product_id: int
    rating: int = Field(..., ge=1, le=5)
    customer_id: Optional[str] = None
    customer_name: Optional[str] = ""
    title: Optional[str] = ""
    comment: Optional[str] = ""


class ReviewModerate(CamelModel):
    is_approved: bool


class ReviewVote(CamelModel):
    vote_type: Optional[str] = None
