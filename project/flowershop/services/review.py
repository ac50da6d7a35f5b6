# flowershop/services/review.py

import time

from fastapi import HTTPException, Request
from sqlalchemy.future import select

from flowershop.models.catalog import Product as ProductModel
from flowershop.models.review import Review as ReviewModel
from flowershop.schemas.review import ReviewCreate, ReviewModerate
from flowershop.utils.db_service import get_or_404

VOTE_TYPES = ("helpful", "unhelpful")
VOTE_COOLDOWN_SECONDS = 60
VOTE_PRUNE_AGE_SECONDS = 120
VOTE_MAP_LIMIT = 10_000

# "<ip>-<review_id>" → время последнего голоса; в пределах одного процесса
_recent_votes: dict[str, float] = {}


def _prune_votes(now: float) -> None:
    if len(_recent_votes) <= VOTE_MAP_LIMIT:
        return
    for key, voted_at in list(_recent_votes.items()):
        if now - voted_at > VOTE_PRUNE_AGE_SECONDS:
            del _recent_votes[key]


async def read_reviews_service(product_id: int, request: Request, include_unapproved: bool = False) -> list[ReviewModel]:
    """Отзывы о товаре; неодобренные видит только администратор."""
    db = request.state.db

    query = select(ReviewModel).where(ReviewModel.product_id == product_id)
    if not include_unapproved:
        query = query.where(ReviewModel.is_approved.is_(True))
    result = await db.execute(query.order_by(ReviewModel.created_at.desc()))
    return result.scalars().all()


async def create_review_service(review: ReviewCreate, request: Request) -> ReviewModel:
    """Новый отзыв ждёт модерации."""
    db = request.state.db
    log = request.app.state.log

    await get_or_404(request, ProductModel, review.product_id, "review", "Ürün bulunamadı.")

    db_review = ReviewModel(**review.model_dump(exclude_none=True), is_approved=False)
    db.add(db_review)
    await db.commit()
    await db.refresh(db_review)

    await log.log_info("review", "Отзыв создан", {"id": db_review.id, "product_id": review.product_id})
    return db_review


async def moderate_review_service(id: int, data: ReviewModerate, request: Request) -> ReviewModel:
    db = request.state.db
    log = request.app.state.log

    db_review = await get_or_404(request, ReviewModel, id, "review", "Değerlendirme bulunamadı")
    db_review.is_approved = data.is_approved
    await db.commit()
    await db.refresh(db_review)

    await log.log_info("review", "Отзыв промодерирован", {"id": id, "is_approved": data.is_approved})
    return db_review


async def delete_review_service(id: int, request: Request) -> None:
    db = request.state.db
    log = request.app.state.log

    db_review = await get_or_404(request, ReviewModel, id, "review", "Değerlendirme bulunamadı")
    await db.delete(db_review)
    await db.commit()

    await log.log_info("review", "Отзыв удалён", {"id": id})


async def vote_review_service(review_id: int, vote_type: str | None, ip: str, request: Request) -> dict:
    """
    Голос «полезно / бесполезно». Один голос с IP на отзыв в минуту.
    Ограничение живёт в памяти процесса и сбрасывается при перезапуске.
    """
    db = request.state.db
    log = request.app.state.log

    if vote_type not in VOTE_TYPES:
        raise HTTPException(status_code=400, detail="Geçersiz oy türü")

    key = f"{ip}-{review_id}"
    now = time.monotonic()
    last = _recent_votes.get(key)
    if last is not None and now - last < VOTE_COOLDOWN_SECONDS:
        await log.log_warning("review", "Слишком частые голоса", {"ip": ip, "review_id": review_id})
        raise HTTPException(status_code=429, detail="Çok sık oy veriyorsunuz. Lütfen bekleyin.")

    db_review = await get_or_404(request, ReviewModel, review_id, "review", "Değerlendirme bulunamadı")
    if vote_type == "helpful":
        db_review.helpful_count = (db_review.helpful_count or 0) + 1
    else:
        db_review.unhelpful_count = (db_review.unhelpful_count or 0) + 1
    await db.commit()

    _recent_votes[key] = now
    _prune_votes(now)

    return {
        "success": True,
        "data": {"helpfulCount": db_review.helpful_count, "unhelpfulCount": db_review.unhelpful_count},
        "message": "Oyunuz kaydedildi",
    }
