# flowershop/routes/reviews.py

from fastapi import APIRouter, Depends, Query, Request, status

from flowershop.routes.auth import get_current_admin
from flowershop.schemas.review import ReviewCreate, ReviewModerate, ReviewVote
from flowershop.services.review import (
    create_review_service,
    delete_review_service,
    moderate_review_service,
    read_reviews_service,
    vote_review_service,
)
from flowershop.utils.db_service import to_api

router = APIRouter()


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


@router.get("", summary="Одобренные отзывы о товаре")
async def read_reviews(request: Request, product_id: int = Query(..., alias="productId")):
    reviews = await read_reviews_service(product_id, request)
    return {"reviews": [to_api(r) for r in reviews]}


@router.get("/all", summary="Все отзывы о товаре (модерация)")
async def read_all_reviews(
    request: Request,
    product_id: int = Query(..., alias="productId"),
    _=Depends(get_current_admin),
):
    reviews = await read_reviews_service(product_id, request, include_unapproved=True)
    return {"reviews": [to_api(r) for r in reviews]}


@router.post("", status_code=status.HTTP_201_CREATED, summary="Оставить отзыв")
async def create_review(review: ReviewCreate, request: Request):
    try:
        return {"success": True, "data": to_api(await create_review_service(review, request))}
    except Exception as e:
        await request.app.state.log.log_error("review", f"Ошибка при создании отзыва: {e}")
        raise


@router.put("/{id}", summary="Одобрить / скрыть отзыв")
async def moderate_review(id: int, data: ReviewModerate, request: Request, _=Depends(get_current_admin)):
    return {"success": True, "data": to_api(await moderate_review_service(id, data, request))}


@router.delete("/{id}", summary="Удалить отзыв")
async def delete_review(id: int, request: Request, _=Depends(get_current_admin)):
    await delete_review_service(id, request)
    return {"success": True}


@router.post(
    "/{id}/helpful",
    summary="Голос «полезно / бесполезно»",
    responses={
        400: {"description": "Неверный тип голоса"},
        404: {"description": "Отзыв не найден"},
        429: {"description": "Повторный голос раньше чем через минуту"},
    },
)
async def vote_review(id: int, data: ReviewVote, request: Request):
    return await vote_review_service(id, data.vote_type, client_ip(request), request)
