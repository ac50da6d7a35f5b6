# flowershop/routes/coupons.py

from fastapi import APIRouter, Depends, Request, status

from flowershop.routes.auth import get_current_admin
from flowershop.schemas.coupon import CouponBase, CouponCreate, CouponValidate
from flowershop.services.coupon import (
    create_coupon_service,
    delete_coupon_service,
    read_coupon_service,
    read_coupons_service,
    update_coupon_service,
    validate_coupon_service,
)
from flowershop.utils.db_service import to_api

router = APIRouter()


@router.post(
    "/validate",
    summary="Проверить купон и рассчитать скидку",
    responses={
        400: {"description": "Купон неактивен, просрочен, исчерпан или сумма ниже минимума"},
        404: {"description": "Купон не найден"},
    },
)
async def validate_coupon(data: CouponValidate, request: Request):
    try:
        return await validate_coupon_service(data, request)
    except Exception as e:
        await request.app.state.log.log_error("coupon", f"Ошибка проверки купона: {e}")
        raise


@router.get("", summary="Список купонов")
async def read_coupons(request: Request, _=Depends(get_current_admin)):
    return {"coupons": [to_api(c) for c in await read_coupons_service(request)]}


@router.get("/{id}", summary="Купон по ID")
async def read_coupon(id: int, request: Request, _=Depends(get_current_admin)):
    return to_api(await read_coupon_service(id, request))


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Создать купон",
    responses={409: {"description": "Код уже существует"}},
)
async def create_coupon(coupon: CouponCreate, request: Request, _=Depends(get_current_admin)):
    return to_api(await create_coupon_service(coupon, request))


@router.put("/{id}", summary="Обновить купон")
async def update_coupon(id: int, coupon_update: CouponBase, request: Request, _=Depends(get_current_admin)):
    return to_api(await update_coupon_service(id, coupon_update, request))


@router.delete("/{id}", summary="Удалить купон")
async def delete_coupon(id: int, request: Request, _=Depends(get_current_admin)):
    await delete_coupon_service(id, request)
    return {"success": True}
