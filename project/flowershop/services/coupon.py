# flowershop/services/coupon.py

import math

from fastapi import HTTPException, Request
from sqlalchemy.future import select

from flowershop.models.coupon import Coupon as CouponModel
from flowershop.schemas.coupon import CouponBase, CouponCreate, CouponValidate
from flowershop.services.catalog import _commit_unique
from flowershop.utils.database import as_utc, utcnow
from flowershop.utils.db_service import get_or_404

DUPLICATE_CODE = "Bu kupon kodu zaten mevcut."
REQUIRED_FIELDS = ("code", "type", "value", "valid_from", "valid_until")


def calculate_discount(coupon: CouponModel, order_total: float) -> float:
    """Скидка в лирах: процент округляется (половина вверх) и ограничивается max_discount_amount."""
    if coupon.type == "percentage":
        discount = math.floor(order_total * (coupon.value or 0) / 100 + 0.5)
        if coupon.max_discount_amount:
            discount = min(discount, coupon.max_discount_amount)
        return discount
    return coupon.value or 0


async def read_coupons_service(request: Request) -> list[CouponModel]:
    db = request.state.db
    result = await db.execute(select(CouponModel).order_by(CouponModel.created_at.desc()))
    return result.scalars().all()


async def read_coupon_service(id: int, request: Request) -> CouponModel:
    return await get_or_404(request, CouponModel, id, "coupon", "Kupon bulunamadı.")


async def create_coupon_service(coupon: CouponCreate, request: Request) -> CouponModel:
    db = request.state.db
    log = request.app.state.log

    data = coupon.model_dump(exclude_none=True)
    data["code"] = data["code"].strip().upper()
    db_coupon = CouponModel(**data)
    db.add(db_coupon)
    await _commit_unique(request, "coupon", DUPLICATE_CODE, {"code": data["code"]})
    await db.refresh(db_coupon)

    await log.log_info("coupon", "Купон создан", {"id": db_coupon.id, "code": db_coupon.code})
    return db_coupon


async def update_coupon_service(id: int, coupon_update: CouponBase, request: Request) -> CouponModel:
    db = request.state.db
    log = request.app.state.log

    db_coupon = await get_or_404(request, CouponModel, id, "coupon", "Kupon bulunamadı.")
    changes = coupon_update.model_dump(exclude_unset=True)
    empty = [key for key in REQUIRED_FIELDS if key in changes and changes[key] is None]
    if empty:
        await log.log_warning("coupon", "Пустые обязательные поля", {"id": id, "fields": empty})
        raise HTTPException(status_code=400, detail="Kupon kodu, türü, değeri ve geçerlilik tarihleri boş bırakılamaz.")

    for key, value in changes.items():
        if key == "code" and value:
            value = value.strip().upper()
        setattr(db_coupon, key, value)

    await _commit_unique(request, "coupon", DUPLICATE_CODE, {"id": id})
    await db.refresh(db_coupon)

    await log.log_info("coupon", "Купон обновлён", {"id": id})
    return db_coupon


async def delete_coupon_service(id: int, request: Request) -> None:
    db = request.state.db
    log = request.app.state.log

    db_coupon = await get_or_404(request, CouponModel, id, "coupon", "Kupon bulunamadı.")
    await db.delete(db_coupon)
    await db.commit()

    await log.log_info("coupon", "Купон удалён", {"id": id})


async def validate_coupon_service(data: CouponValidate, request: Request) -> dict:
    """
    Проверка купона при оформлении заказа.
    При успехе used_count увеличивается сразу.
    """
    db = request.state.db
    log = request.app.state.log

    code = (data.code or "").strip().upper()
    if not code:
        raise HTTPException(status_code=400, detail="Kupon kodu gereklidir.")

    result = await db.execute(select(CouponModel).where(CouponModel.code == code))
    coupon = result.scalar_one_or_none()
    if coupon is None:
        await log.log_warning("coupon", "Неизвестный купон", {"code": code})
        raise HTTPException(status_code=404, detail="Geçersiz kupon kodu.")

    if not coupon.is_active:
        raise HTTPException(status_code=400, detail="Bu kupon artık geçerli değil.")

    now = utcnow()
    if now < as_utc(coupon.valid_from) or now > as_utc(coupon.valid_until):
        raise HTTPException(status_code=400, detail="Bu kupon şu anda geçerli değil.")

    if coupon.usage_limit is not None and (coupon.used_count or 0) >= coupon.usage_limit:
        raise HTTPException(status_code=400, detail="Bu kupon kullanım limitine ulaşmış.")

    if data.order_total < (coupon.min_order_amount or 0):
        raise HTTPException(
            status_code=400,
            detail=f"Bu kuponu kullanmak için minimum {coupon.min_order_amount:g} TL sipariş vermelisiniz.",
        )

    discount = calculate_discount(coupon, data.order_total)
    coupon.used_count = (coupon.used_count or 0) + 1
    await db.commit()

    await log.log_info("coupon", "Купон применён", {"code": code, "discount": discount})
    return {
        "success": True,
        "coupon": {"id": coupon.id, "code": coupon.code, "type": coupon.type, "value": coupon.value},
        "discount": discount,
    }
