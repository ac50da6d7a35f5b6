# flowershop/routes/admin.py

from fastapi import APIRouter, Depends, Request

from flowershop.routes.auth import get_current_admin
from flowershop.schemas.catalog import BulkPriceUpdate
from flowershop.schemas.order import CounterReset
from flowershop.services.catalog import bulk_price_update_service
from flowershop.services.order import get_counter_info_service, reset_counter_service

router = APIRouter(dependencies=[Depends(get_current_admin)])


# ────────────── Счётчик номеров заказов ──────────────
@router.get("/order-counter", summary="Состояние счётчика номеров заказов")
async def read_order_counter(request: Request):
    counter = await get_counter_info_service(request)
    return {
        "success": True,
        "counter": counter,
        "nextOrderNumber": counter["nextOrderNumber"],
        "totalOrders": counter["totalOrders"],
    }


@router.post(
    "/order-counter",
    summary="Сброс счётчика номеров заказов",
    responses={400: {"description": "Номер вне диапазона 100000–999999"}},
)
async def reset_order_counter(data: CounterReset, request: Request):
    try:
        counter = await reset_counter_service(data.start_number, request)
        return {"success": True, "message": "Counter sıfırlandı.", "counter": counter}
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка сброса счётчика: {e}")
        raise


# ────────────── Массовое изменение цен ──────────────
@router.post("/products/bulk-price-update", summary="Изменить цены на процент")
async def bulk_price_update(data: BulkPriceUpdate, request: Request):
    try:
        return await bulk_price_update_service(data, request)
    except Exception as e:
        await request.app.state.log.log_error("product", f"Ошибка массового изменения цен: {e}")
        raise
