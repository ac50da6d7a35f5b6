# flowershop/routes/orders.py

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from flowershop.config import settings
from flowershop.routes.auth import get_current_admin
from flowershop.schemas.order import OrderCreate, OrderIdRequest, OrderUpdate, RefundRequest, RestoreRequest, TrackRequest
from flowershop.services.automation import process_automated_updates
from flowershop.services.order import (
    confirm_bank_payment_service,
    create_order_service,
    delete_order_service,
    read_deleted_orders_service,
    read_order_service,
    read_orders_service,
    refund_order_service,
    restore_order_service,
    track_order_service,
    update_order_service,
)
from flowershop.utils.database import utcnow
from flowershop.utils.db_service import to_api
from flowershop.utils.security import check_bearer

router = APIRouter()


def _cron_allowed(authorization: str | None, vercel_cron: str | None) -> bool:
    """Без CRON_SECRET эндпоинт открыт; иначе нужен Bearer-секрет или заголовок планировщика."""
    if not settings.CRON_SECRET:
        return True
    return check_bearer(authorization, settings.CRON_SECRET) or vercel_cron == "1"


# ────────────── LIST ──────────────
@router.get(
    "",
    status_code=status.HTTP_200_OK,
    summary="Список заказов",
    responses={200: {"description": "orders, total, offset, limit"}},
)
async def read_orders(
    request: Request,
    customer_id: str | None = Query(None, alias="customerId"),
    order_status: str | None = Query(None, alias="status"),
    limit: int | None = None,
    offset: int = 0,
    _=Depends(get_current_admin),
):
    try:
        orders, total = await read_orders_service(request, customer_id, order_status, limit, offset)
        return {"orders": [to_api(o) for o in orders], "total": total, "offset": offset, "limit": limit}
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка при получении списка заказов: {e}")
        raise


# ────────────── CREATE ──────────────
@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Создать заказ",
    responses={
        201: {"description": "Заказ создан"},
        400: {"description": "Нет товаров / доставки, воскресенье, выходной день, неверная дата"},
    },
)
async def create_order(order: OrderCreate, request: Request):
    try:
        db_order = await create_order_service(order, request)
        return to_api(db_order)
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка при создании заказа: {e}")
        raise


# ────────────── Удалённые заказы ──────────────
@router.get("/deleted", summary="Удалённые (не восстановленные) заказы")
async def read_deleted_orders(request: Request, _=Depends(get_current_admin)):
    deleted = await read_deleted_orders_service(request)
    return {"orders": [to_api(d) for d in deleted]}


@router.post(
    "/restore",
    summary="Восстановить удалённый заказ",
    responses={400: {"description": "Нет ID / уже восстановлен"}, 404: {"description": "Копия не найдена"}},
)
async def restore_order(data: RestoreRequest, request: Request, _=Depends(get_current_admin)):
    try:
        db_order = await restore_order_service(data.deleted_order_id, request)
        return {"success": True, "order": to_api(db_order), "message": "Sipariş geri yüklendi."}
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка восстановления заказа: {e}")
        raise


# ────────────── Возврат и перевод ──────────────
@router.post("/refund", summary="Оформить возврат", responses={404: {"description": "Заказ не найден"}})
async def refund_order(data: RefundRequest, request: Request, _=Depends(get_current_admin)):
    try:
        db_order = await refund_order_service(data, request)
        return {"success": True, "message": "İade işlemi başarıyla tamamlandı.", "order": to_api(db_order)}
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка возврата: {e}")
        raise


@router.post(
    "/confirm-bank-payment",
    summary="Подтвердить оплату переводом",
    responses={400: {"description": "Оплата уже подтверждена"}, 404: {"description": "Заказ не найден"}},
)
async def confirm_bank_payment(data: OrderIdRequest, request: Request, _=Depends(get_current_admin)):
    try:
        return await confirm_bank_payment_service(data, request)
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка подтверждения перевода: {e}")
        raise


# ────────────── Отслеживание ──────────────
@router.post(
    "/track",
    summary="Публичное отслеживание заказа",
    responses={
        400: {"description": "Неверный номер или способ проверки"},
        403: {"description": "Данные не совпадают"},
        404: {"description": "Заказ не найден"},
    },
)
async def track_order(data: TrackRequest, request: Request):
    return await track_order_service(data, request)


# ────────────── Автоматизация ──────────────
@router.get(
    "/automation",
    summary="Запуск автоматизации статусов (cron)",
    responses={401: {"description": "Неверный секрет"}},
)
async def run_automation(
    request: Request,
    authorization: str | None = Header(default=None),
    x_vercel_cron: str | None = Header(default=None),
):
    if not _cron_allowed(authorization, x_vercel_cron):
        await request.app.state.log.log_warning("automation", "Неавторизованный вызов cron")
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        result = await process_automated_updates(request)
        return {"success": True, "timestamp": utcnow().isoformat(), **result}
    except Exception as e:
        await request.app.state.log.log_error("automation", f"Ошибка автоматизации: {e}")
        raise


@router.post("/automation", summary="Ручной запуск автоматизации")
async def trigger_automation(request: Request, _=Depends(get_current_admin)):
    try:
        result = await process_automated_updates(request)
        return {
            "success": True,
            "timestamp": utcnow().isoformat(),
            "message": "Otomasyon manuel olarak çalıştırıldı",
            **result,
        }
    except Exception as e:
        await request.app.state.log.log_error("automation", f"Ошибка автоматизации: {e}")
        raise


# ────────────── READ / UPDATE / DELETE ──────────────
@router.get("/{id}", summary="Заказ по ID", responses={404: {"description": "Заказ не найден"}})
async def read_order(id: str, request: Request):
    try:
        return to_api(await read_order_service(id, request))
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка при получении заказа: {e}", {"id": id})
        raise


@router.put("/{id}", summary="Обновить заказ", responses={404: {"description": "Заказ не найден"}})
async def update_order(id: str, order_update: OrderUpdate, request: Request, _=Depends(get_current_admin)):
    try:
        return to_api(await update_order_service(id, order_update, request))
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка при обновлении заказа: {e}", {"id": id})
        raise


@router.delete(
    "/{id}",
    summary="Удалить заказ (с резервной копией)",
    responses={404: {"description": "Заказ не найден"}},
)
async def delete_order(id: str, request: Request, _=Depends(get_current_admin)):
    try:
        return await delete_order_service(id, request)
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка при удалении заказа: {e}", {"id": id})
        raise
