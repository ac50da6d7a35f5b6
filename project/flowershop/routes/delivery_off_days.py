# flowershop/routes/delivery_off_days.py

from fastapi import APIRouter, Depends, Query, Request, status

from flowershop.routes.auth import get_current_admin
from flowershop.schemas.delivery_off_day import OffDayCreate, OffDayUpdate
from flowershop.services.delivery_off_day import (
    cleanup_off_days_service,
    create_off_day_service,
    delete_off_day_service,
    read_off_days_service,
    update_off_day_service,
)

router = APIRouter()


@router.get("", summary="Дни без доставки")
async def read_off_days(
    request: Request,
    include_inactive: bool = Query(False, alias="all"),
    include_past: bool = Query(False, alias="includePast"),
):
    return {"success": True, **await read_off_days_service(request, include_inactive, include_past)}


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Закрыть дату для доставки",
    responses={400: {"description": "Формат даты не YYYY-MM-DD"}, 409: {"description": "Дата уже закрыта"}},
)
async def create_off_day(data: OffDayCreate, request: Request, _=Depends(get_current_admin)):
    try:
        return await create_off_day_service(data, request)
    except Exception as e:
        await request.app.state.log.log_error("off_day", f"Ошибка при добавлении дня: {e}")
        raise


@router.post("/cleanup", summary="Удалить дубликаты по датам")
async def cleanup_off_days(request: Request, _=Depends(get_current_admin)):
    return await cleanup_off_days_service(request)


@router.put("/{id}", summary="Изменить день без доставки")
async def update_off_day(id: int, data: OffDayUpdate, request: Request, _=Depends(get_current_admin)):
    return await update_off_day_service(id, data, request)


@router.delete("/{id}", summary="Удалить день без доставки")
async def delete_off_day(id: int, request: Request, _=Depends(get_current_admin)):
    return await delete_off_day_service(id, request)
