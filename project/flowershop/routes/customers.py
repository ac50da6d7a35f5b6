# flowershop/routes/customers.py

from fastapi import APIRouter, Depends, Request

from flowershop.routes.auth import get_current_admin
from flowershop.schemas.customer import CustomerUpdate, PasswordChange
from flowershop.services.customer import (
    change_password_service,
    delete_customer_service,
    read_customer_service,
    read_customers_service,
    update_customer_service,
)
from flowershop.services.customer_auth import public_customer

router = APIRouter()


@router.get("", summary="Список покупателей")
async def read_customers(
    request: Request,
    search: str | None = None,
    limit: int | None = None,
    offset: int = 0,
    _=Depends(get_current_admin),
):
    customers, total = await read_customers_service(request, search, limit, offset)
    return {"customers": [public_customer(c) for c in customers], "total": total}


@router.get("/{id}", summary="Покупатель по ID", responses={404: {"description": "Покупатель не найден"}})
async def read_customer(id: str, request: Request, _=Depends(get_current_admin)):
    return public_customer(await read_customer_service(id, request))


@router.put("/{id}", summary="Обновить покупателя")
async def update_customer(id: str, customer_update: CustomerUpdate, request: Request, _=Depends(get_current_admin)):
    try:
        return public_customer(await update_customer_service(id, customer_update, request))
    except Exception as e:
        await request.app.state.log.log_error("customer", f"Ошибка при обновлении покупателя: {e}", {"id": id})
        raise


@router.delete("/{id}", summary="Удалить покупателя")
async def delete_customer(id: str, request: Request, _=Depends(get_current_admin)):
    await delete_customer_service(id, request)
    return {"success": True}


@router.put(
    "/{id}/password",
    summary="Смена пароля покупателем",
    responses={400: {"description": "Пустой или короткий пароль"}, 401: {"description": "Неверный текущий пароль"}},
)
async def change_password(id: str, data: PasswordChange, request: Request):
    try:
        return await change_password_service(id, data, request)
    except Exception as e:
        await request.app.state.log.log_error("customer", f"Ошибка смены пароля: {e}", {"id": id})
        raise
