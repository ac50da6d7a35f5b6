# flowershop/routes/categories.py

from fastapi import APIRouter, Depends, Query, Request, status

from flowershop.routes.auth import get_current_admin
from flowershop.schemas.catalog import CategoryBase, CategoryCreate
from flowershop.services.catalog import (
    create_category_service,
    delete_category_service,
    read_categories_service,
    read_category_service,
    update_category_service,
)
from flowershop.utils.db_service import to_api

router = APIRouter()


@router.get("", summary="Список категорий")
async def read_categories(request: Request, include_inactive: bool = Query(False, alias="includeInactive")):
    categories = await read_categories_service(request, include_inactive)
    return {"categories": [to_api(c) for c in categories]}


@router.get("/{id}", summary="Категория по ID", responses={404: {"description": "Категория не найдена"}})
async def read_category(id: int, request: Request):
    return to_api(await read_category_service(id, request))


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Создать категорию",
    responses={409: {"description": "slug уже занят"}},
)
async def create_category(category: CategoryCreate, request: Request, _=Depends(get_current_admin)):
    try:
        return to_api(await create_category_service(category, request))
    except Exception as e:
        await request.app.state.log.log_error("category", f"Ошибка при создании категории: {e}")
        raise


@router.put("/{id}", summary="Обновить категорию")
async def update_category(id: int, category_update: CategoryBase, request: Request, _=Depends(get_current_admin)):
    return to_api(await update_category_service(id, category_update, request))


@router.delete("/{id}", summary="Удалить категорию")
async def delete_category(id: int, request: Request, _=Depends(get_current_admin)):
    await delete_category_service(id, request)
    return {"success": True}
