# flowershop/routes/products.py

from fastapi import APIRouter, Depends, Query, Request, status

from flowershop.routes.auth import get_current_admin
from flowershop.schemas.catalog import ProductBase, ProductCreate
from flowershop.services.catalog import (
    create_product_service,
    delete_product_service,
    read_product_service,
    read_products_service,
    update_product_service,
)
from flowershop.utils.db_service import to_api

router = APIRouter()


@router.get("", summary="Список товаров")
async def read_products(
    request: Request,
    category: str | None = None,
    search: str | None = None,
    in_stock: bool | None = Query(None, alias="inStock"),
    limit: int | None = None,
    offset: int = 0,
):
    products, total = await read_products_service(request, category, search, in_stock, limit, offset)
    return {"products": [to_api(p) for p in products], "total": total, "offset": offset, "limit": limit}


@router.get("/{id_or_slug}", summary="Товар по id или slug", responses={404: {"description": "Товар не найден"}})
async def read_product(id_or_slug: str, request: Request):
    return to_api(await read_product_service(id_or_slug, request))


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Создать товар",
    responses={409: {"description": "slug уже занят"}},
)
async def create_product(product: ProductCreate, request: Request, _=Depends(get_current_admin)):
    try:
        return to_api(await create_product_service(product, request))
    except Exception as e:
        await request.app.state.log.log_error("product", f"Ошибка при создании товара: {e}")
        raise


@router.put("/{id}", summary="Обновить товар", responses={404: {"description": "Товар не найден"}})
async def update_product(id: int, product_update: ProductBase, request: Request, _=Depends(get_current_admin)):
    try:
        return to_api(await update_product_service(id, product_update, request))
    except Exception as e:
        await request.app.state.log.log_error("product", f"Ошибка при обновлении товара: {e}", {"id": id})
        raise


@router.delete("/{id}", summary="Удалить товар", responses={404: {"description": "Товар не найден"}})
async def delete_product(id: int, request: Request, _=Depends(get_current_admin)):
    await delete_product_service(id, request)
    return {"success": True}
