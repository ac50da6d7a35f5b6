# flowershop/services/catalog.py

from fastapi import HTTPException, Request
from sqlalchemy import String, cast, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.future import select

from flowershop.models.catalog import Category as CategoryModel, Product as ProductModel
from flowershop.schemas.catalog import BulkPriceUpdate, CategoryBase, CategoryCreate, ProductBase, ProductCreate
from flowershop.utils.db_service import get_or_404


async def _commit_unique(request: Request, target: str, detail: str, data: dict | None = None):
    """commit с переводом нарушения уникальности (slug) в 409."""
    db = request.state.db
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        await request.app.state.log.log_warning(target, detail, data)
        raise HTTPException(status_code=409, detail=detail)


# ==========================================================
# ТОВАРЫ
# ==========================================================
async def read_products_service(
    request: Request,
    category: str | None = None,
    search: str | None = None,
    in_stock: bool | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> tuple[list[ProductModel], int]:
    """
    Список товаров. Фильтр по категории учитывает и дополнительные категории.
    """
    db = request.state.db
    log = request.app.state.log

    conditions = []
    if category:
        conditions.append(or_(
            ProductModel.category == category,
            # JSON-массив хранится строкой; достаточно поиска по "slug"
            cast(ProductModel.secondary_categories, String).like(f'%"{category}"%'),
        ))
    if search:
        conditions.append(ProductModel.name.ilike(f"%{search.strip()}%"))
    if in_stock is not None:
        conditions.append(ProductModel.in_stock.is_(in_stock))

    query = select(ProductModel).where(*conditions).order_by(ProductModel.id)
    if limit:
        query = query.offset(offset).limit(limit)

    result = await db.execute(query)
    products = result.scalars().all()
    total = await db.scalar(select(func.count()).select_from(ProductModel).where(*conditions))

    await log.log_info("product", f"{len(products)} товаров загружено", {"category": category, "search": search})
    return products, total or 0


async def read_product_service(id_or_slug: str, request: Request) -> ProductModel:
    """Товар по числовому id или по slug."""
    db = request.state.db
    log = request.app.state.log

    if str(id_or_slug).isdigit():
        query = select(ProductModel).where(ProductModel.id == int(id_or_slug))
    else:
        query = select(ProductModel).where(ProductModel.slug == id_or_slug)

    result = await db.execute(query)
    product = result.scalar_one_or_none()
    if product is None:
        await log.log_error("product", "Товар не найден", {"id": id_or_slug})
        raise HTTPException(status_code=404, detail="Ürün bulunamadı.")
    return product


async def create_product_service(product: ProductCreate, request: Request) -> ProductModel:
    db = request.state.db
    log = request.app.state.log

    db_product = ProductModel(**product.model_dump(exclude_none=True))
    db.add(db_product)
    await _commit_unique(request, "product", "Bu slug ile bir ürün zaten mevcut.", {"slug": product.slug})
    await db.refresh(db_product)

    await log.log_info("product", "Товар создан", {"id": db_product.id, "slug": db_product.slug})
    return db_product


async def update_product_service(id: int, product_update: ProductBase, request: Request) -> ProductModel:
    db = request.state.db
    log = request.app.state.log

    db_product = await get_or_404(request, ProductModel, id, "product", "Ürün bulunamadı.")
    for key, value in product_update.model_dump(exclude_unset=True).items():
        setattr(db_product, key, value)

    await _commit_unique(request, "product", "Bu slug ile bir ürün zaten mevcut.", {"id": id})
    await db.refresh(db_product)

    await log.log_info("product", "Товар обновлён", {"id": id})
    return db_product


async def delete_product_service(id: int, request: Request) -> None:
    db = request.state.db
    log = request.app.state.log

    db_product = await get_or_404(request, ProductModel, id, "product", "Ürün bulunamadı.")
    await db.delete(db_product)
    await db.commit()

    await log.log_info("product", "Товар удалён", {"id": id})


async def bulk_price_update_service(data: BulkPriceUpdate, request: Request) -> dict:
    """
    Массовое изменение цен на процент. Цены округляются до целых лир,
    старая (зачёркнутая) цена пересчитывается тем же множителем.
    При preview=True изменения только рассчитываются.
    """
    db = request.state.db
    log = request.app.state.log

    query = select(ProductModel)
    if data.product_ids:
        query = query.where(ProductModel.id.in_(data.product_ids))
    elif data.category:
        query = query.where(ProductModel.category == data.category)

    result = await db.execute(query.order_by(ProductModel.id))
    products = result.scalars().all()

    multiplier = 1 + data.percentage / 100
    changes = []
    for product in products:
        new_price = round((product.price or 0) * multiplier)
        new_old_price = round(product.old_price * multiplier) if product.old_price else product.old_price
        changes.append({
            "id": product.id,
            "name": product.name,
            "currentPrice": product.price,
            "newPrice": new_price,
            "currentOldPrice": product.old_price,
            "newOldPrice": new_old_price,
        })
        if not data.preview:
            product.price = new_price
            product.old_price = new_old_price

    if not data.preview:
        await db.commit()
        await log.log_info("product", "Цены изменены", {"percentage": data.percentage, "count": len(changes)})

    return {
        "success": True,
        "message": f"{len(changes)} ürün {'önizlendi' if data.preview else 'güncellendi'}",
        "stats": {"totalProcessed": len(changes), "successCount": len(changes)},
        "preview" if data.preview else "updated": changes,
    }


# ==========================================================
# КАТЕГОРИИ
# ==========================================================
async def read_categories_service(request: Request, include_inactive: bool = False) -> list[CategoryModel]:
    db = request.state.db

    query = select(CategoryModel)
    if not include_inactive:
        query = query.where(CategoryModel.is_active.is_(True))
    result = await db.execute(query.order_by(CategoryModel.sort_order, CategoryModel.name))
    return result.scalars().all()


async def read_category_service(id: int, request: Request) -> CategoryModel:
    return await get_or_404(request, CategoryModel, id, "category", "Kategori bulunamadı.")


async def create_category_service(category: CategoryCreate, request: Request) -> CategoryModel:
    db = request.state.db
    log = request.app.state.log

    db_category = CategoryModel(**category.model_dump(exclude_none=True))
    db.add(db_category)
    await _commit_unique(request, "category", "Bu slug ile bir kategori zaten mevcut.", {"slug": category.slug})
    await db.refresh(db_category)

    await log.log_info("category", "Категория создана", {"id": db_category.id})
    return db_category


async def update_category_service(id: int, category_update: CategoryBase, request: Request) -> CategoryModel:
    db = request.state.db
    log = request.app.state.log

    db_category = await get_or_404(request, CategoryModel, id, "category", "Kategori bulunamadı.")
    for key, value in category_update.model_dump(exclude_unset=True).items():
        setattr(db_category, key, value)

    await _commit_unique(request, "category", "Bu slug ile bir kategori zaten mevcut.", {"id": id})
    await db.refresh(db_category)

    await log.log_info("category", "Категория обновлена", {"id": id})
    return db_category


async def delete_category_service(id: int, request: Request) -> None:
    db = request.state.db
    log = request.app.state.log

    db_category = await get_or_404(request, CategoryModel, id, "category", "Kategori bulunamadı.")
    await db.delete(db_category)
    await db.commit()

    await log.log_info("category", "Категория удалена", {"id": id})
