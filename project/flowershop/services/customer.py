# flowershop/services/customer.py

from fastapi import HTTPException, Request
from sqlalchemy import func
from sqlalchemy.future import select

from flowershop.models.customer import Customer as CustomerModel
from flowershop.schemas.customer import CustomerUpdate, PasswordChange
from flowershop.utils.database import utcnow
from flowershop.utils.db_service import get_or_404
from flowershop.utils.security import hash_password, verify_password

NOT_FOUND = "Müşteri bulunamadı."


async def read_customers_service(
    request: Request,
    search: str | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> tuple[list[CustomerModel], int]:
    db = request.state.db
    log = request.app.state.log

    conditions = []
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(
            CustomerModel.email.ilike(pattern) | CustomerModel.name.ilike(pattern) | CustomerModel.phone.ilike(pattern)
        )

    query = select(CustomerModel).where(*conditions).order_by(CustomerModel.created_at.desc())
    if limit:
        query = query.offset(offset).limit(limit)

    result = await db.execute(query)
    customers = result.scalars().all()
    total = await db.scalar(select(func.count()).select_from(CustomerModel).where(*conditions))

    await log.log_info("customer", f"{len(customers)} покупателей загружено")
    return customers, total or 0


async def read_customer_service(id: str, request: Request) -> CustomerModel:
    return await get_or_404(request, CustomerModel, id, "customer", NOT_FOUND)


async def update_customer_service(id: str, customer_update: CustomerUpdate, request: Request) -> CustomerModel:
    db = request.state.db
    log = request.app.state.log

    db_customer = await get_or_404(request, CustomerModel, id, "customer", NOT_FOUND)
    for key, value in customer_update.model_dump(exclude_unset=True).items():
        # JSON-поля заменяются новыми списками
        if isinstance(value, list):
            value = list(value)
        setattr(db_customer, key, value)
    db_customer.updated_at = utcnow()

    await db.commit()
    await db.refresh(db_customer)

    await log.log_info("customer", "Покупатель обновлён", {"id": id})
    return db_customer


async def delete_customer_service(id: str, request: Request) -> None:
    db = request.state.db
    log = request.app.state.log

    db_customer = await get_or_404(request, CustomerModel, id, "customer", NOT_FOUND)
    await db.delete(db_customer)
    await db.commit()

    await log.log_info("customer", "Покупатель удалён", {"id": id})


async def change_password_service(id: str, data: PasswordChange, request: Request) -> dict:
    """Смена пароля из личного кабинета: нужен текущий пароль."""
    db = request.state.db
    log = request.app.state.log

    current = data.current_password or ""
    new = data.new_password or ""
    if not current or not new:
        raise HTTPException(status_code=400, detail="Mevcut şifre ve yeni şifre gereklidir.")
    if len(new) < 6:
        raise HTTPException(status_code=400, detail="Yeni şifre en az 6 karakter olmalıdır.")

    db_customer = await get_or_404(request, CustomerModel, id, "customer", NOT_FOUND)
    if not verify_password(current, db_customer.password):
        await log.log_warning("customer", "Неверный текущий пароль", {"id": id})
        raise HTTPException(status_code=401, detail="Mevcut şifre hatalı.")

    db_customer.password = hash_password(new)
    db_customer.updated_at = utcnow()
    await db.commit()

    await log.log_info("customer", "Пароль изменён", {"id": id})
    return {"success": True, "message": "Şifreniz başarıyla güncellendi."}
