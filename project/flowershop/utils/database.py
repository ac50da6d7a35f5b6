# flowershop/utils/database.py

import datetime
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.future import select
from flowershop.config import settings
from flowershop.utils.security import hash_password

# ────────────── Base для моделей ──────────────
Base = declarative_base()

# ────────────── Асинхронный движок ──────────────
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.LOG_PRINT_DB.lower() in ("1", "true", "yes"),  # SQL в консоль
)

# ────────────── Асинхронная сессия ──────────────
AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)

# Первый номер заказа (шестизначные номера 100001, 100002, ...)
ORDER_NUMBER_START = 100001


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def as_utc(value: datetime.datetime | None) -> datetime.datetime | None:
    """SQLite теряет tzinfo: считаем такие значения UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


# ────────────── Инициализация базы данных ──────────────
async def init_db():
    """
    Создаёт все таблицы (если ещё не созданы) и заполняет служебные записи:
        - администратор из AUTH_LOGIN / AUTH_PASSWORD, если админов нет
        - счётчик номеров заказов, если его нет
    """
    # регистрация моделей в metadata
    from flowershop.models import catalog, coupon, customer, delivery_off_day, otp, review  # noqa: F401
    from flowershop.models.admin import Admin
    from flowershop.models.order import OrderNumberCounter

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        result = await session.execute(select(Admin).limit(1))
        if result.scalar_one_or_none() is None:
            session.add(Admin(
                name="Administrator",
                login=settings.AUTH_LOGIN,
                password=hash_password(settings.AUTH_PASSWORD),
            ))

        result = await session.execute(select(OrderNumberCounter).where(OrderNumberCounter.id == 1))
        if result.scalar_one_or_none() is None:
            session.add(OrderNumberCounter(id=1, next_value=ORDER_NUMBER_START))

        await session.commit()
