# flowershop/main.py

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
import uvicorn
from dotenv import load_dotenv
from contextlib import asynccontextmanager

from flowershop.config import settings
from flowershop.utils.log import Log
from flowershop.utils.database import init_db
from flowershop.services.email import EmailService
from flowershop.services.payment import PaymentGateway
from flowershop.middleware.db_middleware import DBSessionMiddleware

import os
import multiprocessing

# --- загрузка переменных окружения ---
load_dotenv()

# --- sync логгер для раннего старта ---
boot_log = Log()
if os.environ.get("RUN_MAIN") == "true" or multiprocessing.current_process().name == "MainProcess":
    boot_log.log_info_sync(target="startup", message="Импорты main.py выполнены")

# ────────────── Lifespan ──────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    boot_log.log_info_sync(target="startup", message="lifespan: startup начат")

    # Инициализация БД
    await init_db()
    boot_log.log_info_sync(target="startup", message="База инициализирована")

    missing = [name for name in ("AUTH_SESSION_SECRET", "CRON_SECRET") if not getattr(settings, name)]
    if missing:
        boot_log.log_warning_sync(target="startup", message="Не заданы секреты", data={"missing": missing})

    app.state.log = Log()
    await app.state.log.log_info(target="startup", message="Async Log инициализирован")

    # Внешние сервисы: в тестах подменяются через app.state
    app.state.email = EmailService(app.state.log)
    app.state.payment = PaymentGateway()
    await app.state.log.log_info(
        target="startup",
        message="Почта и платёжный шлюз подключены",
        data={"email": app.state.email.configured, "payment": app.state.payment.configured},
    )

    yield

    # shutdown
    await app.state.log.log_info(target="shutdown", message="Остановка приложения")
    await app.state.log.shutdown()
    boot_log.log_info_sync(target="shutdown", message="Log корректно завершён")

# ────────────── Создаём FastAPI приложение ──────────────
app = FastAPI(title="Vadiler Flower Shop API", lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# DB middleware для request.state.db
app.add_middleware(DBSessionMiddleware)


# ────────────── Единый формат ошибок ──────────────
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    if isinstance(exc.detail, dict):
        content = {"success": False, **exc.detail}
    else:
        content = {"success": False, "error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Geçersiz istek", "details": jsonable_errors(exc)},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    log = getattr(request.app.state, "log", None) or boot_log
    await log.log_error("server", f"Необработанная ошибка: {exc}", {"path": request.url.path})
    return JSONResponse(status_code=500, content={"success": False, "error": "Sunucu hatası"})


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()]


@app.get("/")
def read_root():
    return {"message": "Vadiler Flower Shop API"}

# ────────────── Подключение роутов ──────────────
from flowershop.routes import (  # noqa: E402
    admin, auth, categories, coupons, cron, customer_auth, customers,
    delivery_off_days, orders, products, reviews,
)

app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(customer_auth.router, prefix="/api", tags=["customer-auth"])
app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
app.include_router(cron.router, prefix="/api/cron", tags=["cron"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
app.include_router(products.router, prefix="/api/products", tags=["products"])
app.include_router(categories.router, prefix="/api/categories", tags=["categories"])
app.include_router(coupons.router, prefix="/api/coupons", tags=["coupons"])
app.include_router(customers.router, prefix="/api/customers", tags=["customers"])
app.include_router(reviews.router, prefix="/api/reviews", tags=["reviews"])
app.include_router(delivery_off_days.router, prefix="/api/delivery-off-days", tags=["delivery-off-days"])

# ────────────── Запуск uvicorn ──────────────
if __name__ == "__main__":
    boot_log.log_info_sync(target="startup", message="Запуск uvicorn.run")
    uvicorn.run(
        "flowershop.main:app",
        host="127.0.0.1",
        port=8000,
        log_level="info",
        reload=True
    )
