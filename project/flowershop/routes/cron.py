# flowershop/routes/cron.py

from fastapi import APIRouter, Header, HTTPException, Request

from flowershop.config import settings
from flowershop.services.payment import verify_pending_payments
from flowershop.utils.security import check_bearer

router = APIRouter()


@router.get(
    "/verify-payments",
    summary="Сверка зависших оплат со шлюзом",
    responses={
        401: {"description": "Неверный секрет"},
        500: {"description": "CRON_SECRET не задан"},
    },
)
async def verify_payments(request: Request, authorization: str | None = Header(default=None)):
    log = request.app.state.log

    if not settings.CRON_SECRET:
        await log.log_error("payment", "CRON_SECRET не задан")
        raise HTTPException(status_code=500, detail="Server configuration error")
    if not check_bearer(authorization, settings.CRON_SECRET):
        await log.log_warning("payment", "Неавторизованный вызов cron")
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        stats = await verify_pending_payments(request)
        return {"success": True, "message": "Payment verification completed", **stats}
    except Exception as e:
        await log.log_error("payment", f"Ошибка сверки оплат: {e}")
        raise
