# flowershop/services/payment.py

"""
Платёжный шлюз (iyzico checkout form) и cron-сверка зависших оплат.

Покупатель может закрыть вкладку до возврата со страницы оплаты: тогда
заказ остаётся в pending, хотя деньги списаны. Cron раз в несколько минут
спрашивает у шлюза результат по токену формы и доводит такие заказы
до confirmed или payment_failed.
"""

import asyncio
import base64
import datetime
import hashlib
import hmac
import json
import random
import time
from typing import Any

import requests
from fastapi import Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.future import select

from flowershop.config import settings
from flowershop.models.order import Order as OrderModel
from flowershop.services.automation import get_delivery_fields
from flowershop.utils.database import as_utc, utcnow

RETRIEVE_CHECKOUT_FORM_PATH = "/payment/iyzipos/checkoutform/auth/ecom/detail"

TOKEN_EXPIRATION_MINUTES = 25
VERIFY_MIN_AGE = datetime.timedelta(minutes=10)
VERIFY_MAX_AGE = datetime.timedelta(hours=24)
VERIFY_BATCH_LIMIT = 20

DEFAULT_FAILURE = "Ödeme işlemi başarısız oldu. Lütfen tekrar deneyin veya başka bir kart kullanın."
_TURKISH_CHARS = set("ğüşıöçĞÜŞİÖÇ")


class PaymentGateway:
    """Минимальный клиент iyzico: только получение результата checkout form."""

    def __init__(
        self,
        api_key: str | None = None,
        secret_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 15,
    ):
        self.api_key = (api_key if api_key is not None else settings.PAYMENT_API_KEY).strip()
        self.secret_key = (secret_key if secret_key is not None else settings.PAYMENT_SECRET_KEY).strip()
        self.base_url = (base_url or settings.PAYMENT_BASE_URL).rstrip("/")
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.secret_key)

    @staticmethod
    def random_key() -> str:
        return f"{int(time.time() * 1000)}{random.randint(0, 999_999_999)}"

    def authorization_header(self, uri_path: str, body: str, random_key: str) -> str:
        """
        IYZWSv2: base64("apiKey:<key>&randomKey:<rnd>&signature:<hex>"),
        signature = HMAC-SHA256(secret, rnd + uriPath + body).
        """
        signature = hmac.new(
            self.secret_key.encode("utf-8"),
            (random_key + uri_path + body).encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        raw = f"apiKey:{self.api_key}&randomKey:{random_key}&signature:{signature}"
        return "IYZWSv2 " + base64.b64encode(raw.encode("utf-8")).decode("ascii")

    def _post(self, uri_path: str, data: dict) -> dict:
        body = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
        rnd = self.random_key()
        response = requests.post(
            f"{self.base_url}{uri_path}",
            data=body.encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
                "Authorization": self.authorization_header(uri_path, body, rnd),
                "x-iyzi-rnd": rnd,
            },
            timeout=self.timeout,
        )
        return response.json()

    async def retrieve_checkout_form(self, token: str, conversation_id: str = "", locale: str = "tr") -> dict:
        payload = {"locale": locale, "conversationId": conversation_id, "token": token}
        return await run_in_threadpool(self._post, RETRIEVE_CHECKOUT_FORM_PATH, payload)


# ────────────── Помощники ──────────────
def map_gateway_error_to_turkish(error_code: str | None = None, error_message: str | None = None) -> str:
    """Понятное покупателю сообщение по коду / тексту ошибки шлюза."""
    if not error_code and not error_message:
        return "Ödeme işlemi başarısız oldu. Lütfen tekrar deneyin."

    code = (error_code or "").upper()
    message = (error_message or "").lower()

    if "TOKEN" in code or "token" in message:
        if "expired" in message or "süre" in message:
            return "Ödeme süresi doldu. Lütfen sayfayı yenileyip tekrar deneyin."
        if "not found" in message or "bulunamadı" in message:
            return "Ödeme oturumu bulunamadı. Lütfen sepetinize dönüp tekrar deneyin."
        if "already used" in message or "kullanılmış" in message:
            return "Bu ödeme işlemi zaten tamamlandı."

    if any(s in message for s in ("güvenlik", "security", "3ds")):
        return "Banka güvenlik doğrulaması başarısız oldu. Lütfen bankanızla iletişime geçin veya başka bir kart deneyin."
    if "DECLINED" in code or "declined" in message or "reddedildi" in message:
        return "Kartınız reddedildi. Lütfen bankanızla iletişime geçin veya başka bir kart deneyin."
    if "INSUFFICIENT" in code or "insufficient" in message or "yetersiz" in message:
        return "Kart bakiyeniz yetersiz. Lütfen başka bir kart deneyin."
    if "LIMIT" in code or "limit" in message:
        return "Kart limitiniz aşıldı. Lütfen başka bir kart deneyin."
    if "INVALID" in code or "invalid" in message or "geçersiz" in message:
        return "Kart bilgileri geçersiz. Lütfen bilgileri kontrol edip tekrar deneyin."
    if "FRAUD" in code or "fraud" in message or "şüpheli" in message:
        return "İşlem güvenlik nedeniyle reddedildi. Lütfen bankanızla iletişime geçin."
    if "TIMEOUT" in code or "CONNECTION" in code or "timeout" in message or "connection" in message:
        return "Banka bağlantısı zaman aşımına uğradı. Lütfen tekrar deneyin."

    if error_message and _TURKISH_CHARS & set(error_message):
        return error_message
    return DEFAULT_FAILURE


def parse_iso(value: Any) -> datetime.datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return as_utc(datetime.datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None


def is_token_expired(token_created_at: Any, now: datetime.datetime | None = None) -> bool:
    """Без отметки времени токен считается живым (старые заказы)."""
    created = parse_iso(token_created_at)
    if created is None:
        return False
    now = as_utc(now) if now else utcnow()
    return (now - created) > datetime.timedelta(minutes=TOKEN_EXPIRATION_MINUTES)


def _order_items(order) -> list[dict]:
    return [
        {
            "name": str(p.get("name") or ""),
            "quantity": int(p.get("quantity") or 0),
            "price": float(p.get("price") or 0),
            "image_url": p.get("image") or p.get("imageUrl") or "",
        }
        for p in (order.products or [])
        if isinstance(p, dict)
    ]


def _mark_failed(order, payment: dict, now_iso: str, message: str, code: str | None) -> None:
    order.status = "payment_failed"
    order.payment = {**payment, "status": "failed", "errorCode": code, "errorMessage": message}
    order.timeline = list(order.timeline or []) + [{
        "status": "payment_failed",
        "timestamp": now_iso,
        "note": message,
        "automated": True,
    }]


# ────────────── Cron ──────────────
async def verify_pending_payments(request: Request, now: datetime.datetime | None = None) -> dict:
    """
    Сверка заказов в pending / pending_payment, созданных от 10 минут до 24 часов назад.

    Возвращает счётчики processed, recovered, expired, failed, noToken.
    Заказы, которые шлюз всё ещё считает незавершёнными, не трогаются.
    """
    db = request.state.db
    log = request.app.state.log
    gateway = request.app.state.payment
    email = request.app.state.email

    now = as_utc(now) if now else utcnow()
    now_iso = now.isoformat()
    stats = {"processed": 0, "recovered": 0, "expired": 0, "failed": 0, "noToken": 0}

    result = await db.execute(
        select(OrderModel)
        .where(OrderModel.status.in_(("pending", "pending_payment")))
        .where(OrderModel.created_at <= now - VERIFY_MIN_AGE)
        .where(OrderModel.created_at >= now - VERIFY_MAX_AGE)
        .order_by(OrderModel.created_at.asc())
        .limit(VERIFY_BATCH_LIMIT)
    )
    orders = result.scalars().all()
    await log.log_info("payment", f"Сверка оплат: {len(orders)} заказов")

    for index, order in enumerate(orders):
        if index and settings.AUTOMATION_BATCH_DELAY > 0:
            await asyncio.sleep(settings.AUTOMATION_BATCH_DELAY)

        stats["processed"] += 1
        payment = dict(order.payment or {})
        token = str(payment.get("token") or "")

        if not token:
            stats["noToken"] += 1
            continue

        if is_token_expired(payment.get("tokenCreatedAt"), now):
            _mark_failed(order, payment, now_iso, "Ödeme süresi doldu", "TOKEN_EXPIRED")
            order.updated_at = now
            await db.commit()
            stats["expired"] += 1
            await log.log_info("payment", "Токен оплаты истёк", {"order_number": order.order_number})
            continue

        try:
            answer = await gateway.retrieve_checkout_form(token, conversation_id=order.id)
        except Exception as e:
            await log.log_error("payment", f"Ошибка запроса к шлюзу: {e}", {"order_number": order.order_number})
            continue

        status = str(answer.get("status") or "").lower()
        payment_status = str(answer.get("paymentStatus") or "").upper()

        if status == "success" and payment_status == "SUCCESS":
            order.status = "confirmed"
            order.payment = {
                **payment,
                "method": "credit_card",
                "status": "paid",
                "transactionId": answer.get("paymentId"),
                "cardLast4": answer.get("lastFourDigits"),
                "cardType": answer.get("cardType"),
                "cardAssociation": answer.get("cardAssociation"),
                "installment": answer.get("installment"),
                "paidPrice": answer.get("paidPrice"),
                "paidAt": now_iso,
            }
            order.timeline = list(order.timeline or []) + [{
                "status": "confirmed",
                "timestamp": now_iso,
                "note": "Ödeme onaylandı (otomatik doğrulama)",
                "automated": True,
            }]
            order.updated_at = now
            await db.commit()
            stats["recovered"] += 1
            await log.log_info("payment", "Зависшая оплата подтверждена", {"order_number": order.order_number})

            if order.customer_email:
                fields = get_delivery_fields(order)
                await email.send_order_confirmation(
                    customer_email=order.customer_email,
                    customer_name=order.customer_name or "",
                    order_number=str(order.order_number),
                    items=_order_items(order),
                    total=float(order.total or 0),
                    delivery_date=fields["delivery_date"],
                    delivery_time=fields["delivery_time"],
                )

        elif status == "failure" or payment_status == "FAILURE":
            message = map_gateway_error_to_turkish(answer.get("errorCode"), answer.get("errorMessage"))
            _mark_failed(order, payment, now_iso, message, answer.get("errorCode"))
            order.updated_at = now
            await db.commit()
            stats["failed"] += 1
            await log.log_info("payment", "Оплата отклонена шлюзом", {"order_number": order.order_number, "error": message})

    await log.log_info("payment", "Сверка оплат завершена", stats)
    return stats
