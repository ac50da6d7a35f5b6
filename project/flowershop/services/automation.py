# flowershop/services/automation.py

"""
Автоматическое продвижение статусов заказов в день доставки.

Заказ, оплаченный и подтверждённый, ждёт в статусе confirmed до дня доставки.
В день доставки статусы меняются по расписанию группы (время по Стамбулу):

    noon    (заказ 11:00–17:00): 11:00 processing, 12:00 shipped, 18:00 delivered
    evening (заказ 17:00–22:00): 18:00 processing, 19:00 shipped, 22:30 delivered
    overnight (остальное время): идёт по расписанию noon
"""

import asyncio
import datetime
import re
from dataclasses import dataclass
from typing import Any, Literal, Optional

import pytz
from fastapi import Request
from sqlalchemy.future import select

from flowershop.config import settings
from flowershop.models.order import Order as OrderModel
from flowershop.utils.database import as_utc, utcnow

ISTANBUL = pytz.timezone("Europe/Istanbul")

OrderTimeGroup = Literal["noon", "evening", "overnight"]
TIME_GROUPS = ("noon", "evening", "overnight")

ACTIVE_STATUSES = ("confirmed", "processing", "shipped")
STATUS_ORDER = ["confirmed", "processing", "shipped", "delivered"]

STATUS_LABELS = {
    "processing": "Sipariş Hazırlanıyor",
    "shipped": "Kargoya Verildi",
    "delivered": "Teslim Edildi",
}

# (час, минута) по Стамбулу
GROUP_TIMES = {
    "noon": {"processing": (11, 0), "shipped": (12, 0), "delivered": (18, 0)},
    "evening": {"processing": (18, 0), "shipped": (19, 0), "delivered": (22, 30)},
}

STATUS_TAILS = {
    "confirmed": ["processing", "shipped", "delivered"],
    "processing": ["shipped", "delivered"],
    "shipped": ["delivered"],
}

TR_MONTHS = [
    "Ocak", "Şubat", "Mart", "Nisan", "Mayıs", "Haziran",
    "Temmuz", "Ağustos", "Eylül", "Ekim", "Kasım", "Aralık",
]

SAFETY_NET_DAYS = 60

_DATE_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")


@dataclass
class ScheduleItem:
    target_status: str
    target_time: datetime.datetime   # aware, UTC
    automated: bool = True


# ────────────── Разбор JSON-полей заказа ──────────────
def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def is_payment_paid(payment: Any) -> bool:
    return _as_str(_as_dict(payment).get("status")).lower() == "paid"


def get_delivery_fields(order) -> dict:
    """Поля доставки для писем покупателю."""
    delivery = _as_dict(order.delivery)
    return {
        "delivery_date": _as_str(delivery.get("deliveryDate")),
        "delivery_time": _as_str(delivery.get("deliveryTimeSlot")),
        "delivery_address": _as_str(delivery.get("fullAddress")),
        "district": _as_str(delivery.get("district")),
        "recipient_name": _as_str(delivery.get("recipientName")),
        "recipient_phone": _as_str(delivery.get("recipientPhone")),
    }


def has_status_email_notification(timeline: Any, status: str) -> bool:
    if not isinstance(timeline, list):
        return False
    target = status.lower()
    for entry in timeline:
        if not isinstance(entry, dict):
            continue
        if (
            _as_str(entry.get("type")).lower() == "notification"
            and _as_str(entry.get("channel")).lower() == "email"
            and _as_str(entry.get("event")).lower() == "order_status"
            and _as_str(entry.get("status")).lower() == target
            and entry.get("success") is True
        ):
            return True
    return False


def notification_entry(status: str, timestamp: str, automated: bool = True) -> dict:
    return {
        "type": "notification",
        "channel": "email",
        "event": "order_status",
        "status": status,
        "timestamp": timestamp,
        "success": True,
        "automated": automated,
    }


# ────────────── Дата и группа ──────────────
def istanbul_date_key(moment: datetime.datetime) -> str:
    return as_utc(moment).astimezone(ISTANBUL).strftime("%Y-%m-%d")


def normalize_delivery_date(value: Any) -> Optional[str]:
    """YYYY-MM-DD из строки даты доставки; ISO-время переводится в дату по Стамбулу."""
    raw = _as_str(value).strip()
    if not raw:
        return None

    match = _DATE_KEY_RE.match(raw)
    if match:
        return match.group(0)

    try:
        parsed = datetime.datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    return istanbul_date_key(parsed)


def parse_delivery_date_key(order) -> Optional[str]:
    return normalize_delivery_date(_as_dict(order.delivery).get("deliveryDate"))


def get_order_time_group(created_at: datetime.datetime) -> OrderTimeGroup:
    hour = as_utc(created_at).astimezone(ISTANBUL).hour
    if 11 <= hour < 17:
        return "noon"
    if 17 <= hour < 22:
        return "evening"
    return "overnight"


def get_order_time_group_for_new_order() -> OrderTimeGroup:
    return get_order_time_group(utcnow())


def resolve_time_group(order) -> Optional[OrderTimeGroup]:
    """Сохранённая группа, если она валидна, иначе вычисленная по created_at."""
    stored = (order.order_time_group or "").lower()
    if stored in TIME_GROUPS:
        return stored
    if order.created_at is None:
        return None
    return get_order_time_group(order.created_at)


def _target_time(date_key: str, hour: int, minute: int) -> datetime.datetime:
    day = datetime.datetime.strptime(date_key, "%Y-%m-%d")
    local = ISTANBUL.localize(day.replace(hour=hour, minute=minute))
    return local.astimezone(datetime.timezone.utc)


# ────────────── Расписание ──────────────
def calculate_automation_schedule(order) -> list[ScheduleItem]:
    """
    Оставшиеся шаги автоматизации для заказа.

    Пустой список, если дата доставки не разбирается, группу определить нельзя
    или статус не участвует в автоматизации.
    """
    date_key = parse_delivery_date_key(order)
    if not date_key:
        return []

    group = resolve_time_group(order)
    if group is None:
        return []
    effective = "noon" if group == "overnight" else group

    try:
        return [
            ScheduleItem(status, _target_time(date_key, *GROUP_TIMES[effective][status]))
            for status in STATUS_TAILS.get(order.status, [])
        ]
    except ValueError:
        # 2025-13-45 и подобные
        return []


def get_estimated_delivery_time(order) -> str:
    date_key = parse_delivery_date_key(order)
    group = resolve_time_group(order) if date_key else None
    if not date_key or group is None:
        return "Teslimat tarihi belirtilmedi"

    effective = "noon" if group == "overnight" else group
    try:
        estimated = _target_time(date_key, *GROUP_TIMES[effective]["delivered"]).astimezone(ISTANBUL)
    except ValueError:
        return "Teslimat tarihi belirtilmedi"
    return f"{estimated.day} {TR_MONTHS[estimated.month - 1]} {estimated.year} {estimated:%H:%M}"


# ────────────── Исполнитель ──────────────
async def _send_status_email(request: Request, order, status: str, timestamp: str) -> None:
    """Письмо о смене статуса; при успехе в timeline дописывается запись-уведомление."""
    log = request.app.state.log
    email = request.app.state.email

    customer_email = (order.customer_email or "").strip()
    if not customer_email or has_status_email_notification(order.timeline, status):
        return

    try:
        sent = await email.send_order_status_update(
            customer_email=customer_email,
            customer_name=(order.customer_name or "").strip() or "Değerli Müşterimiz",
            order_number=str(order.order_number),
            status=status,
            **get_delivery_fields(order),
        )
    except Exception as e:
        await log.log_error("automation", f"Ошибка письма о статусе: {e}", {"order_number": order.order_number, "status": status})
        return

    if sent:
        order.timeline = list(order.timeline or []) + [notification_entry(status, timestamp)]
        await request.state.db.commit()


async def confirm_paid_pending_orders(request: Request, now: datetime.datetime) -> int:
    """
    Страховка: оплаченные заказы, застрявшие в pending / pending_payment,
    переводятся в confirmed, чтобы дальше идти по расписанию.
    """
    db = request.state.db
    log = request.app.state.log
    now_iso = now.isoformat()

    result = await db.execute(
        select(OrderModel)
        .where(OrderModel.status.in_(("pending", "pending_payment")))
        .where(OrderModel.created_at >= now - datetime.timedelta(days=SAFETY_NET_DAYS))
        .order_by(OrderModel.created_at.desc())
    )
    confirmed = 0
    for order in result.scalars().all():
        if not is_payment_paid(order.payment):
            continue

        timeline = list(order.timeline or [])
        if not any(isinstance(t, dict) and _as_str(t.get("status")).lower() == "confirmed" for t in timeline):
            timeline.append({
                "status": "confirmed",
                "timestamp": now_iso,
                "note": "Ödeme onaylandı (otomatik)",
                "automated": True,
            })

        order.order_time_group = resolve_time_group(order) or "noon"
        order.status = "confirmed"
        order.timeline = timeline
        order.updated_at = now

        delivery = _as_dict(order.delivery)
        raw_date = _as_str(delivery.get("deliveryDate"))
        normalized = normalize_delivery_date(raw_date)
        if normalized and raw_date != normalized:
            order.delivery = {**delivery, "deliveryDate": normalized}

        await db.commit()
        confirmed += 1
        await log.log_info("automation", "Оплаченный заказ переведён в confirmed", {"order_number": order.order_number})

        await _send_status_email(request, order, "confirmed", now_iso)

    return confirmed


async def process_automated_updates(request: Request, now: datetime.datetime | None = None) -> dict:
    """
    Один прогон автоматизации.
    Возвращает {"updated": n, "orders": [{orderNumber, oldStatus, newStatus}]}.
    """
    db = request.state.db
    log = request.app.state.log

    now = as_utc(now) if now else utcnow()
    now_iso = now.isoformat()
    today_key = istanbul_date_key(now)

    await confirm_paid_pending_orders(request, now)

    result = await db.execute(
        select(OrderModel)
        .where(OrderModel.status.in_(ACTIVE_STATUSES))
        .order_by(OrderModel.created_at.desc())
    )
    candidates = [
        order for order in result.scalars().all()
        if is_payment_paid(order.payment) and parse_delivery_date_key(order) == today_key
    ]

    updated_orders = []
    for index, order in enumerate(candidates):
        if index and settings.AUTOMATION_BATCH_DELAY > 0:
            await asyncio.sleep(settings.AUTOMATION_BATCH_DELAY)

        for item in calculate_automation_schedule(order):
            if now < item.target_time:
                continue
            # только вперёд
            if STATUS_ORDER.index(item.target_status) <= STATUS_ORDER.index(order.status):
                break

            old_status = order.status
            new_status = item.target_status

            order.status = new_status
            order.timeline = list(order.timeline or []) + [{
                "status": new_status,
                "timestamp": now_iso,
                "note": STATUS_LABELS.get(new_status, ""),
                "automated": True,
            }]
            order.order_time_group = resolve_time_group(order)
            order.updated_at = now
            if new_status == "delivered":
                order.delivered_at = now

            await db.commit()
            updated_orders.append({
                "orderNumber": order.order_number,
                "oldStatus": old_status,
                "newStatus": new_status,
            })
            await log.log_info("automation", "Статус заказа обновлён", updated_orders[-1])

            await _send_status_email(request, order, new_status, now_iso)
            break

    await log.log_info("automation", f"Прогон завершён, обновлено заказов: {len(updated_orders)}")
    return {"updated": len(updated_orders), "orders": updated_orders}
