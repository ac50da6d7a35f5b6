# flowershop/services/order.py

import datetime
import re
from typing import Any

from fastapi import HTTPException, Request
from sqlalchemy import func, update
from sqlalchemy.future import select

from flowershop.models.catalog import Product as ProductModel
from flowershop.models.customer import Customer as CustomerModel
from flowershop.models.order import DeletedOrder, Order as OrderModel, OrderNumberCounter, new_id
from flowershop.schemas.order import OrderCreate, OrderIdRequest, OrderUpdate, RefundRequest, TrackRequest
from flowershop.services.automation import (
    get_delivery_fields,
    get_estimated_delivery_time,
    get_order_time_group_for_new_order,
    has_status_email_notification,
    notification_entry,
)
from flowershop.services.delivery_off_day import is_delivery_off_day
from flowershop.utils.database import ORDER_NUMBER_START, as_utc, utcnow
from flowershop.utils.db_service import get_or_404, row_to_dict
from flowershop.utils.otp import normalize_email
from flowershop.utils.transform import normalize_phone

DELIVERY_OFF_DAY_ERROR = "Yoğunluk sebebiyle bu tarihte teslimat yapılamamaktadır. Lütfen başka bir tarih seçin."
SUNDAY_DELIVERY_ERROR = "Pazar günleri teslimat yapılamamaktadır. Lütfen başka bir tarih seçin."

NOTIFY_STATUSES = {"confirmed", "processing", "shipped", "delivered", "cancelled"}

# статус в БД → статус на странице отслеживания
TRACK_STATUS_MAP = {
    "pending_payment": "pending",
    "processing": "preparing",
    "preparing": "preparing",
    "on_the_way": "on_the_way",
    "shipped": "shipped",
    "delivered": "delivered",
    "cancelled": "cancelled",
    "canceled": "cancelled",
    "confirmed": "confirmed",
}

_DATE_PREFIX_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})")


# ────────────── Номер заказа ──────────────
def is_valid_order_number(order_number: Any) -> bool:
    try:
        value = int(order_number)
    except (TypeError, ValueError):
        return False
    return 100000 <= value <= 999999


def format_order_number(order_number: int) -> str:
    return str(order_number).zfill(6)


def parse_order_number(value: str) -> int | None:
    digits = re.sub(r"\D", "", str(value or ""))
    return int(digits) if digits else None


async def get_next_order_number(db) -> int:
    """
    Следующий номер из счётчика. Вызывается внутри транзакции вставки заказа,
    поэтому номер не «сгорает», если вставка откатилась.
    """
    result = await db.execute(
        update(OrderNumberCounter)
        .where(OrderNumberCounter.id == 1)
        .values(next_value=OrderNumberCounter.next_value + 1)
        .returning(OrderNumberCounter.next_value)
    )
    next_value = result.scalar_one_or_none()
    if next_value is None:
        db.add(OrderNumberCounter(id=1, next_value=ORDER_NUMBER_START + 1))
        return ORDER_NUMBER_START
    return next_value - 1


async def get_counter_info_service(request: Request) -> dict:
    db = request.state.db

    counter = await db.get(OrderNumberCounter, 1)
    total = await db.scalar(select(func.count()).select_from(OrderModel))
    return {
        "nextOrderNumber": counter.next_value if counter else ORDER_NUMBER_START,
        "lastGeneratedAt": utcnow().isoformat(),
        "totalOrders": total or 0,
    }


async def reset_counter_service(start_number: int, request: Request) -> dict:
    db = request.state.db
    log = request.app.state.log

    if not is_valid_order_number(start_number):
        raise HTTPException(status_code=400, detail="Başlangıç numarası 100000 ile 999999 arasında olmalıdır.")

    counter = await db.get(OrderNumberCounter, 1)
    if counter is None:
        db.add(OrderNumberCounter(id=1, next_value=start_number))
    else:
        counter.next_value = start_number
    await db.commit()

    await log.log_warning("order", "Счётчик номеров заказов сброшен", {"start_number": start_number})
    return await get_counter_info_service(request)


# ────────────── Помощники ──────────────
def clamp_money(value: Any, min_value: float = 0, max_value: float = float("inf")) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = 0.0
    if number != number:  # NaN
        number = 0.0
    return min(max_value, max(min_value, number))


def parse_delivery_date(value: Any) -> datetime.date:
    """Дата доставки из YYYY-MM-DD или ISO-времени (в UTC). ValueError, если не разбирается."""
    raw = str(value or "").strip()
    match = _DATE_PREFIX_RE.match(raw)
    if match:
        return datetime.date.fromisoformat(match.group(1))
    parsed = datetime.datetime.fromisoformat(raw.replace("Z", "+00:00"))
    return as_utc(parsed).date()


async def build_trusted_products(db, lines: list[dict]) -> tuple[list[dict], float]:
    """Позиции заказа пересобираются по каталогу: цены клиента не используются."""
    normalized = []
    for raw in lines:
        try:
            product_id = int(raw.get("id") if raw.get("id") is not None else raw.get("productId"))
        except (TypeError, ValueError):
            product_id = 0
        try:
            quantity = int(raw.get("quantity") or 0)
        except (TypeError, ValueError):
            quantity = 0

        if product_id <= 0:
            raise HTTPException(status_code=400, detail="Siparişte geçersiz ürün bulunuyor.")
        if quantity <= 0:
            raise HTTPException(status_code=400, detail="Siparişte geçersiz ürün adedi bulunuyor.")
        normalized.append((product_id, quantity))

    ids = {product_id for product_id, _ in normalized}
    result = await db.execute(select(ProductModel).where(ProductModel.id.in_(ids)))
    catalog = {p.id: p for p in result.scalars().all()}

    products = []
    for product_id, quantity in normalized:
        product = catalog.get(product_id)
        if product is None:
            raise HTTPException(status_code=400, detail=f"Ürün katalogda bulunamadı: {product_id}")
        products.append({
            "id": product.id,
            "name": product.name,
            "slug": product.slug,
            "image": product.image or "",
            "price": float(product.price or 0),
            "quantity": quantity,
            "category": product.category,
            "categoryName": product.category_name,
        })

    subtotal = sum(p["price"] * p["quantity"] for p in products)
    return products, subtotal


def email_items(products: list) -> list[dict]:
    return [
        {"name": p.get("name", ""), "quantity": p.get("quantity", 0), "price": p.get("price", 0)}
        for p in products or []
        if isinstance(p, dict)
    ]


async def notify_status_change(request: Request, order, status: str, automated: bool = False) -> None:
    """Письмо о новом статусе, один раз на статус (отметка в timeline)."""
    email = request.app.state.email

    customer_email = (order.customer_email or "").strip()
    if not customer_email or has_status_email_notification(order.timeline, status):
        return

    sent = await email.send_order_status_update(
        customer_email=customer_email,
        customer_name=(order.customer_name or "").strip() or "Değerli Müşterimiz",
        order_number=format_order_number(order.order_number),
        status=status,
        **get_delivery_fields(order),
    )
    if sent:
        order.timeline = list(order.timeline or []) + [
            notification_entry(status, utcnow().isoformat(), automated=automated)
        ]
        await request.state.db.commit()


# ────────────── CRUD ──────────────
async def read_orders_service(
    request: Request,
    customer_id: str | None = None,
    status: str | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> tuple[list[OrderModel], int]:
    """
    Список заказов, новые сверху. Возвращает (заказы, общее число по фильтру).
    """
    db = request.state.db
    log = request.app.state.log

    query = select(OrderModel)
    count_query = select(func.count()).select_from(OrderModel)
    if customer_id:
        query = query.where(OrderModel.customer_id == customer_id)
        count_query = count_query.where(OrderModel.customer_id == customer_id)
    if status:
        query = query.where(OrderModel.status == status)
        count_query = count_query.where(OrderModel.status == status)

    query = query.order_by(OrderModel.created_at.desc())
    if limit:
        query = query.offset(offset).limit(limit)

    result = await db.execute(query)
    orders = result.scalars().all()
    total = await db.scalar(count_query)

    await log.log_info("order", f"{len(orders)} заказов загружено", {"customer_id": customer_id, "status": status})
    return orders, total or 0


async def read_order_service(id: str, request: Request) -> OrderModel:
    order = await get_or_404(request, OrderModel, id, "order", "Sipariş bulunamadı.")
    await request.app.state.log.log_info("order", "Заказ загружен", {"id": id})
    return order


async def create_order_service(order: OrderCreate, request: Request) -> OrderModel:
    """
    Создание заказа на оформлении.

    - товары и суммы пересчитываются по каталогу
    - доставка в воскресенье и в выходные дни магазина запрещена
    - у участника программы обновляется статистика заказов
    """
    db = request.state.db
    log = request.app.state.log
    email = request.app.state.email

    if not order.products or not order.delivery:
        await log.log_warning("order", "Заказ без товаров или доставки")
        raise HTTPException(status_code=400, detail="Ürün ve teslimat bilgileri zorunludur.")

    delivery = dict(order.delivery)

    # дата доставки
    raw_date = delivery.get("deliveryDate")
    if raw_date:
        try:
            delivery_date = parse_delivery_date(raw_date)
        except ValueError:
            raise HTTPException(status_code=400, detail="Geçersiz teslimat tarihi")
        if delivery_date.weekday() == 6:
            await log.log_warning("order", "Попытка доставки в воскресенье", {"date": raw_date})
            raise HTTPException(status_code=400, detail=SUNDAY_DELIVERY_ERROR)

        if await is_delivery_off_day(db, delivery_date.isoformat()):
            await log.log_warning("order", "Дата доставки попала в выходной", {"date": raw_date})
            raise HTTPException(status_code=400, detail=DELIVERY_OFF_DAY_ERROR)

    products, subtotal = await build_trusted_products(db, order.products)
    delivery_fee = clamp_money(order.delivery_fee, 0, 1_000_000)
    discount = clamp_money(order.discount, 0, subtotal + delivery_fee)
    total = subtotal + delivery_fee - discount

    # данные покупателя: из запроса, затем из профиля, затем из доставки
    customer_id = order.customer_id or None
    customer_name = order.customer_name or ""
    customer_email = order.customer_email or ""
    customer_phone = order.customer_phone or ""

    customer = None
    if customer_id:
        customer = await db.get(CustomerModel, customer_id)
        if customer is not None:
            customer_name = customer_name or customer.name or ""
            customer_email = customer_email or customer.email or ""
            customer_phone = customer_phone or customer.phone or ""

    customer_name = customer_name or delivery.get("recipientName") or ""
    customer_phone = customer_phone or delivery.get("recipientPhone") or ""
    if customer_phone:
        customer_phone = normalize_phone(customer_phone)

    is_guest = order.is_guest if order.is_guest is not None else not customer_id

    now = utcnow()
    initial_status = order.status or "pending"
    timeline = order.timeline or [{
        "status": initial_status,
        "timestamp": now.isoformat(),
        "note": "Ödeme bekleniyor" if initial_status == "pending_payment" else "Sipariş alındı",
    }]

    db_order = OrderModel(
        id=new_id(),
        order_number=await get_next_order_number(db),
        customer_id=customer_id,
        customer_name=customer_name,
        customer_email=customer_email,
        customer_phone=customer_phone,
        is_guest=is_guest,
        products=products,
        delivery=delivery,
        payment=dict(order.payment or {}),
        message=order.message,
        subtotal=subtotal,
        discount=discount,
        delivery_fee=delivery_fee,
        total=total,
        status=initial_status,
        order_time_group=order.order_time_group or get_order_time_group_for_new_order(),
        timeline=list(timeline),
        notes=order.notes or "",
        tracking_url=order.tracking_url or "",
        created_at=now,
        updated_at=now,
    )
    db.add(db_order)

    # статистика участника
    if customer is not None and not is_guest:
        customer.orders = list(customer.orders or []) + [db_order.id]
        customer.order_count = (customer.order_count or 0) + 1
        customer.total_spent = (customer.total_spent or 0) + total
        customer.last_order_date = now

    await db.commit()
    await db.refresh(db_order)

    await log.log_info("order", "Заказ создан", {"id": db_order.id, "order_number": db_order.order_number, "total": total})

    if (db_order.payment or {}).get("method") == "bank_transfer" and customer_email:
        fields = get_delivery_fields(db_order)
        sent = await email.send_bank_transfer_confirmation(
            customer_email=customer_email,
            customer_name=customer_name,
            order_number=format_order_number(db_order.order_number),
            items=email_items(products),
            total=total,
            delivery_date=fields["delivery_date"],
            delivery_time=fields["delivery_time"],
        )
        if not sent:
            await log.log_warning("order", "Письмо с реквизитами не отправлено", {"order_number": db_order.order_number})

    return db_order


ORDER_UPDATE_FIELDS = (
    "customer_id", "customer_name", "customer_email", "customer_phone", "is_guest",
    "status", "products", "delivery", "payment", "message", "subtotal", "discount",
    "delivery_fee", "total", "notes", "tracking_url", "order_time_group", "timeline",
)


async def update_order_service(id: str, order_update: OrderUpdate, request: Request) -> OrderModel:
    """
    Частичное обновление заказа из админки. Вложенный JSON (delivery, payment,
    products) сохраняется как есть, без переименования ключей.
    """
    db = request.state.db
    log = request.app.state.log

    db_order = await get_or_404(request, OrderModel, id, "order", "Sipariş bulunamadı.")

    old_status = (db_order.status or "").lower()
    changes = order_update.model_dump(exclude_unset=True)

    for key in ORDER_UPDATE_FIELDS:
        if key in changes:
            setattr(db_order, key, changes[key])

    now = utcnow()
    new_status = (changes.get("status") or "").lower()
    status_changed = bool(new_status) and new_status != old_status
    # переданный целиком timeline не дополняем
    if status_changed and "timeline" not in changes:
        db_order.timeline = list(db_order.timeline or []) + [{
            "status": new_status,
            "timestamp": now.isoformat(),
            "note": "Durum güncellendi",
            "automated": False,
        }]
    if new_status == "delivered" and db_order.delivered_at is None:
        db_order.delivered_at = now
    db_order.updated_at = now

    await db.commit()
    await db.refresh(db_order)
    await log.log_info("order", "Заказ обновлён", {"id": id, "fields": sorted(changes)})

    if status_changed and old_status and new_status in NOTIFY_STATUSES:
        await notify_status_change(request, db_order, new_status)

    return db_order


async def delete_order_service(id: str, request: Request) -> dict:
    """
    Удаление заказа с резервной копией в deleted_orders.
    """
    db = request.state.db
    log = request.app.state.log

    db_order = await get_or_404(request, OrderModel, id, "order", "Sipariş bulunamadı.")

    db.add(DeletedOrder(
        original_id=db_order.id,
        order_number=db_order.order_number,
        order_data=row_to_dict(db_order),
        deleted_at=utcnow(),
    ))
    await db.delete(db_order)
    await db.commit()

    await log.log_info("order", "Заказ удалён (копия сохранена)", {"id": id})
    return {"success": True, "backedUp": True}


async def read_deleted_orders_service(request: Request) -> list[DeletedOrder]:
    db = request.state.db

    result = await db.execute(
        select(DeletedOrder)
        .where(DeletedOrder.is_restored.is_(False))
        .order_by(DeletedOrder.deleted_at.desc())
    )
    return result.scalars().all()


async def restore_order_service(deleted_order_id: int | None, request: Request) -> OrderModel:
    db = request.state.db
    log = request.app.state.log

    if not deleted_order_id:
        raise HTTPException(status_code=400, detail="Silinen sipariş ID gerekli.")

    backup = await get_or_404(request, DeletedOrder, deleted_order_id, "order", "Silinen sipariş bulunamadı.")
    if backup.is_restored:
        raise HTTPException(status_code=400, detail="Bu sipariş zaten geri yüklendi.")
    if not backup.order_data:
        raise HTTPException(status_code=400, detail="Sipariş verisi eksik.")

    columns = set(OrderModel.__table__.columns.keys())
    data = {k: v for k, v in backup.order_data.items() if k in columns}
    for key in ("created_at", "updated_at", "delivered_at"):
        if isinstance(data.get(key), str):
            data[key] = datetime.datetime.fromisoformat(data[key])
    data["updated_at"] = utcnow()

    db_order = OrderModel(**data)
    db.add(db_order)
    backup.is_restored = True
    backup.restored_at = utcnow()
    await db.commit()
    await db.refresh(db_order)

    await log.log_info("order", "Заказ восстановлен", {"id": db_order.id, "order_number": db_order.order_number})
    return db_order


async def refund_order_service(data: RefundRequest, request: Request) -> OrderModel:
    db = request.state.db
    log = request.app.state.log
    email = request.app.state.email

    if not data.order_id:
        raise HTTPException(status_code=400, detail="Sipariş ID gerekli.")

    db_order = await get_or_404(request, OrderModel, data.order_id, "order", "Sipariş bulunamadı.")

    now_iso = utcnow().isoformat()
    amount = data.amount if data.amount is not None else float(db_order.total or 0)
    reason = data.reason or "Müşteri talebi"

    db_order.status = "refunded"
    db_order.refund = {
        "status": "completed",
        "amount": amount,
        "reason": reason,
        "notes": data.notes or "",
        "processedAt": now_iso,
        "processedBy": "admin",
    }
    db_order.timeline = list(db_order.timeline or []) + [{
        "status": "refunded",
        "timestamp": now_iso,
        "note": f"İade işlemi tamamlandı. Tutar: ₺{amount:,.2f}. Sebep: {reason}",
        "automated": False,
    }]
    db_order.updated_at = utcnow()
    await db.commit()
    await db.refresh(db_order)

    await log.log_info("order", "Возврат оформлен", {"id": db_order.id, "amount": amount})

    if db_order.customer_email:
        await email.send_order_status_update(
            customer_email=db_order.customer_email,
            customer_name=db_order.customer_name or "Değerli Müşterimiz",
            order_number=format_order_number(db_order.order_number),
            status="refunded",
            refund_amount=amount,
            refund_reason=reason,
            **get_delivery_fields(db_order),
        )

    return db_order


async def confirm_bank_payment_service(data: OrderIdRequest, request: Request) -> dict:
    """Ручное подтверждение поступившего перевода: заказ → confirmed, оплата → paid."""
    db = request.state.db
    log = request.app.state.log
    email = request.app.state.email

    if not data.order_id:
        raise HTTPException(status_code=400, detail="Sipariş ID gerekli.")

    db_order = await get_or_404(request, OrderModel, data.order_id, "order", "Sipariş bulunamadı.")
    payment = dict(db_order.payment or {})
    if payment.get("status") == "paid":
        raise HTTPException(status_code=400, detail="Ödeme zaten onaylanmış.")

    now = utcnow()
    db_order.status = "confirmed"
    db_order.payment = {**payment, "status": "paid", "paidAt": now.isoformat()}
    db_order.timeline = list(db_order.timeline or []) + [{
        "status": "confirmed",
        "timestamp": now.isoformat(),
        "note": "Havale ödemesi admin tarafından onaylandı",
    }]
    db_order.updated_at = now
    await db.commit()

    await log.log_info("order", "Перевод подтверждён", {"id": db_order.id, "order_number": db_order.order_number})

    if db_order.customer_email:
        fields = get_delivery_fields(db_order)
        await email.send_order_confirmation(
            customer_email=db_order.customer_email,
            customer_name=db_order.customer_name or "",
            order_number=format_order_number(db_order.order_number),
            items=email_items(db_order.products),
            total=float(db_order.total or 0),
            delivery_date=fields["delivery_date"],
            delivery_time=fields["delivery_time"],
        )

    return {"success": True}


# ────────────── Отслеживание ──────────────
def track_phone(phone: str) -> str:
    digits = re.sub(r"\D", "", phone or "")
    return digits[-10:]


def mask_phone(phone: str) -> str:
    digits = re.sub(r"\D", "", phone or "")
    if len(digits) < 10:
        return phone or ""
    last10 = digits[-10:]
    return f"{last10[:3]} {last10[3:6]} ** **"


async def track_order_service(data: TrackRequest, request: Request) -> dict:
    """
    Публичное отслеживание: номер заказа + e-mail или телефон.
    Возвращает урезанное представление без персональных данных.
    """
    db = request.state.db
    log = request.app.state.log

    # "#100 042", " 100042" и т.п.
    order_number = parse_order_number(data.order_number)
    if order_number is None:
        raise HTTPException(status_code=400, detail="Sipariş numarası gereklidir.")
    if not is_valid_order_number(order_number):
        raise HTTPException(status_code=400, detail="Geçersiz sipariş numarası formatı.")
    if data.verification_type not in ("email", "phone"):
        raise HTTPException(status_code=400, detail="Doğrulama tipi geçersiz.")
    value = (data.verification_value or "").strip()
    if not value:
        raise HTTPException(status_code=400, detail="Doğrulama bilgisi gereklidir.")

    result = await db.execute(select(OrderModel).where(OrderModel.order_number == order_number))
    order = result.scalar_one_or_none()
    if order is None:
        raise HTTPException(status_code=404, detail="Sipariş bulunamadı.")

    delivery = order.delivery if isinstance(order.delivery, dict) else {}
    if data.verification_type == "email":
        order_email = normalize_email(order.customer_email)
        verified = bool(order_email) and order_email == normalize_email(value)
    else:
        given = track_phone(value)
        candidates = {track_phone(order.customer_phone or ""), track_phone(str(delivery.get("recipientPhone") or ""))}
        verified = bool(given) and given in (candidates - {""})

    if not verified:
        await log.log_warning("order", "Неудачная проверка при отслеживании", {"order_number": order_number})
        raise HTTPException(status_code=403, detail="Doğrulama bilgileri sipariş ile eşleşmiyor.")

    message = order.message if isinstance(order.message, dict) else {}
    payment = order.payment if isinstance(order.payment, dict) else {}
    created_at = as_utc(order.created_at).isoformat() if order.created_at else ""

    return {
        "id": order.id,
        "orderNumber": order.order_number,
        "status": TRACK_STATUS_MAP.get((order.status or "").lower(), "pending"),
        "createdAt": created_at,
        "deliveryDate": delivery.get("deliveryDate") or created_at,
        "deliveryTimeSlot": delivery.get("deliveryTimeSlot") or "11:00-17:00",
        "recipientName": delivery.get("recipientName") or "Alıcı",
        "recipientPhone": mask_phone(str(delivery.get("recipientPhone") or "")),
        "deliveryAddress": delivery.get("fullAddress") or delivery.get("recipientAddress") or "",
        "district": delivery.get("district") or "",
        "items": [
            {
                "productId": int(p.get("productId") or p.get("id") or 0),
                "productName": p.get("name") or "",
                "quantity": int(p.get("quantity") or 0),
                "price": float(p.get("price") or 0),
                "image": p.get("image") or "",
            }
            for p in order.products or []
            if isinstance(p, dict)
        ],
        "subtotal": float(order.subtotal or 0),
        "deliveryFee": float(order.delivery_fee or 0),
        "discount": float(order.discount or 0),
        "total": float(order.total or 0),
        "estimatedDelivery": get_estimated_delivery_time(order),
        "paymentMethod": payment.get("method") or "credit_card",
        "cardMessage": message.get("content") or order.notes or "",
        "senderName": message.get("senderName") or "",
    }
