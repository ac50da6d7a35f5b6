# tests/test_orders_api.py

import datetime
import uuid

from flowershop.services import automation as automation_service
from flowershop.services import order as order_service
from flowershop.services import payment as payment_service
from flowershop.services.order import (
    DELIVERY_OFF_DAY_ERROR,
    SUNDAY_DELIVERY_ERROR,
    format_order_number,
    is_valid_order_number,
    parse_order_number,
)

UTC = datetime.timezone.utc
CRON_HEADERS = {"Authorization": "Bearer test-cron-secret"}


def create_order(client, payload):
    response = client.post("/api/orders", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


# ────────────── Номер заказа ──────────────
def test_order_number_helpers():
    assert is_valid_order_number(100001)
    assert is_valid_order_number("999999")
    assert not is_valid_order_number(99999)
    assert not is_valid_order_number("abc")
    assert format_order_number(100042) == "100042"
    assert parse_order_number("#100 042") == 100042
    assert parse_order_number("") is None


# ────────────── Создание ──────────────
def test_create_order_rebuilds_products_from_catalog(client, fake_email, product, make_order):
    order = create_order(client, make_order(product["id"], deliveryFee=50, discount=100))

    assert order["products"][0]["price"] == 750
    assert order["subtotal"] == 1500
    assert order["total"] == 1450
    assert order["status"] == "pending"
    assert 100000 <= order["orderNumber"] <= 999999
    assert order["customerPhone"] == "5324445566"
    assert order["isGuest"] is True
    assert order["orderTimeGroup"] in ("noon", "evening", "overnight")
    assert order["timeline"][0]["status"] == "pending"


def test_order_numbers_are_sequential(client, fake_email, product, make_order):
    first = create_order(client, make_order(product["id"]))
    second = create_order(client, make_order(product["id"]))

    assert second["orderNumber"] == first["orderNumber"] + 1


def test_discount_is_clamped_to_order_value(client, fake_email, product, make_order):
    order = create_order(client, make_order(product["id"], discount=999999))
    assert order["total"] == 0


def test_sunday_delivery_is_rejected(client, fake_email, product, make_order):
    response = client.post("/api/orders", json=make_order(product["id"], delivery_date="2030-01-06"))

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert "Pazar" in body["error"]
    assert body["error"] == SUNDAY_DELIVERY_ERROR


def test_off_day_delivery_is_rejected(client, fake_email, admin_headers, product, make_order):
    created = client.post(
        "/api/delivery-off-days",
        json={"offDate": "2030-02-05", "note": "Sevgililer günü hazırlığı"},
        headers=admin_headers,
    )
    assert created.status_code == 201

    response = client.post("/api/orders", json=make_order(product["id"], delivery_date="2030-02-05"))
    assert response.status_code == 400
    assert response.json()["error"] == DELIVERY_OFF_DAY_ERROR


def test_invalid_delivery_date(client, fake_email, product, make_order):
    response = client.post("/api/orders", json=make_order(product["id"], delivery_date="31/12/2030"))
    assert response.status_code == 400
    assert response.json()["error"] == "Geçersiz teslimat tarihi"


def test_missing_products_or_unknown_product(client, fake_email, product, make_order):
    response = client.post("/api/orders", json=make_order(product["id"], products=[]))
    assert response.status_code == 400

    response = client.post("/api/orders", json=make_order(product["id"], products=[{"id": 99999999, "quantity": 1}]))
    assert response.status_code == 400

    response = client.post("/api/orders", json=make_order(product["id"], products=[{"id": product["id"], "quantity": 0}]))
    assert response.status_code == 400


def test_bank_transfer_order_sends_instructions(client, fake_email, product, make_order):
    payload = make_order(product["id"], payment={"method": "bank_transfer", "status": "pending"})
    order = create_order(client, payload)

    assert len(fake_email.bank_transfers) == 1
    assert fake_email.bank_transfers[0]["order_number"] == str(order["orderNumber"])


# ────────────── Обновление / удаление ──────────────
def test_status_update_sends_email_once(client, fake_email, admin_headers, product, make_order):
    order = create_order(client, make_order(product["id"]))

    response = client.put(f"/api/orders/{order['id']}", json={"status": "confirmed"}, headers=admin_headers)
    assert response.status_code == 200
    assert len(fake_email.status_updates) == 1

    timeline = response.json()["timeline"]
    assert [t["status"] for t in timeline if "note" in t] == ["pending", "confirmed"]
    assert timeline[1]["note"] == "Durum güncellendi"
    assert timeline[1]["automated"] is False

    # timeline из запроса сохраняется без дополнений
    response = client.put(
        f"/api/orders/{order['id']}", json={"status": "pending", "timeline": timeline}, headers=admin_headers
    )
    assert response.json()["timeline"] == timeline

    response = client.put(f"/api/orders/{order['id']}", json={"status": "confirmed"}, headers=admin_headers)
    assert len(fake_email.status_updates) == 1
    assert response.json()["timeline"][-1]["status"] == "confirmed"


def test_status_change_without_email_is_recorded(client, fake_email, admin_headers, product, make_order):
    order = create_order(client, make_order(product["id"], customerEmail=""))

    response = client.put(f"/api/orders/{order['id']}", json={"status": "processing"}, headers=admin_headers)
    assert response.status_code == 200
    assert fake_email.status_updates == []

    last = response.json()["timeline"][-1]
    assert last["status"] == "processing"
    assert last["note"] == "Durum güncellendi"

    # тот же статус повторно: без новой записи
    response = client.put(f"/api/orders/{order['id']}", json={"status": "processing"}, headers=admin_headers)
    assert len(response.json()["timeline"]) == len(order["timeline"]) + 1


def test_update_requires_admin(client, fake_email, product, make_order):
    order = create_order(client, make_order(product["id"]))
    response = client.put(f"/api/orders/{order['id']}", json={"status": "confirmed"})
    assert response.status_code == 401


def test_delete_and_restore(client, fake_email, admin_headers, product, make_order):
    order = create_order(client, make_order(product["id"]))

    response = client.delete(f"/api/orders/{order['id']}", headers=admin_headers)
    assert response.json() == {"success": True, "backedUp": True}
    assert client.get(f"/api/orders/{order['id']}").status_code == 404

    deleted = client.get("/api/orders/deleted", headers=admin_headers).json()["orders"]
    backup = next(d for d in deleted if d["originalId"] == order["id"])

    response = client.post("/api/orders/restore", json={"deletedOrderId": backup["id"]}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["order"]["orderNumber"] == order["orderNumber"]
    assert client.get(f"/api/orders/{order['id']}").status_code == 200

    again = client.post("/api/orders/restore", json={"deletedOrderId": backup["id"]}, headers=admin_headers)
    assert again.status_code == 400


def test_refund(client, fake_email, admin_headers, product, make_order):
    order = create_order(client, make_order(product["id"]))

    response = client.post(
        "/api/orders/refund",
        json={"orderId": order["id"], "amount": 500, "reason": "Ürün hasarlı"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    refunded = response.json()["order"]
    assert refunded["status"] == "refunded"
    assert refunded["refund"]["amount"] == 500
    assert "Ürün hasarlı" in refunded["timeline"][-1]["note"]
    assert fake_email.status_updates[-1]["refund_amount"] == 500

    missing = client.post("/api/orders/refund", json={"orderId": str(uuid.uuid4())}, headers=admin_headers)
    assert missing.status_code == 404


def test_confirm_bank_payment(client, fake_email, admin_headers, product, make_order):
    payload = make_order(product["id"], payment={"method": "bank_transfer", "status": "pending"})
    order = create_order(client, payload)

    response = client.post("/api/orders/confirm-bank-payment", json={"orderId": order["id"]}, headers=admin_headers)
    assert response.json() == {"success": True}
    assert len(fake_email.confirmations) == 1

    stored = client.get(f"/api/orders/{order['id']}").json()
    assert stored["status"] == "confirmed"
    assert stored["payment"]["status"] == "paid"

    again = client.post("/api/orders/confirm-bank-payment", json={"orderId": order["id"]}, headers=admin_headers)
    assert again.status_code == 400


def test_list_orders_filters(client, fake_email, admin_headers, product, make_order):
    create_order(client, make_order(product["id"]))

    response = client.get("/api/orders", params={"status": "pending", "limit": 2}, headers=admin_headers)
    body = response.json()
    assert response.status_code == 200
    assert len(body["orders"]) <= 2
    assert body["total"] >= 1
    assert all(o["status"] == "pending" for o in body["orders"])


# ────────────── Отслеживание ──────────────
def test_track_by_email_and_phone(client, fake_email, product, make_order):
    payload = make_order(product["id"], orderTimeGroup="noon")
    order = create_order(client, payload)

    by_email = client.post("/api/orders/track", json={
        "orderNumber": str(order["orderNumber"]),
        "verificationType": "email",
        "verificationValue": payload["customerEmail"].upper(),
    })
    assert by_email.status_code == 200
    public = by_email.json()
    assert public["orderNumber"] == order["orderNumber"]
    assert public["recipientPhone"] == "532 111 ** **"
    assert public["estimatedDelivery"] == "7 Ocak 2030 18:00"
    assert "customerEmail" not in public

    by_phone = client.post("/api/orders/track", json={
        "orderNumber": order["orderNumber"],
        "verificationType": "phone",
        "verificationValue": "0532 111 22 33",
    })
    assert by_phone.status_code == 200

    # номер в виде "#100 042"
    number = str(order["orderNumber"])
    formatted = client.post("/api/orders/track", json={
        "orderNumber": f"#{number[:3]} {number[3:]}",
        "verificationType": "email",
        "verificationValue": payload["customerEmail"],
    })
    assert formatted.status_code == 200
    assert formatted.json()["id"] == order["id"]


def test_track_errors(client, fake_email, product, make_order):
    order = create_order(client, make_order(product["id"]))

    wrong = client.post("/api/orders/track", json={
        "orderNumber": order["orderNumber"], "verificationType": "email", "verificationValue": "baska@example.com",
    })
    assert wrong.status_code == 403

    bad_number = client.post("/api/orders/track", json={
        "orderNumber": "12", "verificationType": "email", "verificationValue": "x@example.com",
    })
    assert bad_number.status_code == 400

    missing = client.post("/api/orders/track", json={
        "orderNumber": 999998, "verificationType": "email", "verificationValue": "x@example.com",
    })
    assert missing.status_code == 404


# ────────────── Счётчик и cron ──────────────
def test_order_counter(client, fake_email, admin_headers, product, make_order):
    info = client.get("/api/admin/order-counter", headers=admin_headers).json()
    assert info["success"] is True

    reset = client.post("/api/admin/order-counter", json={"startNumber": 500000}, headers=admin_headers)
    assert reset.status_code == 200
    assert reset.json()["counter"]["nextOrderNumber"] == 500000

    order = create_order(client, make_order(product["id"]))
    assert order["orderNumber"] == 500000

    out_of_range = client.post("/api/admin/order-counter", json={"startNumber": 12}, headers=admin_headers)
    assert out_of_range.status_code == 400

    assert client.get("/api/admin/order-counter").status_code == 401


# ────────────── Автоматизация ──────────────
def run_automation(client, admin_headers):
    response = client.post("/api/orders/automation", headers=admin_headers)
    assert response.status_code == 200, response.text
    return response.json()


def paid_order(client, product, make_order, delivery_date, status="confirmed"):
    payload = make_order(
        product["id"],
        delivery_date,
        status=status,
        orderTimeGroup="noon",
        payment={"method": "credit_card", "status": "paid"},
    )
    return create_order(client, payload)


def test_automation_cron_requires_secret(client, fake_email):
    assert client.get("/api/orders/automation").status_code == 401
    assert client.get("/api/orders/automation", headers={"Authorization": "Bearer wrong"}).status_code == 401

    response = client.get("/api/orders/automation", headers=CRON_HEADERS)
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert "updated" in body and "orders" in body


def test_manual_automation_requires_admin(client, fake_email, admin_headers):
    assert client.post("/api/orders/automation").status_code == 401
    response = client.post("/api/orders/automation", headers=admin_headers)
    assert response.status_code == 200


def test_automation_moves_one_step_per_run(client, fake_email, admin_headers, product, make_order, monkeypatch):
    today = paid_order(client, product, make_order, "2030-04-16")
    tomorrow = paid_order(client, product, make_order, "2030-04-17")
    shipped = paid_order(client, product, make_order, "2030-04-16", status="shipped")

    # 13:30 по Стамбулу
    monkeypatch.setattr(automation_service, "utcnow", lambda: datetime.datetime(2030, 4, 16, 10, 30, tzinfo=UTC))

    first = run_automation(client, admin_headers)
    assert first["orders"] == [
        {"orderNumber": today["orderNumber"], "oldStatus": "confirmed", "newStatus": "processing"}
    ]
    second = run_automation(client, admin_headers)
    assert second["orders"] == [
        {"orderNumber": today["orderNumber"], "oldStatus": "processing", "newStatus": "shipped"}
    ]
    assert run_automation(client, admin_headers)["updated"] == 0

    assert client.get(f"/api/orders/{tomorrow['id']}").json()["status"] == "confirmed"
    assert client.get(f"/api/orders/{shipped['id']}").json()["status"] == "shipped"

    # 18:30 по Стамбулу
    monkeypatch.setattr(automation_service, "utcnow", lambda: datetime.datetime(2030, 4, 16, 15, 30, tzinfo=UTC))

    evening = run_automation(client, admin_headers)
    assert sorted((o["orderNumber"], o["newStatus"]) for o in evening["orders"]) == sorted([
        (today["orderNumber"], "delivered"),
        (shipped["orderNumber"], "delivered"),
    ])

    delivered = client.get(f"/api/orders/{today['id']}").json()
    assert delivered["deliveredAt"]
    steps = [t["status"] for t in delivered["timeline"] if t.get("automated") and "note" in t]
    assert steps == ["processing", "shipped", "delivered"]

    def sent_statuses():
        return [u["status"] for u in fake_email.status_updates if u["order_number"] == str(today["orderNumber"])]

    assert sent_statuses() == ["processing", "shipped", "delivered"]

    # ручной возврат статуса не дублирует уже отправленные письма
    client.put(f"/api/orders/{today['id']}", json={"status": "shipped"}, headers=admin_headers)
    client.put(f"/api/orders/{today['id']}", json={"status": "delivered"}, headers=admin_headers)
    assert sent_statuses() == ["processing", "shipped", "delivered"]


def test_paid_pending_order_is_confirmed_by_automation(client, fake_email, admin_headers, product, make_order):
    payload = make_order(
        product["id"],
        "2030-04-24T10:00:00.000Z",
        payment={"method": "credit_card", "status": "paid"},
    )
    order = create_order(client, payload)
    assert order["status"] == "pending"

    run_automation(client, admin_headers)

    confirmed = client.get(f"/api/orders/{order['id']}").json()
    assert confirmed["status"] == "confirmed"
    assert confirmed["delivery"]["deliveryDate"] == "2030-04-24"
    assert any(t.get("note") == "Ödeme onaylandı (otomatik)" for t in confirmed["timeline"])

    sent = [u["status"] for u in fake_email.status_updates if u["order_number"] == str(order["orderNumber"])]
    assert sent == ["confirmed"]


# ────────────── Сверка оплат ──────────────
def test_verify_payments_cron(client, fake_email, fake_payment):
    assert client.get("/api/cron/verify-payments").status_code == 401

    response = client.get("/api/cron/verify-payments", headers=CRON_HEADERS)
    assert response.status_code == 200
    body = response.json()
    # свежие заказы моложе 10 минут не проверяются
    assert body["processed"] == 0
    assert fake_payment.calls == []


def test_verify_payments_resolves_stuck_orders(client, fake_email, fake_payment, product, make_order, monkeypatch):
    created_at = datetime.datetime.now(UTC) - datetime.timedelta(days=5)
    now = created_at + datetime.timedelta(minutes=30)

    def pending_order(token=None, **payment):
        payment = {"method": "credit_card", "status": "pending", **payment}
        if token:
            payment["token"] = token
        return create_order(client, make_order(product["id"], payment=payment))

    # заказы «созданы» полчаса назад относительно времени сверки
    with monkeypatch.context() as m:
        m.setattr(order_service, "utcnow", lambda: created_at)
        recovered = pending_order("tok-ok", tokenCreatedAt=(now - datetime.timedelta(minutes=10)).isoformat())
        failed = pending_order("tok-fail")
        waiting = pending_order("tok-wait")
        expired = pending_order("tok-old", tokenCreatedAt=(now - datetime.timedelta(hours=1)).isoformat())
        no_token = pending_order()

    fake_payment.answers["tok-ok"] = {
        "status": "success",
        "paymentStatus": "SUCCESS",
        "paymentId": "pay-1",
        "lastFourDigits": "0008",
    }
    fake_payment.answers["tok-fail"] = {"status": "failure", "errorCode": "10051", "errorMessage": "Card declined"}
    monkeypatch.setattr(payment_service, "utcnow", lambda: now)

    response = client.get("/api/cron/verify-payments", headers=CRON_HEADERS)
    assert response.status_code == 200
    body = response.json()
    assert {k: body[k] for k in ("processed", "recovered", "expired", "failed", "noToken")} == {
        "processed": 5,
        "recovered": 1,
        "expired": 1,
        "failed": 1,
        "noToken": 1,
    }
    assert sorted(fake_payment.calls) == ["tok-fail", "tok-ok", "tok-wait"]

    def read(order):
        return client.get(f"/api/orders/{order['id']}").json()

    ok = read(recovered)
    assert ok["status"] == "confirmed"
    assert ok["payment"]["status"] == "paid"
    assert ok["payment"]["transactionId"] == "pay-1"
    assert ok["payment"]["cardLast4"] == "0008"
    assert ok["timeline"][-1]["note"] == "Ödeme onaylandı (otomatik doğrulama)"
    assert [c["order_number"] for c in fake_email.confirmations] == [str(recovered["orderNumber"])]

    declined = read(failed)
    assert declined["status"] == "payment_failed"
    assert declined["payment"]["errorMessage"] == (
        "Kartınız reddedildi. Lütfen bankanızla iletişime geçin veya başka bir kart deneyin."
    )

    timed_out = read(expired)
    assert timed_out["status"] == "payment_failed"
    assert timed_out["payment"]["errorCode"] == "TOKEN_EXPIRED"

    assert read(waiting)["status"] == "pending"
    assert read(no_token)["status"] == "pending"
