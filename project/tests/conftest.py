# tests/conftest.py

import os
import tempfile
import uuid

import pytest

# окружение задаётся до импорта приложения: settings и engine создаются при импорте
_TMP = tempfile.mkdtemp(prefix="flowershop-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["LOG_DIR"] = os.path.join(_TMP, "log")
os.environ["LOG_PRINT"] = "0"
os.environ["AUTH_SESSION_SECRET"] = "test-session-secret"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["AUTOMATION_BATCH_DELAY"] = "0"
os.environ["RESEND_API_KEY"] = ""

from fastapi.testclient import TestClient  # noqa: E402

from flowershop.main import app  # noqa: E402
from flowershop.services.email import EmailSendResult  # noqa: E402


class FakeEmail:
    """Записывает письма вместо отправки через Resend."""

    configured = True

    def __init__(self):
        self.otps = []
        self.status_updates = []
        self.confirmations = []
        self.bank_transfers = []
        self.fail_otp = False

    async def send_customer_otp(self, to, code, purpose):
        self.otps.append({"to": to, "code": code, "purpose": purpose})
        if self.fail_otp:
            return EmailSendResult(False, "boom", "PROVIDER_ERROR")
        return EmailSendResult(True, message_id="fake")

    async def send_order_status_update(self, **kwargs):
        self.status_updates.append(kwargs)
        return True

    async def send_order_confirmation(self, **kwargs):
        self.confirmations.append(kwargs)
        return True

    async def send_bank_transfer_confirmation(self, **kwargs):
        self.bank_transfers.append(kwargs)
        return True

    def last_code(self, email, purpose):
        for sent in reversed(self.otps):
            if sent["to"] == email and sent["purpose"] == purpose:
                return sent["code"]
        return None


class FakePayment:
    configured = True

    def __init__(self):
        self.answers = {}
        self.calls = []

    async def retrieve_checkout_form(self, token, conversation_id="", locale="tr"):
        self.calls.append(token)
        return self.answers.get(token, {"status": "success", "paymentStatus": "INIT_THREEDS"})


@pytest.fixture(scope="session")
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def fake_email(client):
    fake = FakeEmail()
    client.app.state.email = fake
    return fake


@pytest.fixture
def fake_payment(client):
    fake = FakePayment()
    client.app.state.payment = fake
    return fake


@pytest.fixture(scope="session")
def admin_headers(client):
    response = client.post("/auth/token", data={"username": "admin", "password": "admin"})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def product(client, admin_headers):
    slug = f"gul-{uuid.uuid4().hex[:8]}"
    response = client.post(
        "/api/products",
        json={"name": "Kırmızı Gül Buketi", "slug": slug, "price": 750, "category": "guller"},
        headers=admin_headers,
    )
    assert response.status_code == 201
    return response.json()


def unique_email(prefix="musteri"):
    return f"{prefix}-{uuid.uuid4().hex[:8]}@example.com"


def order_payload(product_id, delivery_date="2030-01-07", **overrides):
    payload = {
        "products": [{"id": product_id, "quantity": 2, "price": 1}],
        "delivery": {
            "deliveryDate": delivery_date,
            "deliveryTimeSlot": "11:00-17:00",
            "recipientName": "Ayşe Yılmaz",
            "recipientPhone": "+90 532 111 22 33",
            "fullAddress": "Atatürk Cad. No:1",
            "district": "Kadıköy",
        },
        "payment": {"method": "credit_card", "status": "pending"},
        "customerName": "Mehmet Demir",
        "customerEmail": unique_email("siparis"),
        "customerPhone": "0532 444 55 66",
        "deliveryFee": 0,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_order():
    return order_payload


@pytest.fixture
def new_email():
    return unique_email
