# tests/test_catalog_api.py

import datetime
import uuid

import pytest


def iso(days: int) -> str:
    return (datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(days=days)).isoformat()


# ────────────── Товары и категории ──────────────
def test_product_lookup_by_id_and_slug(client, product):
    assert client.get(f"/api/products/{product['id']}").json()["slug"] == product["slug"]
    assert client.get(f"/api/products/{product['slug']}").json()["id"] == product["id"]
    assert client.get("/api/products/yok-boyle-urun").status_code == 404


def test_duplicate_product_slug(client, admin_headers, product):
    response = client.post(
        "/api/products",
        json={"name": "Kopya", "slug": product["slug"], "price": 10},
        headers=admin_headers,
    )
    assert response.status_code == 409


def test_product_write_requires_admin(client):
    response = client.post("/api/products", json={"name": "X", "slug": "x", "price": 1})
    assert response.status_code == 401


def test_category_filter_includes_secondary_categories(client, admin_headers):
    extra = f"dogum-gunu-{uuid.uuid4().hex[:6]}"
    created = client.post(
        "/api/products",
        json={
            "name": "Papatya", "slug": f"papatya-{uuid.uuid4().hex[:6]}", "price": 300,
            "category": "kir-cicekleri", "secondaryCategories": [extra],
        },
        headers=admin_headers,
    ).json()

    listed = client.get("/api/products", params={"category": extra}).json()
    assert [p["id"] for p in listed["products"]] == [created["id"]]
    assert listed["total"] == 1


def test_bulk_price_update_preview_and_apply(client, admin_headers, product):
    preview = client.post(
        "/api/admin/products/bulk-price-update",
        json={"percentage": 10, "productIds": [product["id"]], "preview": True},
        headers=admin_headers,
    ).json()
    assert preview["preview"][0]["newPrice"] == 825
    assert client.get(f"/api/products/{product['id']}").json()["price"] == 750

    applied = client.post(
        "/api/admin/products/bulk-price-update",
        json={"percentage": 10, "productIds": [product["id"]]},
        headers=admin_headers,
    ).json()
    assert applied["stats"]["successCount"] == 1
    assert client.get(f"/api/products/{product['id']}").json()["price"] == 825


def test_category_crud(client, admin_headers):
    slug = f"orkide-{uuid.uuid4().hex[:6]}"
    created = client.post("/api/categories", json={"name": "Orkideler", "slug": slug}, headers=admin_headers)
    assert created.status_code == 201

    duplicate = client.post("/api/categories", json={"name": "Orkideler 2", "slug": slug}, headers=admin_headers)
    assert duplicate.status_code == 409

    category_id = created.json()["id"]
    hidden = client.put(f"/api/categories/{category_id}", json={"isActive": False}, headers=admin_headers)
    assert hidden.json()["isActive"] is False
    assert category_id not in [c["id"] for c in client.get("/api/categories").json()["categories"]]

    assert client.delete(f"/api/categories/{category_id}", headers=admin_headers).json() == {"success": True}
    assert client.get(f"/api/categories/{category_id}").status_code == 404


# ────────────── Купоны ──────────────
@pytest.fixture
def make_coupon(client, admin_headers):
    def _make(**overrides):
        payload = {
            "code": f"kupon{uuid.uuid4().hex[:6]}",
            "type": "percentage",
            "value": 10,
            "minOrderAmount": 0,
            "usageLimit": 100,
            "validFrom": iso(-1),
            "validUntil": iso(30),
        }
        payload.update(overrides)
        response = client.post("/api/coupons", json=payload, headers=admin_headers)
        assert response.status_code == 201, response.text
        return response.json()
    return _make


def validate(client, code, total):
    return client.post("/api/coupons/validate", json={"code": code, "orderTotal": total})


def test_coupon_code_is_stored_upper_case(make_coupon):
    coupon = make_coupon(code="yaz2030x")
    assert coupon["code"] == "YAZ2030X"


def test_percentage_discount_is_rounded_and_capped(client, make_coupon):
    coupon = make_coupon(value=15, maxDiscountAmount=50)

    response = validate(client, coupon["code"].lower(), 1000)
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["discount"] == 50
    assert body["coupon"]["code"] == coupon["code"]

    uncapped = make_coupon(value=15)
    assert validate(client, uncapped["code"], 333).json()["discount"] == 50


def test_percentage_discount_half_rounds_up(client, make_coupon):
    five = make_coupon(value=5)
    assert validate(client, five["code"], 50).json()["discount"] == 3

    ten = make_coupon(value=10)
    assert validate(client, ten["code"], 125).json()["discount"] == 13


def test_fixed_discount(client, make_coupon):
    coupon = make_coupon(type="fixed", value=75)
    assert validate(client, coupon["code"], 400).json()["discount"] == 75


def test_coupon_rejections(client, make_coupon):
    assert validate(client, "", 100).status_code == 400
    assert validate(client, "YOKBOYLEKUPON", 100).status_code == 404

    inactive = make_coupon(isActive=False)
    assert validate(client, inactive["code"], 100).json()["error"] == "Bu kupon artık geçerli değil."

    expired = make_coupon(validFrom=iso(-10), validUntil=iso(-1))
    assert validate(client, expired["code"], 100).json()["error"] == "Bu kupon şu anda geçerli değil."

    minimum = make_coupon(minOrderAmount=500)
    response = validate(client, minimum["code"], 200)
    assert response.status_code == 400
    assert "minimum 500 TL" in response.json()["error"]


def test_coupon_usage_limit(client, make_coupon):
    coupon = make_coupon(usageLimit=1)

    assert validate(client, coupon["code"], 100).status_code == 200
    second = validate(client, coupon["code"], 100)
    assert second.status_code == 400
    assert second.json()["error"] == "Bu kupon kullanım limitine ulaşmış."


def test_duplicate_coupon_code(client, admin_headers, make_coupon):
    coupon = make_coupon()
    payload = {"code": coupon["code"].lower(), "type": "fixed", "value": 5, "validFrom": iso(-1), "validUntil": iso(1)}
    assert client.post("/api/coupons", json=payload, headers=admin_headers).status_code == 409


def test_coupon_update_rejects_empty_required_fields(client, admin_headers, make_coupon):
    coupon = make_coupon()

    response = client.put(f"/api/coupons/{coupon['id']}", json={"validFrom": None}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Kupon kodu, türü, değeri ve geçerlilik tarihleri boş bırakılamaz."

    response = client.put(f"/api/coupons/{coupon['id']}", json={"description": "Yaz"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["description"] == "Yaz"


# ────────────── Отзывы ──────────────
def test_review_moderation_and_votes(client, admin_headers, product):
    created = client.post("/api/reviews", json={
        "productId": product["id"], "rating": 5, "customerName": "Elif", "comment": "Çok güzel",
    })
    assert created.status_code == 201
    review = created.json()["data"]
    assert review["isApproved"] is False

    assert client.get("/api/reviews", params={"productId": product["id"]}).json()["reviews"] == []

    client.put(f"/api/reviews/{review['id']}", json={"isApproved": True}, headers=admin_headers)
    visible = client.get("/api/reviews", params={"productId": product["id"]}).json()["reviews"]
    assert [r["id"] for r in visible] == [review["id"]]

    headers = {"x-forwarded-for": f"10.0.0.{uuid.uuid4().int % 250}, 172.16.0.1"}
    vote = client.post(f"/api/reviews/{review['id']}/helpful", json={"voteType": "helpful"}, headers=headers)
    assert vote.status_code == 200
    assert vote.json()["data"] == {"helpfulCount": 1, "unhelpfulCount": 0}
    assert vote.json()["message"] == "Oyunuz kaydedildi"

    again = client.post(f"/api/reviews/{review['id']}/helpful", json={"voteType": "unhelpful"}, headers=headers)
    assert again.status_code == 429

    other_ip = {"x-real-ip": "192.168.1.77"}
    other = client.post(f"/api/reviews/{review['id']}/helpful", json={"voteType": "unhelpful"}, headers=other_ip)
    assert other.json()["data"] == {"helpfulCount": 1, "unhelpfulCount": 1}


def test_review_vote_errors(client):
    headers = {"x-real-ip": "192.168.200.1"}
    bad = client.post("/api/reviews/1/helpful", json={"voteType": "love"}, headers=headers)
    assert bad.status_code == 400
    assert bad.json()["error"] == "Geçersiz oy türü"

    missing = client.post("/api/reviews/99999999/helpful", json={"voteType": "helpful"}, headers=headers)
    assert missing.status_code == 404


def test_review_rating_range(client, product):
    response = client.post("/api/reviews", json={"productId": product["id"], "rating": 6})
    assert response.status_code == 400


# ────────────── Дни без доставки ──────────────
def test_off_day_create_duplicate_and_format(client, admin_headers):
    created = client.post("/api/delivery-off-days", json={"offDate": "2031-03-04"}, headers=admin_headers)
    assert created.status_code == 201
    assert created.json()["data"]["offDate"] == "2031-03-04"

    duplicate = client.post("/api/delivery-off-days", json={"offDate": "2031-03-04"}, headers=admin_headers)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "Bu tarih için zaten bir off günü kaydı mevcut"

    bad = client.post("/api/delivery-off-days", json={"offDate": "04.03.2031"}, headers=admin_headers)
    assert bad.status_code == 400
    assert bad.json()["error"] == "Geçersiz tarih formatı"

    listed = client.get("/api/delivery-off-days").json()
    assert "2031-03-04" in [d["offDate"] for d in listed["offDays"]]


def test_off_day_reactivation_replaces_inactive_record(client, admin_headers):
    first = client.post("/api/delivery-off-days", json={"offDate": "2031-04-08"}, headers=admin_headers).json()["data"]
    client.put(f"/api/delivery-off-days/{first['id']}", json={"isActive": False}, headers=admin_headers)

    assert "2031-04-08" not in [d["offDate"] for d in client.get("/api/delivery-off-days").json()["offDays"]]
    everything = client.get("/api/delivery-off-days", params={"all": "true"}).json()["offDays"]
    assert "2031-04-08" in [d["offDate"] for d in everything]

    again = client.post("/api/delivery-off-days", json={"offDate": "2031-04-08"}, headers=admin_headers)
    assert again.status_code == 201
    everything = client.get("/api/delivery-off-days", params={"all": "true"}).json()["offDays"]
    assert [d["offDate"] for d in everything].count("2031-04-08") == 1


def test_off_day_past_dates_hidden_by_default(client, admin_headers):
    client.post("/api/delivery-off-days", json={"offDate": "2001-05-01"}, headers=admin_headers)

    assert "2001-05-01" not in [d["offDate"] for d in client.get("/api/delivery-off-days").json()["offDays"]]
    with_past = client.get("/api/delivery-off-days", params={"includePast": "true"}).json()["offDays"]
    assert "2001-05-01" in [d["offDate"] for d in with_past]


def test_off_day_cleanup_removes_duplicates(client, admin_headers):
    keep = client.post("/api/delivery-off-days", json={"offDate": "2031-06-10"}, headers=admin_headers).json()["data"]
    other = client.post("/api/delivery-off-days", json={"offDate": "2031-06-11"}, headers=admin_headers).json()["data"]
    moved = client.put(
        f"/api/delivery-off-days/{other['id']}",
        json={"offDate": "2031-06-10", "isActive": False},
        headers=admin_headers,
    )
    assert moved.status_code == 200

    clash = client.put(f"/api/delivery-off-days/{other['id']}", json={"isActive": True}, headers=admin_headers)
    assert clash.status_code == 409

    response = client.post("/api/delivery-off-days/cleanup", headers=admin_headers).json()
    assert response["success"] is True
    assert response["stats"]["duplicateDates"] >= 1
    assert response["stats"]["deletedRecords"] >= 1

    remaining = client.get("/api/delivery-off-days", params={"all": "true"}).json()["offDays"]
    assert [d["id"] for d in remaining if d["offDate"] == "2031-06-10"] == [keep["id"]]
