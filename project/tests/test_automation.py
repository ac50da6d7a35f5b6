# tests/test_automation.py

import datetime
from types import SimpleNamespace

import pytest

from flowershop.services.automation import (
    calculate_automation_schedule,
    get_estimated_delivery_time,
    get_order_time_group,
    has_status_email_notification,
    normalize_delivery_date,
    notification_entry,
    resolve_time_group,
)

UTC = datetime.timezone.utc


def utc(*args):
    return datetime.datetime(*args, tzinfo=UTC)


def make_order(status="confirmed", delivery_date="2025-12-25", created_at=None, group=None):
    return SimpleNamespace(
        status=status,
        delivery={"deliveryDate": delivery_date} if delivery_date is not None else {},
        created_at=created_at,
        order_time_group=group,
        payment={"status": "paid"},
        timeline=[],
    )


# Стамбул = UTC+3 круглый год
@pytest.mark.parametrize("created_at, expected", [
    (utc(2025, 12, 24, 8, 0), "noon"),        # 11:00
    (utc(2025, 12, 24, 13, 59), "noon"),      # 16:59
    (utc(2025, 12, 24, 14, 0), "evening"),    # 17:00
    (utc(2025, 12, 24, 18, 59), "evening"),   # 21:59
    (utc(2025, 12, 24, 19, 0), "overnight"),  # 22:00
    (utc(2025, 12, 24, 5, 0), "overnight"),   # 08:00
])
def test_order_time_group_boundaries(created_at, expected):
    assert get_order_time_group(created_at) == expected


def test_stored_group_wins_over_created_at():
    order = make_order(created_at=utc(2025, 12, 24, 8, 0), group="EVENING")
    assert resolve_time_group(order) == "evening"


def test_invalid_stored_group_falls_back_to_created_at():
    order = make_order(created_at=utc(2025, 12, 24, 15, 0), group="morning")
    assert resolve_time_group(order) == "evening"


def test_noon_schedule_in_utc():
    order = make_order(created_at=utc(2025, 12, 24, 9, 0))
    schedule = calculate_automation_schedule(order)

    assert [s.target_status for s in schedule] == ["processing", "shipped", "delivered"]
    assert [s.target_time for s in schedule] == [
        utc(2025, 12, 25, 8, 0),
        utc(2025, 12, 25, 9, 0),
        utc(2025, 12, 25, 15, 0),
    ]
    assert all(s.automated for s in schedule)


def test_evening_schedule_in_utc():
    order = make_order(created_at=utc(2025, 12, 24, 15, 0))
    schedule = calculate_automation_schedule(order)

    assert [s.target_time for s in schedule] == [
        utc(2025, 12, 25, 15, 0),
        utc(2025, 12, 25, 16, 0),
        utc(2025, 12, 25, 19, 30),
    ]


def test_overnight_uses_noon_times():
    overnight = make_order(created_at=utc(2025, 12, 24, 23, 0))
    noon = make_order(created_at=utc(2025, 12, 24, 9, 0))

    assert resolve_time_group(overnight) == "overnight"
    assert calculate_automation_schedule(overnight) == calculate_automation_schedule(noon)


@pytest.mark.parametrize("status, expected", [
    ("confirmed", ["processing", "shipped", "delivered"]),
    ("processing", ["shipped", "delivered"]),
    ("shipped", ["delivered"]),
    ("delivered", []),
    ("pending", []),
    ("cancelled", []),
])
def test_schedule_tail_depends_on_status(status, expected):
    order = make_order(status=status, created_at=utc(2025, 12, 24, 9, 0))
    assert [s.target_status for s in calculate_automation_schedule(order)] == expected


def test_delivery_date_prefix_is_kept_as_is():
    assert normalize_delivery_date("2025-12-24T22:30:00Z") == "2025-12-24"
    assert normalize_delivery_date("2025-12-25") == "2025-12-25"
    assert normalize_delivery_date("yarın") is None
    assert normalize_delivery_date(None) is None


def test_basic_iso_delivery_time_uses_istanbul_day():
    # 22:30 UTC 24 декабря: уже 25 декабря по Стамбулу
    assert normalize_delivery_date("20251224T223000Z") == "2025-12-25"
    assert normalize_delivery_date("20251224T203000Z") == "2025-12-24"


@pytest.mark.parametrize("order", [
    make_order(delivery_date="2025-13-45", created_at=utc(2025, 12, 24, 9, 0)),
    make_order(delivery_date="teslimat", created_at=utc(2025, 12, 24, 9, 0)),
    make_order(delivery_date=None, created_at=utc(2025, 12, 24, 9, 0)),
    make_order(created_at=None),
])
def test_unusable_orders_get_empty_schedule(order):
    assert calculate_automation_schedule(order) == []


def test_missing_created_at_with_stored_group_still_schedules():
    order = make_order(created_at=None, group="evening")
    assert len(calculate_automation_schedule(order)) == 3


def test_estimated_delivery_time():
    assert get_estimated_delivery_time(make_order(created_at=utc(2025, 12, 24, 9, 0))) == "25 Aralık 2025 18:00"
    assert get_estimated_delivery_time(make_order(created_at=utc(2025, 12, 24, 15, 0))) == "25 Aralık 2025 22:30"
    assert get_estimated_delivery_time(make_order(delivery_date="", created_at=utc(2025, 12, 24, 9, 0))) == (
        "Teslimat tarihi belirtilmedi"
    )


def test_status_notification_detection():
    timeline = [
        {"status": "processing", "note": "Sipariş Hazırlanıyor"},
        notification_entry("shipped", "2025-12-25T09:00:00+00:00"),
        {**notification_entry("delivered", "2025-12-25T15:00:00+00:00"), "success": False},
    ]

    assert has_status_email_notification(timeline, "shipped")
    assert has_status_email_notification(timeline, "SHIPPED")
    assert not has_status_email_notification(timeline, "processing")
    assert not has_status_email_notification(timeline, "delivered")
    assert not has_status_email_notification(None, "shipped")
