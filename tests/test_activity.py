from datetime import datetime, timedelta

import pytest
from bson import ObjectId

import activity
from database import utcnow
from errors import ValidationFailed
from owners import Guest


def _event(store, created_at, event_type="page_view", guest_id=None, user_id=None):
    store.activities.create({
        "guest_id": guest_id,
        "user_id": user_id,
        "event_type": event_type,
        "data": {},
        "meta": {},
        "created_at": created_at,
    })


def test_classify():
    start = datetime(2025, 3, 1)
    end = datetime(2025, 4, 1)
    first = datetime(2025, 3, 5, 12)
    assert activity.classify(first, None, start, end) == activity.NEW
    assert activity.classify(first, first + timedelta(hours=2), start, end) == activity.NEW
    assert activity.classify(first, first + timedelta(hours=3), start, end) == activity.NEW
    assert activity.classify(first, first + timedelta(hours=4), start, end) == activity.RETURNING
    assert activity.classify(datetime(2025, 1, 1), None, start, end) == activity.RETURNING
    assert activity.classify(datetime(2025, 4, 2), None, start, end) is None
    assert activity.classify(None, None, start, end) is None


def test_weekly_report_cohorts(store):
    now = utcnow()
    user_id = str(ObjectId())
    _event(store, now - timedelta(days=3), guest_id="g1")
    _event(store, now - timedelta(days=3) + timedelta(hours=4), guest_id="g1")
    _event(store, now - timedelta(days=1), guest_id="g2")
    _event(store, now - timedelta(days=30), guest_id="g3")
    _event(store, now - timedelta(days=2), guest_id="g3")
    _event(store, now - timedelta(days=2), event_type="add_to_cart", user_id=user_id)

    report = activity.weekly_report(store, now)

    guests = report["guests"]
    assert guests["unique_count"] == 1
    assert guests["returning_count"] == 2
    assert guests["unique_ids"] == ["g2"]
    assert sorted(guests["returning_ids"]) == ["g1", "g3"]
    assert guests["breakdown"]["unique"]["page_view"] == 1
    assert guests["breakdown"]["returning"]["page_view"] == 3

    registered = report["registered"]
    assert registered["active_count"] == 1
    assert registered["new_ids"] == [user_id]
    assert registered["breakdown"]["new"]["add_to_cart"] == 1
    assert report["events"] == {"add_to_cart": 1, "order_placed": 0, "page_view": 4}


def test_event_with_both_ids_counts_for_the_user(store):
    now = utcnow()
    user_id = str(ObjectId())
    _event(store, now - timedelta(hours=5), event_type="order_placed", guest_id="g9", user_id=user_id)

    report = activity.weekly_report(store, now)
    assert report["guests"]["breakdown"]["unique"]["order_placed"] == 0
    assert report["registered"]["breakdown"]["new"]["order_placed"] == 1
    assert report["guests"]["unique_count"] == 1


def test_monthly_report_uses_calendar_months(store):
    now = datetime(2025, 3, 20)
    _event(store, datetime(2025, 2, 10), guest_id="a")
    _event(store, datetime(2025, 3, 5), guest_id="a")
    _event(store, datetime(2025, 3, 10), guest_id="b")

    breakdown = activity.monthly_report(store, now)["breakdown"]
    assert list(breakdown) == ["2025-02", "2025-03"]
    assert breakdown["2025-02"]["unique_guests"] == 0
    assert breakdown["2025-02"]["returning_guests"] == 1
    assert breakdown["2025-03"]["unique_guests"] == 1
    assert breakdown["2025-03"]["returning_guests"] == 1
    assert breakdown["2025-03"]["unique_guest_ids"] == ["b"]
    assert breakdown["2025-03"]["page_view"] == 2


def test_month_bounds_wraps_december():
    assert activity.month_bounds("2024-12") == (datetime(2024, 12, 1), datetime(2025, 1, 1))


def test_log_event_requires_event_type(services):
    with pytest.raises(ValidationFailed):
        activity.log_event(services, {"guest_id": "g1"})


def test_log_event_enriches_request_details(services):
    services.geo.location = {"ip": "8.8.8.8", "city": "Lahore", "country": "Pakistan"}
    headers = {
        "x-forwarded-for": "8.8.8.8, 10.0.0.1",
        "user-agent": "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X)",
    }
    doc = activity.log_event(services, {"event_type": "page_view", "guest_id": "g1", "path": "/home"},
                             headers=headers, peer="127.0.0.1")
    assert doc["url"] == "/home"
    assert doc["meta"]["ip"] == "8.8.8.8"
    assert doc["meta"]["os_name"] == "iOS"
    assert doc["meta"]["first_visit"] is True

    assert services.tasks.run_pending() == 1
    stored = services.store.activities.get(doc["_id"])
    assert stored["meta"]["location"]["city"] == "Lahore"

    second = activity.log_event(services, {"event_type": "page_view", "guest_id": "g1"}, headers=headers)
    assert "first_visit" not in second["meta"]


def test_checkout_page_view_carries_cart(services, flat_product):
    services.store.carts.create({
        "user_id": None, "guest_id": "g1", "product_id": str(flat_product["_id"]),
        "selected_image": "a.jpg", "selected_size": None, "quantity": 2,
    })
    doc = activity.log_event(services, {"event_type": "page_view", "guest_id": "g1", "url": "/checkout"})
    assert doc["data"]["cart_snapshot"][0]["quantity"] == 2


def test_record_event_swallows_failures(services, monkeypatch):
    def broken(_):
        raise RuntimeError("db down")

    monkeypatch.setattr(services.store.activities, "create", broken)
    activity.record_event(services, "add_to_cart", Guest("g1"), {}, {})
