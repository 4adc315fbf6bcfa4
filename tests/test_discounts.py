from datetime import timedelta

import pytest

import discounts
from database import utcnow
from errors import Conflict, StoreError, ValidationFailed


def test_issue_creates_eight_char_code(store):
    doc = discounts.issue(store.discount_codes, " Buyer@Example.com ")
    assert doc["email"] == "buyer@example.com"
    assert len(doc["code"]) == 8
    assert doc["code"] == doc["code"].upper()
    assert doc["isUsed"] is False


def test_second_issue_while_active_conflicts(store):
    discounts.issue(store.discount_codes, "buyer@example.com")
    with pytest.raises(Conflict):
        discounts.issue(store.discount_codes, "buyer@example.com")


def test_issue_again_after_expiry(store):
    past = utcnow() - timedelta(days=8)
    discounts.issue(store.discount_codes, "buyer@example.com", now=past)
    discounts.issue(store.discount_codes, "buyer@example.com")
    assert store.discount_codes.count({"email": "buyer@example.com"}) == 2


def test_check_messages(store):
    doc = discounts.issue(store.discount_codes, "buyer@example.com")
    assert discounts.check(store.discount_codes, "buyer@example.com", "nope0000") == (None, discounts.INVALID)
    assert discounts.check(store.discount_codes, "other@example.com", doc["code"])[1] == discounts.INVALID

    found, message = discounts.check(store.discount_codes, "BUYER@example.com", doc["code"].lower())
    assert message == discounts.VALID
    assert found["_id"] == doc["_id"]

    later = utcnow() + timedelta(days=8)
    assert discounts.check(store.discount_codes, "buyer@example.com", doc["code"], now=later)[1] == discounts.EXPIRED


def test_redeem_is_single_use(store):
    doc = discounts.issue(store.discount_codes, "buyer@example.com")
    assert discounts.redeem(store.discount_codes, "buyer@example.com", doc["code"]) == doc["code"]
    with pytest.raises(ValidationFailed) as exc:
        discounts.redeem(store.discount_codes, "buyer@example.com", doc["code"])
    assert exc.value.message == discounts.ALREADY_USED


def test_apply_discount():
    assert discounts.apply_discount(200.0) == 180.0
    assert discounts.apply_discount(19.99) == 17.99


def test_issue_retries_on_code_collision(store, monkeypatch):
    store.discount_codes.collection.create_index("code", unique=True)
    codes = iter(["AAAA1111", "AAAA1111", "BBBB2222"])
    monkeypatch.setattr(discounts, "generate_code", lambda: next(codes))

    assert discounts.issue(store.discount_codes, "one@example.com")["code"] == "AAAA1111"
    assert discounts.issue(store.discount_codes, "two@example.com")["code"] == "BBBB2222"


def test_issue_gives_up_after_repeated_collisions(store, monkeypatch):
    store.discount_codes.collection.create_index("code", unique=True)
    monkeypatch.setattr(discounts, "generate_code", lambda: "AAAA1111")
    discounts.issue(store.discount_codes, "one@example.com")
    with pytest.raises(StoreError):
        discounts.issue(store.discount_codes, "two@example.com")
    assert store.discount_codes.count() == 1
