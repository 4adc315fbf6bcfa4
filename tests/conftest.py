from dataclasses import replace

import mongomock
import pytest
from fastapi.testclient import TestClient

from dependencies import build_services
from main import create_app
from security import create_token, hash_password
from settings import Settings


class FakeMailer:
    def __init__(self):
        self.sent = []
        self.fail = False

    def _record(self, kind, *args):
        if self.fail:
            raise RuntimeError("mail provider down")
        self.sent.append((kind,) + args)

    def send_otp(self, email, otp):
        self._record("otp", email, otp)

    def send_discount_code(self, email, code):
        self._record("discount", email, code)

    def send_password_reset(self, email, token):
        self._record("reset", email, token)

    def send_order_confirmation(self, order, lines):
        self._record("order", order, lines)

    def send_campaign(self, subject, body_html, recipients):
        self._record("campaign", subject, body_html, recipients)

    def of_kind(self, kind):
        return [m for m in self.sent if m[0] == kind]


class FakeGeo:
    def __init__(self, location=None):
        self.location = location
        self.lookups = []

    def lookup(self, ip):
        self.lookups.append(ip)
        return self.location


@pytest.fixture
def settings():
    return Settings(jwt_secret="test-secret", dashboard_secret=None)


@pytest.fixture
def db():
    return mongomock.MongoClient()["storefront_test"]


@pytest.fixture
def services(settings, db):
    services = build_services(settings, db)
    services.mailer = FakeMailer()
    services.geo = FakeGeo()
    return services


@pytest.fixture
def store(services):
    return services.store


@pytest.fixture
def client(services):
    return TestClient(create_app(services))


@pytest.fixture
def make_client(settings, db):
    def _make(**overrides):
        services = build_services(replace(settings, **overrides), db)
        services.mailer = FakeMailer()
        services.geo = FakeGeo()
        return TestClient(create_app(services))
    return _make


@pytest.fixture
def make_user(store, settings):
    def _make(email="shopper@example.com", role="user", password="secret123", username="shopper"):
        user = store.users.create({
            "username": username,
            "email": email,
            "password": hash_password(password),
            "role": role,
            "profileImage": None,
        })
        return user, {"Authorization": f"Bearer {create_token(user['_id'], settings)}"}
    return _make


@pytest.fixture
def user_headers(make_user):
    return make_user()[1]


@pytest.fixture
def admin_headers(make_user):
    return make_user(email="admin@example.com", role="admin", username="admin")[1]


@pytest.fixture
def category(store):
    return store.categories.create({"name": "Watches", "parent_category": None, "subcategories": [], "image": ""})


@pytest.fixture
def flat_product(store, category):
    return store.products.create({
        "product_name": "Steel Chronograph",
        "product_base_price": 100.0,
        "product_discounted_price": 90.0,
        "product_stock": 10,
        "sizes": [],
        "product_images": ["a.jpg", "b.jpg"],
        "category": str(category["_id"]),
        "subcategories": [],
        "brand_name": "Tempo",
        "product_code": "W-001",
        "shipping": 5.0,
    })


@pytest.fixture
def sized_product(store, category):
    return store.products.create({
        "product_name": "Runner",
        "product_base_price": 60.0,
        "product_discounted_price": 50.0,
        "product_stock": 0,
        "sizes": [{"size": "M", "stock": 2}, {"size": "L", "stock": 0}],
        "product_images": ["runner.jpg"],
        "category": str(category["_id"]),
        "subcategories": [],
        "brand_name": "Stride",
        "product_code": "S-001",
        "shipping": 0.0,
    })
