"""
Shared fixtures for the portal test suites.

Key Components:
1. File-backed SQLite per test (thread-safe, so concurrency tests share it)
2. Wired portal services and account/actor factories
3. FastAPI TestClient plus a small driver for the session/CSRF dance
"""

import logging
import uuid
from typing import Any, Dict, Optional

import pytest
from fastapi.testclient import TestClient

from config import Config
from database import build_engine, build_session_factory, create_tables
from portal_server import create_app
from services.authorization_gate import Actor
from services.service_container import build_services

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

ALICE_FORM = {
    "fullName": "Alice Smith",
    "idNumber": "9001015800087",
    "accountNumber": "12345678",
    "username": "alice",
    "password": "Password1!",
}

BOB_FORM = {
    "fullName": "Bob Jones",
    "idNumber": "8502025800081",
    "accountNumber": "22334455",
    "username": "bob",
    "password": "Password2!",
}


def payment_form(**overrides) -> Dict[str, Any]:
    form = {
        "amount": "100.00",
        "currency": "ZAR",
        "payeeAccount": "87654321",
        "swiftBic": "ABCDUS33",
        "idempotencyKey": str(uuid.uuid4()),
    }
    form.update(overrides)
    return form


@pytest.fixture(autouse=True)
def _portal_config(monkeypatch):
    """Rate limiting off unless a test turns it on; development error detail"""
    monkeypatch.setattr(Config, "RATE_LIMITING_ENABLED", False)
    monkeypatch.setattr(Config, "IS_PRODUCTION", False)
    monkeypatch.setattr(Config, "COOKIE_SECURE", False)


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'portal.db'}", echo=False)
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def services(session_factory):
    return build_services(session_factory)


@pytest.fixture
def alice(services) -> Actor:
    return Actor.from_account(services.accounts.register_customer(None, ALICE_FORM))


@pytest.fixture
def bob(services) -> Actor:
    return Actor.from_account(services.accounts.register_customer(None, BOB_FORM))


@pytest.fixture
def staff(services) -> Actor:
    services.accounts.seed_staff_accounts()
    seed = Config.SEED_STAFF[0]
    account = services.store.run(
        "find_seed_staff",
        lambda session: services.store.find_account_by_username_and_account_number(
            session, seed["username"], seed["account_number"]
        ),
    )
    return Actor.from_account(account)


@pytest.fixture
def app(session_factory, services):
    return create_app(session_factory=session_factory, services=services)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


class PortalDriver:
    """Drives one browser-like client through the session and CSRF transport"""

    def __init__(self, client: TestClient):
        self.client = client

    def csrf(self) -> str:
        response = self.client.get("/session/csrf")
        assert response.status_code == 200, response.text
        return response.json()["csrfToken"]

    def csrf_headers(self) -> Dict[str, str]:
        token = self.client.cookies.get(Config.CSRF_TOKEN_COOKIE_NAME)
        return {Config.CSRF_HEADER_NAME: token} if token else {}

    def register(self, form: Optional[Dict[str, Any]] = None):
        self.csrf()
        return self.client.post("/accounts", json=form or ALICE_FORM, headers=self.csrf_headers())

    def login(self, username: str, account_number: str, password: str):
        self.csrf()
        return self.client.post(
            "/session",
            json={"username": username, "accountNumber": account_number, "password": password},
            headers=self.csrf_headers(),
        )

    def login_staff(self):
        seed = Config.SEED_STAFF[0]
        response = self.login(seed["username"], seed["account_number"], Config.SEED_STAFF_PASSWORD)
        assert response.status_code == 200, response.text
        return response

    def create_payment(self, **overrides):
        return self.client.post("/payments", json=payment_form(**overrides), headers=self.csrf_headers())

    def verify(self, payment_id: str):
        return self.client.post(f"/payments/{payment_id}/verify", headers=self.csrf_headers())

    def submit(self, payment_id: str):
        return self.client.post(f"/payments/{payment_id}/submit", headers=self.csrf_headers())


@pytest.fixture
def portal(client) -> PortalDriver:
    return PortalDriver(client)


@pytest.fixture
def staff_portal(app, client) -> PortalDriver:
    """Second client on the same app (startup already ran through ``client``)"""
    return PortalDriver(TestClient(app))
