"""
Shared test setup.

The environment is configured before ``bankcore`` is imported so settings,
the engine and the session factory all point at a throw-away SQLite file.
"""

import os
import tempfile

_TEST_DB_DIR = tempfile.mkdtemp(prefix="bankcore-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_TEST_DB_DIR, "test.db")
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["SIMPLE_PASSWORD_BCRYPT_ROUNDS"] = "4"
os.environ["LOCK_TIMEOUT_SECONDS"] = "30"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["PROVISIONING_API_KEY"] = "test-provisioning-key"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from bankcore.core.security import create_access_token  # noqa: E402
from bankcore.database import Base, SessionLocal, engine, get_db  # noqa: E402
from bankcore.main import app  # noqa: E402
from bankcore.services import notifications  # noqa: E402

API = "/api/v1"
DEFAULT_PIN = "123456"
PROVISIONING_HEADERS = {"X-Provisioning-Key": "test-provisioning-key"}

TestingSessionLocal = SessionLocal


def override_get_db():
    """Override database dependency for testing."""
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db

_client = TestClient(app)


class RecordingSink(notifications.NotificationSink):
    """Keeps (account id, type) of every delivered notification."""

    def __init__(self):
        self.delivered = []

    def deliver(self, notification):
        self.delivered.append((notification.account_id, notification.type.value))

    def types_for(self, account_id):
        return [kind for owner, kind in self.delivered if owner == account_id]


@pytest.fixture(autouse=True)
def setup_database():
    """Create fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def notification_sink(monkeypatch):
    sink = RecordingSink()
    monkeypatch.setattr(notifications.dispatcher, "sink", sink)
    return sink


@pytest.fixture
def client():
    return _client


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def session_factory():
    return TestingSessionLocal


def auth_headers(account_id):
    return {"Authorization": f"Bearer {create_access_token(account_id)}"}


@pytest.fixture
def make_account(client):
    """
    Factory: provision an account, mint its token and register a PIN.

    Returns a dict with ``id``, ``number`` (12 digits), ``formatted`` and ``headers``.
    """
    def _make(owner_name="Test User", balance=0, simple_password=DEFAULT_PIN):
        response = client.post(
            f"{API}/accounts",
            json={"ownerName": owner_name, "initialBalance": balance},
            headers=PROVISIONING_HEADERS
        )
        assert response.status_code == 201, response.text
        data = response.json()
        headers = auth_headers(data["accountId"])
        if simple_password is not None:
            registered = client.post(
                f"{API}/simple-password/register",
                json={"simplePassword": simple_password, "simplePasswordConfirm": simple_password},
                headers=headers
            )
            assert registered.status_code == 201, registered.text
        return {
            "id": data["accountId"],
            "number": data["accountNumber"].replace("-", ""),
            "formatted": data["accountNumber"],
            "headers": headers,
        }

    return _make


@pytest.fixture
def balance_of(client):
    def _balance(account):
        response = client.get(f"{API}/accounts/me", headers=account["headers"])
        assert response.status_code == 200, response.text
        return response.json()["balance"]

    return _balance
