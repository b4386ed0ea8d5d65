import shutil

import pytest
from fastapi.testclient import TestClient

from natours.config import PACKAGE_DIR, Settings
from natours.dependencies import (
    get_booking_store,
    get_review_store,
    get_tour_store,
    get_user_store,
)
from natours.main import create_app
from natours.models.booking import CheckoutSession
from natours.payments import CheckoutGateway, get_checkout_gateway
from natours.storage import JsonCollection

WEBHOOK_SECRET = "whsec_test_secret"

FOREST_HIKER_ID = "5c88fa8cf4afda39709c2951"
SEA_EXPLORER_ID = "5c88fa8cf4afda39709c2955"
SNOW_ADVENTURER_ID = "5c88fa8cf4afda39709c295a"
ADMIN_ID = "5c8a1d5b0190b214360dc057"
LOULOU_ID = "5c8a1dfa2f8fb814b56fa181"

# ────────────────────────────────────────────────
# Settings and data
# ────────────────────────────────────────────────

@pytest.fixture
def data_dir(tmp_path):
    """Copy the seed JSON documents into a temporary directory."""
    target = tmp_path / "data"
    shutil.copytree(PACKAGE_DIR / "data", target)
    return target


@pytest.fixture
def settings(data_dir):
    """Production settings pointed at the temporary data directory."""
    return Settings(
        environment="production",
        data_dir=data_dir,
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        mapbox_access_token="pk.test",
    )


@pytest.fixture
def stores(data_dir):
    return {
        "tours": JsonCollection(data_dir / "tours.json"),
        "users": JsonCollection(data_dir / "users.json"),
        "reviews": JsonCollection(data_dir / "reviews.json"),
        "bookings": JsonCollection(data_dir / "bookings.json"),
    }

# ────────────────────────────────────────────────
# Payment gateway
# ────────────────────────────────────────────────

class FakeCheckoutGateway(CheckoutGateway):
    """Records checkout requests instead of calling Stripe; webhook verification is real."""

    def __init__(self, webhook_secret: str):
        super().__init__(secret_key="sk_test_123", webhook_secret=webhook_secret)
        self.sessions = []

    def create_checkout_session(self, **kwargs):
        self.sessions.append(kwargs)
        session_id = f"cs_test_{len(self.sessions)}"
        return CheckoutSession(id=session_id, url=f"https://checkout.stripe.com/c/pay/{session_id}")


@pytest.fixture
def gateway():
    return FakeCheckoutGateway(WEBHOOK_SECRET)

# ────────────────────────────────────────────────
# Application and client
# ────────────────────────────────────────────────

def build_app(settings, stores, gateway):
    app = create_app(settings)
    app.dependency_overrides[get_tour_store] = lambda: stores["tours"]
    app.dependency_overrides[get_user_store] = lambda: stores["users"]
    app.dependency_overrides[get_review_store] = lambda: stores["reviews"]
    app.dependency_overrides[get_booking_store] = lambda: stores["bookings"]
    app.dependency_overrides[get_checkout_gateway] = lambda: gateway
    return app


@pytest.fixture
def app(settings, stores, gateway):
    return build_app(settings, stores, gateway)


@pytest.fixture
def test_client(app):
    """Return a TestClient instance for API testing."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def make_client(settings, stores, gateway):
    """Build clients for apps with overridden settings; server errors become responses."""
    clients = []

    def factory(**overrides):
        app = build_app(settings.model_copy(update=overrides), stores, gateway)
        client = TestClient(app, raise_server_exceptions=False)
        client.__enter__()
        clients.append(client)
        return client

    yield factory
    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def dev_client(make_client):
    """A client for an app running in development mode."""
    return make_client(environment="development")


@pytest.fixture
def logged_in_client(test_client):
    test_client.cookies.set("user_id", LOULOU_ID)
    return test_client
