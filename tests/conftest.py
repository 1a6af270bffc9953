"""
Test fixtures for the Carbon Market API test suite.

  - db_engine / session_factory: Fresh in-memory SQLite database per test
  - fake_gateway: In-memory stand-in for Stripe's PaymentIntent API
  - client: Async HTTP test client (unauthenticated)
  - authenticated_client / second_authenticated_client: MEMBER users
  - admin_client: an ADMIN user
  - create_project: submits and (optionally) approves a project
  - send_webhook: posts a correctly signed Stripe event
  - failing_commits: switches request sessions to ones whose commit fails

Each authenticated fixture is its own AsyncClient, so one test can act as
several users without the Authorization headers overwriting each other.

Webhooks are signed with Stripe's real scheme (t=<ts>,v1=HMAC-SHA256) and
verified by the real stripe library; only outbound API calls are faked.
"""

import hashlib
import hmac
import itertools
import json
import os
import time
import uuid

# Settings are read at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key-do-not-use-in-production")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_dummy")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from carbon_market.database import Base, get_db
from carbon_market.exceptions import UpstreamPaymentError
from carbon_market.main import app
from carbon_market.models.user import User, UserType
from carbon_market.services.payment_gateway import (
    PaymentIntentResult,
    StripeGateway,
    get_payment_gateway,
)


TEST_DATABASE_URL = "sqlite+aiosqlite://"
WEBHOOK_SECRET = "whsec_test_fixture_secret"


class FakeGateway(StripeGateway):
    """
    StripeGateway with the network calls replaced.

    Webhook verification is inherited unchanged, so signatures are checked
    exactly as in production.

    Attributes:
        intents: payment intent id -> creation parameters
        canceled: ids successfully cancelled
        refuse_cancel: ids whose cancellation is refused (payment succeeded)
        fail_create: make the next create_payment_intent calls fail
    """

    def __init__(self):
        super().__init__(api_key="sk_test_fake", webhook_secret=WEBHOOK_SECRET)
        self._ids = itertools.count(1)
        self.intents: dict[str, dict] = {}
        self.canceled: list[str] = []
        self.refuse_cancel: set[str] = set()
        self.fail_create = False

    async def create_payment_intent(self, amount_cents, currency, metadata, payment_method=None):
        if self.fail_create:
            raise UpstreamPaymentError("Payment processor request failed")
        intent_id = f"pi_test_{next(self._ids)}"
        self.intents[intent_id] = {
            "amount": amount_cents,
            "currency": currency,
            "metadata": metadata,
            "payment_method": payment_method,
        }
        return PaymentIntentResult(id=intent_id, client_secret=f"{intent_id}_secret_test")

    async def cancel_payment_intent(self, payment_intent_id):
        if payment_intent_id in self.refuse_cancel:
            return False
        self.canceled.append(payment_intent_id)
        return True


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header for a raw body."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, payment_intent_id: str, event_id: str | None = None) -> str:
    """Serialize a minimal Stripe event for a PaymentIntent."""
    return json.dumps({
        "id": event_id or f"evt_{uuid.uuid4().hex}",
        "object": "event",
        "type": event_type,
        "data": {"object": {"id": payment_intent_id, "object": "payment_intent"}},
    })


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables for each test."""
    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    """Session factory for inspecting or arranging database state directly."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest_asyncio.fixture
async def client_factory(session_factory, fake_gateway):
    """
    Build AsyncClients wired to the test database and the fake gateway.

    get_db is overridden with the same commit/rollback semantics as
    production, so a failing request leaves no partial writes.
    """

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: fake_gateway

    clients = []

    def make(token: str | None = None) -> AsyncClient:
        ac = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        if token:
            ac.headers["Authorization"] = f"Bearer {token}"
        clients.append(ac)
        return ac

    yield make

    for ac in clients:
        await ac.aclose()
    app.dependency_overrides.clear()


class CommitFailingSession(AsyncSession):
    """A session whose commit fails, as when the database drops the connection."""

    async def commit(self):
        raise OperationalError("COMMIT", None, Exception("disk I/O error"))


@pytest.fixture
def failing_commits(db_engine, client_factory):
    """
    Call with True to give later requests a session whose commit fails,
    and with False to restore the normal session.
    """
    broken = async_sessionmaker(db_engine, class_=CommitFailingSession, expire_on_commit=False)
    healthy = app.dependency_overrides[get_db]

    async def override_get_db():
        async with broken() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    def switch(enabled: bool = True) -> None:
        app.dependency_overrides[get_db] = override_get_db if enabled else healthy

    return switch


@pytest_asyncio.fixture
async def client(client_factory):
    """Unauthenticated test client."""
    return client_factory()


async def _signup(client: AsyncClient, email: str, password: str, first: str, last: str) -> dict:
    response = await client.post(
        "/auth/signup",
        json={"email": email, "password": password, "first_name": first, "last_name": last},
    )
    assert response.status_code == 201, f"Signup failed: {response.text}"
    return response.json()


@pytest_asyncio.fixture
async def authenticated_client(client, client_factory):
    """A MEMBER user, signed up through the real endpoint."""
    data = await _signup(client, "testuser@example.com", "SecurePass123!", "Test", "User")
    ac = client_factory(data["token"])
    ac.user_id = data["user_id"]
    return ac


@pytest_asyncio.fixture
async def second_authenticated_client(client, client_factory):
    """A second MEMBER user for cross-user tests."""
    data = await _signup(client, "seconduser@example.com", "SecurePass456!", "Second", "User")
    ac = client_factory(data["token"])
    ac.user_id = data["user_id"]
    return ac


@pytest_asyncio.fixture
async def admin_client(client, client_factory, session_factory):
    """
    An ADMIN user.

    Signs up normally, then is promoted directly in the database, the way
    an operator provisions administrators.
    """
    data = await _signup(client, "admin@example.com", "AdminPass123!", "Admin", "User")
    async with session_factory() as session:
        await session.execute(
            update(User)
            .where(User.id == uuid.UUID(data["user_id"]))
            .values(user_type=UserType.ADMIN)
        )
        await session.commit()

    login = await client.post(
        "/auth/login",
        json={"email": "admin@example.com", "password": "AdminPass123!"},
    )
    ac = client_factory(login.json()["token"])
    ac.user_id = data["user_id"]
    return ac


@pytest_asyncio.fixture
async def project_owner_client(client, client_factory):
    """The member who submits projects (a developer, not a buyer)."""
    data = await _signup(client, "developer@example.com", "DevPass123!", "Project", "Developer")
    ac = client_factory(data["token"])
    ac.user_id = data["user_id"]
    return ac


@pytest.fixture
def project_payload():
    def build(**overrides) -> dict:
        payload = {
            "title": "Amazon Basin Reforestation",
            "description": (
                "Restoring degraded pasture land in the Amazon basin with native "
                "species to sequester carbon and rebuild habitat."
            ),
            "location": "Para",
            "country": "Brazil",
            "project_type": "REFORESTATION",
            "standard": "VCS",
            "methodology": "VM0047",
            "estimated_credits": 10,
            "price_per_credit_cents": 1500,
        }
        payload.update(overrides)
        return payload

    return build


@pytest_asyncio.fixture
async def create_project(project_owner_client, admin_client, project_payload):
    """
    Submit a project and, unless approve=False, approve it so its credits
    are minted. Returns the project JSON.
    """

    async def create(approve: bool = True, **overrides) -> dict:
        response = await project_owner_client.post("/projects", json=project_payload(**overrides))
        assert response.status_code == 201, response.text
        project = response.json()
        if approve:
            verify = await admin_client.post(
                f"/projects/{project['id']}/verify",
                json={"decision": "APPROVED", "comments": "Documentation complete"},
            )
            assert verify.status_code == 200, verify.text
            project = verify.json()["project"]
        return project

    return create


@pytest_asyncio.fixture
async def send_webhook(client):
    """Post a signed Stripe event; returns the response."""

    async def send(event_type: str, payment_intent_id: str, event_id: str | None = None):
        payload = make_event(event_type, payment_intent_id, event_id)
        return await client.post(
            "/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": sign_payload(payload), "Content-Type": "application/json"},
        )

    return send


@pytest_asyncio.fixture
async def checkout(authenticated_client, fake_gateway):
    """
    Start a checkout as the authenticated member. Returns the response JSON
    plus the payment intent id the fake gateway issued.
    """

    async def start(project_id: str, amount: int) -> dict:
        response = await authenticated_client.post(
            "/payments", json={"project_id": project_id, "amount": amount}
        )
        assert response.status_code == 201, response.text
        data = response.json()
        data["payment_intent_id"] = data["client_secret"].split("_secret_")[0]
        return data

    return start
