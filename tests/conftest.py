from __future__ import annotations

import os

os.environ["APP_ENV"] = "test"

import datetime as dt  # noqa: E402
from collections.abc import Callable  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from identity_service.api.main import app  # noqa: E402
from identity_service.api.rate_limit import limiter  # noqa: E402
from identity_service.core.security import SessionTokenService  # noqa: E402
from identity_service.db.base_class import Base  # noqa: E402
from identity_service.db.session import SessionLocal, engine  # noqa: E402
from identity_service.models import identity_models  # noqa: E402,F401  (registers tables)
from identity_service.models.schemas import UserOut  # noqa: E402
from identity_service.services.account_repository import AccountRepository  # noqa: E402
from identity_service.services.oauth import (  # noqa: E402
    FacebookOAuthProvider,
    GoogleOAuthProvider,
    HandoffStore,
    IdentityResolver,
    LineOAuthProvider,
    OAuthCoordinator,
)

TEST_JWT_SECRET = "test-secret"

GOOGLE_USERINFO = {
    "id": "g-123",
    "email": "alice@example.com",
    "verified_email": True,
    "name": "Alice Liddell",
    "picture": "https://example.com/alice.png",
}


@pytest.fixture(autouse=True)
def _reset_database_state():
    """Ensure each test sees a fresh database schema."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    limiter.reset()
    yield


@pytest.fixture
def db_session():
    """Provide a database session for tests."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


class RecordingSync:
    """SyncPipeline stand-in that records submitted tasks instead of delivering them."""

    enabled = True
    pending = 0

    def __init__(self):
        self.tasks = []

    def start(self) -> None:
        pass

    def submit(self, task) -> None:
        self.tasks.append(task)

    async def close(self, grace: float = 5.0) -> None:
        pass

    @property
    def actions(self) -> list[str]:
        return [task.action.value for task in self.tasks]


@pytest.fixture
def recording_sync():
    return RecordingSync()


class ProviderTransport:
    """httpx.MockTransport handler that answers token and user-info endpoints by host."""

    def __init__(
        self,
        userinfo: dict | list | None = None,
        token_payload: dict | None = None,
        token_status: int = 200,
        userinfo_status: int = 200,
    ):
        self.userinfo = userinfo if userinfo is not None else dict(GOOGLE_USERINFO)
        self.token_payload = token_payload or {
            "access_token": "access-1",
            "refresh_token": "refresh-1",
            "expires_in": 3600,
            "token_type": "Bearer",
        }
        self.token_status = token_status
        self.userinfo_status = userinfo_status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/token") or path.endswith("/access_token"):
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_grant"})
            return httpx.Response(200, json=self.token_payload)
        if self.userinfo_status != 200:
            return httpx.Response(self.userinfo_status, json={"error": "invalid_token"})
        return httpx.Response(200, json=self.userinfo)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def google_transport():
    return ProviderTransport()


def make_provider(provider_cls, transport: ProviderTransport):
    prefix = provider_cls.name
    return provider_cls(
        client_id=f"{prefix}-client",
        client_secret=f"{prefix}-secret",
        redirect_uri=f"http://testserver/auth/{prefix}/callback",
        transport=transport.transport,
    )


@pytest.fixture
def google_provider(google_transport):
    return make_provider(GoogleOAuthProvider, google_transport)


@pytest.fixture
def handoff_store():
    store = HandoffStore(sweep_interval=None)
    yield store
    store.close()


@pytest.fixture
def token_service():
    return SessionTokenService(secret=TEST_JWT_SECRET, expires_minutes=60)


@pytest.fixture
def coordinator(db_session, google_provider, handoff_store, token_service, recording_sync):
    return OAuthCoordinator(
        providers={"google": google_provider},
        resolver=IdentityResolver(AccountRepository(db_session)),
        tokens=token_service,
        handoff_store=handoff_store,
        sync=recording_sync,
    )


@pytest.fixture
def make_user() -> Callable[..., UserOut]:
    def _make(**overrides) -> UserOut:
        fields = {
            "id": "00000000-0000-0000-0000-000000000001",
            "email": "alice@example.com",
            "username": "alice_1a2b3c4d",
            "display_name": "Alice",
            "role": "user",
            "is_active": True,
            "email_verified": True,
        }
        fields.update(overrides)
        return UserOut(**fields)

    return _make


class FakeClock:
    def __init__(self, start: dt.datetime | None = None):
        self.now = start or dt.datetime(2026, 1, 1, 12, 0, tzinfo=dt.timezone.utc)

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += dt.timedelta(**delta)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client(google_transport, recording_sync):
    """TestClient with Google and Facebook providers on mock transports."""
    with TestClient(app) as test_client:
        app.state.oauth_providers = {
            "google": make_provider(GoogleOAuthProvider, google_transport),
            "facebook": make_provider(FacebookOAuthProvider, ProviderTransport(userinfo={"id": "fb-1", "name": "Bob"})),
            "line": make_provider(LineOAuthProvider, ProviderTransport(userinfo={"userId": "U1", "displayName": "Taro"})),
        }
        app.state.sync_pipeline = recording_sync
        yield test_client
