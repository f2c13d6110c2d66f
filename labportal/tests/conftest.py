"""
Shared pytest fixtures.

The hosted provider is replaced by FakeSupabase behind an httpx
MockTransport; the app under test is the real one, with the provider
client, session cache and invite service swapped in through
app.dependency_overrides.

Fixture Hierarchy:
    provider → supabase_client → services → test_app → client → admin_client / user_client
"""
import os

import pytest
from fastapi.testclient import TestClient

# Configuration must exist before any labportal import
os.environ.setdefault("SUPABASE_URL", "https://project.supabase.test")
os.environ.setdefault("SUPABASE_ANON_KEY", "anon-key")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "service-role-key-0123456789")
os.environ.setdefault("LABPORTAL_SECRET_KEY", "test-secret-key-for-signing-session-cookies")

from fake_provider import ANON_KEY, SERVICE_KEY, URL, FakeSupabase

from labportal.clients.supabase_client import SupabaseClient
from labportal.core import dependencies as deps
from labportal.main import create_app
from labportal.services import (
    AuthService,
    InviteService,
    PatientService,
    ProfileService,
    SessionCache,
)
from labportal.services.notifications import Notifier

ADMIN_ID = "11111111-aaaa-4aaa-8aaa-111111111111"
ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-pass"

USER_ID = "22222222-bbbb-4bbb-8bbb-222222222222"
USER_EMAIL = "client@example.com"
USER_PASSWORD = "client-pass"

PATIENT_ID = 7


class FakeClock:
    """Manually advanced time source for the session cache."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def provider():
    """Fake provider seeded with an admin, a regular user and one patient."""
    fake = FakeSupabase()
    fake.add_user(ADMIN_EMAIL, ADMIN_PASSWORD, user_id=ADMIN_ID)
    fake.add_user(USER_EMAIL, USER_PASSWORD, user_id=USER_ID)
    fake.add_row(
        "users", id=1, user_id=ADMIN_ID, name="Ada Admin", email=ADMIN_EMAIL,
        avatar_url=None, role="admin", created_at="2024-01-15T10:30:00+00:00", last_modified=None,
    )
    fake.add_row(
        "users", id=2, user_id=USER_ID, name="Carl Client", email=USER_EMAIL,
        avatar_url=None, role="client", created_at="2024-02-01T08:00:00+00:00", last_modified=None,
    )
    fake.add_row(
        "patients", id=PATIENT_ID, reference_id="PAT-0007", first_name="John", last_name="Doe",
        gender="Male", date_of_birth="1980-04-12", created_at="2024-03-01T09:00:00+00:00", last_modified=None,
    )
    return fake


@pytest.fixture
def supabase_client(provider):
    """Real client wired to the fake provider."""
    return SupabaseClient(URL, ANON_KEY, transport=provider.transport)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_cache(supabase_client):
    return SessionCache(supabase_client, ttl=2.0)


@pytest.fixture
def auth_service(supabase_client, session_cache):
    return AuthService(supabase_client, session_cache, reset_redirect_url="http://localhost:8000/reset-password")


@pytest.fixture
def profile_service(supabase_client):
    return ProfileService(supabase_client)


@pytest.fixture
def patient_service(supabase_client):
    return PatientService(supabase_client)


@pytest.fixture
def invite_service(provider):
    return InviteService(URL, SERVICE_KEY, transport=provider.transport)


@pytest.fixture
def notifier():
    """Notifier over a plain dict, as the cookie session would be."""
    return Notifier({})


@pytest.fixture
def test_app(supabase_client, session_cache, invite_service):
    """
    Create the real app with the provider swapped out.

    Routers, middleware and exception handlers are the production ones.
    """
    app = create_app()

    app.dependency_overrides[deps.get_supabase_client] = lambda: supabase_client
    app.dependency_overrides[deps.get_session_cache] = lambda: session_cache
    app.dependency_overrides[deps.get_invite_service] = lambda: invite_service

    yield app

    app.dependency_overrides.clear()
    deps.reset_dependencies()


@pytest.fixture
def client(test_app):
    """Test client; the cookie jar carries the signed session."""
    return TestClient(test_app)


def login(client: TestClient, email: str, password: str):
    return client.post("/login", data={"email": email, "password": password}, follow_redirects=False)


@pytest.fixture
def admin_client(client):
    response = login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    assert response.status_code == 303
    return client


@pytest.fixture
def user_client(client):
    response = login(client, USER_EMAIL, USER_PASSWORD)
    assert response.status_code == 303
    return client
