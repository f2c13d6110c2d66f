"""
Tests for the home page, error pages and session handling across requests.
"""
from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, login


def test_unknown_route_renders_404_page(client):
    response = client.get("/no/such/page", headers={"Accept": "text/html"})

    assert response.status_code == 404
    assert "Page Not Found" in response.text
    assert "Back to Home" in response.text


def test_unknown_route_json_for_api_callers(client):
    response = client.get("/no/such/page", headers={"Accept": "application/json"})

    assert response.status_code == 404
    assert response.json() == {"detail": "Not Found"}


def test_login_required_json_for_api_callers(client):
    response = client.get("/account", headers={"Accept": "application/json"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Please log in to continue"


def test_home_shows_profile(admin_client):
    response = admin_client.get("/")

    assert response.status_code == 200
    assert "Welcome, Ada Admin" in response.text
    assert "AA" in response.text


def test_session_reused_within_cache_window(client, provider):
    login(client, ADMIN_EMAIL, ADMIN_PASSWORD)

    client.get("/")
    client.get("/")

    # Sign-in primed the cache, so no verification call was needed
    assert provider.count("GET", "/auth/v1/user") == 0


def test_revoked_session_is_cleared(admin_client, provider, session_cache):
    for token in list(provider.access_tokens):
        provider.revoke(token)
    session_cache.clear()

    response = admin_client.get("/", follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/login"
    # Cookie no longer holds the session: the login page renders
    assert admin_client.get("/login", follow_redirects=False).status_code == 200


def test_provider_outage_keeps_session(admin_client, provider, session_cache):
    session_cache.clear()
    provider.fail("GET", "/auth/v1/user", 503, {"msg": "upstream unavailable"})

    response = admin_client.get("/", headers={"Accept": "text/html"}, follow_redirects=False)

    assert response.status_code == 503
    assert "Service Unavailable" in response.text

    provider.recover("GET", "/auth/v1/user")
    response = admin_client.get("/", follow_redirects=False)

    assert response.status_code == 200
    assert "Welcome, Ada Admin" in response.text


def test_provider_outage_json_for_api_callers(admin_client, provider, session_cache):
    session_cache.clear()
    provider.fail("GET", "/auth/v1/user", 500, {"msg": "internal error"})

    response = admin_client.get("/account", headers={"Accept": "application/json"})

    assert response.status_code == 503
    assert "temporarily unavailable" in response.json()["detail"]


def test_request_id_header(client):
    response = client.get("/health")
    assert len(response.headers["X-Request-ID"]) == 8


def test_forwarded_request_id_is_reused(client):
    response = client.get("/health", headers={"X-Request-ID": "edge-42"})
    assert response.headers["X-Request-ID"] == "edge-42"


def test_malformed_request_id_is_replaced(client):
    response = client.get("/health", headers={"X-Request-ID": "bad id <script>"})
    assert response.headers["X-Request-ID"] != "bad id <script>"
