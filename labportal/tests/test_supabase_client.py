"""
Tests for the provider HTTP client.
"""
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from conftest import ADMIN_EMAIL, ADMIN_ID, ADMIN_PASSWORD
from fake_provider import ANON_KEY, URL
from labportal.clients.supabase_client import SupabaseClient, extract_error_message
from labportal.core.exceptions import ProviderConnectionError, ProviderError


class TestExtractErrorMessage:

    def test_prefers_error_description(self):
        body = {"error": "invalid_grant", "error_description": "Invalid login credentials"}
        assert extract_error_message(body, "fallback") == "Invalid login credentials"

    def test_msg_then_message(self):
        assert extract_error_message({"msg": "invalid JWT"}, "fallback") == "invalid JWT"
        assert extract_error_message({"message": "relation missing"}, "fallback") == "relation missing"

    def test_plain_text_body(self):
        assert extract_error_message("Bad Gateway", "fallback") == "Bad Gateway"

    def test_fallback(self):
        assert extract_error_message({"code": 500}, "fallback") == "fallback"
        assert extract_error_message(None, "fallback") == "fallback"


def test_requires_url_and_key():
    with pytest.raises(ValueError):
        SupabaseClient("", ANON_KEY)
    with pytest.raises(ValueError):
        SupabaseClient(URL, "")


@pytest.mark.asyncio
async def test_headers_use_user_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.headers)
        return httpx.Response(200, json=[])

    async with SupabaseClient(URL, ANON_KEY, transport=httpx.MockTransport(handler)) as client:
        await client.table("users", "user-token").select("id").execute()
        assert seen["apikey"] == ANON_KEY
        assert seen["authorization"] == "Bearer user-token"

        await client.table("users").select("id").execute()
        assert seen["authorization"] == f"Bearer {ANON_KEY}"


@pytest.mark.asyncio
async def test_sign_in_returns_session(supabase_client):
    session = await supabase_client.auth.sign_in_with_password(ADMIN_EMAIL, ADMIN_PASSWORD)

    assert session.user.id == ADMIN_ID
    assert session.expires_at is not None
    assert not session.is_expired()


@pytest.mark.asyncio
async def test_provider_error_carries_status_and_body(supabase_client):
    with pytest.raises(ProviderError) as exc:
        await supabase_client.auth.sign_in_with_password(ADMIN_EMAIL, "wrong")

    assert exc.value.detail == "Invalid login credentials"
    assert exc.value.provider_status == 400
    assert exc.value.body["error"] == "invalid_grant"


@pytest.mark.asyncio
async def test_connection_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with SupabaseClient(URL, ANON_KEY, transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(ProviderConnectionError):
            await client.auth.health()


@pytest.mark.asyncio
async def test_select_columns_and_filters(supabase_client, provider):
    token = provider.sign_in(ADMIN_ID)["access_token"]

    rows = await supabase_client.table("users", token).select("id, name").eq("user_id", ADMIN_ID).execute()

    assert rows == [{"id": 1, "name": "Ada Admin"}]


@pytest.mark.asyncio
async def test_single_and_maybe_single(supabase_client, provider):
    token = provider.sign_in(ADMIN_ID)["access_token"]

    assert await supabase_client.table("users", token).select("*").eq("id", 999).maybe_single() is None

    with pytest.raises(ProviderError) as exc:
        await supabase_client.table("users", token).select("*").eq("id", 999).single()
    assert exc.value.provider_status == 406

    with pytest.raises(ProviderError):
        # Both seeded users match
        await supabase_client.table("users", token).select("*").maybe_single()


@pytest.mark.asyncio
async def test_update_returns_rows(supabase_client, provider):
    token = provider.sign_in(ADMIN_ID)["access_token"]

    rows = await supabase_client.table("users", token).update({"name": "Ada L."}).eq("id", 1).execute()

    assert rows[0]["name"] == "Ada L."


def test_public_url(supabase_client):
    assert (
        supabase_client.storage.get_public_url("avatars", "u/1.png")
        == f"{URL}/storage/v1/object/public/avatars/u/1.png"
    )


@pytest.mark.asyncio
async def test_recover_sends_redirect(supabase_client):
    with patch.object(supabase_client, "request", new_callable=AsyncMock) as mock_request:
        mock_request.return_value = {}

        await supabase_client.auth.reset_password_for_email("a@example.com", redirect_to="http://site/reset-password")

        mock_request.assert_called_once_with(
            "POST",
            "/auth/v1/recover",
            params={"redirect_to": "http://site/reset-password"},
            json={"email": "a@example.com"},
        )


@pytest.mark.asyncio
async def test_upload_headers(supabase_client):
    with patch.object(supabase_client, "request", new_callable=AsyncMock) as mock_request:
        await supabase_client.storage.upload("avatars", "u/1.png", b"img", "image/png", access_token="t", upsert=True)

        _, kwargs = mock_request.call_args
        assert kwargs["headers"] == {
            "Content-Type": "image/png",
            "Cache-Control": "max-age=3600",
            "x-upsert": "true",
        }
