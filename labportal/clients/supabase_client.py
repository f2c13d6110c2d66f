"""
HTTP client for the hosted Supabase backend.

Wraps the provider's REST endpoints used by LabPortal:

    auth     - /auth/v1      (password sign-in, refresh, user, recover, logout)
    admin    - /auth/v1/admin, /auth/v1/invite (service role key only)
    table    - /rest/v1      (select / insert / update / delete, eq filters, order)
    storage  - /storage/v1   (list, remove, upload, public URLs)

Every call sends the project key as `apikey`. User-scoped calls send the
user's access token as the bearer so row-level security applies; without
one, the project key is the bearer.

Errors are raised as ProviderError carrying the provider's message, status
and parsed body. Transport failures raise ProviderConnectionError.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx

from labportal.core.exceptions import ProviderConnectionError, ProviderError
from labportal.schemas.auth import AuthSession, AuthUser

logger = logging.getLogger(__name__)

# Keys checked, in order, for a human-readable provider message
_MESSAGE_KEYS = ("error_description", "msg", "message", "error")


def extract_error_message(body: Any, fallback: str) -> str:
    """Reduce a provider error body to a single message."""
    if isinstance(body, dict):
        for key in _MESSAGE_KEYS:
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    if isinstance(body, str) and body:
        return body
    return fallback


class SupabaseClient:
    """Async client for one Supabase project and one API key."""

    def __init__(
        self,
        url: str,
        key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            url: Project URL, e.g. https://xyz.supabase.co
            key: Anon key for user-facing calls, service role key for admin calls.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (tests pass a MockTransport).
        """
        if not url:
            raise ValueError("Supabase URL is required")
        if not key:
            raise ValueError("Supabase API key is required")

        self.url = url.rstrip("/")
        self.key = key
        self._http = httpx.AsyncClient(base_url=self.url, timeout=timeout, transport=transport)

        self.auth = AuthAPI(self)
        self.admin = AdminAPI(self)
        self.storage = StorageAPI(self)

    async def __aenter__(self) -> "SupabaseClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def table(self, name: str, access_token: Optional[str] = None) -> "TableQuery":
        """Start a query against a table, scoped to the given user."""
        return TableQuery(self, name, access_token)

    def _headers(self, access_token: Optional[str], extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.key,
            "Authorization": f"Bearer {access_token or self.key}",
        }
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        method: str,
        path: str,
        access_token: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        **kwargs
    ) -> Any:
        """
        Make an HTTP request to the provider.

        Returns:
            Parsed JSON body, or None for empty responses.

        Raises:
            ProviderError: For HTTP error responses
            ProviderConnectionError: For connection/request errors
        """
        try:
            response = await self._http.request(
                method,
                path,
                headers=self._headers(access_token, headers),
                **kwargs
            )
        except httpx.RequestError as e:
            logger.error(
                "Provider request failed",
                extra={"method": method, "path": path, "error": str(e)}
            )
            raise ProviderConnectionError(f"Request error: {e}") from e

        body = _parse_body(response)
        if response.is_error:
            message = extract_error_message(body, f"Request failed with status {response.status_code}")
            logger.warning(
                "Provider returned an error",
                extra={"method": method, "path": path, "status_code": response.status_code, "error": message}
            )
            raise ProviderError(message, provider_status=response.status_code, body=body)
        return body


def _parse_body(response: httpx.Response) -> Any:
    if response.status_code == 204 or not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


# =============================================================================
# AUTH
# =============================================================================

class AuthAPI:
    """User-facing auth endpoints."""

    def __init__(self, client: SupabaseClient):
        self._client = client

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        data = await self._client.request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return AuthSession.model_validate(data)

    async def refresh_session(self, refresh_token: str) -> AuthSession:
        data = await self._client.request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        return AuthSession.model_validate(data)

    async def verify_otp(self, token_hash: str, type: str) -> AuthSession:
        """Exchange an emailed token hash (recovery, email_change, ...) for a session."""
        data = await self._client.request(
            "POST",
            "/auth/v1/verify",
            json={"type": type, "token_hash": token_hash},
        )
        return AuthSession.model_validate(data)

    async def get_user(self, access_token: str) -> AuthUser:
        data = await self._client.request("GET", "/auth/v1/user", access_token=access_token)
        return AuthUser.model_validate(data)

    async def update_user(self, access_token: str, **attributes: Any) -> AuthUser:
        """Update the signed-in user (password, email, data)."""
        data = await self._client.request(
            "PUT",
            "/auth/v1/user",
            access_token=access_token,
            json=attributes,
        )
        return AuthUser.model_validate(data)

    async def reset_password_for_email(self, email: str, redirect_to: Optional[str] = None) -> None:
        params = {"redirect_to": redirect_to} if redirect_to else None
        await self._client.request(
            "POST",
            "/auth/v1/recover",
            params=params,
            json={"email": email},
        )

    async def sign_out(self, access_token: str) -> None:
        await self._client.request("POST", "/auth/v1/logout", access_token=access_token)

    async def health(self) -> Any:
        return await self._client.request("GET", "/auth/v1/health")


class AdminAPI:
    """Admin endpoints; the client must hold the service role key."""

    def __init__(self, client: SupabaseClient):
        self._client = client

    async def create_user(self, attributes: Dict[str, Any]) -> Dict[str, Any]:
        return await self._client.request("POST", "/auth/v1/admin/users", json=attributes)

    async def invite_user_by_email(self, attributes: Dict[str, Any]) -> Dict[str, Any]:
        return await self._client.request("POST", "/auth/v1/invite", json=attributes)


# =============================================================================
# TABLES
# =============================================================================

class TableQuery:
    """
    Minimal PostgREST query builder.

    Usage:
        row = await client.table("users", token).select("id, name").eq("user_id", uid).single()
        rows = await client.table("patients", token).update({"gender": "Other"}).eq("id", 3).execute()
        rows = await client.table("patients", token).select("*").order("created_at", ascending=False).execute()
        rows = await client.table("patients", token).insert({"first_name": "Jane", ...}).execute()
        rows = await client.table("patients", token).delete().eq("id", 3).execute()

    Writes ask for the affected rows back.
    """

    def __init__(self, client: SupabaseClient, table: str, access_token: Optional[str]):
        self._client = client
        self._table = table
        self._access_token = access_token
        self._method = "GET"
        self._columns = "*"
        self._values: Any = None
        self._filters: List[tuple] = []
        self._order: Optional[str] = None

    def select(self, columns: str = "*") -> "TableQuery":
        self._method = "GET"
        self._columns = ",".join(part.strip() for part in columns.split(","))
        return self

    def insert(self, values: Any) -> "TableQuery":
        """Insert one row (dict) or several (list of dicts)."""
        self._method = "POST"
        self._values = values if isinstance(values, list) else [values]
        return self

    def update(self, values: Dict[str, Any]) -> "TableQuery":
        self._method = "PATCH"
        self._values = values
        return self

    def delete(self) -> "TableQuery":
        self._method = "DELETE"
        return self

    def eq(self, column: str, value: Any) -> "TableQuery":
        self._filters.append((column, f"eq.{value}"))
        return self

    def order(self, column: str, ascending: bool = True) -> "TableQuery":
        self._order = f"{column}.{'asc' if ascending else 'desc'}"
        return self

    def _params(self) -> List[tuple]:
        params = list(self._filters)
        if self._method == "GET":
            params.insert(0, ("select", self._columns))
            if self._order:
                params.append(("order", self._order))
        return params

    async def execute(self) -> List[Dict[str, Any]]:
        """Run the query and return the affected or selected rows."""
        kwargs: Dict[str, Any] = {"params": self._params()}
        headers = None
        if self._method != "GET":
            headers = {"Prefer": "return=representation"}
        if self._method in ("POST", "PATCH"):
            kwargs["json"] = self._values
        rows = await self._client.request(
            self._method,
            f"/rest/v1/{self._table}",
            access_token=self._access_token,
            headers=headers,
            **kwargs
        )
        return rows or []

    async def maybe_single(self) -> Optional[Dict[str, Any]]:
        """Run the query and return the only row, or None when there is none."""
        rows = await self.execute()
        if len(rows) > 1:
            raise ProviderError(
                "JSON object requested, multiple (or no) rows returned",
                provider_status=406,
            )
        return rows[0] if rows else None

    async def single(self) -> Dict[str, Any]:
        """Run the query and return exactly one row."""
        row = await self.maybe_single()
        if row is None:
            raise ProviderError(
                "JSON object requested, multiple (or no) rows returned",
                provider_status=406,
            )
        return row


# =============================================================================
# STORAGE
# =============================================================================

class StorageAPI:
    """Object storage endpoints."""

    def __init__(self, client: SupabaseClient):
        self._client = client

    async def list(
        self,
        bucket: str,
        prefix: str = "",
        access_token: Optional[str] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """List objects directly under `prefix`; names are relative to it."""
        return await self._client.request(
            "POST",
            f"/storage/v1/object/list/{bucket}",
            access_token=access_token,
            json={
                "prefix": prefix,
                "limit": limit,
                "offset": 0,
                "sortBy": {"column": "name", "order": "asc"},
            },
        ) or []

    async def remove(
        self,
        bucket: str,
        paths: Iterable[str],
        access_token: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        return await self._client.request(
            "DELETE",
            f"/storage/v1/object/{bucket}",
            access_token=access_token,
            json={"prefixes": list(paths)},
        ) or []

    async def upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str,
        access_token: Optional[str] = None,
        cache_control: str = "3600",
        upsert: bool = False,
    ) -> Dict[str, Any]:
        return await self._client.request(
            "POST",
            f"/storage/v1/object/{bucket}/{path}",
            access_token=access_token,
            headers={
                "Content-Type": content_type,
                "Cache-Control": f"max-age={cache_control}",
                "x-upsert": "true" if upsert else "false",
            },
            content=content,
        )

    def get_public_url(self, bucket: str, path: str) -> str:
        """Public URL of an object; no request is made."""
        return f"{self._client.url}/storage/v1/object/public/{bucket}/{path}"
