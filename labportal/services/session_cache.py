"""
Short-lived cache of verified provider sessions.

Every page request carries the session stored in the browser cookie. Checking
it against the provider on each request would repeat the same call several
times per page load, so a verified session is reused for `ttl` seconds.

The cache is keyed by access token and fed by auth events:

    SIGNED_IN, TOKEN_REFRESHED  -> store the session, stamp it with "now"
    SIGNED_OUT                  -> drop the session, timestamp back to 0

Entries older than `ttl` are dropped whenever a session is stored, so the
cache only ever holds sessions seen in the last few seconds.

It is a time-based memo. There is no locking and no cross-process sharing.
"""
import logging
import time
from typing import Callable, Dict, Optional, Tuple

from labportal.clients.supabase_client import SupabaseClient
from labportal.core.exceptions import ProviderError, ServiceUnavailableError
from labportal.schemas.auth import AuthSession

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"


def is_rejection(error: ProviderError) -> bool:
    """
    True when the provider refused the credentials themselves.

    Client errors other than rate limiting mean the token is revoked,
    expired or unknown. Connection failures, 5xx and 429 say nothing
    about the session.
    """
    status_code = error.provider_status
    return status_code is not None and 400 <= status_code < 500 and status_code != 429


class SessionCache:
    """Verified sessions keyed by access token."""

    def __init__(
        self,
        client: SupabaseClient,
        ttl: float = 2.0,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            client: Provider client used to verify and refresh sessions.
            ttl: Seconds a verified session is returned without a provider call.
            clock: Time source in seconds; injectable for tests.
        """
        self._client = client
        self._ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[AuthSession, float]] = {}

    def size(self) -> int:
        """Number of sessions currently held."""
        return len(self._entries)

    def _fresh(self, access_token: str) -> Optional[AuthSession]:
        entry = self._entries.get(access_token)
        if entry is None:
            return None
        session, checked_at = entry
        if self._clock() - checked_at < self._ttl:
            return session
        del self._entries[access_token]
        return None

    def _store(self, session: AuthSession) -> None:
        now = self._clock()
        stale = [token for token, (_, checked_at) in self._entries.items() if now - checked_at >= self._ttl]
        for token in stale:
            del self._entries[token]
        self._entries[session.access_token] = (session, now)

    def last_checked(self, access_token: str) -> float:
        """Timestamp of the last verification, 0 when unknown."""
        entry = self._entries.get(access_token)
        return entry[1] if entry else 0.0

    async def get_session(self, stored: Optional[AuthSession]) -> Optional[AuthSession]:
        """
        Return a verified session for the stored one, or None.

        An expired access token is refreshed; the refreshed session carries
        new tokens and the caller must persist them. None means the provider
        rejected the session and it should be forgotten.

        Raises:
            ServiceUnavailableError: The provider could not give an answer
                (connection failure, 5xx, rate limit). The stored session
                may still be valid.
        """
        if stored is None:
            return None

        cached = self._fresh(stored.access_token)
        if cached is not None:
            return cached

        try:
            if stored.is_expired(self._clock()):
                logger.info("Access token expired, refreshing session", extra={"user_id": stored.user.id})
                session = await self._client.auth.refresh_session(stored.refresh_token)
                self.on_auth_state_change(SIGNED_OUT, stored)
                self.on_auth_state_change(TOKEN_REFRESHED, session)
                return session

            user = await self._client.auth.get_user(stored.access_token)
        except ProviderError as e:
            if not is_rejection(e):
                logger.error(
                    "Provider unavailable while checking session",
                    extra={"user_id": stored.user.id, "status_code": e.provider_status, "error": e.detail},
                )
                raise ServiceUnavailableError() from e
            logger.info("Session rejected by provider", extra={"user_id": stored.user.id, "error": e.detail})
            self.on_auth_state_change(SIGNED_OUT, stored)
            return None

        session = stored.model_copy(update={"user": user})
        self._store(session)
        return session

    def on_auth_state_change(self, event: str, session: Optional[AuthSession]) -> None:
        """Update the cache for an auth event."""
        if session is None:
            return
        if event in (SIGNED_IN, TOKEN_REFRESHED):
            self._store(session)
        elif event == SIGNED_OUT:
            self._entries.pop(session.access_token, None)

    def clear(self) -> None:
        self._entries.clear()
