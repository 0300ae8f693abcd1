"""Top-level session state backed by the hosted auth provider."""
import logging
from collections.abc import Callable
from typing import Protocol
from urllib.parse import urlencode
from uuid import UUID

import httpx
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Raised when the auth provider rejects or fails a request."""

    pass


class AuthUser(BaseModel):
    """The signed-in principal."""

    id: UUID
    email: str | None = None

    @property
    def display_name(self) -> str:
        """Local part of the email, as shown in the navigation bar."""
        return self.email.split("@")[0] if self.email else ""


class AuthSession(BaseModel):
    """Tokens for the signed-in user."""

    access_token: str
    refresh_token: str | None = None
    user: AuthUser


AuthStateCallback = Callable[[str, AuthSession | None], None]


class AuthProvider(Protocol):
    """What the application needs from the auth provider."""

    async def get_session(self) -> AuthSession | None: ...

    async def sign_in_with_oauth(self, provider: str, redirect_to: str) -> str: ...

    async def sign_out(self) -> None: ...

    def on_auth_state_change(self, callback: AuthStateCallback) -> Callable[[], None]: ...


class SupabaseAuthProvider:
    """
    AuthProvider over the hosted auth REST API.

    State-change callbacks receive an event name (SIGNED_IN, TOKEN_REFRESHED,
    SIGNED_OUT) and the new session, or None after sign-out.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        project_url: str,
        anon_key: str,
        session: AuthSession | None = None,
    ) -> None:
        self._client = client
        self._auth_url = f"{project_url.rstrip('/')}/auth/v1"
        self._anon_key = anon_key
        self._session = session
        self._callbacks: list[AuthStateCallback] = []

    def _headers(self, access_token: str | None = None) -> dict[str, str]:
        headers = {"apikey": self._anon_key}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    def _emit(self, event: str) -> None:
        for callback in list(self._callbacks):
            callback(event, self._session)

    def on_auth_state_change(self, callback: AuthStateCallback) -> Callable[[], None]:
        """Register a callback; returns a function that unregisters it."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def set_session(self, session: AuthSession) -> None:
        """Install the session returned by the OAuth redirect."""
        self._session = session
        self._emit("SIGNED_IN")

    async def get_session(self) -> AuthSession | None:
        """
        Return the current session if its token is still accepted.

        An expired token is refreshed once when a refresh token is available.
        """
        if self._session is None:
            return None
        response = await self._request(
            "GET", "/user", headers=self._headers(self._session.access_token),
        )
        if response.status_code == 401:
            return await self.refresh_session()
        self._raise_for_status(response)
        try:
            user = AuthUser.model_validate(response.json())
        except ValidationError as e:
            raise AuthError(f"Unexpected user payload: {e}") from e
        self._session = self._session.model_copy(update={"user": user})
        return self._session

    async def refresh_session(self) -> AuthSession | None:
        """Exchange the refresh token for a new session; None if there is none."""
        if self._session is None or not self._session.refresh_token:
            self._session = None
            return None
        response = await self._request(
            "POST",
            "/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": self._session.refresh_token},
            headers=self._headers(),
        )
        if response.status_code in (400, 401):
            logger.info("Refresh token rejected, signing out locally")
            self._session = None
            self._emit("SIGNED_OUT")
            return None
        self._raise_for_status(response)
        try:
            self._session = AuthSession.model_validate(response.json())
        except ValidationError as e:
            raise AuthError(f"Unexpected token payload: {e}") from e
        self._emit("TOKEN_REFRESHED")
        return self._session

    async def sign_in_with_oauth(self, provider: str, redirect_to: str) -> str:
        """Return the URL that starts the provider's OAuth flow."""
        query = urlencode({"provider": provider, "redirect_to": redirect_to})
        return f"{self._auth_url}/authorize?{query}"

    async def sign_out(self) -> None:
        """Revoke the session server-side and forget it locally."""
        if self._session is not None:
            response = await self._request(
                "POST", "/logout", headers=self._headers(self._session.access_token),
            )
            # 401 means the token is already invalid, which is the goal
            if response.status_code != 401:
                self._raise_for_status(response)
        self._session = None
        self._emit("SIGNED_OUT")

    async def _request(self, method: str, path: str, **kwargs: object) -> httpx.Response:
        try:
            return await self._client.request(method, f"{self._auth_url}{path}", **kwargs)
        except httpx.HTTPError as e:
            raise AuthError(f"Auth request failed: {e}") from e

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if not response.is_success:
            raise AuthError(f"Auth provider returned HTTP {response.status_code}")


class SessionState:
    """
    Process-wide session state for the views.

    start() looks up the existing session and subscribes to changes; stop()
    unsubscribes. `user` is None when signed out.
    """

    def __init__(self, provider: AuthProvider) -> None:
        self._provider = provider
        self.user: AuthUser | None = None
        self.loading = True
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    async def start(self) -> None:
        self._unsubscribe = self._provider.on_auth_state_change(self._on_auth_state_change)
        try:
            session = await self._provider.get_session()
        except AuthError as e:
            logger.error("Error loading session: %s", e)
            session = None
        self.user = session.user if session else None
        self.loading = False

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_auth_state_change(self, event: str, session: AuthSession | None) -> None:
        logger.debug("Auth state change: %s", event)
        self.user = session.user if session else None

    async def sign_in(self, redirect_to: str, provider: str = "google") -> str | None:
        """Start sign-in; returns the URL to open, or None on failure."""
        try:
            return await self._provider.sign_in_with_oauth(provider, redirect_to)
        except AuthError as e:
            logger.error("Error signing in: %s", e)
            return None

    async def sign_out(self) -> None:
        try:
            await self._provider.sign_out()
        except AuthError as e:
            logger.error("Error signing out: %s", e)
