"""Token sources: where the fetch engine gets its bearer credential.

Implementations:
    StaticTokenSource      — a direct value (env var or injected)
    SecretStoreTokenSource — personal access token held in a secret store
    OAuth2TokenSource      — inert placeholder; never configured
    TokenSelector          — prefers the provider-backed source when one is set

``resolve()`` raises ``NotConfiguredError`` when no credential exists.
Callers treat that as the expected first-run state.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

from src.oura.errors import NotConfiguredError
from src.services.secret_store import (
    CredentialNotFoundError,
    SecretStore,
    SecretStoreError,
)

logger = logging.getLogger("ringpulse.oura.auth")


class AuthenticationType(str, Enum):
    PERSONAL_ACCESS_TOKEN = "personal_access_token"
    OAUTH2 = "oauth2"


# ---------------------------------------------------------------------------
# Token source interface
# ---------------------------------------------------------------------------


class TokenSource(ABC):
    """Yields a bearer credential.  Resolution is a pure read."""

    authentication_type: AuthenticationType = AuthenticationType.PERSONAL_ACCESS_TOKEN

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """True if ``resolve()`` is expected to return a credential."""

    @abstractmethod
    async def resolve(self) -> str:
        """Return the bearer credential.

        Raises:
            NotConfiguredError: If no credential is available.
        """

    # ------------------------------------------------------------------
    # Optional overrides; read-only sources keep the defaults
    # ------------------------------------------------------------------

    def save_token(self, token: str) -> None:
        """Persist a new credential entered by the user."""
        raise NotImplementedError(f"{type(self).__name__} cannot store tokens")

    def clear_credentials(self) -> None:
        """Forget the stored credential."""
        raise NotImplementedError(f"{type(self).__name__} cannot clear tokens")


class StaticTokenSource(TokenSource):
    """A token handed over directly (settings, CLI, tests)."""

    def __init__(self, token: str | None = None) -> None:
        self._token = (token or "").strip() or None

    @property
    def is_configured(self) -> bool:
        return self._token is not None

    def save_token(self, token: str) -> None:
        self._token = (token or "").strip() or None

    def clear_credentials(self) -> None:
        self._token = None

    async def resolve(self) -> str:
        if self._token is None:
            raise NotConfiguredError()
        return self._token


class SecretStoreTokenSource(TokenSource):
    """Personal access token persisted in a ``SecretStore``.

    PATs cannot be refreshed: a rejected token means the user has to
    generate a new one.
    """

    def __init__(self, store: SecretStore) -> None:
        self._store = store

    @property
    def store(self) -> SecretStore:
        return self._store

    @property
    def is_configured(self) -> bool:
        return self._store.has_credential()

    async def resolve(self) -> str:
        # Keychain reads shell out; keep them off the event loop.
        try:
            return await asyncio.to_thread(self._store.retrieve)
        except CredentialNotFoundError as exc:
            raise NotConfiguredError() from exc
        except SecretStoreError as exc:
            logger.warning("Secret store read failed, treating as not configured: %s", exc)
            raise NotConfiguredError() from exc

    def save_token(self, token: str) -> None:
        self._store.save(token.strip())

    def clear_credentials(self) -> None:
        self._store.delete()


# ---------------------------------------------------------------------------
# OAuth2 placeholder
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OAuth2Configuration:
    """Client registration for a future OAuth2 flow."""

    AUTHORIZATION_URL = "https://cloud.ouraring.com/oauth/authorize"
    TOKEN_URL = "https://cloud.ouraring.com/oauth/token"
    DEFAULT_REDIRECT_URI = "ringpulse://oauth/callback"
    DEFAULT_SCOPES = ("daily", "heartrate", "personal")

    client_id: str
    client_secret: str
    redirect_uri: str = DEFAULT_REDIRECT_URI
    scopes: tuple[str, ...] = DEFAULT_SCOPES


@dataclass
class OAuthTokens:
    """OAuth token pair as returned by a token endpoint.

    Attributes:
        access_token:  Bearer token for API calls.
        refresh_token: Long-lived token used to obtain a new access_token.
        expires_at:    UTC datetime when the access_token expires.
        token_type:    Token type, typically "Bearer".
        scope:         Granted OAuth scopes.
    """

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    token_type: str = "Bearer"
    scope: list[str] = field(default_factory=list)

    @classmethod
    def from_response(cls, data: dict) -> "OAuthTokens":
        expires_in = int(data.get("expires_in", 3600))
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
            token_type=data.get("token_type", "Bearer"),
            scope=(data.get("scope") or "").split(),
        )

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and datetime.now(timezone.utc) >= self.expires_at

    @property
    def will_expire_soon(self) -> bool:
        if self.expires_at is None:
            return False
        return datetime.now(timezone.utc) + timedelta(seconds=300) >= self.expires_at


class OAuth2TokenSource(TokenSource):
    """Placeholder for OAuth2 support.  Never configured, never yields a token."""

    authentication_type = AuthenticationType.OAUTH2

    def __init__(self, configuration: OAuth2Configuration | None = None) -> None:
        self.configuration = configuration

    @property
    def is_configured(self) -> bool:
        return False

    async def resolve(self) -> str:
        raise NotConfiguredError("OAuth2 authentication is not supported yet")


# ---------------------------------------------------------------------------
# Selector
# ---------------------------------------------------------------------------


class TokenSelector(TokenSource):
    """Chooses between a provider-backed source and a direct token.

    When a provider is attached it wins, even if a direct token is also
    set.  Exactly one source answers any given ``resolve()``.
    """

    def __init__(
        self,
        provider: TokenSource | None = None,
        direct: StaticTokenSource | None = None,
    ) -> None:
        self._provider = provider
        self._direct = direct or StaticTokenSource()

    @property
    def provider(self) -> TokenSource | None:
        return self._provider

    @property
    def active(self) -> TokenSource:
        return self._provider if self._provider is not None else self._direct

    @property
    def authentication_type(self) -> AuthenticationType:  # type: ignore[override]
        return self.active.authentication_type

    @property
    def is_configured(self) -> bool:
        return self.active.is_configured

    async def resolve(self) -> str:
        return await self.active.resolve()

    def save_token(self, token: str) -> None:
        self.active.save_token(token)

    def clear_credentials(self) -> None:
        self.active.clear_credentials()
