"""OAuth2 providers described by configuration data.

Google, Microsoft and Xero share one code path: build the authorization
URL, exchange the callback code, refresh a token and read the profile.
Per-provider differences live in :class:`OAuthProviderConfig`.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx
from authlib.integrations.httpx_client import AsyncOAuth2Client

from ..core import config
from ..core.time import epoch_seconds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OAuthProviderConfig:
    name: str
    client_id: str
    client_secret: str
    authorize_url: str
    token_url: str
    redirect_uri: str
    scopes: Tuple[str, ...]
    userinfo_url: Optional[str] = None
    token_endpoint_auth_method: str = "client_secret_basic"
    authorize_params: Dict[str, str] = field(default_factory=dict)

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass
class OAuthProfile:
    """Normalised identity returned by a provider's userinfo endpoint."""

    provider_account_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    picture: Optional[str] = None


class OAuthProvider:
    """Authorization-code flow for a single provider."""

    def __init__(
        self,
        config: OAuthProviderConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 20,
    ):
        self.config = config
        self.transport = transport
        self.timeout = timeout

    @property
    def name(self) -> str:
        return self.config.name

    def _client(self) -> AsyncOAuth2Client:
        kwargs: Dict[str, Any] = {"timeout": self.timeout}
        if self.transport is not None:
            kwargs["transport"] = self.transport
        return AsyncOAuth2Client(
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
            scope=" ".join(self.config.scopes),
            redirect_uri=self.config.redirect_uri,
            token_endpoint_auth_method=self.config.token_endpoint_auth_method,
            **kwargs,
        )

    def build_auth_url(self, state: Optional[str] = None) -> Tuple[str, str]:
        """Return ``(authorization_url, state)``; a random state is generated if omitted."""

        state = state or secrets.token_urlsafe(16)
        params = {
            "response_type": "code",
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "scope": " ".join(self.config.scopes),
            "state": state,
            **self.config.authorize_params,
        }
        return f"{self.config.authorize_url}?{urlencode(params)}", state

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        async with self._client() as client:
            token = await client.fetch_token(
                self.config.token_url,
                code=code,
                grant_type="authorization_code",
            )
        return _with_expires_at(dict(token))

    async def refresh_token(self, refresh_token: str) -> Dict[str, Any]:
        async with self._client() as client:
            token = await client.refresh_token(
                self.config.token_url, refresh_token=refresh_token
            )
        return _with_expires_at(dict(token))

    async def fetch_profile(self, access_token: str) -> OAuthProfile:
        if not self.config.userinfo_url:
            raise ValueError(f"{self.name} has no userinfo endpoint")
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.get(
                self.config.userinfo_url,
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
            )
            response.raise_for_status()
            info = response.json()

        sub = info.get("sub") or info.get("xero_userid") or info.get("id")
        if not sub:
            raise ValueError(f"{self.name} profile has no subject identifier")
        email = info.get("email") or info.get("preferred_username")
        name = info.get("name")
        if not name and (info.get("given_name") or info.get("family_name")):
            name = " ".join(p for p in (info.get("given_name"), info.get("family_name")) if p)
        return OAuthProfile(
            provider_account_id=str(sub),
            email=email,
            name=name,
            picture=info.get("picture"),
        )


def _with_expires_at(token: Dict[str, Any]) -> Dict[str, Any]:
    if token.get("expires_at") is None and token.get("expires_in") is not None:
        token["expires_at"] = epoch_seconds() + int(token["expires_in"])
    if token.get("expires_at") is not None:
        token["expires_at"] = int(token["expires_at"])
    return token


XERO_SCOPES = (
    "openid",
    "profile",
    "email",
    "offline_access",
    "accounting.transactions.read",
    "accounting.reports.read",
    "accounting.reports.tenninetynine.read",
    "accounting.journals.read",
    "accounting.settings.read",
    "accounting.contacts.read",
    "accounting.attachments.read",
    "accounting.budgets.read",
)


def provider_configs() -> Dict[str, OAuthProviderConfig]:
    ms_base = f"https://login.microsoftonline.com/{config.MICROSOFT_TENANT}/oauth2/v2.0"
    return {
        "google": OAuthProviderConfig(
            name="google",
            client_id=config.GOOGLE_CLIENT_ID,
            client_secret=config.GOOGLE_CLIENT_SECRET,
            authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
            token_url="https://oauth2.googleapis.com/token",
            redirect_uri=config.GOOGLE_REDIRECT_URI,
            scopes=("openid", "email", "profile"),
            userinfo_url="https://openidconnect.googleapis.com/v1/userinfo",
            token_endpoint_auth_method="client_secret_post",
        ),
        "microsoft": OAuthProviderConfig(
            name="microsoft",
            client_id=config.MICROSOFT_CLIENT_ID,
            client_secret=config.MICROSOFT_CLIENT_SECRET,
            authorize_url=f"{ms_base}/authorize",
            token_url=f"{ms_base}/token",
            redirect_uri=config.MICROSOFT_REDIRECT_URI,
            scopes=("openid", "email", "profile", "User.Read"),
            userinfo_url="https://graph.microsoft.com/oidc/userinfo",
            token_endpoint_auth_method="client_secret_post",
        ),
        "xero": OAuthProviderConfig(
            name="xero",
            client_id=config.XERO_CLIENT_ID,
            client_secret=config.XERO_CLIENT_SECRET,
            authorize_url="https://login.xero.com/identity/connect/authorize",
            token_url="https://identity.xero.com/connect/token",
            redirect_uri=config.XERO_REDIRECT_URI,
            scopes=XERO_SCOPES,
            userinfo_url="https://identity.xero.com/connect/userinfo",
        ),
    }


@lru_cache(maxsize=1)
def get_oauth_providers() -> Dict[str, OAuthProvider]:
    """Process-wide provider registry; a FastAPI dependency."""

    return {name: OAuthProvider(cfg) for name, cfg in provider_configs().items()}


__all__ = [
    "OAuthProfile",
    "OAuthProvider",
    "OAuthProviderConfig",
    "XERO_SCOPES",
    "get_oauth_providers",
    "provider_configs",
]
