"""Unit tests for the configuration-driven OAuth provider."""

import asyncio
import base64
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from ledgerlens.core import epoch_seconds
from ledgerlens.services.oauth import OAuthProvider, OAuthProviderConfig, XERO_SCOPES


def make_config(**overrides):
    fields = dict(
        name="xero",
        client_id="cid",
        client_secret="csecret",
        authorize_url="https://login.example.com/authorize",
        token_url="https://login.example.com/token",
        redirect_uri="http://localhost:5173/callback",
        scopes=XERO_SCOPES,
        userinfo_url="https://login.example.com/userinfo",
    )
    fields.update(overrides)
    return OAuthProviderConfig(**fields)


class Recorder:
    def __init__(self, payload=None, status=200):
        self.requests = []
        self.payload = payload or {
            "access_token": "at",
            "refresh_token": "rt",
            "token_type": "Bearer",
            "expires_in": 600,
        }
        self.status = status

    def __call__(self, request):
        self.requests.append(request)
        return httpx.Response(self.status, json=self.payload)


@pytest.mark.unit
def test_build_auth_url_contains_standard_params():
    provider = OAuthProvider(make_config(authorize_params={"prompt": "consent"}))
    url, state = provider.build_auth_url()
    params = parse_qs(urlparse(url).query)
    assert url.startswith("https://login.example.com/authorize?")
    assert params["state"] == [state]
    assert params["client_id"] == ["cid"]
    assert params["redirect_uri"] == ["http://localhost:5173/callback"]
    assert params["scope"] == [" ".join(XERO_SCOPES)]
    assert params["prompt"] == ["consent"]


@pytest.mark.unit
def test_build_auth_url_keeps_given_state():
    _, state = OAuthProvider(make_config()).build_auth_url(state="fixed")
    assert state == "fixed"


@pytest.mark.unit
def test_exchange_code_uses_basic_auth_and_sets_expiry():
    recorder = Recorder()
    provider = OAuthProvider(make_config(), transport=httpx.MockTransport(recorder))

    token = asyncio.run(provider.exchange_code("the-code"))

    assert token["access_token"] == "at"
    assert abs(token["expires_at"] - (epoch_seconds() + 600)) <= 5
    request = recorder.requests[0]
    expected = base64.b64encode(b"cid:csecret").decode()
    assert request.headers["authorization"] == f"Basic {expected}"
    body = parse_qs(request.content.decode())
    assert body["grant_type"] == ["authorization_code"]
    assert body["code"] == ["the-code"]
    assert body["redirect_uri"] == ["http://localhost:5173/callback"]


@pytest.mark.unit
def test_client_secret_post_sends_credentials_in_body():
    recorder = Recorder()
    provider = OAuthProvider(
        make_config(token_endpoint_auth_method="client_secret_post"),
        transport=httpx.MockTransport(recorder),
    )

    asyncio.run(provider.refresh_token("old-rt"))

    request = recorder.requests[0]
    body = parse_qs(request.content.decode())
    assert "authorization" not in request.headers
    assert body["client_secret"] == ["csecret"]
    assert body["grant_type"] == ["refresh_token"]
    assert body["refresh_token"] == ["old-rt"]


@pytest.mark.unit
def test_fetch_profile_normalises_fields():
    recorder = Recorder(payload={"sub": "s-1", "preferred_username": "p@example.com", "given_name": "Ada", "family_name": "L"})
    provider = OAuthProvider(make_config(), transport=httpx.MockTransport(recorder))

    profile = asyncio.run(provider.fetch_profile("at"))

    assert profile.provider_account_id == "s-1"
    assert profile.email == "p@example.com"
    assert profile.name == "Ada L"
    assert recorder.requests[0].headers["authorization"] == "Bearer at"


@pytest.mark.unit
def test_fetch_profile_without_subject_fails():
    provider = OAuthProvider(make_config(), transport=httpx.MockTransport(Recorder(payload={"email": "x@y.z"})))
    with pytest.raises(ValueError):
        asyncio.run(provider.fetch_profile("at"))


@pytest.mark.unit
def test_fetch_profile_http_error():
    provider = OAuthProvider(make_config(), transport=httpx.MockTransport(Recorder(status=401)))
    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(provider.fetch_profile("at"))


@pytest.mark.unit
def test_configured_flag():
    assert make_config().configured
    assert not make_config(client_secret="").configured
