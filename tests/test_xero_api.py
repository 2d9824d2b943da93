"""API tests for connecting and disconnecting a Xero organisation."""

from urllib.parse import parse_qs, urlparse

import pytest
from sqlmodel import select

from ledgerlens.models import Account

from .conftest import make_xero_account


def start_auth(client):
    response = client.get("/xero/auth")
    assert response.status_code == 200
    url = urlparse(response.json()["authUrl"])
    return url, parse_qs(url.query)


@pytest.mark.api
def test_connection_status(api_client, db_session, user):
    assert api_client.get("/xero/connection").json() == {"connected": False, "connectionDetails": None}

    make_xero_account(db_session, user)
    body = api_client.get("/xero/connection").json()
    assert body["connected"] is True
    assert body["connectionDetails"]["tenantId"] == "tenant-1"
    assert body["connectionDetails"]["connectedAt"].endswith("Z")


@pytest.mark.api
def test_auth_url_points_at_xero(api_client):
    url, params = start_auth(api_client)
    assert url.netloc == "login.xero.com"
    assert params["client_id"] == ["xero-client"]
    assert params["response_type"] == ["code"]
    assert "offline_access" in params["scope"][0].split()
    assert params["state"][0]


@pytest.mark.api
def test_callback_stores_account_and_redirects(api_client, db_session, user):
    _, params = start_auth(api_client)

    response = api_client.get(
        "/xero/callback",
        params={"code": "auth-code", "state": params["state"][0]},
        follow_redirects=False,
    )

    assert response.status_code == 302
    assert response.headers["location"] == "http://localhost:5173/dashboard?xero=connected"

    db_session.expire_all()
    account = db_session.exec(select(Account).where(Account.provider == "xero")).one()
    assert account.user_id == user.id
    assert account.provider_account_id == "subject-1"
    assert account.tenant_id == "tenant-from-api"
    assert account.access_token == "new-access-1"
    assert account.refresh_token == "new-refresh-1"
    assert account.expires_at is not None


@pytest.mark.api
def test_callback_twice_updates_the_same_account(api_client, db_session, user):
    for _ in range(2):
        _, params = start_auth(api_client)
        api_client.get(
            "/xero/callback",
            params={"code": "auth-code", "state": params["state"][0]},
            follow_redirects=False,
        )

    db_session.expire_all()
    accounts = db_session.exec(select(Account).where(Account.provider == "xero")).all()
    assert len(accounts) == 1
    assert accounts[0].access_token == "new-access-2"


@pytest.mark.api
def test_callback_rejects_wrong_state(api_client, db_session):
    start_auth(api_client)
    response = api_client.get("/xero/callback", params={"code": "auth-code", "state": "forged"})
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid state parameter"
    assert db_session.exec(select(Account)).all() == []


@pytest.mark.api
def test_callback_state_is_single_use(api_client):
    _, params = start_auth(api_client)
    state = params["state"][0]
    first = api_client.get(
        "/xero/callback", params={"code": "c", "state": state}, follow_redirects=False
    )
    assert first.status_code == 302
    replay = api_client.get("/xero/callback", params={"code": "c", "state": state})
    assert replay.status_code == 400


@pytest.mark.api
def test_disconnect_removes_accounts(api_client, db_session, user):
    make_xero_account(db_session, user)

    response = api_client.delete("/xero/disconnect")

    assert response.status_code == 200
    assert response.json() == {"message": "Xero disconnected successfully"}
    db_session.expire_all()
    assert db_session.exec(select(Account)).all() == []
    assert api_client.get("/xero/connection").json()["connected"] is False
