"""Shared fixtures: in-memory database, app client and fake collaborators."""

import os
import tempfile

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("FRONTEND_ORIGIN", "http://localhost:5173")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="ledgerlens-test-"))
os.environ.setdefault("XERO_CLIENT_ID", "xero-client")
os.environ.setdefault("XERO_CLIENT_SECRET", "xero-secret")

import json
from dataclasses import replace
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from ledgerlens.api.deps import get_current_user, get_executor
from ledgerlens.app import create_app
from ledgerlens.core import epoch_seconds, get_session
from ledgerlens.models import Account, Report, User
from ledgerlens.services.llm import get_llm
from ledgerlens.services.oauth import OAuthProvider, get_oauth_providers, provider_configs
from ledgerlens.services.sandbox import ExecutionResult


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast, isolated tests")
    config.addinivalue_line("markers", "api: tests that go through the HTTP layer")
    config.addinivalue_line("markers", "sandbox: tests that spawn a sandbox process")


# ============================================================================
# DATABASE FIXTURES
# ============================================================================

@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    with Session(db_engine) as session:
        yield session


@pytest.fixture
def user(db_session) -> User:
    user = User(email="owner@example.com", name="Owner")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def other_user(db_session) -> User:
    user = User(email="other@example.com", name="Other")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


def make_report(session: Session, owner: User, **overrides: Any) -> Report:
    fields = {
        "name": "Monthly revenue",
        "description": "Revenue per month",
        "query": "Show monthly revenue",
        "api_code": "def fetch_report_data(context):\n    return {'data': [1, 2, 3]}\n",
        "render_code": "function ReportComponent({ data }) { return null; }",
        "user_id": owner.id,
    }
    fields.update(overrides)
    report = Report(**fields)
    session.add(report)
    session.commit()
    session.refresh(report)
    return report


def make_xero_account(session: Session, owner: User, **overrides: Any) -> Account:
    fields = {
        "user_id": owner.id,
        "provider": "xero",
        "provider_account_id": f"xero-{owner.id}",
        "access_token": "access-1",
        "refresh_token": "refresh-1",
        "token_type": "Bearer",
        "expires_at": epoch_seconds() + 1800,
        "tenant_id": "tenant-1",
    }
    fields.update(overrides)
    account = Account(**fields)
    session.add(account)
    session.commit()
    session.refresh(account)
    return account


@pytest.fixture
def report(db_session, user) -> Report:
    return make_report(db_session, user)


# ============================================================================
# FAKE COLLABORATORS
# ============================================================================

class FakeLLM:
    """Returns queued responses (or raises queued exceptions) and records prompts."""

    def __init__(self) -> None:
        self.responses: List[Any] = []
        self.calls: List[Dict[str, Any]] = []

    def queue(self, response: Any) -> None:
        if isinstance(response, dict):
            response = json.dumps(response)
        self.responses.append(response)

    async def generate(self, prompt: str, *, json_output: bool = False) -> str:
        self.calls.append({"prompt": prompt, "json_output": json_output})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class TokenEndpoint:
    """``httpx.MockTransport`` handler standing in for the Xero identity and API hosts."""

    def __init__(self) -> None:
        self.refresh_calls: List[httpx.Request] = []
        self.refresh_status = 200
        self.expires_in: Optional[int] = 1800
        self.tenants: List[Dict[str, Any]] = [{"tenantId": "tenant-from-api"}]
        self.counter = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url.endswith("/token"):
            body = dict(httpx.QueryParams(request.content.decode()))
            if body.get("grant_type") == "refresh_token":
                self.refresh_calls.append(request)
            if self.refresh_status != 200:
                return httpx.Response(self.refresh_status, json={"error": "invalid_grant"})
            self.counter += 1
            payload = {
                "access_token": f"new-access-{self.counter}",
                "refresh_token": f"new-refresh-{self.counter}",
                "token_type": "Bearer",
                "scope": "openid offline_access",
            }
            if self.expires_in is not None:
                payload["expires_in"] = self.expires_in
            return httpx.Response(200, json=payload)
        if url.endswith("/connections"):
            return httpx.Response(200, json=self.tenants)
        if url.endswith("/userinfo"):
            return httpx.Response(
                200, json={"sub": "subject-1", "email": "Owner@Example.com", "name": "Owner Person"}
            )
        return httpx.Response(404, json={"error": "not found"})


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def token_endpoint() -> TokenEndpoint:
    return TokenEndpoint()


@pytest.fixture
def providers(token_endpoint) -> Dict[str, OAuthProvider]:
    transport = httpx.MockTransport(token_endpoint)
    return {
        name: OAuthProvider(
            replace(cfg, client_id=f"{name}-client", client_secret=f"{name}-secret"),
            transport=transport,
        )
        for name, cfg in provider_configs().items()
    }


@pytest.fixture
def xero_provider(providers) -> OAuthProvider:
    return providers["xero"]


@pytest.fixture
def executor() -> AsyncMock:
    return AsyncMock(return_value=ExecutionResult(data=[{"month": "Jan", "total": 10}], metadata={}))


# ============================================================================
# API CLIENT FIXTURES
# ============================================================================

class CallerHolder:
    def __init__(self) -> None:
        self.user_id: Optional[int] = None


@pytest.fixture
def caller() -> CallerHolder:
    return CallerHolder()


@pytest.fixture
def app(db_engine, fake_llm, providers, executor):
    app = create_app()

    def _session_override():
        with Session(db_engine) as session:
            yield session

    app.dependency_overrides[get_session] = _session_override
    app.dependency_overrides[get_llm] = lambda: fake_llm
    app.dependency_overrides[get_oauth_providers] = lambda: providers
    app.dependency_overrides[get_executor] = lambda: executor
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def anonymous_client(app) -> TestClient:
    """Client that goes through the real session-cookie authentication."""

    return TestClient(app)


@pytest.fixture
def api_client(app, db_engine, caller, user) -> TestClient:
    """Client signed in as ``user``; set ``caller.user_id`` to switch identity."""

    caller.user_id = user.id

    def _current_user():
        with Session(db_engine) as session:
            return session.get(User, caller.user_id)

    app.dependency_overrides[get_current_user] = _current_user
    return TestClient(app)
