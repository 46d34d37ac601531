"""Shared fixtures and local environment loading for the test suite."""
from __future__ import annotations

import json
import threading
import time
from pathlib import Path

import pytest

try:
    from gads_client.config import ClientOptions, CustomerOptions, load_env
except ImportError as exc:
    raise RuntimeError(
        "gads_client is not importable. Activate your virtualenv and run "
        "\"pip install -e '.[test]'\" before running pytest."
    ) from exc

from gads_client.auth import TOKEN_URI

SERVICE_ACCOUNT_EMAIL = "robot@example-project.iam.gserviceaccount.com"

# Integration credentials live in .env.test so they never mix with runtime ones
test_env = Path(".env.test")
if test_env.exists():
    load_env(dotenv_path=test_env, override=True)


class FakeStub:
    """Stands in for a generated service client; records every call it receives."""

    def __init__(self, name: str = "stub") -> None:
        self.name = name
        self.calls: list[tuple[str, dict]] = []
        self.close_count = 0
        self.responses: dict = {}
        self.error: BaseException | None = None

    def _record(self, method: str, **kwargs):
        self.calls.append((method, kwargs))
        if self.error is not None:
            raise self.error
        return self.responses.get(method)

    def search(self, **kwargs):
        return iter(self._record("search", **kwargs) or [])

    def search_stream(self, **kwargs):
        return iter(self._record("search_stream", **kwargs) or [])

    def mutate(self, **kwargs):
        return self._record("mutate", **kwargs)

    def mutate_campaigns(self, **kwargs):
        return self._record("mutate_campaigns", **kwargs)

    def list_accessible_customers(self, **kwargs):
        return self._record("list_accessible_customers", **kwargs)

    def close(self) -> None:
        self.close_count += 1


class PassthroughTypes:
    """TypeResolver replacement that keeps request payloads as plain dicts."""

    version = "test"

    def request_type(self, service, name):
        return dict

    def resource_type(self, entity):
        return None


class FakeResponse:
    def __init__(self, status: int, payload) -> None:
        self.status = status
        self.data = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
        self.headers = {}


class FakeTokenEndpoint:
    """Callable in the shape of google.auth.transport.Request; records token requests."""

    def __init__(self, response: FakeResponse, delay: float = 0.0) -> None:
        self.response = response
        self.delay = delay
        self.requests: list[dict] = []
        self._lock = threading.Lock()

    def __call__(self, url, method="GET", body=None, headers=None, timeout=None, **kwargs):
        with self._lock:
            self.requests.append({"url": url, "method": method, "body": body, "headers": headers})
        if self.delay:
            time.sleep(self.delay)
        return self.response


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def client_options() -> ClientOptions:
    return ClientOptions(
        client_id="client-id",
        client_secret="client-secret",
        developer_token="dev-token",
    )


@pytest.fixture
def customer_options() -> CustomerOptions:
    return CustomerOptions(
        customer_id="123-456-7890",
        refresh_token="refresh-token",
        login_customer_id="111-111-1111",
        linked_customer_id="2222222222",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="session")
def private_key_pem() -> str:
    rsa = pytest.importorskip("cryptography.hazmat.primitives.asymmetric.rsa")
    from cryptography.hazmat.primitives import serialization

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture
def key_document(private_key_pem) -> str:
    return json.dumps(
        {
            "type": "service_account",
            "private_key_id": "key-1",
            "private_key": private_key_pem,
            "client_email": SERVICE_ACCOUNT_EMAIL,
            "token_uri": TOKEN_URI,
        }
    )
