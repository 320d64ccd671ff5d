"""
Pytest configuration and fixtures.

BNB and the purchase webhook endpoints are replaced by in-process
``httpx.MockTransport`` handlers that record every request.
"""
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from qr_checkout.api.dependencies import CheckoutServices, build_services, get_services
from qr_checkout.api.main import app
from qr_checkout.config import Settings
from qr_checkout.core.models import Customer, PaymentRecord

AUTH_URL = "https://auth.bnb.test/ClientAuthentication.API/api/v1"
QR_URL = "https://qr.bnb.test/QRSimple.API/api/v1"
MAIN_HOOK = "https://hooks.test/purchase/main"
UPSELL_HOOK = "https://hooks.test/purchase/upsell"


class FakeBank:
    """Stands in for the BNB auth and QR Simple APIs."""

    def __init__(self) -> None:
        self.auth_calls = 0
        self.auth_response: Optional[httpx.Response] = None
        self.qr_requests: List[httpx.Request] = []
        self.create_calls: List[Dict[str, Any]] = []
        self.status_calls: List[Dict[str, Any]] = []
        self.create_response: Optional[Dict[str, Any]] = None
        self.status_response: Dict[str, Any] = {"success": True, "statusId": 1}
        self.status_error: Optional[Exception] = None
        self.unauthorized_responses = 0
        self._qr_counter = 0

    def auth_handler(self, request: httpx.Request) -> httpx.Response:
        self.auth_calls += 1
        if self.auth_response is not None:
            return self.auth_response
        return httpx.Response(200, json={"success": True, "message": f"token-{self.auth_calls}"})

    def qr_handler(self, request: httpx.Request) -> httpx.Response:
        self.qr_requests.append(request)
        if self.unauthorized_responses > 0:
            self.unauthorized_responses -= 1
            return httpx.Response(401, json={"message": "Token expired"})

        body = json.loads(request.content)
        if request.url.path.endswith("/main/getQRWithImageAsync"):
            self.create_calls.append(body)
            if self.create_response is not None:
                return httpx.Response(200, json=self.create_response)
            self._qr_counter += 1
            return httpx.Response(
                200,
                json={"success": True, "qrId": str(5000 + self._qr_counter), "qr": "iVBORw0KGgoAAAANS"},
            )
        if request.url.path.endswith("/main/getQRStatusAsync"):
            self.status_calls.append(body)
            if self.status_error is not None:
                raise self.status_error
            return httpx.Response(200, json=self.status_response)
        return httpx.Response(404, json={"message": "not found"})


class WebhookReceiver:
    """Records purchase webhook deliveries; can fail a number of times first."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.failures = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.failures > 0:
            self.failures -= 1
            return httpx.Response(503, text="unavailable")
        return httpx.Response(200, json={"ok": True})

    def delivered_to(self, url: str) -> List[Dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests if str(r.url) == url]


def make_settings(payments_file: Path, **overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "app_env": "test",
        "bnb_auth_url": AUTH_URL,
        "bnb_qr_url": QR_URL,
        "bnb_account_id": "test-account",
        "bnb_authorization_id": "test-authorization",
        "payments_file": payments_file,
        "purchase_webhook_main_url": MAIN_HOOK,
        "purchase_webhook_upsell_url": UPSELL_HOOK,
        "purchase_webhook_retry_delay": 0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_record(payment_id: str = "5001", **overrides: Any) -> PaymentRecord:
    values: Dict[str, Any] = {
        "transaction_id": f"MENT_1700000000000_{payment_id}",
        "payment_id": payment_id,
        "qr_id": payment_id,
        "qr_code_image": "data:image/png;base64,iVBORw0KGgo=",
        "amount_bob": 100.0,
        "expires_at": "2026-10-20",
        "customer": Customer(name="Ana", email="a@x.com", phone="+59170000000"),
        "product": "Mentoría de Cero al Millón",
        "product_type": "main",
        "gloss": "Mentoría - Ana",
    }
    values.update(overrides)
    return PaymentRecord(**values)


class FakeClock:
    """Settable clock for token expiry tests."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def payments_file(tmp_path: Path) -> Path:
    return tmp_path / "payments.json"


@pytest.fixture
def test_settings(payments_file: Path) -> Settings:
    return make_settings(payments_file)


@pytest.fixture
def fake_bank() -> FakeBank:
    return FakeBank()


@pytest.fixture
def webhook_receiver() -> WebhookReceiver:
    return WebhookReceiver()


@pytest.fixture
def auth_http(fake_bank: FakeBank) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_bank.auth_handler), base_url=AUTH_URL)


@pytest.fixture
def bnb_http(fake_bank: FakeBank) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_bank.qr_handler), base_url=QR_URL)


@pytest.fixture
def webhook_http(webhook_receiver: WebhookReceiver) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(webhook_receiver.handler))


@pytest_asyncio.fixture
async def services(
    test_settings: Settings,
    auth_http: httpx.AsyncClient,
    bnb_http: httpx.AsyncClient,
    webhook_http: httpx.AsyncClient,
) -> AsyncGenerator[CheckoutServices, Any]:
    """Full service graph wired to the fakes."""
    graph = build_services(
        test_settings, auth_http=auth_http, bnb_http=bnb_http, webhook_http=webhook_http
    )
    yield graph
    await graph.close()


@pytest_asyncio.fixture
async def client(services: CheckoutServices) -> AsyncGenerator[AsyncClient, Any]:
    """Create test HTTP client bound to the fake-backed services."""
    app.dependency_overrides[get_services] = lambda: services
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def sample_payment_data() -> Dict[str, Any]:
    """Sample create-payment request body."""
    return {
        "customer": {"name": "Ana", "email": "a@x.com", "phone": "+59170000000"},
        "amount": 100,
        "product_type": "main",
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def record_factory():
    """Build PaymentRecord instances with sensible defaults."""
    return make_record


@pytest.fixture
def settings_factory(payments_file: Path):
    """Build test settings with overrides."""
    return lambda **overrides: make_settings(payments_file, **overrides)
