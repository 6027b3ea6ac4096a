"""Pytest configuration, fixtures and test doubles."""

from __future__ import annotations

import os

import httpx
import pytest

# Keep the app from writing a log file into the working tree on import
os.environ.setdefault("LOG_FILE", "")

from fastapi.testclient import TestClient  # noqa: E402

from pix_checkout.models import (  # noqa: E402
    PaymentData,
    SaleData,
    SaleResponse,
    SellerData,
    SellerResponse,
    StatusData,
    StatusResponse,
)
from pix_checkout.store import InMemoryCorrelationStore  # noqa: E402


class FakeGateway:
    """Stands in for BlackCatClient and records every call."""

    def __init__(self) -> None:
        self.sale_response = SaleResponse(
            success=True,
            data=SaleData(
                transactionId="bc_tx_1",
                status="PENDING",
                paymentMethod="pix",
                amount=5989,
                netAmount=5650,
                fees=339,
                paymentData=PaymentData(
                    qrCode="qr-code-string",
                    qrCodeBase64="aW1hZ2U=",
                    copyPaste="pix-copy-paste",
                    expiresAt="2026-10-20T12:00:00Z",
                ),
            ),
        )
        self.status_response = StatusResponse(
            success=True,
            data=StatusData(
                transactionId="bc_tx_1",
                status="PAID",
                amount=5989,
                paidAt="2026-10-19T14:30:00Z",
                endToEndId="E1234567820261019143000000000001",
            ),
        )
        self.seller_response = SellerResponse(
            success=True,
            data=SellerData(name="Papelaria", legalName="Papelaria LTDA", cnpj="12345678000190", logo=None),
        )
        self.error: Exception | None = None
        self.created: list = []
        self.status_calls: list[str] = []

    async def create_charge(self, request):
        self.created.append(request)
        if self.error:
            raise self.error
        return self.sale_response

    async def get_status(self, transaction_id):
        self.status_calls.append(transaction_id)
        return self.status_response

    async def get_seller_profile(self):
        return self.seller_response


class RecordingAttribution:
    """Stands in for UtmifyClient; optionally fails after recording the event."""

    def __init__(self) -> None:
        self.events: list = []
        self.error: Exception | None = None

    async def submit_order_event(self, order):
        self.events.append(order)
        if self.error:
            raise self.error
        return {"OK": True}


@pytest.fixture(autouse=True)
def _env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BLACKCAT_PUBLIC_KEY", "pk_test")
    monkeypatch.setenv("BLACKCAT_SECRET_KEY", "sk_test")
    monkeypatch.setenv("BLACKCAT_API_URL", "https://api.blackcat.test/api")
    monkeypatch.setenv("APP_URL", "https://loja.example.com")
    monkeypatch.setenv("UTMIFY_API_URL", "https://utmify.test/api-credentials/orders")
    monkeypatch.setenv("UTMIFY_API_TOKEN", "utm_test")
    monkeypatch.setenv("UTMIFY_PLATFORM", "papelaria-site")
    monkeypatch.delenv("PIX_EXPIRES_IN_DAYS", raising=False)
    monkeypatch.setenv("LOG_FILE", "")


@pytest.fixture
def store() -> InMemoryCorrelationStore:
    return InMemoryCorrelationStore()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def attribution() -> RecordingAttribution:
    return RecordingAttribution()


@pytest.fixture
def client(store, gateway, attribution):
    from pix_checkout.main import app, get_attribution_client, get_gateway_client, get_store

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_gateway_client] = lambda: gateway
    app.dependency_overrides[get_attribution_client] = lambda: attribution
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def order_payload() -> dict:
    return {
        "customer": {
            "name": "Maria Silva",
            "email": "maria@example.com",
            "cpf": "123.456.789-09",
            "phone": "(11) 98765-4321",
        },
        "address": {
            "street": "Rua das Flores",
            "number": "100",
            "complement": "",
            "neighborhood": "Centro",
            "city": "São Paulo",
            "state": "SP",
            "cep": "01001-000",
        },
        "items": [
            {"id": "caderno-01", "name": "Caderno", "price": 19.9, "quantity": 2},
            {"name": "Caneta", "price": 4.5, "quantity": 1},
        ],
        "shipping": {"name": "PAC", "price": 15.59},
        "total": 59.89,
        "trackingParams": {
            "src": "",
            "sck": "click-42",
            "utm_source": "facebook",
            "utm_campaign": "volta-as-aulas",
            "utm_medium": "cpc",
        },
    }


@pytest.fixture
def utmify_down() -> httpx.ConnectError:
    return httpx.ConnectError("connection refused", request=httpx.Request("POST", "https://utmify.test"))
