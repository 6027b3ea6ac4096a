"""
This module provides communication clients for the external systems used by the checkout service:
- Black Cat Payments (REST API): PIX sale creation, status lookup, seller profile
- UTMify (REST API): order lifecycle events for marketing attribution
It also holds the small pure helpers that belong to those APIs (cents conversion,
gateway status mapping, UTMify date format).
Each client encapsulates its protocol logic, error handling, and connection management.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Type, TypeVar, Union
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from .config import Settings, get_settings
from .models import (
    CreateSaleRequest,
    GatewayResponse,
    SaleResponse,
    SellerResponse,
    StatusResponse,
    UtmifyOrder,
)

log = logging.getLogger(__name__)

CONNECTION_ERROR_MESSAGE = "Erro de conexão com a API"

R = TypeVar("R", bound=GatewayResponse)


# --- Helpers ---

def to_cents(value: float) -> int:
    """
    Converts an amount in reais to integer cents.

    Uses the built-in round() (half to even on the float product), so
    to_cents(19.9) == 1990 and to_cents(0.005) == 0. Apply it exactly once.
    """
    return int(round(value * 100))


def from_cents(value: int) -> float:
    """Converts integer cents back to reais."""
    return value / 100


_STATUS_MAP = {
    "PENDING": "pending",
    "PAID": "paid",
    "CANCELLED": "cancelled",
    "REFUNDED": "refunded",
}


def map_status(status: Optional[str]) -> str:
    """Maps a Black Cat sale status to the storefront status. Unknown values map to 'pending'."""
    return _STATUS_MAP.get((status or "").upper(), "pending")


def format_date(value: Union[datetime, str, None]) -> str:
    """
    Formats a timestamp the way UTMify expects it: 'YYYY-MM-DD HH:MM:SS' in UTC.

    Accepts a datetime or an ISO-8601 string. Naive datetimes are taken as UTC.
    Returns an empty string for None or anything that cannot be parsed.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return ""
    if not isinstance(value, datetime):
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


# --- Black Cat Client (REST) ---
class BlackCatClient:
    """
    Client for the Black Cat Payments API.

    Every call returns a response model with a `success` flag. HTTP errors,
    transport errors and unreadable bodies are converted into
    `success=False` responses; nothing is raised to the caller.
    """
    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initializes the HTTP client with base URL, credential headers and timeout.

        Args:
            settings (Settings, optional): Defaults to the current environment.
            transport (httpx.AsyncBaseTransport, optional): Custom transport (tests, sandbox).
        """
        self.settings = settings or get_settings()
        timeout_config = httpx.Timeout(self.settings.http_timeout_seconds)
        self.client = httpx.AsyncClient(
            base_url=self.settings.blackcat_api_url,
            headers=self.build_headers(self.settings),
            timeout=timeout_config,
            transport=transport,
        )

    @staticmethod
    def build_headers(settings: Settings) -> dict:
        api_key = settings.blackcat_api_key
        return {
            "Content-Type": "application/json",
            "x-api-key": api_key,
            "Authorization": f"Bearer {api_key}",
            # Headers do esquema antigo de credenciais, mantidos por compatibilidade
            "x-public-key": settings.blackcat_public_key,
            "x-secret-key": settings.blackcat_secret_key,
        }

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self):
        """Closes the HTTP client session."""
        await self.client.aclose()

    async def _request(self, method: str, path: str, response_model: Type[R], default_message: str, **kwargs) -> R:
        try:
            response = await self.client.request(method, path, **kwargs)
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            log.error(f"[BlackCat] Erro na requisição {method} {path}: {e}")
            return response_model(success=False, message=CONNECTION_ERROR_MESSAGE, error=str(e))

        log.info(f"[BlackCat] {method} {path} -> HTTP {response.status_code}")
        log.debug(f"[BlackCat] Response: {data}")

        if not isinstance(data, dict):
            log.error(f"[BlackCat] Resposta inesperada em {path}: {data!r}")
            return response_model(success=False, message=default_message, error="unexpected response body")

        if not response.is_success:
            log.error(f"[BlackCat] {default_message} (HTTP {response.status_code}): {data}")
            return response_model(
                success=False,
                message=data.get("message") or default_message,
                error=data.get("error"),
            )

        try:
            return response_model.model_validate(data)
        except ValidationError as e:
            log.error(f"[BlackCat] Resposta inválida em {path}: {e}")
            return response_model(success=False, message=default_message, error=str(e))

    async def create_charge(self, request: CreateSaleRequest) -> SaleResponse:
        """
        Creates a PIX sale.

        Args:
            request (CreateSaleRequest): Sale payload, amounts already in cents.

        Returns:
            SaleResponse: On success, transaction id, status, amounts, fees and PIX artifacts.
        """
        log.info(f"[Order: {request.externalRef}] [BlackCat] Criando venda PIX: {request.amount} centavos, "
                 f"cliente {request.customer.name} <{request.customer.email}>")
        return await self._request(
            "POST",
            "/sales/create-sale",
            SaleResponse,
            "Erro ao criar venda",
            json=request.model_dump(mode="json", exclude_none=True),
        )

    async def get_status(self, transaction_id: str) -> StatusResponse:
        """Looks up the current status of a sale by transaction id."""
        log.info(f"[Tx: {transaction_id}] [BlackCat] Consultando status da transação.")
        return await self._request(
            "GET",
            f"/sales/{quote(transaction_id, safe='')}/status",
            StatusResponse,
            "Erro ao consultar status",
        )

    async def get_seller_profile(self) -> SellerResponse:
        """Fetches the seller account behind the configured credentials."""
        log.info("[BlackCat] Obtendo dados do vendedor...")
        return await self._request("GET", "/sales/seller", SellerResponse, "Erro ao obter vendedor")


# --- UTMify Client (REST) ---
class UtmifyClient:
    """
    Client for the UTMify orders API.

    Unlike the gateway client this one raises: callers decide how to isolate
    attribution failures from the main flow.
    """
    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        timeout_config = httpx.Timeout(self.settings.http_timeout_seconds)
        self.client = httpx.AsyncClient(timeout=timeout_config, transport=transport)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self):
        await self.client.aclose()

    async def submit_order_event(self, order: UtmifyOrder) -> dict:
        """
        Sends an order lifecycle event to UTMify.

        Args:
            order (UtmifyOrder): Event payload.

        Returns:
            dict: Decoded response body (empty if UTMify returns no JSON).

        Raises:
            httpx.HTTPStatusError: If UTMify answers with 4xx/5xx.
            httpx.HTTPError: On transport errors and timeouts.
        """
        headers = {"Content-Type": "application/json", "x-api-token": self.settings.utmify_api_token}
        try:
            response = await self.client.post(
                self.settings.utmify_api_url,
                json=order.model_dump(mode="json"),
                headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            log.error(f"[Order: {order.orderId}] [UTMify] HTTP {e.response.status_code}: {e.response.text}")
            raise
        except httpx.HTTPError as e:
            log.error(f"[Order: {order.orderId}] [UTMify] Erro na requisição: {e}")
            raise

        log.info(f"[Order: {order.orderId}] [UTMify] Evento {order.status} aceito (HTTP {response.status_code}).")
        try:
            return response.json()
        except ValueError:
            return {}
