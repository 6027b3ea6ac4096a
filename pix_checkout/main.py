"""
main.py — FastAPI Entry Point for the PIX Checkout Service

This module provides the REST API used by the storefront and by the Black Cat
payment gateway. It validates incoming requests, hands them to the workflows
in `workflow.py` and renders every error as `{"error": message}`.

Responsibilities:
    • Create PIX charges for storefront orders
    • Report charge status for storefront polling
    • Receive gateway webhooks and relay them to UTMify
    • Wire the correlation store and the API clients into the handlers
"""

from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .clients import BlackCatClient, UtmifyClient
from .config import get_settings
from .logging_config import get_logger, setup_logging
from .models import WebhookPayload
from .store import CorrelationStore, InMemoryCorrelationStore
from .workflow import (
    ApiError,
    create_pix_checkout,
    get_pix_status,
    get_seller_profile,
    parse_checkout,
    process_webhook,
)

# Initialization
# Configure logging and initialize FastAPI app
setup_logging()
log = get_logger(__name__)
app = FastAPI(title="Checkout PIX")

# Single process-wide store; swap for a shared TTL store when running several instances
correlation_store = InMemoryCorrelationStore()


# Dependencies
def get_store() -> CorrelationStore:
    return correlation_store


async def get_gateway_client():
    async with BlackCatClient() as client:
        yield client


async def get_attribution_client():
    async with UtmifyClient() as client:
        yield client


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.on_event("startup")
def on_startup():
    """
    FastAPI startup event handler.

    Logs which credentials are configured (never their values) so a missing
    key shows up in the logs before the first checkout fails.
    """
    settings = get_settings()
    log.info("Checkout PIX iniciando...")
    if not settings.blackcat_api_key:
        log.warning("BLACKCAT_SECRET_KEY / BLACKCAT_PUBLIC_KEY não configuradas.")
    if not settings.utmify_api_token:
        log.warning("UTMIFY_API_TOKEN não configurado, eventos UTMify serão recusados.")
    log.info(f"Postback URL: {settings.postback_url}")


# API Endpoint: Storefront → Black Cat
@app.post("/api/pix/create")
async def create_pix(
        request: Request,
        store: CorrelationStore = Depends(get_store),
        gateway: BlackCatClient = Depends(get_gateway_client),
        attribution: UtmifyClient = Depends(get_attribution_client),
):
    """
    Creates a PIX charge for a storefront order.

    Returns:
        dict: {success, orderId, transactionId, pix: {qrcode, qrCodeBase64, expiresAt}}

    Raises:
        ApiError(400): Incomplete customer data, no items, invalid total or malformed body.
        ApiError(500): Gateway failure (gateway message forwarded) or unexpected error.
    """
    try:
        body = await request.json()
    except ValueError:
        raise ApiError(400, "Dados do pedido inválidos")

    try:
        order = parse_checkout(body)
        return await create_pix_checkout(order, store, gateway, attribution)
    except ApiError:
        raise
    except Exception as e:
        log.critical(f"[PIX Create] Erro inesperado: {e}", exc_info=True)
        raise ApiError(500, "Erro interno ao processar pagamento")


# API Endpoint: Storefront polling
@app.get("/api/pix/status")
async def pix_status(
        transactionId: Optional[str] = Query(None),
        gateway: BlackCatClient = Depends(get_gateway_client),
):
    """
    Returns the mapped status of a PIX charge.

    Raises:
        ApiError(400): transactionId missing.
        ApiError(500): Gateway failure or unexpected error.
    """
    if not transactionId:
        raise ApiError(400, "transactionId é obrigatório")

    try:
        return await get_pix_status(transactionId, gateway)
    except ApiError:
        raise
    except Exception as e:
        log.critical(f"[Tx: {transactionId}] Erro inesperado ao consultar status: {e}", exc_info=True)
        raise ApiError(500, "Erro interno ao consultar status")


# API Endpoint: Black Cat → UTMify
@app.post("/api/webhook/blackcat")
async def blackcat_webhook(
        request: Request,
        store: CorrelationStore = Depends(get_store),
        attribution: UtmifyClient = Depends(get_attribution_client),
):
    """
    Receives Black Cat webhook events.

    The X-Webhook-Event / X-Webhook-Source headers are only logged; the sender
    is not authenticated. Any event that can be decoded is acknowledged with
    200, including the ones that are ignored, so the gateway does not retry.

    Raises:
        ApiError(500): Body is not a decodable event envelope, or unexpected error.
    """
    log.info(f"[Webhook] Recebido. Event: {request.headers.get('X-Webhook-Event')} "
             f"Source: {request.headers.get('X-Webhook-Source')}")

    try:
        payload = WebhookPayload.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        log.error(f"[Webhook] Payload inválido: {e}")
        raise ApiError(500, "Erro ao processar webhook")

    try:
        return await process_webhook(payload, store, attribution)
    except Exception as e:
        log.critical(f"[Webhook] Erro inesperado no evento {payload.event}: {e}", exc_info=True)
        raise ApiError(500, "Erro ao processar webhook")


@app.get("/api/seller")
async def seller_profile(gateway: BlackCatClient = Depends(get_gateway_client)):
    """Returns the Black Cat seller profile behind the configured credentials."""
    try:
        return await get_seller_profile(gateway)
    except ApiError:
        raise
    except Exception as e:
        log.critical(f"[Seller] Erro inesperado: {e}", exc_info=True)
        raise ApiError(500, "Erro interno ao obter vendedor")


# Health Check Endpoint
@app.get("/health")
def health_check():
    """
    Simple health check endpoint for monitoring systems and container orchestrators.

    Returns:
        dict: {"status": "ok"}
    """
    return {"status": "ok"}
