"""
workflow.py — Core Orchestration Logic for PIX Checkout

This module contains the request-level workflows behind the HTTP endpoints.
It coordinates the correlation store, the Black Cat gateway and UTMify in the
correct sequence. Clients and store are passed in by the caller.

Workflow Overview:
1. Checkout: validate → order id → save UTMs → create PIX sale → UTMify waiting_payment
2. Status: look up the sale and map its status
3. Webhook: resolve UTMs (store, then metadata) → UTMify paid / refused → cleanup

The gateway result gates every response. UTMify is best effort: its failures
are logged and never change what the storefront or the gateway receives.
"""

import json
import logging
import math
import random
import string
import time
from datetime import datetime, timezone
from functools import partial
from typing import Any, Callable, Optional

from pydantic import ValidationError

from .clients import BlackCatClient, UtmifyClient, format_date, map_status, to_cents
from .config import get_settings
from .models import (
    CheckoutRequest,
    CreateSaleRequest,
    PixConfig,
    SaleCustomer,
    SaleData,
    SaleDocument,
    SaleItem,
    SaleShipping,
    TrackingParams,
    UtmifyCommission,
    UtmifyCustomer,
    UtmifyOrder,
    UtmifyProduct,
    WebhookEventKind,
    WebhookPayload,
)
from .store import CorrelationStore

log = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_uppercase


class ApiError(Exception):
    """Error with the HTTP status and message to return to the caller."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def _base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_order_id() -> str:
    """
    Generates the order reference shared with the gateway and UTMify.

    Format: PED-<epoch millis in base36>-<4 random base36 chars>, upper case.
    Unique only in probability; there is no collision check.
    """
    timestamp = _base36(int(time.time() * 1000))
    suffix = "".join(random.choices(_BASE36, k=4))
    return f"PED-{timestamp}-{suffix}"


def _digits(value: Optional[str]) -> str:
    return "".join(ch for ch in (value or "") if ch.isdigit())


def _now() -> datetime:
    return datetime.now(timezone.utc)


# --- Checkout ---

def parse_checkout(body: Any) -> CheckoutRequest:
    """
    Validates the raw checkout body.

    The three basic checks run first, in this order, so the storefront gets a
    specific message: customer data, items, total.

    Raises:
        ApiError(400): If the body is incomplete or malformed.
    """
    if not isinstance(body, dict):
        raise ApiError(400, "Dados do pedido inválidos")

    customer = body.get("customer")
    if not isinstance(customer, dict) or not all(customer.get(f) for f in ("name", "email", "cpf", "phone")):
        raise ApiError(400, "Dados do cliente incompletos")

    items = body.get("items")
    if not items:
        raise ApiError(400, "Nenhum item no pedido")

    total = body.get("total")
    if isinstance(total, bool) or not isinstance(total, (int, float)) or not math.isfinite(total) or total <= 0:
        raise ApiError(400, "Valor total inválido")

    try:
        return CheckoutRequest.model_validate(body)
    except ValidationError as e:
        log.warning(f"Pedido rejeitado na validação: {e.errors(include_url=False)}")
        raise ApiError(400, "Dados do pedido inválidos")


def build_sale_request(order_id: str, order: CheckoutRequest) -> CreateSaleRequest:
    """Builds the Black Cat create-sale payload. All prices are converted to cents here, once."""
    settings = get_settings()

    items = [
        SaleItem(title=item.name, unitPrice=to_cents(item.price), quantity=item.quantity, tangible=True)
        for item in order.items
    ]
    # Frete entra como item não tangível
    if order.shipping and order.shipping.price > 0:
        items.append(SaleItem(
            title=f"Frete - {order.shipping.name}",
            unitPrice=to_cents(order.shipping.price),
            quantity=1,
            tangible=False,
        ))

    address = order.address
    tracking = order.trackingParams.model_dump() if order.trackingParams else None

    return CreateSaleRequest(
        amount=to_cents(order.total),
        currency="BRL",
        paymentMethod="pix",
        items=items,
        customer=SaleCustomer(
            name=order.customer.name,
            email=order.customer.email,
            phone=_digits(order.customer.phone),
            document=SaleDocument(number=_digits(order.customer.cpf), type="cpf"),
        ),
        shipping=SaleShipping(
            name=order.customer.name,
            street=address.street,
            number=address.number,
            complement=address.complement or "",
            neighborhood=address.neighborhood,
            city=address.city,
            state=address.state,
            zipCode=_digits(address.cep),
        ),
        pix=PixConfig(expiresInDays=settings.pix_expires_in_days),
        postbackUrl=settings.postback_url,
        externalRef=order_id,
        metadata=json.dumps({"orderId": order_id, "trackingParams": tracking}),
    )


def build_waiting_payment_event(order_id: str, order: CheckoutRequest, amount_cents: int, sale: SaleData) -> UtmifyOrder:
    settings = get_settings()
    return UtmifyOrder(
        orderId=order_id,
        platform=settings.utmify_platform,
        paymentMethod="pix",
        status="waiting_payment",
        createdAt=format_date(_now()),
        approvedDate=None,
        refundedAt=None,
        customer=UtmifyCustomer(
            name=order.customer.name,
            email=order.customer.email,
            phone=_digits(order.customer.phone) or None,
            document=_digits(order.customer.cpf) or None,
        ),
        products=[
            UtmifyProduct(
                id=item.id or "product",
                name=item.name,
                quantity=item.quantity,
                priceInCents=to_cents(item.price),
            )
            for item in order.items
        ],
        trackingParameters=order.trackingParams or TrackingParams(),
        commission=UtmifyCommission(
            totalPriceInCents=amount_cents,
            gatewayFeeInCents=sale.fees or 0,
            userCommissionInCents=sale.netAmount or amount_cents,
        ),
    )


async def send_attribution_event(
        attribution: UtmifyClient,
        order_id: str,
        status: str,
        build_event: Callable[[], UtmifyOrder],
) -> bool:
    """
    Builds and sends an event to UTMify, swallowing any failure after logging it.

    The event is built inside the guarded block, so a bad payload is isolated
    the same way as a failed request.

    Returns:
        bool: True if UTMify accepted the event.
    """
    log_prefix = f"[Order: {order_id}]"
    try:
        result = await attribution.submit_order_event(build_event())
        log.info(f"{log_prefix} Evento {status} enviado para UTMify: {result}")
        return True
    except Exception as e:
        # UTMify nunca derruba o fluxo principal
        log.error(f"{log_prefix} Erro ao enviar evento {status} para UTMify: {e}", exc_info=True)
        return False


async def create_pix_checkout(
        order: CheckoutRequest,
        store: CorrelationStore,
        gateway: BlackCatClient,
        attribution: UtmifyClient,
) -> dict:
    """
    Executes the checkout workflow for one validated order.

    Steps:
        1. Generate the order id.
        2. Save tracking parameters in the store, before the gateway call so the webhook can find them.
        3. Create the PIX sale at Black Cat.
        4. Send the waiting_payment event to UTMify (failures are only logged).
        5. Return order id, transaction id and PIX artifacts.

    Args:
        order (CheckoutRequest): Validated checkout payload.
        store (CorrelationStore): Correlation store for tracking parameters.
        gateway (BlackCatClient): Gateway client.
        attribution (UtmifyClient): Attribution client.

    Returns:
        dict: {success, orderId, transactionId, pix: {qrcode, qrCodeBase64, expiresAt}}

    Raises:
        ApiError(500): If the gateway does not create the sale. No UTMify event is sent then.
    """
    order_id = generate_order_id()
    log_prefix = f"[Order: {order_id}]"
    log.info(f"{log_prefix} Novo checkout PIX: total {order.total}, {len(order.items)} item(ns).")

    if order.trackingParams:
        store.save(order_id, order.trackingParams)

    sale_request = build_sale_request(order_id, order)
    sale_response = await gateway.create_charge(sale_request)

    if not sale_response.success or sale_response.data is None:
        log.error(f"{log_prefix} Erro Black Cat: {sale_response.message} ({sale_response.error})")
        raise ApiError(500, sale_response.message or "Erro ao criar pagamento PIX")

    sale = sale_response.data
    log.info(f"{log_prefix} Venda criada. (TxID: {sale.transactionId}, status {sale.status})")

    await send_attribution_event(
        attribution,
        order_id,
        "waiting_payment",
        partial(build_waiting_payment_event, order_id, order, sale_request.amount, sale),
    )

    payment = sale.paymentData
    return {
        "success": True,
        "orderId": order_id,
        "transactionId": sale.transactionId,
        "pix": {
            "qrcode": payment.copyPaste or payment.qrCode,
            "qrCodeBase64": payment.qrCodeBase64,
            "expiresAt": payment.expiresAt,
        },
    }


# --- Status ---

async def get_pix_status(transaction_id: str, gateway: BlackCatClient) -> dict:
    """
    Looks up a sale and maps its status for the storefront.

    Raises:
        ApiError(500): If the gateway lookup fails.
    """
    response = await gateway.get_status(transaction_id)

    if not response.success or response.data is None:
        log.error(f"[Tx: {transaction_id}] Erro ao consultar status: {response.message} ({response.error})")
        raise ApiError(500, response.message or "Erro ao consultar status")

    data = response.data
    status = map_status(data.status)
    log.info(f"[Tx: {transaction_id}] Status: {data.status} -> {status}")

    return {
        "success": True,
        "transactionId": transaction_id,
        "status": status,
        "paidAt": data.paidAt,
        "endToEndId": data.endToEndId,
    }


# --- Seller ---

async def get_seller_profile(gateway: BlackCatClient) -> dict:
    response = await gateway.get_seller_profile()
    if not response.success or response.data is None:
        raise ApiError(500, response.message or "Erro ao obter vendedor")
    return {"success": True, **response.data.model_dump()}


# --- Webhook ---

def extract_tracking_params_from_metadata(metadata: Any) -> TrackingParams:
    """
    Recovers tracking parameters from the metadata echoed back by the gateway.

    Accepts the nested shape {"orderId": ..., "trackingParams": {...}} and a
    flat object holding the parameters directly. Anything unreadable yields
    all-null parameters.
    """
    if not metadata:
        return TrackingParams()

    try:
        parsed = json.loads(metadata) if isinstance(metadata, str) else metadata
        if not isinstance(parsed, dict):
            raise ValueError(f"metadata is not an object: {type(parsed).__name__}")
        tracking = parsed.get("trackingParams") or parsed
        if not isinstance(tracking, dict):
            raise ValueError("trackingParams is not an object")
        return TrackingParams.model_validate(tracking)
    except (ValueError, ValidationError) as e:
        log.error(f"[Webhook] Erro ao parsear metadata: {e}")
        return TrackingParams()


def resolve_tracking_params(order_id: str, metadata: Any, store: CorrelationStore) -> TrackingParams:
    """Store first (primary source), metadata as fallback when the store lost the entry."""
    stored = store.get(order_id)
    if stored is not None:
        log.info(f"[Order: {order_id}] UTMs recuperados do servidor.")
        return stored

    log.info(f"[Order: {order_id}] Usando fallback do metadata para UTMs.")
    return extract_tracking_params_from_metadata(metadata)


def build_webhook_event(payload: WebhookPayload, status: str, tracking: TrackingParams) -> UtmifyOrder:
    """Builds the UTMify event for a terminal webhook (paid or refused)."""
    settings = get_settings()
    order_id = payload.order_id
    amount = payload.amount or 0
    customer = payload.customer

    if status == "paid":
        approved_date = format_date(payload.paidAt or _now()) or format_date(_now())
        commission = UtmifyCommission(
            totalPriceInCents=amount,
            gatewayFeeInCents=payload.fees or 0,
            userCommissionInCents=payload.netAmount or amount,
        )
    else:
        approved_date = None
        commission = UtmifyCommission(totalPriceInCents=amount, gatewayFeeInCents=0, userCommissionInCents=0)

    return UtmifyOrder(
        orderId=order_id,
        platform=settings.utmify_platform,
        paymentMethod="pix",
        status=status,
        createdAt=format_date(_now()),
        approvedDate=approved_date,
        refundedAt=None,
        customer=UtmifyCustomer(
            name=(customer.name if customer else None) or "Cliente",
            email=(customer.email if customer else None) or "",
            phone=None,
            document=None,
        ),
        products=[
            UtmifyProduct(id="order", name=f"Pedido {order_id}", quantity=1, priceInCents=amount),
        ],
        trackingParameters=tracking,
        commission=commission,
    )


async def process_webhook(payload: WebhookPayload, store: CorrelationStore, attribution: UtmifyClient) -> dict:
    """
    Handles one gateway webhook event.

    Dispatch:
        - transaction.created: acknowledged only (waiting_payment was sent at checkout)
        - transaction.paid: UTMify 'paid' event; store entry removed once UTMify accepted it
        - transaction.failed: UTMify 'refused' event; store entry removed after the attempt
        - withdrawal.*: acknowledged only
        - anything else: acknowledged only

    Returns:
        dict: {success: True, message} in every branch. UTMify failures are only logged,
        so the gateway never retries an event because of them.
    """
    kind = WebhookEventKind.classify(payload.event)
    order_id = payload.order_id
    log_prefix = f"[Order: {order_id or '-'}]"

    if kind is WebhookEventKind.TRANSACTION_CREATED:
        log.info(f"{log_prefix} Transação criada: {payload.transactionId}")
        return {"success": True, "message": "Evento recebido"}

    if kind is WebhookEventKind.TRANSACTION_PAID:
        log.info(f"{log_prefix} Transação PAGA: {payload.transactionId}")
        tracking = resolve_tracking_params(order_id, payload.metadata, store)
        sent = await send_attribution_event(
            attribution, order_id, "paid", partial(build_webhook_event, payload, "paid", tracking),
        )
        if sent:
            store.delete(order_id)
        return {"success": True, "message": "Pagamento processado"}

    if kind is WebhookEventKind.TRANSACTION_FAILED:
        log.info(f"{log_prefix} Transação FALHOU: {payload.transactionId}. Motivo: {payload.reason}")
        tracking = resolve_tracking_params(order_id, payload.metadata, store)
        await send_attribution_event(
            attribution, order_id, "refused", partial(build_webhook_event, payload, "refused", tracking),
        )
        store.delete(order_id)
        return {"success": True, "message": "Falha processada"}

    if kind is WebhookEventKind.WITHDRAWAL:
        log.info(f"[Webhook] Evento de saque: {payload.event} ({payload.withdrawalId})")
        return {"success": True, "message": "Evento de saque recebido"}

    log.info(f"[Webhook] Evento não tratado: {payload.event}")
    return {"success": True, "message": "Evento recebido"}
