"""
models.py — Data Models for PIX Checkout

This module defines every payload shape the service reads or writes. It uses
Pydantic models to get type safety and validation at each boundary.

Models:
    - Storefront input: Customer, Address, CartItem, ShippingOption, TrackingParams, CheckoutRequest
    - Black Cat gateway: CreateSaleRequest and the sale / status / seller responses
    - UTMify attribution: UtmifyOrder and its blocks
    - Gateway webhook: WebhookPayload and WebhookEventKind
"""

import math
from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

TRACKING_FIELDS = ("src", "sck", "utm_source", "utm_campaign", "utm_medium", "utm_content", "utm_term")


class _StorefrontModel(BaseModel):
    # The storefront sends numbers for things like house number or product id
    model_config = ConfigDict(coerce_numbers_to_str=True)


# --- Storefront ---

class Customer(_StorefrontModel):
    """
    Buyer data as collected by the storefront.

    Attributes:
        name (str): Full name.
        email (str): E-mail address.
        cpf (str): CPF document number, formatted or digits only.
        phone (str): Phone number, formatted or digits only.
    """
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    cpf: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)


class Address(_StorefrontModel):
    street: str = ""
    number: str = ""
    complement: Optional[str] = None
    neighborhood: str = ""
    city: str = ""
    state: str = ""
    cep: Optional[str] = None


class CartItem(_StorefrontModel):
    """
    A single product line in the cart.

    Attributes:
        id (str, optional): Storefront product id.
        name (str): Product name shown to the gateway and attribution service.
        price (float): Unit price in reais (converted to cents for the gateway).
        quantity (int): Quantity, greater than zero.
    """
    id: Optional[str] = None
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., gt=0)


class ShippingOption(_StorefrontModel):
    name: str = ""
    price: float = 0.0


class TrackingParams(_StorefrontModel):
    """
    Marketing attribution parameters captured by the storefront.

    Every field is optional. An empty string is treated the same as an absent
    value and stored as None, which is sent to UTMify as null. A field holding
    something other than text or a number is dropped to None on its own,
    without discarding the other fields.
    """
    src: Optional[str] = None
    sck: Optional[str] = None
    utm_source: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_content: Optional[str] = None
    utm_term: Optional[str] = None

    @field_validator(*TRACKING_FIELDS, mode="before")
    @classmethod
    def _empty_as_none(cls, value):
        if value == "" or isinstance(value, bool) or not isinstance(value, (str, int, float)):
            return None
        return value


class CheckoutRequest(_StorefrontModel):
    """
    Complete checkout payload posted by the storefront.

    Attributes:
        customer (Customer): Buyer data.
        address (Address): Delivery address.
        items (List[CartItem]): Cart lines, at least one.
        total (float): Order total in reais, including shipping. Must be positive.
        shipping (ShippingOption, optional): Selected carrier and price.
        trackingParams (TrackingParams, optional): UTM / click parameters.
    """
    customer: Customer
    address: Address = Field(default_factory=Address)
    items: List[CartItem] = Field(..., min_length=1)
    total: float = Field(..., gt=0)
    shipping: Optional[ShippingOption] = None
    trackingParams: Optional[TrackingParams] = None


# --- Black Cat gateway ---

class SaleDocument(BaseModel):
    number: str
    type: Literal["cpf", "cnpj"] = "cpf"


class SaleCustomer(BaseModel):
    name: str
    email: str
    phone: str
    document: SaleDocument


class SaleItem(BaseModel):
    """Gateway line item. unitPrice is in cents; shipping lines are not tangible."""
    title: str
    unitPrice: int
    quantity: int
    tangible: bool = True


class SaleShipping(BaseModel):
    name: str
    street: str
    number: str
    complement: str = ""
    neighborhood: str
    city: str
    state: str
    zipCode: str


class PixConfig(BaseModel):
    expiresInDays: int = 1


class CreateSaleRequest(BaseModel):
    amount: int
    currency: str = "BRL"
    paymentMethod: Literal["pix"] = "pix"
    items: List[SaleItem]
    customer: SaleCustomer
    pix: PixConfig = Field(default_factory=PixConfig)
    shipping: Optional[SaleShipping] = None
    metadata: Optional[str] = None
    postbackUrl: Optional[str] = None
    externalRef: Optional[str] = None


class PaymentData(BaseModel):
    qrCode: Optional[str] = None
    qrCodeBase64: Optional[str] = None
    copyPaste: Optional[str] = None
    expiresAt: Optional[str] = None


class SaleData(BaseModel):
    transactionId: str
    status: str = "PENDING"
    paymentMethod: Optional[str] = None
    amount: int = 0
    netAmount: Optional[int] = None
    fees: Optional[int] = None
    invoiceUrl: Optional[str] = None
    createdAt: Optional[str] = None
    paymentData: PaymentData = Field(default_factory=PaymentData)


class StatusData(BaseModel):
    transactionId: str
    status: str = "PENDING"
    paymentMethod: Optional[str] = None
    amount: int = 0
    netAmount: Optional[int] = None
    fees: Optional[int] = None
    paidAt: Optional[str] = None
    endToEndId: Optional[str] = None


class SellerData(BaseModel):
    name: str = ""
    legalName: str = ""
    cnpj: str = ""
    logo: Optional[str] = None


class GatewayResponse(BaseModel):
    """Envelope shared by every gateway call: success flag, data, or message/error."""
    success: bool = False
    message: Optional[str] = None
    error: Optional[Any] = None


class SaleResponse(GatewayResponse):
    data: Optional[SaleData] = None


class StatusResponse(GatewayResponse):
    data: Optional[StatusData] = None


class SellerResponse(GatewayResponse):
    data: Optional[SellerData] = None


# --- UTMify attribution ---

class UtmifyCustomer(BaseModel):
    name: str
    email: str
    phone: Optional[str] = None
    document: Optional[str] = None
    country: str = "BR"


class UtmifyProduct(BaseModel):
    id: str
    name: str
    planId: Optional[str] = None
    planName: Optional[str] = None
    quantity: int
    priceInCents: int


class UtmifyCommission(BaseModel):
    totalPriceInCents: int
    gatewayFeeInCents: int
    userCommissionInCents: int
    currency: str = "BRL"


class UtmifyOrder(BaseModel):
    """
    Order lifecycle event sent to UTMify.

    Attributes:
        orderId (str): Our order id (PED-...).
        platform (str): Platform tag configured for this store.
        status (str): waiting_payment, paid or refused.
        createdAt (str): 'YYYY-MM-DD HH:MM:SS' in UTC.
        approvedDate (str, optional): Set for paid events.
        trackingParameters (TrackingParams): Attribution parameters.
        commission (UtmifyCommission): Total, gateway fee and net amounts in cents.
    """
    orderId: str
    platform: str
    paymentMethod: str = "pix"
    status: Literal["waiting_payment", "paid", "refused"]
    createdAt: str
    approvedDate: Optional[str] = None
    refundedAt: Optional[str] = None
    customer: UtmifyCustomer
    products: List[UtmifyProduct]
    trackingParameters: TrackingParams = Field(default_factory=TrackingParams)
    commission: UtmifyCommission


# --- Webhook ---

WEBHOOK_TEXT_FIELDS = (
    "timestamp", "transactionId", "withdrawalId", "externalReference", "status", "paymentMethod",
    "acquirer", "acquirerTransactionId", "paidAt", "endToEndId", "reason",
)
WEBHOOK_AMOUNT_FIELDS = ("amount", "netAmount", "fees")


def _loose_text(value):
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return str(value)


class WebhookCustomer(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None

    @field_validator("name", "email", mode="before")
    @classmethod
    def _text(cls, value):
        return _loose_text(value)


class WebhookPayload(BaseModel):
    """
    Event envelope posted by Black Cat to the postback URL.

    Only `event` is mandatory and strictly typed. The other fields are decoded
    leniently: numbers sent for text fields become text, amounts are rounded
    to whole cents, and values of the wrong kind become None. `metadata` is
    the string we sent at sale creation, echoed back by the gateway.
    """
    model_config = ConfigDict(coerce_numbers_to_str=True)

    event: str
    timestamp: Optional[str] = None
    transactionId: Optional[str] = None
    withdrawalId: Optional[str] = None
    externalReference: Optional[str] = None
    status: Optional[str] = None
    amount: Optional[int] = None
    netAmount: Optional[int] = None
    fees: Optional[int] = None
    paymentMethod: Optional[str] = None
    acquirer: Optional[str] = None
    acquirerTransactionId: Optional[str] = None
    paidAt: Optional[str] = None
    endToEndId: Optional[str] = None
    reason: Optional[str] = None
    customer: Optional[WebhookCustomer] = None
    metadata: Optional[Any] = None

    @field_validator(*WEBHOOK_TEXT_FIELDS, mode="before")
    @classmethod
    def _text(cls, value):
        return _loose_text(value)

    @field_validator(*WEBHOOK_AMOUNT_FIELDS, mode="before")
    @classmethod
    def _cents(cls, value):
        if isinstance(value, str):
            try:
                value = float(value)
            except ValueError:
                return None
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            return None
        return int(round(value))

    @field_validator("customer", mode="before")
    @classmethod
    def _customer_object(cls, value):
        return value if isinstance(value, (dict, WebhookCustomer)) else None

    @property
    def order_id(self) -> str:
        return self.externalReference or self.transactionId or ""


class WebhookEventKind(Enum):
    TRANSACTION_CREATED = "transaction.created"
    TRANSACTION_PAID = "transaction.paid"
    TRANSACTION_FAILED = "transaction.failed"
    WITHDRAWAL = "withdrawal.*"
    UNRECOGNIZED = "*"

    @classmethod
    def classify(cls, event: str) -> "WebhookEventKind":
        if event.startswith("withdrawal."):
            return cls.WITHDRAWAL
        for kind in (cls.TRANSACTION_CREATED, cls.TRANSACTION_PAID, cls.TRANSACTION_FAILED):
            if event == kind.value:
                return kind
        return cls.UNRECOGNIZED
