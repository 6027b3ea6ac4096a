"""
mock_blackcat.py — Mock Implementation of the Black Cat Payments API (REST API)

This module provides a simulated Black Cat gateway for local runs and client tests.
It exposes a small FastAPI application that mimics the sale endpoints the checkout
service calls, keeping sales in memory.

Simulation Scenarios:
    • Successful PIX sale creation (status PENDING, fake QR artifacts)
    • Declined sale (HTTP 400) when the customer e-mail contains "decline"
    • Missing credentials (HTTP 401) when no x-api-key header is sent
    • Manual settlement via POST /sales/{transactionId}/pay

Endpoints:
    POST /sales/create-sale
    GET  /sales/{transactionId}/status
    POST /sales/{transactionId}/pay
    GET  /sales/seller

Port:
    Default: 8001 (HTTP). Point BLACKCAT_API_URL at http://localhost:8001 to use it.
"""

import logging
import time
import uuid
from typing import Dict, List, Optional

from fastapi import FastAPI, Header
from fastapi.responses import JSONResponse
from pydantic import BaseModel

app = FastAPI(title="Mock Black Cat Payments")
log = logging.getLogger(__name__)

FEE_PERCENT = 0.0399
FEE_FIXED_CENTS = 100

sales: Dict[str, dict] = {}


class SaleCustomer(BaseModel):
    name: str
    email: str
    phone: str = ""


class SaleItem(BaseModel):
    title: str
    unitPrice: int
    quantity: int
    tangible: bool = True


class CreateSaleRequest(BaseModel):
    """
    Represents a create-sale payload.

    Attributes:
        amount (int): Total amount in cents.
        paymentMethod (str): Only "pix" is simulated.
        items (List[SaleItem]): Sale lines, prices in cents.
        customer (SaleCustomer): Buyer data.
        externalRef (str, optional): Merchant order reference.
    """
    amount: int
    currency: str = "BRL"
    paymentMethod: str = "pix"
    items: List[SaleItem]
    customer: SaleCustomer
    externalRef: Optional[str] = None
    postbackUrl: Optional[str] = None
    metadata: Optional[str] = None


def _now() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def _error(status_code: int, message: str, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message, "error": error})


@app.post("/sales/create-sale")
def create_sale(request: CreateSaleRequest, x_api_key: Optional[str] = Header(None)):
    """
    Creates a simulated PIX sale.

    Returns:
        dict: Sale data in the gateway envelope, status PENDING.
    """
    if not x_api_key:
        return _error(401, "API key inválida", "unauthorized")

    log.info(f"[BC] Venda PIX para {request.externalRef}: {request.amount} centavos")

    if "decline" in request.customer.email:
        log.warning(f"[BC] Venda {request.externalRef} recusada.")
        return _error(400, "Venda recusada pela análise de risco", "sale_declined")

    transaction_id = f"bc_{uuid.uuid4().hex[:16]}"
    fees = int(request.amount * FEE_PERCENT) + FEE_FIXED_CENTS
    copy_paste = f"00020126580014br.gov.bcb.pix0136{transaction_id}5204000053039865802BR6304ABCD"
    sale = {
        "transactionId": transaction_id,
        "status": "PENDING",
        "paymentMethod": "pix",
        "amount": request.amount,
        "netAmount": request.amount - fees,
        "fees": fees,
        "invoiceUrl": f"https://mock.blackcat.local/invoice/{transaction_id}",
        "createdAt": _now(),
        "paymentData": {
            "qrCode": copy_paste,
            "qrCodeBase64": "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg==",
            "copyPaste": copy_paste,
            "expiresAt": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time() + 86400)),
        },
    }
    sales[transaction_id] = sale
    return {"success": True, "data": sale}


@app.get("/sales/seller")
def get_seller(x_api_key: Optional[str] = Header(None)):
    if not x_api_key:
        return _error(401, "API key inválida", "unauthorized")
    return {
        "success": True,
        "data": {"name": "Papelaria Mock", "legalName": "Papelaria Mock LTDA", "cnpj": "12345678000190", "logo": None},
    }


@app.get("/sales/{transaction_id}/status")
def get_status(transaction_id: str, x_api_key: Optional[str] = Header(None)):
    if not x_api_key:
        return _error(401, "API key inválida", "unauthorized")
    sale = sales.get(transaction_id)
    if sale is None:
        return _error(404, "Transação não encontrada", "not_found")
    return {"success": True, "data": {k: v for k, v in sale.items() if k != "paymentData"}}


@app.post("/sales/{transaction_id}/pay")
def pay_sale(transaction_id: str):
    """Marks a sale as paid, the way a settled PIX would show up in the status endpoint."""
    sale = sales.get(transaction_id)
    if sale is None:
        return _error(404, "Transação não encontrada", "not_found")
    sale["status"] = "PAID"
    sale["paidAt"] = _now()
    sale["endToEndId"] = f"E{uuid.uuid4().hex[:31].upper()}"
    log.info(f"[BC] Venda {transaction_id} paga.")
    return {"success": True, "data": sale}


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8001)
