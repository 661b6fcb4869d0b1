"""
Payment endpoints — gateway client token and checkout.
"""

import logging

from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from domain.constants import IDEMPOTENCY_HEADER
from domain.errors import GatewayError, ValidationError
from domain.responses import success_response
from exceptions import GatewayUnavailableError
from middleware.auth import Identity, require_sign_in
from middleware.rate_limit import rate_limit
from models import CheckoutRequest, ClientTokenResponse
from services import checkout_service, order_service
from services.checkout_service import CartLine
from services.payment_gateway import PaymentGateway, get_payment_gateway
from utils.money import D

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/payment", tags=["payment"])


@router.get("/token", response_model=ClientTokenResponse, response_model_by_alias=True)
async def client_token(gateway: PaymentGateway = Depends(get_payment_gateway)):
    """Client token for the drop-in UI. No authentication required."""
    try:
        token = await gateway.generate_client_token()
    except GatewayUnavailableError:
        raise GatewayError("Payment gateway unavailable")
    return ClientTokenResponse(clientToken=token)


@router.post("/checkout")
async def checkout(
    request: CheckoutRequest,
    identity: Identity = Depends(require_sign_in),
    x_idempotency_key: str | None = Header(None, alias=IDEMPOTENCY_HEADER),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=30, window_seconds=60)),
):
    header_key = (x_idempotency_key or "").strip() or None
    body_key = (request.idempotency_key or "").strip() or None
    if header_key and body_key and header_key != body_key:
        raise ValidationError("Idempotency key in header and body differ")

    cart = [
        CartLine(product_id=line.product_id, price=D(line.price), quantity=line.quantity)
        for line in (request.cart or [])
    ]
    result = await checkout_service.checkout(
        db,
        gateway=gateway,
        buyer_id=identity.subject,
        nonce=request.nonce,
        cart=cart,
        idempotency_key=header_key or body_key,
    )
    return success_response(
        data={"ok": True, "order": await order_service.project_order(db, result.order)},
        meta={"replayed": result.replayed},
    )
