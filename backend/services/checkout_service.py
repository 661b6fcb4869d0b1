"""
Checkout orchestrator — turns a cart into a paid, persisted order.

Per attempt:

    RECEIVED ──► VALIDATED ──► GATEWAY_AUTHORIZED ──► PERSISTED
        │             │
        ▼             ▼
    REJECTED    GATEWAY_FAILED

RECEIVED → VALIDATED
    nonce and cart present; idempotency key not already used; every line
    reconciled against the catalog (price must match, stock must cover the
    quantity); stock reserved with conditional decrements and committed
    before the gateway is called.
VALIDATED → GATEWAY_AUTHORIZED
    one sale for the server-computed total, settled immediately.
GATEWAY_AUTHORIZED → PERSISTED
    order insert + reservation commit in one transaction.

A declined or unreachable gateway releases the reservations. A persistence
failure after a successful sale is a charged-but-unrecorded incident: it is
logged at CRITICAL, written to payment_incidents and repaired by the
reconciler.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import Order, PaymentIncident
from domain.constants import CART_REQUIRED_MESSAGE, NONCE_REQUIRED_MESSAGE
from domain.enums import CheckoutState, IncidentStatus
from domain.errors import (
    ConflictError,
    DomainError,
    GatewayError,
    InsufficientStockError,
    InternalError,
    NotFoundError,
    PriceMismatchError,
    ValidationError,
)
from exceptions import GatewayUnavailableError
from services import catalog_service, order_service
from services.payment_gateway import PaymentGateway, SaleResult
from utils.money import round_money, same_amount

logger = logging.getLogger(__name__)


@dataclass
class CartLine:
    product_id: str
    price: Decimal
    quantity: int = 1


@dataclass
class CheckoutAttempt:
    """Bookkeeping for one checkout request."""

    checkout_key: str
    buyer_id: str
    state: CheckoutState = CheckoutState.RECEIVED
    total: Decimal = Decimal("0")
    lines: list[dict] = field(default_factory=list)
    sale: SaleResult | None = None

    def move(self, state: CheckoutState, note: str = "") -> None:
        logger.info(
            f"Checkout {self.checkout_key[:12]} buyer={self.buyer_id[:8]}: "
            f"{self.state.value} -> {state.value}{' (' + note + ')' if note else ''}"
        )
        self.state = state


@dataclass
class CheckoutResult:
    order: Order
    replayed: bool = False


async def checkout(
    db: AsyncSession,
    *,
    gateway: PaymentGateway,
    buyer_id: str,
    nonce: str | None,
    cart: list[CartLine] | None,
    idempotency_key: str | None = None,
) -> CheckoutResult:
    attempt = CheckoutAttempt(
        checkout_key=idempotency_key or uuid.uuid4().hex,
        buyer_id=buyer_id,
    )

    # ── RECEIVED → VALIDATED ───────────────────────────────────────
    try:
        _check_preconditions(nonce, cart)

        if idempotency_key:
            replay = await _find_replay(db, attempt)
            if replay is not None:
                attempt.move(CheckoutState.PERSISTED, "idempotent replay")
                return CheckoutResult(order=replay, replayed=True)

        quantities = await _reconcile_with_catalog(db, attempt, cart)
        await _reserve(db, attempt, quantities)
    except DomainError as e:
        attempt.move(CheckoutState.REJECTED, e.code)
        raise

    attempt.move(CheckoutState.VALIDATED, f"total={attempt.total}")

    # ── VALIDATED → GATEWAY_AUTHORIZED ─────────────────────────────
    try:
        sale = await asyncio.wait_for(
            gateway.sale(amount=attempt.total, payment_method_nonce=nonce, settle=True),
            timeout=settings.gateway_timeout_seconds,
        )
    except asyncio.TimeoutError:
        # The SDK call keeps running in its worker thread after the await is cancelled
        logger.warning(
            f"Gateway timed out after {settings.gateway_timeout_seconds}s for checkout "
            f"{attempt.checkout_key} (buyer {attempt.buyer_id}, total {attempt.total}): "
            f"charge may still settle; reconcile against the gateway"
        )
        attempt.move(CheckoutState.GATEWAY_FAILED, "timeout")
        await _release(db, attempt)
        raise GatewayError("Payment gateway unavailable")
    except GatewayUnavailableError as e:
        attempt.move(CheckoutState.GATEWAY_FAILED, type(e).__name__)
        await _release(db, attempt)
        raise GatewayError("Payment gateway unavailable")
    except Exception as e:
        logger.error(f"Gateway client raised unexpectedly: {type(e).__name__}: {e}", exc_info=True)
        attempt.move(CheckoutState.GATEWAY_FAILED, type(e).__name__)
        await _release(db, attempt)
        raise GatewayError("Payment gateway unavailable")

    if not sale.success:
        logger.warning(
            f"Gateway declined checkout {attempt.checkout_key[:12]} "
            f"(total {attempt.total}): {sale.message}"
        )
        attempt.move(CheckoutState.GATEWAY_FAILED, sale.message or "declined")
        await _release(db, attempt)
        raise GatewayError(sale.message or "Payment declined", details={"gateway": sale.as_dict()})

    attempt.sale = sale
    attempt.move(CheckoutState.GATEWAY_AUTHORIZED, f"transaction={sale.transaction_id}")

    # ── GATEWAY_AUTHORIZED → PERSISTED ─────────────────────────────
    try:
        order = await _persist(db, attempt)
    except Exception as e:
        await db.rollback()
        incident_id = await record_unrecorded_charge(db, attempt, e)
        raise InternalError(
            "Payment captured but the order could not be recorded; it will be reconciled",
            details={"incidentId": incident_id, "transactionId": sale.transaction_id},
        )

    attempt.move(CheckoutState.PERSISTED, f"order={order.id}")
    return CheckoutResult(order=order)


# ════════════════════════════════════════════════════════════════════
# Steps
# ════════════════════════════════════════════════════════════════════


def _check_preconditions(nonce: str | None, cart: list[CartLine] | None) -> None:
    if not nonce or not str(nonce).strip():
        raise ValidationError(NONCE_REQUIRED_MESSAGE)
    if not cart:
        raise ValidationError(CART_REQUIRED_MESSAGE)
    for i, line in enumerate(cart):
        if line.quantity < 1:
            raise ValidationError("Quantity must be positive", field=f"cart[{i}]")
        if not line.price.is_finite():
            raise ValidationError("Price must be a finite number", field=f"cart[{i}]")
        if line.price < 0:
            raise ValidationError("Price must not be negative", field=f"cart[{i}]")


async def _find_replay(db: AsyncSession, attempt: CheckoutAttempt) -> Order | None:
    existing = await order_service.find_by_checkout_key(db, attempt.checkout_key)
    if existing is not None:
        if existing.buyer_id != attempt.buyer_id:
            raise ConflictError("Idempotency key already used")
        return existing

    res = await db.execute(
        select(PaymentIncident.id).where(
            PaymentIncident.checkout_key == attempt.checkout_key,
            PaymentIncident.status == IncidentStatus.OPEN.value,
        )
    )
    if res.scalar_one_or_none() is not None:
        raise ConflictError("Payment for this checkout was captured and is being reconciled")

    if await catalog_service.has_held_reservations(db, attempt.checkout_key):
        raise ConflictError("Checkout already in progress for this idempotency key")
    return None


async def _reconcile_with_catalog(
    db: AsyncSession,
    attempt: CheckoutAttempt,
    cart: list[CartLine],
) -> dict[str, int]:
    """
    Check every line against the catalog and compute the total.

    Returns the quantity to reserve per product (lines for the same product
    are summed). Raises NotFoundError, PriceMismatchError or
    InsufficientStockError.
    """
    products = await catalog_service.get_products(db, [line.product_id for line in cart])

    quantities: OrderedDict[str, int] = OrderedDict()
    total = Decimal("0")
    lines = []
    for line in cart:
        product = products.get(line.product_id)
        if product is None:
            raise NotFoundError("Product", line.product_id)
        if not same_amount(line.price, product.price):
            raise PriceMismatchError(
                "Cart price does not match the catalog price",
                details={
                    "productId": product.id,
                    "cartPrice": str(round_money(line.price)),
                    "catalogPrice": str(round_money(product.price)),
                },
            )
        quantities[product.id] = quantities.get(product.id, 0) + line.quantity
        unit_price = round_money(product.price)
        total += unit_price * line.quantity
        lines.append({"product_id": product.id, "unit_price": float(unit_price), "quantity": line.quantity})

    for product_id, wanted in quantities.items():
        available = products[product_id].quantity
        if wanted > available:
            raise InsufficientStockError(
                "Product quantity is not enough",
                details={"productId": product_id, "requested": wanted, "available": available},
            )

    attempt.total = round_money(total)
    attempt.lines = lines
    return dict(quantities)


async def _reserve(db: AsyncSession, attempt: CheckoutAttempt, quantities: dict[str, int]) -> None:
    try:
        await catalog_service.reserve_stock(db, checkout_key=attempt.checkout_key, quantities=quantities)
        await db.commit()
    except InsufficientStockError:
        await db.rollback()
        raise
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Checkout already in progress for this idempotency key")


async def _release(db: AsyncSession, attempt: CheckoutAttempt) -> None:
    try:
        await db.rollback()
        released = await catalog_service.release_reservations(db, checkout_key=attempt.checkout_key)
        await db.commit()
        logger.info(f"Checkout {attempt.checkout_key[:12]}: released {released} reservation(s)")
    except Exception as e:
        await db.rollback()
        # Held rows stay behind; the reconciler releases them once stale
        logger.error(f"Failed to release reservations for {attempt.checkout_key}: {e}")


async def _persist(db: AsyncSession, attempt: CheckoutAttempt) -> Order:
    sale = attempt.sale
    order = await order_service.create_order(
        db,
        buyer_id=attempt.buyer_id,
        checkout_key=attempt.checkout_key,
        lines=attempt.lines,
        payment=sale.as_dict(),
        amount=settled_amount(sale, attempt.total),
    )
    await catalog_service.commit_reservations(db, checkout_key=attempt.checkout_key, order_id=order.id)
    await db.commit()
    return order


def settled_amount(sale: SaleResult, fallback: Decimal) -> float:
    """Amount the gateway actually settled; the charged total if it did not say."""
    amount = (sale.transaction or {}).get("amount")
    return float(round_money(amount if amount is not None else fallback))


async def record_unrecorded_charge(db: AsyncSession, attempt: CheckoutAttempt, error: Exception) -> int | None:
    """
    Escalate a successful charge whose order could not be written.

    Returns the incident id, or None if even the incident could not be
    stored (in which case the full payload is in the CRITICAL log line).
    """
    sale = attempt.sale
    logger.critical(
        f"CHARGED BUT UNRECORDED: checkout={attempt.checkout_key} buyer={attempt.buyer_id} "
        f"transaction={sale.transaction_id} amount={attempt.total} error={type(error).__name__}: {error}"
    )
    try:
        incident = PaymentIncident(
            checkout_key=attempt.checkout_key,
            buyer_id=attempt.buyer_id,
            gateway_transaction_id=sale.transaction_id,
            amount=settled_amount(sale, attempt.total),
            payment=sale.as_dict(),
            cart=attempt.lines,
            status=IncidentStatus.OPEN.value,
            last_error=f"{type(error).__name__}: {error}",
        )
        db.add(incident)
        await db.commit()
        return incident.id
    except Exception as e:
        await db.rollback()
        logger.critical(
            f"INCIDENT NOT STORED for checkout={attempt.checkout_key}: {e}. "
            f"payment={sale.as_dict()} cart={attempt.lines} buyer={attempt.buyer_id}"
        )
        return None
