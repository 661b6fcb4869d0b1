"""
Payment gateway clients.

The checkout orchestrator depends only on the PaymentGateway protocol:

    generate_client_token() -> str
    sale(amount, payment_method_nonce, settle) -> SaleResult

Two implementations:
    BraintreeGateway: wraps the (blocking) braintree SDK via run_blocking
    SimulatedGateway: in-process sandbox that understands Braintree's fake
                      nonces; used when PAYMENT_SIMULATION_MODE=true

Routes obtain the configured instance through the get_payment_gateway()
FastAPI dependency, so tests swap it with dependency_overrides.
"""
from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Protocol

from config import settings
from domain.constants import FAKE_DECLINED_NONCE, FAKE_GATEWAY_REJECTED_NONCE
from exceptions import GatewayConfigurationError, GatewayUnavailableError
from services.async_executor import run_blocking
from utils.money import to_string_money

logger = logging.getLogger(__name__)


@dataclass
class SaleResult:
    """Outcome of a sale, as reported by the gateway."""

    success: bool
    transaction: dict[str, Any] | None = None
    message: str | None = None
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def transaction_id(self) -> str | None:
        if not self.transaction:
            return None
        return self.transaction.get("id")

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.transaction is not None:
            data["transaction"] = dict(self.transaction)
        if self.message:
            data["message"] = self.message
        if self.errors:
            data["errors"] = list(self.errors)
        return data


class PaymentGateway(Protocol):
    async def generate_client_token(self) -> str: ...

    async def sale(self, *, amount: Decimal, payment_method_nonce: str, settle: bool = True) -> SaleResult: ...


# ════════════════════════════════════════════════════════════════════
# Braintree
# ════════════════════════════════════════════════════════════════════


class BraintreeGateway:
    """Adapter over braintree.BraintreeGateway."""

    def __init__(self, sdk_gateway):
        self._gateway = sdk_gateway

    @classmethod
    def from_settings(cls) -> "BraintreeGateway":
        import braintree

        if not settings.braintree_configured:
            raise GatewayConfigurationError(
                "Braintree credentials missing (BRAINTREE_MERCHANT_ID / PUBLIC_KEY / PRIVATE_KEY)"
            )
        environment = (
            braintree.Environment.Production
            if settings.braintree_environment.lower() == "production"
            else braintree.Environment.Sandbox
        )
        config = braintree.Configuration(
            environment=environment,
            merchant_id=settings.braintree_merchant_id,
            public_key=settings.braintree_public_key,
            private_key=settings.braintree_private_key,
            timeout=settings.gateway_timeout_seconds,
        )
        return cls(braintree.BraintreeGateway(config))

    async def generate_client_token(self) -> str:
        try:
            return await run_blocking(self._gateway.client_token.generate)
        except Exception as e:
            logger.error(f"Braintree client token generation failed: {type(e).__name__}: {e}")
            raise GatewayUnavailableError("Client token generation failed") from e

    async def sale(self, *, amount: Decimal, payment_method_nonce: str, settle: bool = True) -> SaleResult:
        params = {
            "amount": to_string_money(amount),
            "payment_method_nonce": payment_method_nonce,
            "options": {"submit_for_settlement": settle},
        }
        try:
            result = await run_blocking(self._gateway.transaction.sale, params)
        except Exception as e:
            logger.error(f"Braintree sale raised: {type(e).__name__}: {e}")
            raise GatewayUnavailableError("Sale request failed") from e
        return self._to_sale_result(result)

    @staticmethod
    def _to_sale_result(result) -> SaleResult:
        txn = getattr(result, "transaction", None)
        transaction = None
        if txn is not None:
            transaction = {
                "id": txn.id,
                "amount": str(txn.amount),
                "status": txn.status,
            }
            if getattr(txn, "processor_response_text", None):
                transaction["processorResponseText"] = txn.processor_response_text

        errors = []
        if not result.is_success and getattr(result, "errors", None) is not None:
            for err in result.errors.deep_errors:
                errors.append({"attribute": err.attribute, "code": err.code, "message": err.message})

        return SaleResult(
            success=bool(result.is_success),
            transaction=transaction,
            message=None if result.is_success else result.message,
            errors=errors,
        )


# ════════════════════════════════════════════════════════════════════
# Simulation
# ════════════════════════════════════════════════════════════════════


class SimulatedGateway:
    """
    Sandbox stand-in for local development and demos.

    Any nonce succeeds except the Braintree fake decline nonces.
    """

    async def generate_client_token(self) -> str:
        return f"sim_{secrets.token_urlsafe(24)}"

    async def sale(self, *, amount: Decimal, payment_method_nonce: str, settle: bool = True) -> SaleResult:
        amount_str = to_string_money(amount)
        txn_id = uuid.uuid4().hex

        if payment_method_nonce == FAKE_DECLINED_NONCE:
            return SaleResult(
                success=False,
                transaction={"id": txn_id, "amount": amount_str, "status": "processor_declined"},
                message="Do Not Honor",
            )
        if payment_method_nonce == FAKE_GATEWAY_REJECTED_NONCE:
            return SaleResult(
                success=False,
                message="Gateway Rejected: fraud",
                errors=[{"attribute": "base", "code": "gateway_rejected", "message": "fraud"}],
            )

        status = "submitted_for_settlement" if settle else "authorized"
        logger.info(f"SIMULATION: sale {txn_id} for {amount_str} ({status})")
        return SaleResult(
            success=True,
            transaction={"id": txn_id, "amount": amount_str, "status": status},
        )


# ── Dependency ──────────────────────────────────────────────────────

_gateway: PaymentGateway | None = None


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency: the configured gateway (built once)."""
    global _gateway
    if _gateway is None:
        if settings.payment_simulation_mode:
            logger.warning("Payment gateway running in SIMULATION mode")
            _gateway = SimulatedGateway()
        else:
            _gateway = BraintreeGateway.from_settings()
    return _gateway
