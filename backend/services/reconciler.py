"""
Reconciler — background repair of checkouts that did not finish cleanly.

Two jobs, every RECONCILE_INTERVAL_SECONDS:

    1. Open payment incidents (charged but unrecorded): rebuild the order
       from the stored gateway payload and cart, commit the held stock
       reservations, mark the incident resolved. After
       RECONCILE_MAX_ATTEMPTS failures the incident is abandoned and logged
       at CRITICAL for manual handling.
    2. Stale held reservations (gateway declined but the release failed, or
       the process died mid-checkout): released once older than
       RESERVATION_TTL_MINUTES, unless an order or an open incident still
       owns the checkout key.

Both jobs are idempotent, so a crash between steps only causes a redo.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import async_session
from db_models import PaymentIncident, StockReservation
from domain.enums import IncidentStatus, ReservationStatus
from domain.errors import ConflictError
from services import catalog_service, order_service

logger = logging.getLogger(__name__)

BATCH_SIZE = 20

# Reconciler state
_task: Optional[asyncio.Task] = None
_is_running: bool = False
_last_run_at: Optional[datetime] = None
_incidents_resolved: int = 0
_incidents_abandoned: int = 0
_reservations_released: int = 0


# ════════════════════════════════════════════════════════════════════
# Incidents
# ════════════════════════════════════════════════════════════════════


async def resolve_incident(db: AsyncSession, incident: PaymentIncident) -> str:
    """Create (or find) the order for an incident and commit its stock. Returns the order id."""
    order = await order_service.find_by_checkout_key(db, incident.checkout_key)
    if order is None and incident.gateway_transaction_id:
        order = await order_service.find_by_gateway_transaction(db, incident.gateway_transaction_id)
    if order is not None and (
        order.buyer_id != incident.buyer_id or order.checkout_key != incident.checkout_key
    ):
        # Another checkout owns this key or transaction id; never attach the charge to it
        raise ConflictError(
            f"Order {order.id} (checkout {order.checkout_key}) does not belong to this incident",
            details={"orderId": order.id, "incidentId": incident.id},
        )
    if order is None:
        order = await order_service.create_order(
            db,
            buyer_id=incident.buyer_id,
            checkout_key=incident.checkout_key,
            lines=incident.cart,
            payment=incident.payment,
            amount=incident.amount,
        )
    await catalog_service.commit_reservations(db, checkout_key=incident.checkout_key, order_id=order.id)
    incident.status = IncidentStatus.RESOLVED.value
    incident.order_id = order.id
    incident.resolved_at = datetime.utcnow()
    return order.id


async def reconcile_incidents(db: AsyncSession) -> dict:
    global _incidents_resolved, _incidents_abandoned

    res = await db.execute(
        select(PaymentIncident.id)
        .where(PaymentIncident.status == IncidentStatus.OPEN.value)
        .order_by(PaymentIncident.created_at)
        .limit(BATCH_SIZE)
    )
    incident_ids = res.scalars().all()
    resolved = abandoned = failed = 0

    for incident_id in incident_ids:
        incident = await db.get(PaymentIncident, incident_id, populate_existing=True)
        if incident is None or incident.status != IncidentStatus.OPEN.value:
            continue

        if incident.attempts >= settings.reconcile_max_attempts:
            incident.status = IncidentStatus.ABANDONED.value
            await db.commit()
            abandoned += 1
            logger.critical(
                f"ABANDONED: payment incident {incident.id} (checkout {incident.checkout_key}, "
                f"transaction {incident.gateway_transaction_id}, amount {incident.amount}) "
                f"failed after {incident.attempts} attempts. Manual intervention required."
            )
            continue

        try:
            order_id = await resolve_incident(db, incident)
            await db.commit()
            resolved += 1
            logger.info(f"Incident {incident_id} resolved -> order {order_id}")
        except Exception as e:
            await db.rollback()
            failed += 1
            incident = await db.get(PaymentIncident, incident_id, populate_existing=True)
            if incident is not None:
                incident.attempts += 1
                incident.last_error = f"{type(e).__name__}: {e}"
                await db.commit()
                logger.warning(
                    f"Incident {incident_id} retry failed "
                    f"(attempt {incident.attempts}/{settings.reconcile_max_attempts}): {e}"
                )

    _incidents_resolved += resolved
    _incidents_abandoned += abandoned
    return {"resolved": resolved, "abandoned": abandoned, "failed": failed}


# ════════════════════════════════════════════════════════════════════
# Stale reservations
# ════════════════════════════════════════════════════════════════════


async def release_stale_reservations(db: AsyncSession, *, now: datetime | None = None) -> int:
    global _reservations_released

    cutoff = (now or datetime.utcnow()) - timedelta(minutes=settings.reservation_ttl_minutes)
    res = await db.execute(
        select(StockReservation.checkout_key)
        .where(
            StockReservation.status == ReservationStatus.HELD.value,
            StockReservation.created_at < cutoff,
        )
        .distinct()
        .limit(BATCH_SIZE)
    )
    keys = res.scalars().all()

    released = 0
    for key in keys:
        order = await order_service.find_by_checkout_key(db, key)
        if order is not None:
            # Order exists but the commit step never landed
            await catalog_service.commit_reservations(db, checkout_key=key, order_id=order.id)
            await db.commit()
            continue

        incident = await db.execute(
            select(PaymentIncident.id).where(
                PaymentIncident.checkout_key == key,
                PaymentIncident.status != IncidentStatus.RESOLVED.value,
            )
        )
        if incident.scalar_one_or_none() is not None:
            continue

        count = await catalog_service.release_reservations(db, checkout_key=key)
        await db.commit()
        released += count
        if count:
            logger.info(f"Released {count} stale reservation(s) for checkout {key[:12]}")

    _reservations_released += released
    return released


async def run_once() -> dict:
    """One reconciliation pass with its own session."""
    global _last_run_at

    async with async_session() as db:
        incidents = await reconcile_incidents(db)
        released = await release_stale_reservations(db)
    _last_run_at = datetime.utcnow()
    return {"incidents": incidents, "reservationsReleased": released}


async def _loop():
    global _is_running

    logger.info(
        f"Reconciler started (every {settings.reconcile_interval_seconds}s, "
        f"max {settings.reconcile_max_attempts} attempts)"
    )
    while _is_running:
        try:
            await asyncio.sleep(settings.reconcile_interval_seconds)
            await run_once()
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error(f"Reconciler pass failed: {e}", exc_info=True)

    _is_running = False
    logger.info("Reconciler stopped")


# ════════════════════════════════════════════════════════════════════
# Public API: start / stop / status
# ════════════════════════════════════════════════════════════════════


async def start():
    global _task, _is_running

    if _task and not _task.done():
        logger.warning("Reconciler already running")
        return
    _is_running = True
    _task = asyncio.create_task(_loop())


async def stop():
    global _task, _is_running
    _is_running = False

    if _task and not _task.done():
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    _task = None


def get_status() -> dict:
    """Reconciler status for the /reconciler/status endpoint."""
    return {
        "running": _is_running,
        "lastRunAt": _last_run_at.isoformat() if _last_run_at else None,
        "intervalSeconds": settings.reconcile_interval_seconds,
        "maxAttempts": settings.reconcile_max_attempts,
        "reservationTtlMinutes": settings.reservation_ttl_minutes,
        "incidentsResolved": _incidents_resolved,
        "incidentsAbandoned": _incidents_abandoned,
        "reservationsReleased": _reservations_released,
    }
