"""
Order endpoints — buyer history, admin listing and status updates.
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import Pagination, pagination_params, require_admin
from domain.errors import ValidationError
from domain.responses import success_response
from middleware.auth import Identity, require_sign_in
from models import OrderStatusUpdateRequest
from services import order_service

logger = logging.getLogger(__name__)
router = APIRouter(tags=["orders"])


@router.get("/orders")
async def my_orders(
    identity: Identity = Depends(require_sign_in),
    page: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
):
    orders = await order_service.list_for_buyer(db, buyer_id=identity.subject, **page)
    return success_response(
        data=await order_service.project_orders(db, orders),
        meta={"total": await order_service.count_orders(db, buyer_id=identity.subject), **page},
    )


@router.get("/orders/all")
async def all_orders(
    identity: Identity = Depends(require_admin),
    newest_first: bool = Query(True, alias="newestFirst"),
    db: AsyncSession = Depends(get_db),
):
    orders = await order_service.list_all(db, newest_first=newest_first)
    return success_response(
        data=await order_service.project_orders(db, orders),
        meta={"total": await order_service.count_orders(db)},
    )


@router.put("/order/{order_id}/status")
async def update_order_status(
    order_id: str,
    request: OrderStatusUpdateRequest,
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if not request.status:
        raise ValidationError("Order Id and Status is required")

    order = await order_service.update_status(db, order_id=order_id, status=request.status)
    await db.commit()
    logger.info(f"Admin {identity.subject[:8]} set order {order_id} to {request.status}")
    return success_response(data=await order_service.project_order(db, order))
