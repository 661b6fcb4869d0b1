"""
Order store — persistence and projections for paid orders.

Orders are created only by the checkout pipeline (and by the reconciler when
it repairs a charged-but-unrecorded checkout). After creation only the
status moves, through update_status().
"""
import logging
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Order, OrderItem, Product, User
from domain.enums import OrderStatus
from domain.errors import InvalidStatusError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


async def create_order(
    db: AsyncSession,
    *,
    buyer_id: str,
    checkout_key: str,
    lines: list[dict],
    payment: dict,
    amount: float,
) -> Order:
    """
    Persist a new order in the caller's transaction.

    lines: [{product_id, unit_price, quantity}] in cart order.
    payment: the gateway sale result, stored verbatim.
    """
    transaction = payment.get("transaction") or {}
    order = Order(
        buyer_id=buyer_id,
        checkout_key=checkout_key,
        status=OrderStatus.NOT_PROCESSED.value,
        amount=amount,
        payment=payment,
        gateway_transaction_id=transaction.get("id"),
        created_at=datetime.utcnow(),
    )
    order.items = [
        OrderItem(
            product_id=line["product_id"],
            position=position,
            quantity=int(line["quantity"]),
            unit_price=float(line["unit_price"]),
        )
        for position, line in enumerate(lines)
    ]
    db.add(order)
    await db.flush()
    return order


async def get_order(db: AsyncSession, order_id: str) -> Order | None:
    res = await db.execute(select(Order).where(Order.id == order_id))
    return res.scalar_one_or_none()


async def find_by_checkout_key(db: AsyncSession, checkout_key: str) -> Order | None:
    res = await db.execute(select(Order).where(Order.checkout_key == checkout_key))
    return res.scalar_one_or_none()


async def find_by_gateway_transaction(db: AsyncSession, transaction_id: str) -> Order | None:
    res = await db.execute(select(Order).where(Order.gateway_transaction_id == transaction_id))
    return res.scalar_one_or_none()


async def update_status(db: AsyncSession, *, order_id: str, status: str) -> Order:
    """
    Replace the status of an order and return the updated record.

    Raises ValidationError for a missing id, InvalidStatusError for a value
    outside OrderStatus (order untouched), NotFoundError when no order has
    that id.
    """
    if not order_id:
        raise ValidationError("Order Id and Status is required")
    if status not in OrderStatus.values():
        raise InvalidStatusError(status)

    res = await db.execute(
        update(Order)
        .where(Order.id == order_id)
        .values(status=status, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise NotFoundError("Order", order_id)

    refreshed = await db.execute(
        select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
    )
    order = refreshed.scalar_one()
    logger.info(f"Order {order_id} status -> {status}")
    return order


async def list_for_buyer(db: AsyncSession, *, buyer_id: str, limit: int = 50, offset: int = 0) -> list[Order]:
    res = await db.execute(
        select(Order)
        .where(Order.buyer_id == buyer_id)
        .order_by(Order.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return res.scalars().all()


async def list_all(db: AsyncSession, *, newest_first: bool = True, limit: int = 100, offset: int = 0) -> list[Order]:
    order_by = Order.created_at.desc() if newest_first else Order.created_at.asc()
    res = await db.execute(select(Order).order_by(order_by).limit(limit).offset(offset))
    return res.scalars().all()


async def count_orders(db: AsyncSession, *, buyer_id: str | None = None) -> int:
    query = select(func.count(Order.id))
    if buyer_id is not None:
        query = query.where(Order.buyer_id == buyer_id)
    res = await db.execute(query)
    return res.scalar_one()


# ── Projections ─────────────────────────────────────────────────────


async def project_orders(db: AsyncSession, orders: list[Order]) -> list[dict]:
    """
    Render orders with product and buyer details.

    Products are loaded column-by-column (never the photo blob). A product
    deleted from the catalog after the order still shows up by id.
    """
    product_ids = {item.product_id for o in orders for item in o.items}
    buyer_ids = {o.buyer_id for o in orders}

    products: dict[str, dict] = {}
    if product_ids:
        res = await db.execute(
            select(Product.id, Product.name, Product.slug, Product.description, Product.price)
            .where(Product.id.in_(product_ids))
        )
        products = {row.id: row._asdict() for row in res.all()}

    buyers: dict[str, dict] = {}
    if buyer_ids:
        res = await db.execute(select(User.id, User.name).where(User.id.in_(buyer_ids)))
        buyers = {row.id: {"id": row.id, "name": row.name} for row in res.all()}

    rendered = []
    for o in orders:
        rendered.append(
            {
                "id": o.id,
                "status": o.status,
                "amount": o.amount,
                "payment": o.payment,
                "buyer": buyers.get(o.buyer_id, {"id": o.buyer_id, "name": None}),
                "products": [
                    {
                        **products.get(item.product_id, {"id": item.product_id}),
                        "id": item.product_id,
                        "price": item.unit_price,
                        "quantity": item.quantity,
                    }
                    for item in o.items
                ],
                "createdAt": o.created_at.isoformat() if o.created_at else None,
                "updatedAt": o.updated_at.isoformat() if o.updated_at else None,
            }
        )
    return rendered


async def project_order(db: AsyncSession, order: Order) -> dict:
    return (await project_orders(db, [order]))[0]
