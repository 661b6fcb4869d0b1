"""
Catalog service — product lookup and stock accounting.

Stock only ever moves through conditional single-statement updates:

    UPDATE products SET quantity = quantity - :n
     WHERE id = :id AND quantity >= :n

so concurrent checkouts cannot drive a product below zero. Checkout holds
stock per checkout key in stock_reservations; reservations are committed
to an order or released (deleted, stock restored) exactly once.
"""
import logging
import re
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Product, StockReservation
from domain.enums import ReservationStatus
from domain.errors import ConflictError, InsufficientStockError

logger = logging.getLogger(__name__)


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-zA-Z0-9]+", "-", name.strip()).strip("-")
    return slug or "product"


def product_projection(p: Product) -> dict:
    """Public view of a product. Never includes the photo blob."""
    return {
        "id": p.id,
        "name": p.name,
        "slug": p.slug,
        "description": p.description,
        "price": p.price,
        "quantity": p.quantity,
        "shipping": p.shipping,
        "hasPhoto": p.photo_content_type is not None,
        "createdAt": p.created_at.isoformat() if p.created_at else None,
    }


async def create_product(
    db: AsyncSession,
    *,
    name: str,
    description: str | None,
    price: float,
    quantity: int,
    shipping: bool = False,
    product_id: str | None = None,
) -> Product:
    slug = slugify(name)
    existing = await db.execute(select(Product.id).where(Product.slug == slug))
    if existing.scalar_one_or_none():
        raise ConflictError("Product with this name already exists")

    product = Product(
        name=name,
        slug=slug,
        description=description,
        price=price,
        quantity=quantity,
        shipping=shipping,
    )
    if product_id:
        product.id = product_id
    db.add(product)
    await db.flush()
    return product


async def get_product(db: AsyncSession, product_id: str) -> Product | None:
    res = await db.execute(select(Product).where(Product.id == product_id))
    return res.scalar_one_or_none()


async def get_products(db: AsyncSession, product_ids: list[str]) -> dict[str, Product]:
    if not product_ids:
        return {}
    # populate_existing: stock may have moved under an already-loaded row
    res = await db.execute(
        select(Product)
        .where(Product.id.in_(set(product_ids)))
        .execution_options(populate_existing=True)
    )
    return {p.id: p for p in res.scalars().all()}


async def list_products(db: AsyncSession, *, limit: int = 50, offset: int = 0) -> list[Product]:
    res = await db.execute(
        select(Product)
        .order_by(Product.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return res.scalars().all()


async def count_products(db: AsyncSession) -> int:
    res = await db.execute(select(func.count(Product.id)))
    return res.scalar_one()


async def current_stock(db: AsyncSession, product_id: str) -> int | None:
    res = await db.execute(select(Product.quantity).where(Product.id == product_id))
    return res.scalar_one_or_none()


# ════════════════════════════════════════════════════════════════════
# Atomic stock movements
# ════════════════════════════════════════════════════════════════════


async def decrement_stock(db: AsyncSession, product_id: str, count: int) -> bool:
    """
    Conditionally take `count` units. True on success, False when the
    product is missing or has fewer than `count` units left.
    """
    res = await db.execute(
        update(Product)
        .where(Product.id == product_id, Product.quantity >= count)
        .values(quantity=Product.quantity - count, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1


async def restock(db: AsyncSession, product_id: str, count: int) -> bool:
    res = await db.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(quantity=Product.quantity + count, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1


async def reserve_stock(db: AsyncSession, *, checkout_key: str, quantities: dict[str, int]) -> list[StockReservation]:
    """
    Take stock for every product in `quantities` and record held reservations.

    All-or-nothing within the caller's transaction: on InsufficientStockError
    the caller must roll back, which undoes the decrements already applied.
    Products are processed in id order so concurrent checkouts lock rows in
    the same order.
    """
    reservations = []
    for product_id in sorted(quantities):
        count = quantities[product_id]
        if not await decrement_stock(db, product_id, count):
            remaining = await current_stock(db, product_id)
            raise InsufficientStockError(
                "Product quantity is not enough",
                details={"productId": product_id, "requested": count, "available": remaining},
            )
        r = StockReservation(
            checkout_key=checkout_key,
            product_id=product_id,
            quantity=count,
            status=ReservationStatus.HELD.value,
        )
        db.add(r)
        reservations.append(r)
    await db.flush()
    return reservations


async def commit_reservations(db: AsyncSession, *, checkout_key: str, order_id: str) -> int:
    """Tie held reservations to an order. Idempotent; returns rows changed."""
    res = await db.execute(
        update(StockReservation)
        .where(
            StockReservation.checkout_key == checkout_key,
            StockReservation.status == ReservationStatus.HELD.value,
        )
        .values(
            status=ReservationStatus.COMMITTED.value,
            order_id=order_id,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    return res.rowcount


async def release_reservations(db: AsyncSession, *, checkout_key: str) -> int:
    """
    Give held stock back and drop the reservations.

    Each row is deleted with a status-guarded DELETE before its stock is
    restored, so running this twice (or racing the reconciler) restores
    stock at most once. Returns the number of reservations released.
    """
    res = await db.execute(
        select(StockReservation).where(
            StockReservation.checkout_key == checkout_key,
            StockReservation.status == ReservationStatus.HELD.value,
        )
    )
    released = 0
    for r in res.scalars().all():
        deleted = await db.execute(
            delete(StockReservation)
            .where(
                StockReservation.id == r.id,
                StockReservation.status == ReservationStatus.HELD.value,
            )
            .execution_options(synchronize_session=False)
        )
        if deleted.rowcount != 1:
            continue
        product_id, quantity = r.product_id, r.quantity
        db.expunge(r)
        await restock(db, product_id, quantity)
        released += 1
    return released


async def has_held_reservations(db: AsyncSession, checkout_key: str) -> bool:
    res = await db.execute(
        select(StockReservation.id)
        .where(
            StockReservation.checkout_key == checkout_key,
            StockReservation.status == ReservationStatus.HELD.value,
        )
        .limit(1)
    )
    return res.scalar_one_or_none() is not None
