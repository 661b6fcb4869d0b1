"""
Concurrent checkouts against the last unit of a product.

Runs against a file-backed SQLite database so each checkout gets its own
connection, the way two requests do in the running server.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base
from db_models import Order, Product
from domain.errors import InsufficientStockError
from services import catalog_service
from services.checkout_service import CartLine, CheckoutResult, checkout


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'checkout.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as db:
        await catalog_service.create_product(
            db, name="Last Lamp", description=None, price=40.0, quantity=1, product_id="lamp",
        )
        await db.commit()

    yield factory
    await engine.dispose()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_last_unit_sold_once(session_factory, gateway):
    gateway.delay = 0.05

    async def attempt(buyer_id: str):
        async with session_factory() as db:
            return await checkout(
                db,
                gateway=gateway,
                buyer_id=buyer_id,
                nonce="fake-valid-nonce",
                cart=[CartLine(product_id="lamp", price=Decimal("40"))],
            )

    outcomes = await asyncio.gather(attempt("buyer-a"), attempt("buyer-b"), return_exceptions=True)

    successes = [o for o in outcomes if isinstance(o, CheckoutResult)]
    failures = [o for o in outcomes if isinstance(o, Exception)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], InsufficientStockError)

    # The loser is rejected before any charge
    assert len(gateway.sales) == 1

    async with session_factory() as db:
        stock = (await db.execute(select(Product.quantity).where(Product.id == "lamp"))).scalar_one()
        orders = (await db.execute(select(func.count(Order.id)))).scalar_one()
    assert stock == 0
    assert orders == 1


@pytest.mark.integration
@pytest.mark.asyncio
async def test_conditional_decrement_never_goes_negative(session_factory):
    async def take():
        async with session_factory() as db:
            ok = await catalog_service.decrement_stock(db, "lamp", 1)
            await db.commit()
            return ok

    results = await asyncio.gather(*(take() for _ in range(5)))
    assert results.count(True) == 1

    async with session_factory() as db:
        assert await catalog_service.current_stock(db, "lamp") == 0
