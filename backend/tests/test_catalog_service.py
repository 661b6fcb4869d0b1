"""
Tests for catalog lookup and stock accounting.

Tests: product creation, conditional decrements, reservations.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import pytest
from sqlalchemy import select

from db_models import StockReservation
from domain.enums import ReservationStatus
from domain.errors import ConflictError, InsufficientStockError
from services import catalog_service


class TestProducts:

    @pytest.mark.unit
    def test_slugify(self):
        assert catalog_service.slugify("  Blue Denim Jacket! ") == "Blue-Denim-Jacket"
        assert catalog_service.slugify("???") == "product"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_duplicate_name_conflicts(self, db_session, make_product):
        await make_product("Lamp")
        with pytest.raises(ConflictError):
            await catalog_service.create_product(
                db_session, name="Lamp", description=None, price=1.0, quantity=1,
            )

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_projection_excludes_photo(self, make_product):
        product = await make_product("Lamp", price=40.0, quantity=3)
        projected = catalog_service.product_projection(product)
        assert projected["price"] == 40.0
        assert projected["quantity"] == 3
        assert projected["hasPhoto"] is False
        assert "photo" not in projected

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_get_products_by_ids(self, db_session, make_product):
        await make_product("A", product_id="a")
        await make_product("B", product_id="b")
        found = await catalog_service.get_products(db_session, ["a", "b", "missing"])
        assert set(found) == {"a", "b"}
        assert await catalog_service.get_products(db_session, []) == {}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_count_and_list(self, db_session, make_product):
        await make_product("A")
        await make_product("B")
        assert await catalog_service.count_products(db_session) == 2
        assert len(await catalog_service.list_products(db_session, limit=1)) == 1


class TestStockMovements:

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_decrement_within_stock(self, db_session, make_product):
        await make_product(product_id="p1", quantity=2)
        assert await catalog_service.decrement_stock(db_session, "p1", 2) is True
        assert await catalog_service.current_stock(db_session, "p1") == 0

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_decrement_below_zero_refused(self, db_session, make_product):
        await make_product(product_id="p1", quantity=1)
        assert await catalog_service.decrement_stock(db_session, "p1", 2) is False
        assert await catalog_service.current_stock(db_session, "p1") == 1

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_decrement_unknown_product(self, db_session):
        assert await catalog_service.decrement_stock(db_session, "ghost", 1) is False

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_restock(self, db_session, make_product):
        await make_product(product_id="p1", quantity=1)
        assert await catalog_service.restock(db_session, "p1", 4) is True
        assert await catalog_service.current_stock(db_session, "p1") == 5


class TestReservations:

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_reserve_holds_stock(self, db_session, make_product):
        await make_product("A", product_id="a", quantity=3)
        await make_product("B", product_id="b", quantity=3)

        await catalog_service.reserve_stock(db_session, checkout_key="k", quantities={"b": 1, "a": 2})
        await db_session.commit()

        assert await catalog_service.current_stock(db_session, "a") == 1
        assert await catalog_service.current_stock(db_session, "b") == 2
        assert await catalog_service.has_held_reservations(db_session, "k") is True

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_reserve_is_all_or_nothing(self, db_session, make_product):
        await make_product("A", product_id="a", quantity=3)
        await make_product("B", product_id="b", quantity=0)

        with pytest.raises(InsufficientStockError):
            await catalog_service.reserve_stock(db_session, checkout_key="k", quantities={"a": 1, "b": 1})
        await db_session.rollback()

        assert await catalog_service.current_stock(db_session, "a") == 3
        assert await catalog_service.has_held_reservations(db_session, "k") is False

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_release_restores_stock_once(self, db_session, make_product):
        await make_product(product_id="p1", quantity=3)
        await catalog_service.reserve_stock(db_session, checkout_key="k", quantities={"p1": 2})
        await db_session.commit()

        assert await catalog_service.release_reservations(db_session, checkout_key="k") == 1
        await db_session.commit()
        assert await catalog_service.release_reservations(db_session, checkout_key="k") == 0
        await db_session.commit()

        assert await catalog_service.current_stock(db_session, "p1") == 3
        assert await catalog_service.has_held_reservations(db_session, "k") is False

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_committed_reservations_are_not_released(self, db_session, make_product):
        await make_product(product_id="p1", quantity=3)
        await catalog_service.reserve_stock(db_session, checkout_key="k", quantities={"p1": 1})
        assert await catalog_service.commit_reservations(db_session, checkout_key="k", order_id="o1") == 1
        await db_session.commit()

        assert await catalog_service.release_reservations(db_session, checkout_key="k") == 0
        assert await catalog_service.current_stock(db_session, "p1") == 2

        res = await db_session.execute(
            select(StockReservation.status, StockReservation.order_id).where(StockReservation.checkout_key == "k")
        )
        assert tuple(res.one()) == (ReservationStatus.COMMITTED.value, "o1")
