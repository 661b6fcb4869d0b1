"""
Pytest configuration and shared fixtures for the Storefront checkout tests.

Provides an in-memory SQLite session, an httpx client bound to the FastAPI
app, and a recording payment gateway that stands in for Braintree.
"""
import asyncio
from typing import AsyncGenerator
from unittest.mock import MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from config import settings
from database import Base, get_db
from domain.enums import Role
from middleware.auth import issue_access_token
from middleware.rate_limit import get_limiter
from services.payment_gateway import SaleResult, get_payment_gateway
from utils.money import to_string_money

# ── Test Configuration ───────────────────────────────────────────────
# Test-only values for settings that would normally come from .env
if not settings.jwt_secret:
    settings.jwt_secret = "test-jwt-secret-for-pytest-only"
settings.payment_simulation_mode = True


# ── Payment Gateway Fake ─────────────────────────────────────────────


class RecordingGateway:
    """
    PaymentGateway stand-in.

    Records every sale. Answers with `next_result` when set, raises `raises`
    when set, and otherwise approves with a settled transaction for the
    requested amount.
    """

    def __init__(self):
        self.sales: list[dict] = []
        self.tokens_issued = 0
        self.next_result: SaleResult | None = None
        self.raises: Exception | None = None
        self.delay: float = 0.0

    async def generate_client_token(self) -> str:
        self.tokens_issued += 1
        return f"test-client-token-{self.tokens_issued}"

    async def sale(self, *, amount, payment_method_nonce, settle=True) -> SaleResult:
        self.sales.append({"amount": amount, "nonce": payment_method_nonce, "settle": settle})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.raises is not None:
            raise self.raises
        if self.next_result is not None:
            return self.next_result
        return SaleResult(
            success=True,
            transaction={
                "id": f"txn{len(self.sales):05d}",
                "amount": to_string_money(amount),
                "status": "submitted_for_settlement",
            },
        )

    def decline(self, message: str = "Do Not Honor") -> None:
        self.next_result = SaleResult(
            success=False,
            transaction={"id": "declined01", "status": "processor_declined"},
            message=message,
        )


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


# ── Database Fixtures ────────────────────────────────────────────────


@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create an in-memory SQLite database session for each test.

    Uses StaticPool to allow in-memory SQLite with async SQLAlchemy.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session

    await engine.dispose()


@pytest.fixture(scope="function")
async def client(db_session: AsyncSession, gateway: RecordingGateway) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx client bound to the app, with the test DB session and gateway.
    """
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    get_limiter().reset()
    yield
    get_limiter().reset()


# ── Test Data Fixtures ────────────────────────────────────────────────


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory: registered (bcrypt-hashed) user, committed."""
    from services import auth_service

    async def _make(
        email: str = "buyer@example.com",
        *,
        name: str = "Test Buyer",
        password: str = "secret123",
        answer: str | None = "Football",
        role: Role = Role.STANDARD,
    ):
        user = await auth_service.register(
            db_session, name=name, email=email, password=password, answer=answer, role=role,
        )
        await db_session.commit()
        return user

    return _make


@pytest.fixture
async def buyer(make_user):
    return await make_user("buyer@example.com", name="Test Buyer")


@pytest.fixture
async def admin(make_user):
    return await make_user("admin@example.com", name="Store Admin", role=Role.ADMIN)


@pytest.fixture
def make_product(db_session: AsyncSession):
    """Factory: catalog product, committed."""
    from services import catalog_service

    async def _make(
        name: str = "Notebook",
        *,
        price: float = 100.0,
        quantity: int = 10,
        product_id: str | None = None,
    ):
        product = await catalog_service.create_product(
            db_session,
            name=name,
            description=f"{name} description",
            price=price,
            quantity=quantity,
            product_id=product_id,
        )
        await db_session.commit()
        return product

    return _make


@pytest.fixture
def auth_header():
    """Authorization header for a user id ("Bearer <jwt>", or the raw token)."""
    def _header(user_id: str, *, bearer: bool = True) -> dict:
        token = issue_access_token(user_id=user_id)
        return {"Authorization": f"Bearer {token}" if bearer else token}

    return _header


@pytest.fixture
def braintree_sdk():
    """MagicMock shaped like braintree.BraintreeGateway."""
    sdk = MagicMock()
    sdk.client_token.generate.return_value = "bt-client-token"
    return sdk
