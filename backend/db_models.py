"""
SQLAlchemy ORM models for the Storefront checkout API.

Tables:
    users               shopper and admin accounts
    products            catalog entries (price + stock)
    orders              paid orders created by checkout
    order_items         ordered product references of an order
    stock_reservations  stock held/committed per checkout attempt
    payment_incidents   charged-but-unrecorded checkouts awaiting reconciliation
"""
import uuid
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, Text, LargeBinary, JSON, ForeignKey,
    UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship, deferred

from database import Base
from domain.enums import OrderStatus, Role, ReservationStatus, IncidentStatus


def _new_id() -> str:
    return uuid.uuid4().hex


class User(Base):
    """Shopper and admin accounts."""
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=_new_id)
    name = Column(String(100), nullable=False)
    email = Column(String(254), unique=True, nullable=False, index=True)
    password_hash = Column(String(100), nullable=False)
    # bcrypt hash of the password-reset answer
    answer_hash = Column(String(100), nullable=True)
    phone = Column(String(30), nullable=True)
    address = Column(Text, nullable=True)
    role = Column(Integer, nullable=False, default=int(Role.STANDARD))  # Role enum value
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Product(Base):
    """Catalog entries. `quantity` is the stock count."""
    __tablename__ = "products"

    id = Column(String(32), primary_key=True, default=_new_id)
    name = Column(String(200), nullable=False)
    slug = Column(String(200), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    shipping = Column(Boolean, nullable=False, default=False)
    # Never loaded unless explicitly requested; projections exclude it
    photo = deferred(Column(LargeBinary, nullable=True))
    photo_content_type = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Order(Base):
    """
    Paid order created by the checkout pipeline.

    `amount` and `payment` are written once at creation from the gateway's
    settled sale; only `status` changes afterwards.
    """
    __tablename__ = "orders"

    id = Column(String(32), primary_key=True, default=_new_id)
    buyer_id = Column(String(32), nullable=False, index=True)  # weak reference to users.id
    status = Column(String(30), nullable=False, default=OrderStatus.NOT_PROCESSED.value, index=True)
    amount = Column(Float, nullable=False)
    payment = Column(JSON, nullable=False)  # gateway sale result, verbatim
    gateway_transaction_id = Column(String(64), unique=True, nullable=True, index=True)
    checkout_key = Column(String(128), unique=True, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.position",
        lazy="selectin",
    )

    __table_args__ = (
        # For buyer order history: filter by buyer_id, order by created_at DESC
        Index("ix_orders_buyer_created", "buyer_id", "created_at"),
    )


class OrderItem(Base):
    """One cart line of an order, in cart order. Product reference is weak."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(32), ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(String(32), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Float, nullable=False)

    order = relationship("Order", back_populates="items")


class StockReservation(Base):
    """
    Stock taken from a product for one checkout attempt.

    held:      decremented before the gateway call, not yet tied to an order
    committed: the order for this checkout key was persisted
    Released reservations are deleted (and their stock restored).
    """
    __tablename__ = "stock_reservations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    checkout_key = Column(String(128), nullable=False, index=True)
    product_id = Column(String(32), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=ReservationStatus.HELD.value, index=True)
    order_id = Column(String(32), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("checkout_key", "product_id", name="uq_reservation_key_product"),
    )


class PaymentIncident(Base):
    """
    A gateway charge that succeeded but whose order could not be persisted.

    Picked up by the reconciler, which rebuilds the order from `payment` and
    `cart` and commits the held reservations for `checkout_key`.
    """
    __tablename__ = "payment_incidents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    checkout_key = Column(String(128), unique=True, nullable=False, index=True)
    buyer_id = Column(String(32), nullable=False, index=True)
    gateway_transaction_id = Column(String(64), nullable=True, index=True)
    amount = Column(Float, nullable=False)
    payment = Column(JSON, nullable=False)
    cart = Column(JSON, nullable=False)  # [{product_id, unit_price, quantity}]
    status = Column(String(20), nullable=False, default=IncidentStatus.OPEN.value, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    order_id = Column(String(32), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    resolved_at = Column(DateTime, nullable=True)
