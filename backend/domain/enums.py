"""
Domain enums shared by services, routes and the ORM layer.
"""

from enum import Enum, IntEnum


class OrderStatus(str, Enum):
    NOT_PROCESSED = "Not Processed"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"

    @classmethod
    def values(cls) -> list[str]:
        return [s.value for s in cls]


class Role(IntEnum):
    """Account privilege level. Persisted as the integer value."""
    STANDARD = 0
    ADMIN = 1


class CheckoutState(str, Enum):
    RECEIVED = "RECEIVED"
    VALIDATED = "VALIDATED"
    GATEWAY_AUTHORIZED = "GATEWAY_AUTHORIZED"
    PERSISTED = "PERSISTED"
    REJECTED = "REJECTED"
    GATEWAY_FAILED = "GATEWAY_FAILED"


class ReservationStatus(str, Enum):
    HELD = "held"
    COMMITTED = "committed"


class IncidentStatus(str, Enum):
    OPEN = "open"
    RESOLVED = "resolved"
    ABANDONED = "abandoned"
