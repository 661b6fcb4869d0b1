"""
Pydantic models for request/response validation.
"""
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from typing import List, Optional


class ApiBase(BaseModel):
    """Shared base: allows construction by Python name or alias."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


# ── Auth Models ─────────────────────────────────────────────────────

class RegisterRequest(ApiBase):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=6, max_length=72)
    phone: Optional[str] = Field(default=None, max_length=30)
    address: Optional[str] = Field(default=None, max_length=500)
    answer: Optional[str] = Field(default=None, max_length=72)


class LoginRequest(ApiBase):
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=1, max_length=128)


class LoginResponse(ApiBase):
    user: dict
    token: str
    token_type: str = Field("Bearer", alias="tokenType")


class ProfileUpdateRequest(ApiBase):
    # Blank or missing fields are left unchanged
    name: Optional[str] = Field(default=None, max_length=100)
    password: Optional[str] = Field(default=None, max_length=72)
    phone: Optional[str] = Field(default=None, max_length=30)
    address: Optional[str] = Field(default=None, max_length=500)


class ForgotPasswordRequest(ApiBase):
    # Optional so a missing field gets the domain ValidationError (400)
    email: Optional[str] = Field(default=None, max_length=254)
    answer: Optional[str] = Field(default=None, max_length=72)
    new_password: Optional[str] = Field(default=None, alias="newPassword", max_length=72)


# ── Catalog Models ──────────────────────────────────────────────────

class ProductCreateRequest(ApiBase):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    price: float = Field(..., ge=0, allow_inf_nan=False)
    quantity: int = Field(..., ge=0)
    shipping: bool = False


# ── Checkout Models ─────────────────────────────────────────────────

class CartLineModel(ApiBase):
    """One cart line. Accepts the storefront UI's `_id`/`count` names too."""
    product_id: str = Field(
        ...,
        min_length=1,
        alias="productId",
        validation_alias=AliasChoices("productId", "product_id", "_id", "id"),
    )
    price: float = Field(..., ge=0, allow_inf_nan=False)
    quantity: int = Field(
        1,
        ge=1,
        le=1000,
        validation_alias=AliasChoices("quantity", "count"),
    )


class CheckoutRequest(ApiBase):
    # Optional here so a missing nonce/cart gets the domain ValidationError (400)
    nonce: Optional[str] = None
    cart: Optional[List[CartLineModel]] = None
    idempotency_key: Optional[str] = Field(default=None, alias="idempotencyKey", max_length=128)


class ClientTokenResponse(ApiBase):
    client_token: str = Field(..., alias="clientToken")


# ── Order Models ────────────────────────────────────────────────────

class OrderStatusUpdateRequest(ApiBase):
    # Validated against OrderStatus by the order service (InvalidStatus)
    status: Optional[str] = None
