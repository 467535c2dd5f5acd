"""Pydantic request/response schemas for the storefront API.

These are external contracts, kept separate from the domain model. Email
addresses and passwords are validated by the domain, so they are plain strings
here.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class CartLineSchema(BaseModel):
    product_ref: str
    quantity: int


class ShippingInfoSchema(BaseModel):
    name: str
    street: str
    city: str
    state: str | None = None
    postal_code: str
    country: str


class OrderLineSchema(BaseModel):
    product_ref: str
    title: str
    quantity: int
    unit_price: float
    line_total: float


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
class AddToCartRequest(BaseModel):
    product_ref: str = Field(min_length=1)
    quantity: int = Field(ge=1, default=1)


class SetQuantityRequest(BaseModel):
    quantity: int = Field(ge=0)


class CartResponse(BaseModel):
    lines: list[CartLineSchema] = []
    item_count: int = 0


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------
class RegisterRequest(BaseModel):
    email: str
    password: str

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "email": "jane@example.com",
                    "password": "correct horse battery staple",
                }
            ]
        }
    }


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenRequest(BaseModel):
    token: str


class EmailRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str


class AccountIdResponse(BaseModel):
    account_id: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    account_id: str


class RevokedResponse(BaseModel):
    revoked: int


class StatusResponse(BaseModel):
    status: str = "ok"


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------
class CheckoutRequest(BaseModel):
    shipping: ShippingInfoSchema
    payment_method: str = Field(min_length=1, max_length=50)
    guest_email: str | None = None
    idempotency_key: str | None = Field(default=None, max_length=255)


class OrderResponse(BaseModel):
    order_id: str
    status: str
    owner_ref: str | None = None
    guest_email: str | None = None
    total_amount: float
    currency: str
    cart_cleared: bool
    idempotency_key: str | None = None
    lines: list[OrderLineSchema] = []
    created_at: datetime | None = None
