"""FastAPI routes for the cart, identity and checkout endpoints.

The guest session id travels only in the HTTP-only ``sf_session`` cookie and the
refresh token only in the HTTP-only ``sf_refresh`` cookie. Access tokens come in
``Authorization: Bearer``. A session cookie is issued by the first cart
mutation, never by a bare read, and dropped once a register/login has merged the
guest cart.

Handlers are plain functions. Password hashing and the keyed store locks block,
so FastAPI runs each request in its threadpool instead of on the event loop.
"""

from fastapi import APIRouter, Cookie, Header, Response

from storefront.api.schemas import (
    AccountIdResponse,
    AddToCartRequest,
    CartLineSchema,
    CartResponse,
    CheckoutRequest,
    EmailRequest,
    LoginRequest,
    OrderLineSchema,
    OrderResponse,
    RegisterRequest,
    ResetPasswordRequest,
    RevokedResponse,
    SetQuantityRequest,
    StatusResponse,
    TokenRequest,
    TokenResponse,
)
from storefront.cart.lines import CartOperation, total_quantity
from storefront.cart.owner import AccountOwner, CartOwner, GuestOwner
from storefront.checkout.orchestrator import CheckoutOrchestrator
from storefront.config import get_settings
from storefront.errors import AuthenticationFailed, OrderNotFound
from storefront.identity.lifecycle import IdentityLifecycle, TokenPair
from storefront.order.order import Order
from storefront.session.store import SessionStore

SESSION_COOKIE = "sf_session"
REFRESH_COOKIE = "sf_refresh"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _bearer(authorization: str | None) -> str | None:
    if authorization is None:
        return None
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        raise AuthenticationFailed()
    return value.strip()


def _require_account(authorization: str | None) -> str:
    access_token = _bearer(authorization)
    if access_token is None:
        raise AuthenticationFailed()
    return IdentityLifecycle().authenticate(access_token)


def _owner(authorization: str | None, session_id: str | None) -> CartOwner | None:
    """The signed-in account if there is a bearer token, else the guest session (if any)."""
    access_token = _bearer(authorization)
    if access_token is not None:
        return AccountOwner(IdentityLifecycle().authenticate(access_token))
    if session_id:
        return GuestOwner(session_id)
    return None


def _set_cookie(response: Response, name: str, value: str, max_age) -> None:
    settings = get_settings()
    response.set_cookie(
        name,
        value,
        max_age=int(max_age.total_seconds()),
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )


def _cart_response(lines) -> CartResponse:
    return CartResponse(
        lines=[CartLineSchema(product_ref=line.product_ref, quantity=line.quantity) for line in lines],
        item_count=total_quantity(lines),
    )


def _token_response(response: Response, pair: TokenPair) -> TokenResponse:
    _set_cookie(response, REFRESH_COOKIE, pair.refresh_token, get_settings().refresh_token_ttl)
    return TokenResponse(access_token=pair.access_token, account_id=pair.account_id)


def _order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        order_id=str(order.id),
        status=order.status,
        owner_ref=str(order.owner_ref) if order.owner_ref else None,
        guest_email=order.guest_email,
        total_amount=order.total_amount,
        currency=order.currency,
        cart_cleared=order.cart_cleared,
        idempotency_key=order.idempotency_key,
        lines=[
            OrderLineSchema(
                product_ref=line.product_ref,
                title=line.title,
                quantity=line.quantity,
                unit_price=line.unit_price,
                line_total=line.line_total,
            )
            for line in order.lines
        ],
        created_at=order.created_at,
    )


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/cart", tags=["cart"])


def _mutate(response: Response, authorization, session_id, operation: CartOperation) -> CartResponse:
    owner = _owner(authorization, session_id)
    if owner is None:
        # New visitor; the cookie is issued only once a record is written.
        sessions = SessionStore()
        owner = GuestOwner(sessions.create(), sessions)

    lines = owner.mutate_cart(operation)
    if owner.is_guest and lines:
        _set_cookie(response, SESSION_COOKIE, owner.session_id, get_settings().session_ttl)
    return _cart_response(lines)


@cart_router.get("", response_model=CartResponse)
def read_cart(
    authorization: str | None = Header(default=None),
    sf_session: str | None = Cookie(default=None),
) -> CartResponse:
    owner = _owner(authorization, sf_session)
    return _cart_response(owner.read_cart() if owner else [])


@cart_router.post("/items", response_model=CartResponse)
def add_to_cart(
    body: AddToCartRequest,
    response: Response,
    authorization: str | None = Header(default=None),
    sf_session: str | None = Cookie(default=None),
) -> CartResponse:
    return _mutate(response, authorization, sf_session, CartOperation.add(body.product_ref, body.quantity))


@cart_router.put("/items/{product_ref}", response_model=CartResponse)
def set_cart_quantity(
    product_ref: str,
    body: SetQuantityRequest,
    response: Response,
    authorization: str | None = Header(default=None),
    sf_session: str | None = Cookie(default=None),
) -> CartResponse:
    return _mutate(response, authorization, sf_session, CartOperation.set_quantity(product_ref, body.quantity))


@cart_router.delete("/items/{product_ref}", response_model=CartResponse)
def remove_from_cart(
    product_ref: str,
    response: Response,
    authorization: str | None = Header(default=None),
    sf_session: str | None = Cookie(default=None),
) -> CartResponse:
    return _mutate(response, authorization, sf_session, CartOperation.remove(product_ref))


# ---------------------------------------------------------------------------
# Auth Router
# ---------------------------------------------------------------------------
auth_router = APIRouter(prefix="/auth", tags=["auth"])


@auth_router.post("/register", status_code=201, response_model=AccountIdResponse)
def register(
    body: RegisterRequest,
    response: Response,
    sf_session: str | None = Cookie(default=None),
) -> AccountIdResponse:
    account_id = IdentityLifecycle().register(body.email, body.password, guest_session_id=sf_session)
    if sf_session:
        response.delete_cookie(SESSION_COOKIE)
    return AccountIdResponse(account_id=account_id)


@auth_router.post("/verify-email", response_model=AccountIdResponse)
def verify_email(body: TokenRequest) -> AccountIdResponse:
    return AccountIdResponse(account_id=IdentityLifecycle().verify_email(body.token))


@auth_router.post("/resend-verification", status_code=202, response_model=StatusResponse)
def resend_verification(body: EmailRequest) -> StatusResponse:
    IdentityLifecycle().resend_verification(body.email)
    return StatusResponse(status="accepted")


@auth_router.post("/login", response_model=TokenResponse)
def login(
    body: LoginRequest,
    response: Response,
    sf_session: str | None = Cookie(default=None),
) -> TokenResponse:
    pair = IdentityLifecycle().login(body.email, body.password, guest_session_id=sf_session)
    if sf_session:
        response.delete_cookie(SESSION_COOKIE)
    return _token_response(response, pair)


@auth_router.post("/refresh", response_model=TokenResponse)
def refresh(response: Response, sf_refresh: str | None = Cookie(default=None)) -> TokenResponse:
    if not sf_refresh:
        raise AuthenticationFailed()
    return _token_response(response, IdentityLifecycle().refresh(sf_refresh))


@auth_router.post("/logout", response_model=StatusResponse)
def logout(response: Response, sf_refresh: str | None = Cookie(default=None)) -> StatusResponse:
    if sf_refresh:
        IdentityLifecycle().logout(sf_refresh)
    response.delete_cookie(REFRESH_COOKIE)
    return StatusResponse()


@auth_router.post("/logout-all", response_model=RevokedResponse)
def logout_all(response: Response, authorization: str | None = Header(default=None)) -> RevokedResponse:
    account_id = _require_account(authorization)
    revoked = IdentityLifecycle().logout_all(account_id)
    response.delete_cookie(REFRESH_COOKIE)
    return RevokedResponse(revoked=revoked)


@auth_router.post("/password-reset", status_code=202, response_model=StatusResponse)
def request_password_reset(body: EmailRequest) -> StatusResponse:
    IdentityLifecycle().request_password_reset(body.email)
    return StatusResponse(status="accepted")


@auth_router.post("/password-reset/confirm", response_model=AccountIdResponse)
def reset_password(body: ResetPasswordRequest) -> AccountIdResponse:
    return AccountIdResponse(account_id=IdentityLifecycle().reset_password(body.token, body.new_password))


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(tags=["orders"])


@order_router.post("/checkout", status_code=201, response_model=OrderResponse)
def checkout(
    body: CheckoutRequest,
    response: Response,
    authorization: str | None = Header(default=None),
    sf_session: str | None = Cookie(default=None),
) -> OrderResponse:
    owner = _owner(authorization, sf_session)
    if owner is None:
        owner = GuestOwner("")
    order = CheckoutOrchestrator().checkout(
        owner,
        shipping_info=body.shipping.model_dump(),
        payment_method=body.payment_method,
        guest_email=body.guest_email,
        idempotency_key=body.idempotency_key,
    )
    if owner.is_guest and order.cart_cleared and sf_session and not owner.read_cart():
        response.delete_cookie(SESSION_COOKIE)
    return _order_response(order)


@order_router.get("/orders/by-key/{idempotency_key}", response_model=OrderResponse)
def order_by_key(
    idempotency_key: str,
    email: str | None = None,
    authorization: str | None = Header(default=None),
) -> OrderResponse:
    """Re-read the outcome of a checkout submitted with ``idempotency_key``.

    Account orders are shown to their account only; guest orders to a caller
    who also knows the email the order was placed with.
    """
    order = CheckoutOrchestrator().find_by_key(idempotency_key)
    if order is None:
        raise OrderNotFound()
    if order.owner_ref is not None:
        if _require_account(authorization) != str(order.owner_ref):
            raise OrderNotFound()
    elif not email or email.strip().lower() != order.guest_email:
        raise OrderNotFound()
    return _order_response(order)
