"""
Shared API dependencies: authentication and service wiring.

Services are built per request from the request's database session.
Long-lived clients (Redis, payment gateways) live on ``app.state`` and
are created once in the application lifespan.
"""

from fastapi import Depends, HTTPException, Request
from fastapi.security import OAuth2PasswordBearer
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from tfootwear.core.config import settings
from tfootwear.core.database import get_db
from tfootwear.core.security import TokenDenylist, decode_access_token
from tfootwear.models.user import User
from tfootwear.modules.accounts import AdminService, AuthService, UserService
from tfootwear.modules.payments import PaymentService
from tfootwear.modules.shipping import ShippingService
from tfootwear.modules.shop import CartService, CatalogService, OrderService, SearchService

oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.api_v1_prefix}/auth/login",
    auto_error=False,
)


# ==================== Clients ====================


def get_denylist(request: Request) -> TokenDenylist:
    return TokenDenylist(request.app.state.redis)


# ==================== Authentication ====================


async def get_token(
    token: str | None = Depends(oauth2_scheme),
    denylist: TokenDenylist = Depends(get_denylist),
) -> str:
    """Bearer token from the Authorization header, refused if logged out."""
    if not token:
        raise HTTPException(status_code=401, detail="Access token required")
    if await denylist.contains(token):
        raise HTTPException(status_code=401, detail="Token has been invalidated")
    return token


async def get_current_user(
    token: str = Depends(get_token),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the authenticated user."""
    claims = decode_access_token(token)
    if not claims or not str(claims.get("sub", "")).isdigit() or claims.get("purpose"):
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user = await db.get(User, int(claims["sub"]))
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Allow admins only."""
    if not user.is_admin:
        logger.warning(f"User {user.id} denied admin access")
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


# ==================== Services ====================


def get_catalog_service(db: AsyncSession = Depends(get_db)) -> CatalogService:
    return CatalogService(db)


def get_search_service(db: AsyncSession = Depends(get_db)) -> SearchService:
    return SearchService(db)


def get_cart_service(db: AsyncSession = Depends(get_db)) -> CartService:
    return CartService(db)


def get_order_service(
    db: AsyncSession = Depends(get_db),
    cart: CartService = Depends(get_cart_service),
    catalog: CatalogService = Depends(get_catalog_service),
) -> OrderService:
    return OrderService(db, cart, catalog)


def get_payment_service(
    request: Request,
    db: AsyncSession = Depends(get_db),
    orders: OrderService = Depends(get_order_service),
) -> PaymentService:
    return PaymentService(db, orders, request.app.state.pesapal, request.app.state.mpesa)


def get_shipping_service(db: AsyncSession = Depends(get_db)) -> ShippingService:
    return ShippingService(db)


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    denylist: TokenDenylist = Depends(get_denylist),
) -> AuthService:
    return AuthService(db, denylist)


def get_user_service(db: AsyncSession = Depends(get_db)) -> UserService:
    return UserService(db)


def get_admin_service(
    db: AsyncSession = Depends(get_db),
    users: UserService = Depends(get_user_service),
    orders: OrderService = Depends(get_order_service),
) -> AdminService:
    return AdminService(db, users, orders)
