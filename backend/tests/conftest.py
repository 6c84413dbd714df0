"""
Shared fixtures: in-memory database, fake Redis, mocked payment providers.
"""

import json
from decimal import Decimal
from typing import Any

import httpx
import pytest
from fakeredis import FakeAsyncRedis
from sqlalchemy.pool import StaticPool

from tfootwear.core.database import Database
from tfootwear.core.security import TokenDenylist, create_access_token, get_password_hash
from tfootwear.main import create_app
from tfootwear.models.shop import Category, Product
from tfootwear.models.user import User, UserRole
from tfootwear.modules.payments import MpesaClient, PaymentService, PesapalClient
from tfootwear.modules.shop import CartService, CatalogService, OrderService


# ==================== Database ====================


@pytest.fixture
async def database():
    database = Database(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await database.create_all()
    yield database
    await database.dispose()


@pytest.fixture
async def db(database):
    async with database.session() as session:
        yield session


@pytest.fixture
async def redis():
    client = FakeAsyncRedis(decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def denylist(redis) -> TokenDenylist:
    return TokenDenylist(redis)


# ==================== Data ====================


async def make_user(db, email: str, role: UserRole = UserRole.CUSTOMER) -> User:
    user = User(
        name=email.split("@")[0].title(),
        email=email,
        hashed_password=get_password_hash("password123"),
        role=role,
    )
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def customer(db) -> User:
    return await make_user(db, "ann@example.com")


@pytest.fixture
async def other_customer(db) -> User:
    return await make_user(db, "ben@example.com")


@pytest.fixture
async def admin(db) -> User:
    return await make_user(db, "admin@example.com", UserRole.ADMIN)


@pytest.fixture
async def category(db) -> Category:
    category = Category(name="Sneakers", slug="sneakers")
    db.add(category)
    await db.commit()
    return category


async def make_product(db, category: Category, name: str, price: str, stock: int) -> Product:
    product = Product(
        name=name,
        slug=name.lower().replace(" ", "-"),
        description=f"{name} shoe",
        price=Decimal(price),
        stock=stock,
        category_id=category.id,
    )
    db.add(product)
    await db.commit()
    return product


@pytest.fixture
async def sneaker(db, category) -> Product:
    return await make_product(db, category, "Air Runner", "2500.00", 5)


@pytest.fixture
async def boot(db, category) -> Product:
    return await make_product(db, category, "Trail Boot", "4000.00", 2)


# ==================== Services ====================


@pytest.fixture
def catalog(db) -> CatalogService:
    return CatalogService(db)


@pytest.fixture
def cart(db) -> CartService:
    return CartService(db)


@pytest.fixture
def orders(db, cart, catalog) -> OrderService:
    return OrderService(db, cart, catalog)


# ==================== Payment providers ====================


class FakePesapal:
    """Scripted Pesapal API behind an httpx.MockTransport."""

    def __init__(self) -> None:
        self.status = "Completed"
        self.calls: list[str] = []
        self.submit_response: httpx.Response | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append(path)

        if path.endswith("/api/Auth/RequestToken"):
            return httpx.Response(200, json={"token": "pesapal-token", "status": "200"})

        if path.endswith("/api/Transactions/SubmitOrderRequest"):
            if self.submit_response is not None:
                return self.submit_response
            body = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "order_tracking_id": f"track-{body['id']}",
                    "merchant_reference": body["id"],
                    "redirect_url": f"https://pay.pesapal.test/iframe?ref={body['id']}",
                    "status": "200",
                },
            )

        if path.endswith("/api/Transactions/GetTransactionStatus"):
            return httpx.Response(
                200,
                json={
                    "payment_status_description": self.status,
                    "description": f"Payment {self.status.lower()}",
                    "payment_method": "Visa",
                    "amount": 5000,
                },
            )

        return httpx.Response(404, json={"error": "unknown path"})


class FakeDaraja:
    """Scripted Daraja API behind an httpx.MockTransport."""

    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []
        self.counter = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path

        if path.endswith("/oauth/v1/generate"):
            return httpx.Response(200, json={"access_token": "daraja-token", "expires_in": "3599"})

        if path.endswith("/mpesa/stkpush/v1/processrequest"):
            body = json.loads(request.content)
            self.requests.append(body)
            self.counter += 1
            return httpx.Response(
                200,
                json={
                    "MerchantRequestID": f"merchant-{self.counter}",
                    "CheckoutRequestID": f"ws_CO_{self.counter}",
                    "ResponseCode": "0",
                    "ResponseDescription": "Success. Request accepted for processing",
                    "CustomerMessage": "Success. Request accepted for processing",
                },
            )

        return httpx.Response(404)


@pytest.fixture
def fake_pesapal() -> FakePesapal:
    return FakePesapal()


@pytest.fixture
def fake_daraja() -> FakeDaraja:
    return FakeDaraja()


@pytest.fixture
async def pesapal(fake_pesapal):
    client = PesapalClient(
        consumer_key="key",
        consumer_secret="secret",
        base_url="https://pesapal.test/v3",
        ipn_id="ipn-1",
        transport=httpx.MockTransport(fake_pesapal),
        backoff=0,
    )
    yield client
    await client.close()


@pytest.fixture
async def mpesa(fake_daraja):
    client = MpesaClient(
        consumer_key="key",
        consumer_secret="secret",
        passkey="passkey",
        shortcode="174379",
        base_url="https://daraja.test",
        transport=httpx.MockTransport(fake_daraja),
        backoff=0,
    )
    yield client
    await client.close()


@pytest.fixture
def payments(db, orders, pesapal, mpesa) -> PaymentService:
    return PaymentService(db, orders, pesapal, mpesa)


# ==================== HTTP ====================


@pytest.fixture
async def app(database, redis, pesapal, mpesa):
    application = create_app()
    # ASGITransport does not run the lifespan
    application.state.database = database
    application.state.redis = redis
    application.state.pesapal = pesapal
    application.state.mpesa = mpesa
    return application


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def customer_headers(customer) -> dict[str, str]:
    return auth_headers(customer)


@pytest.fixture
def admin_headers(admin) -> dict[str, str]:
    return auth_headers(admin)
