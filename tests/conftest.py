import jwt
import pytest

from orders_service.app import create_app
from orders_service.auth_mw import Actor
from orders_service.db import db
from orders_service.services import order_service
from orders_service.services.message_sink import MemorySink

SECRET = "test-secret"

ADMIN_ID = 1
SELLER_ID = 10
BUYER_ID = 20
STRANGER_ID = 99

PAYMENT_PROOF = "https://img.example/p.png"
SHIPPING_PROOF = "https://img.example/s.png"


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "JWT_SECRET": SECRET,
        "REPUTATION_URL": "",
        "CHAT_WEBHOOK_URL": "",
        "ORDER_PARTY_CANCEL": False,
        "ORDER_STEP2_FROM_STEP1": False,
    })
    app.extensions["order_message_sink"] = MemorySink()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sink(app):
    return app.extensions["order_message_sink"]


@pytest.fixture
def buyer():
    return Actor(BUYER_ID)


@pytest.fixture
def seller():
    return Actor(SELLER_ID)


@pytest.fixture
def admin():
    return Actor(ADMIN_ID, "admin")


@pytest.fixture
def stranger():
    return Actor(STRANGER_ID)


def make_token(user_id: int, role: str = "user", secret: str = SECRET) -> str:
    return jwt.encode({"sub": str(user_id), "role": role}, secret, algorithm="HS256")


def auth(user_id: int, role: str = "user") -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, role)}"}


@pytest.fixture
def order(ctx):
    o, _ = order_service.create_order(1000, SELLER_ID, BUYER_ID)
    return o


def advance(order_id: int, to_step: int, buyer: Actor, seller: Actor):
    """Walk a fresh order forward through the happy path up to `to_step`."""
    o = None
    if to_step >= 2:
        o = order_service.submit_step1(order_id, buyer, {"address": "123 St", "paymentProof": PAYMENT_PROOF})
    if to_step >= 3:
        o = order_service.submit_step2(order_id, seller, {"shippingProof": SHIPPING_PROOF,
                                                          "confirmPayment": True})
    if to_step >= 4:
        o = order_service.submit_step3(order_id, buyer)
    return o
