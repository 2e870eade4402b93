# config.py
import os

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Database
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///orders.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    JSON_AS_ASCII = False

    # JWT issued by auth-service
    JWT_SECRET = os.getenv("JWT_SECRET", "supersecret")
    JWT_ALGO = os.getenv("JWT_ALGO", "HS256")

    # Downstream collaborators
    REPUTATION_URL = os.getenv("REPUTATION_URL", "")
    CHAT_WEBHOOK_URL = os.getenv("CHAT_WEBHOOK_URL", "")
    HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "5"))

    # Capability flags (business rules not settled yet)
    ORDER_PARTY_CANCEL = _flag("ORDER_PARTY_CANCEL")
    ORDER_STEP2_FROM_STEP1 = _flag("ORDER_STEP2_FROM_STEP1")

    ORDERS_PER_PAGE = int(os.getenv("ORDERS_PER_PAGE", "20"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
