from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import Enum, Index, UniqueConstraint, and_, or_

from .db import db


class OrderStatus(PyEnum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PAID_CONFIRMED = "PAID_CONFIRMED"
    SHIPPED = "SHIPPED"
    RECEIVED = "RECEIVED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class OrderStage(PyEnum):
    """Workflow position of an order. Drives both `step` and `status`."""

    BUYER_INFO = "BUYER_INFO"
    SHIPPING = "SHIPPING"
    RECEIPT = "RECEIPT"
    RATING = "RATING"
    COMPLETED = "COMPLETED"

    @property
    def step(self) -> int:
        return STAGE_STEPS[self]


STAGE_STEPS = {
    OrderStage.BUYER_INFO: 1,
    OrderStage.SHIPPING: 2,
    OrderStage.RECEIPT: 3,
    OrderStage.RATING: 4,
    OrderStage.COMPLETED: 4,
}

TERMINAL_STATUSES = (OrderStatus.CANCELLED, OrderStatus.COMPLETED)


class Role(PyEnum):
    BUYER = "buyer"
    SELLER = "seller"


def derive_status(stage: OrderStage, cancelled: bool, payment_confirmed: bool) -> OrderStatus:
    if cancelled:
        return OrderStatus.CANCELLED
    if stage == OrderStage.BUYER_INFO:
        return OrderStatus.PENDING_PAYMENT
    if stage == OrderStage.SHIPPING:
        return OrderStatus.PAID_CONFIRMED if payment_confirmed else OrderStatus.PENDING_PAYMENT
    if stage == OrderStage.RECEIPT:
        return OrderStatus.SHIPPED
    if stage == OrderStage.RATING:
        return OrderStatus.RECEIVED
    return OrderStatus.COMPLETED


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, nullable=False)
    seller_id = db.Column(db.Integer, nullable=False, index=True)
    buyer_id = db.Column(db.Integer, nullable=False, index=True)

    stage = db.Column(
        Enum(OrderStage, name="order_stage"),
        nullable=False,
        default=OrderStage.BUYER_INFO,
    )
    cancelled_at = db.Column(db.DateTime)
    cancelled_by = db.Column(db.Integer)

    # Step 1: buyer info
    shipping_address = db.Column(db.Text)
    payment_proof = db.Column(db.String(500))  # URL ảnh chuyển khoản
    buyer_note = db.Column(db.Text)

    # Step 2: seller confirms payment and ships
    shipping_proof = db.Column(db.String(500))  # URL ảnh / mã vận đơn
    seller_note = db.Column(db.Text)
    payment_confirmed_at = db.Column(db.DateTime)
    shipped_at = db.Column(db.DateTime)

    # Step 3 & 4
    received_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)

    # Embedded ratings, one per party
    buyer_rating_score = db.Column(db.Integer)
    buyer_rating_comment = db.Column(db.Text)
    buyer_rating_updated_at = db.Column(db.DateTime)

    seller_rating_score = db.Column(db.Integer)
    seller_rating_comment = db.Column(db.Text)
    seller_rating_updated_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    messages = db.relationship(
        "ChatMessage",
        back_populates="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="ChatMessage.id",
    )

    __table_args__ = (
        UniqueConstraint("product_id", name="uq_order_product"),
        Index("ix_order_stage_created", "stage", "created_at"),
    )

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled_at is not None

    @property
    def status(self) -> OrderStatus:
        return derive_status(self.stage, self.is_cancelled, self.payment_confirmed_at is not None)

    @property
    def step(self) -> int:
        return self.stage.step

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def role_of(self, user_id) -> Optional[Role]:
        if user_id == self.buyer_id:
            return Role.BUYER
        if user_id == self.seller_id:
            return Role.SELLER
        return None

    def rating_of(self, role: Role) -> Optional[dict]:
        """Rating written *by* the given party, or None."""
        score = getattr(self, f"{role.value}_rating_score")
        if score is None:
            return None
        return {
            "score": score,
            "comment": getattr(self, f"{role.value}_rating_comment"),
            "updated_at": getattr(self, f"{role.value}_rating_updated_at"),
        }

    @classmethod
    def status_clause(cls, status: OrderStatus):
        """SQL condition selecting orders whose derived status is `status`."""
        if status == OrderStatus.CANCELLED:
            return cls.cancelled_at.isnot(None)
        live = cls.cancelled_at.is_(None)
        if status == OrderStatus.PENDING_PAYMENT:
            return and_(live, or_(
                cls.stage == OrderStage.BUYER_INFO,
                and_(cls.stage == OrderStage.SHIPPING, cls.payment_confirmed_at.is_(None)),
            ))
        if status == OrderStatus.PAID_CONFIRMED:
            return and_(live, cls.stage == OrderStage.SHIPPING, cls.payment_confirmed_at.isnot(None))
        stage = {
            OrderStatus.SHIPPED: OrderStage.RECEIPT,
            OrderStatus.RECEIVED: OrderStage.RATING,
            OrderStatus.COMPLETED: OrderStage.COMPLETED,
        }[status]
        return and_(live, cls.stage == stage)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Order id={self.id} stage={self.stage.value} status={self.status.value}>"


class ChatMessage(db.Model):
    """Append-only message log attached to an order."""

    __tablename__ = "order_messages"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.Integer,
        db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sender_id = db.Column(db.Integer)  # None = hệ thống
    content = db.Column(db.Text, nullable=False)
    is_image = db.Column(db.Boolean, default=False, nullable=False)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    order = db.relationship("Order", back_populates="messages")

    def __repr__(self) -> str:  # pragma: no cover
        return f"<ChatMessage id={self.id} order_id={self.order_id} admin={self.is_admin}>"
