"""Order fulfillment workflow.

Each transition reads the order for the role/step checks, then applies its
writes with one conditional UPDATE guarded on the expected stage. If the
guard no longer holds (a concurrent request moved the order first) nothing
is written and the caller gets StateError.
"""
import logging
from datetime import datetime

from flask import current_app
from sqlalchemy import case, delete, func, or_, update
from sqlalchemy.exc import IntegrityError

from ..db import commit_or_rollback, db
from ..errors import NotFoundError, RoleError, StateError, ValidationError
from ..models import ChatMessage, Order, OrderStage, OrderStatus, Role, derive_status
from ..utils.parsing import clean_text, parse_bool, pick, require_url

log = logging.getLogger(__name__)

LIVE_STAGES = (OrderStage.BUYER_INFO, OrderStage.SHIPPING, OrderStage.RECEIPT, OrderStage.RATING)
PRE_SHIPMENT_STAGES = (OrderStage.BUYER_INFO, OrderStage.SHIPPING)


def _now() -> datetime:
    return datetime.utcnow()


def get_order_or_404(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def require_party(order: Order, actor, role: Role = None) -> Role:
    """Actor's role on the order; RoleError if they are not (the given) party."""
    actual = order.role_of(actor.user_id)
    if actual is None:
        raise RoleError("Not a participant of this order")
    if role is not None and actual != role:
        raise RoleError(f"Only the {role.value} can perform this step")
    return actual


def require_stage(order: Order, *stages: OrderStage) -> None:
    if order.is_cancelled:
        raise StateError("Order is cancelled")
    if order.stage not in stages:
        raise StateError(f"Order is at step {order.step} ({order.status.value})")


def apply_transition(order: Order, from_stages, values: dict, *conditions) -> bool:
    """Conditional update of `order`; False if the stage guard did not match."""
    stmt = (
        update(Order)
        .where(
            Order.id == order.id,
            Order.stage.in_(from_stages),
            Order.cancelled_at.is_(None),
            *conditions,
        )
        .values(updated_at=_now(), **values)
        .execution_options(synchronize_session=False)
    )
    return db.session.execute(stmt).rowcount == 1


def commit_transition(order: Order, from_stages, values: dict, label: str) -> Order:
    if not apply_transition(order, from_stages, values):
        db.session.rollback()
        log.info("order %s: %s lost a concurrent update", order.id, label)
        raise StateError("Order changed concurrently, reload it and retry")
    commit_or_rollback()
    db.session.refresh(order)
    log.info("order %s: %s -> %s (step %s)", order.id, label, order.status.value, order.step)
    return order


# -------------------------------------------------------------------
# Lifecycle
# -------------------------------------------------------------------


def _positive_int(value, field: str) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")
    if n <= 0:
        raise ValidationError(f"{field} must be positive")
    return n


def _existing_for_product(product_id: int, seller_id: int, buyer_id: int):
    existing = Order.query.filter_by(product_id=product_id).first()
    if existing is None:
        return None
    if (existing.seller_id, existing.buyer_id) != (seller_id, buyer_id):
        raise StateError(f"Product {product_id} already has an order for another deal")
    return existing


def create_order(product_id, seller_id, buyer_id, actor=None):
    """Open the workflow for a won auction. Returns (order, created).

    One order per product. Only auctions-service (role "service") or an
    admin may open it over HTTP; `actor=None` is an in-process call.
    Repeating the call for the same deal returns the existing order.
    """
    if actor is not None and not (actor.is_admin or actor.is_service):
        raise RoleError("Orders are opened by the auction service or an admin")
    product_id = _positive_int(product_id, "product_id")
    seller_id = _positive_int(seller_id, "seller_id")
    buyer_id = _positive_int(buyer_id, "buyer_id")
    if seller_id == buyer_id:
        raise ValidationError("seller and buyer must be different users")

    existing = _existing_for_product(product_id, seller_id, buyer_id)
    if existing is not None:
        return existing, False

    order = Order(
        product_id=product_id,
        seller_id=seller_id,
        buyer_id=buyer_id,
        stage=OrderStage.BUYER_INFO,
    )
    db.session.add(order)
    try:
        db.session.commit()
    except IntegrityError:
        # created by a concurrent request for the same product
        db.session.rollback()
        existing = _existing_for_product(product_id, seller_id, buyer_id)
        if existing is None:
            raise
        return existing, False
    log.info("order %s created for product %s (seller %s, buyer %s)",
             order.id, product_id, seller_id, buyer_id)
    return order, True


def get_order(order_id: int, actor) -> Order:
    order = get_order_or_404(order_id)
    if not actor.is_admin:
        require_party(order, actor)
    return order


# -------------------------------------------------------------------
# Steps
# -------------------------------------------------------------------


def submit_step1(order_id: int, actor, data: dict) -> Order:
    """Buyer submits shipping address and payment proof."""
    order = get_order_or_404(order_id)
    require_party(order, actor, Role.BUYER)
    require_stage(order, OrderStage.BUYER_INFO)

    address = clean_text(pick(data, "address", "shippingAddress", "shipping_address"),
                         "address", required=True)
    proof = require_url(pick(data, "paymentProof", "payment_proof"), "paymentProof")
    note = clean_text(pick(data, "note", "buyerNote", "buyer_note"), "note")

    values = {
        "shipping_address": address,
        "payment_proof": proof,
        "buyer_note": note,
        "stage": OrderStage.SHIPPING,
    }
    return commit_transition(order, (OrderStage.BUYER_INFO,), values, "step1")


def confirm_payment(order_id: int, actor) -> Order:
    """Seller acknowledges the buyer's payment before shipping. Idempotent."""
    order = get_order_or_404(order_id)
    require_party(order, actor, Role.SELLER)
    require_stage(order, OrderStage.SHIPPING)
    if order.payment_confirmed_at is not None:
        return order

    values = {"payment_confirmed_at": func.coalesce(Order.payment_confirmed_at, _now())}
    return commit_transition(order, (OrderStage.SHIPPING,), values, "confirm_payment")


def submit_step2(order_id: int, actor, data: dict) -> Order:
    """Seller confirms payment and ships, as one commit."""
    order = get_order_or_404(order_id)
    require_party(order, actor, Role.SELLER)

    from_stages = (OrderStage.SHIPPING,)
    if current_app.config.get("ORDER_STEP2_FROM_STEP1"):
        from_stages = PRE_SHIPMENT_STAGES
    require_stage(order, *from_stages)

    proof = require_url(pick(data, "shippingProof", "shipping_proof"), "shippingProof")
    note = clean_text(pick(data, "note", "sellerNote", "seller_note"), "note")
    confirm = parse_bool(pick(data, "confirmPayment", "confirm_payment", default=False))
    if not confirm and order.payment_confirmed_at is None:
        raise ValidationError("Payment must be confirmed before shipping")

    now = _now()
    values = {
        "shipping_proof": proof,
        "payment_confirmed_at": func.coalesce(Order.payment_confirmed_at, now),
        "shipped_at": now,
        "stage": OrderStage.RECEIPT,
    }
    if note is not None:
        values["seller_note"] = note
    return commit_transition(order, from_stages, values, "step2")


def submit_step3(order_id: int, actor) -> Order:
    """Buyer confirms receipt."""
    order = get_order_or_404(order_id)
    require_party(order, actor, Role.BUYER)
    require_stage(order, OrderStage.RECEIPT)

    values = {"received_at": _now(), "stage": OrderStage.RATING}
    return commit_transition(order, (OrderStage.RECEIPT,), values, "step3")


# -------------------------------------------------------------------
# Admin
# -------------------------------------------------------------------


def cancel_order(order_id: int, actor) -> Order:
    order = get_order_or_404(order_id)
    if actor.is_admin:
        from_stages = LIVE_STAGES
    elif current_app.config.get("ORDER_PARTY_CANCEL"):
        require_party(order, actor)
        from_stages = PRE_SHIPMENT_STAGES
    else:
        raise RoleError("Only an admin can cancel an order")

    if order.is_terminal:
        raise StateError("Cannot cancel completed or already cancelled order")
    if order.stage not in from_stages:
        raise StateError("Order has already shipped")

    values = {"cancelled_at": _now(), "cancelled_by": actor.user_id}
    return commit_transition(order, from_stages, values, "cancel")


def delete_order(order_id: int, actor) -> None:
    if not actor.is_admin:
        raise RoleError("Only an admin can delete an order")
    order = get_order_or_404(order_id)
    if not order.is_terminal:
        raise StateError("Only cancelled or completed orders can be deleted")

    db.session.execute(
        delete(ChatMessage)
        .where(ChatMessage.order_id == order.id)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(
        delete(Order)
        .where(
            Order.id == order.id,
            or_(Order.cancelled_at.isnot(None), Order.stage == OrderStage.COMPLETED),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise StateError("Order changed concurrently, reload it and retry")
    db.session.expunge(order)
    commit_or_rollback("delete order")
    log.info("order %s deleted by admin %s", order_id, actor.user_id)


def _ongoing_clause():
    return (Order.cancelled_at.is_(None)) & (Order.stage != OrderStage.COMPLETED)


def list_orders(status: str = "all", search: str = "", sort: str = None,
                page: int = 1, per_page: int = None):
    """Paginated admin listing; ongoing orders first unless a sort is requested."""
    per_page = per_page or current_app.config.get("ORDERS_PER_PAGE", 20)
    status = (status or "all").strip()
    q = Order.query

    if status == "ongoing":
        q = q.filter(_ongoing_clause())
    elif status != "all":
        try:
            q = q.filter(Order.status_clause(OrderStatus(status.upper())))
        except ValueError:
            raise ValidationError(f"Unknown status filter: {status}")

    search = (search or "").strip().lstrip("#")
    if search:
        try:
            n = int(search) if search.isascii() else None
        except ValueError:
            n = None
        if n is None:
            raise ValidationError("search must be a numeric order, product or user id")
        q = q.filter(or_(Order.id == n, Order.product_id == n,
                         Order.seller_id == n, Order.buyer_id == n))

    if sort and sort not in ("newest", "oldest"):
        raise ValidationError(f"Unknown sort: {sort}")
    if sort == "oldest":
        q = q.order_by(Order.created_at.asc(), Order.id.asc())
    elif sort == "newest" or status != "all":
        q = q.order_by(Order.created_at.desc(), Order.id.desc())
    else:
        q = q.order_by(case((_ongoing_clause(), 0), else_=1),
                       Order.created_at.desc(), Order.id.desc())

    return q.paginate(page=page, per_page=per_page, error_out=False)


def order_stats() -> dict:
    """Number of orders per derived status."""
    rows = (
        db.session.query(
            Order.stage,
            Order.cancelled_at.isnot(None),
            Order.payment_confirmed_at.isnot(None),
            func.count(Order.id),
        )
        .group_by(
            Order.stage,
            Order.cancelled_at.isnot(None),
            Order.payment_confirmed_at.isnot(None),
        )
        .all()
    )
    counts = {s.value: 0 for s in OrderStatus}
    for stage, cancelled, paid, n in rows:
        counts[derive_status(stage, bool(cancelled), bool(paid)).value] += n
    return counts
