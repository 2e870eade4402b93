import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import update

from ..db import commit_or_rollback, db
from ..errors import StateError, ValidationError
from ..models import Order, OrderStage, Role
from ..utils.parsing import clean_text, parse_score

from . import reputation
from .order_service import apply_transition, get_order, get_order_or_404, require_party, require_stage

log = logging.getLogger(__name__)

RATABLE_STAGES = (OrderStage.RATING, OrderStage.COMPLETED)


def get_rating(order_id: int, role, actor=None) -> Optional[dict]:
    """Rating written by `role` ("buyer" or "seller") on the order, or None."""
    try:
        role = Role(role)
    except ValueError:
        raise ValidationError("role must be 'buyer' or 'seller'")
    order = get_order(order_id, actor) if actor is not None else get_order_or_404(order_id)
    return order.rating_of(role)


def submit_rating(order_id: int, actor, score, comment=None) -> Order:
    """Create or overwrite the actor's rating; completes the order once both exist.

    Ratings stay editable after completion. The COMPLETED transition is a
    second guarded update in the same transaction, so when both parties rate
    at the same time exactly one of them performs it.
    """
    order = get_order_or_404(order_id)
    role = require_party(order, actor)
    require_stage(order, *RATABLE_STAGES)
    score = parse_score(score)
    comment = clean_text(comment, "comment")

    previous = order.rating_of(role)
    was_completed = order.stage == OrderStage.COMPLETED
    now = datetime.utcnow()

    values = {
        f"{role.value}_rating_score": score,
        f"{role.value}_rating_comment": comment,
        f"{role.value}_rating_updated_at": now,
    }
    if not apply_transition(order, RATABLE_STAGES, values):
        db.session.rollback()
        raise StateError("Order changed concurrently, reload it and retry")

    completed_now = (
        db.session.execute(
            update(Order)
            .where(
                Order.id == order.id,
                Order.stage == OrderStage.RATING,
                Order.cancelled_at.is_(None),
                Order.buyer_rating_score.isnot(None),
                Order.seller_rating_score.isnot(None),
            )
            .values(stage=OrderStage.COMPLETED, completed_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        ).rowcount
        == 1
    )
    commit_or_rollback()
    db.session.refresh(order)

    log.info("order %s: %s rated %+d%s", order.id, role.value, score,
             " (order completed)" if completed_now else "")
    if completed_now:
        reputation.notify_order_completed(order)
    elif was_completed and previous is not None and previous["score"] != score:
        reputation.notify_rating_updated(order, role, previous["score"])
    return order
