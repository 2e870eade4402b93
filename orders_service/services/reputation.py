"""Outbound rating events for the reputation aggregate kept by auth-service.

The orders service never blocks on this collaborator: failures are logged
and the order transition stands.
"""
import logging

import requests
from flask import current_app

from ..models import Order, Role

log = logging.getLogger(__name__)


def _rating_entry(order: Order, rater: Role) -> dict:
    rating = order.rating_of(rater)
    ratee_id = order.seller_id if rater == Role.BUYER else order.buyer_id
    rater_id = order.buyer_id if rater == Role.BUYER else order.seller_id
    return {
        # seller = bidder đánh giá seller, bidder = seller đánh giá bidder
        "type": "seller" if rater == Role.BUYER else "bidder",
        "rater_id": rater_id,
        "ratee_id": ratee_id,
        "score": rating["score"] if rating else None,
        "comment": rating["comment"] if rating else None,
    }


def _post(payload: dict) -> bool:
    url = current_app.config.get("REPUTATION_URL")
    if not url:
        log.info("reputation event not sent (REPUTATION_URL unset): %s", payload["event"])
        return False
    try:
        r = requests.post(
            f"{url.rstrip('/')}/ratings/events",
            json=payload,
            timeout=current_app.config.get("HTTP_TIMEOUT", 5),
        )
    except requests.RequestException as e:
        log.warning("reputation upstream unreachable: %s", e)
        return False
    if not r.ok:
        log.warning("reputation upstream returned %s: %s", r.status_code, r.text[:200])
        return False
    return True


def notify_order_completed(order: Order) -> bool:
    payload = {
        "event": "order.completed",
        "order_id": order.id,
        "product_id": order.product_id,
        "ratings": [_rating_entry(order, Role.BUYER), _rating_entry(order, Role.SELLER)],
    }
    return _post(payload)


def notify_rating_updated(order: Order, rater: Role, previous_score: int) -> bool:
    payload = {
        "event": "rating.updated",
        "order_id": order.id,
        "product_id": order.product_id,
        "previous_score": previous_score,
        **_rating_entry(order, rater),
    }
    return _post(payload)
