from ..models import ChatMessage, Order, Role


def _iso(dt):
    return dt.isoformat() if dt else None


def rating_json(rating):
    if rating is None:
        return None
    return {
        "score": rating["score"],
        "comment": rating["comment"],
        "updated_at": _iso(rating["updated_at"]),
    }


def order_json(o: Order) -> dict:
    return {
        "id": o.id,
        "product_id": o.product_id,
        "seller_id": o.seller_id,
        "buyer_id": o.buyer_id,
        "status": o.status.value,
        "step": o.step,
        "stage": o.stage.value,
        # step 1
        "shipping_address": o.shipping_address,
        "payment_proof": o.payment_proof,
        "buyer_note": o.buyer_note,
        # step 2
        "shipping_proof": o.shipping_proof,
        "seller_note": o.seller_note,
        "payment_confirmed": o.payment_confirmed_at is not None,
        "shipped": o.shipped_at is not None,
        "rating_by_buyer": rating_json(o.rating_of(Role.BUYER)),
        "rating_by_seller": rating_json(o.rating_of(Role.SELLER)),
        "chat_url": f"/orders/{o.id}/chat",
        "payment_confirmed_at": _iso(o.payment_confirmed_at),
        "shipped_at": _iso(o.shipped_at),
        "received_at": _iso(o.received_at),
        "completed_at": _iso(o.completed_at),
        "cancelled_at": _iso(o.cancelled_at),
        "cancelled_by": o.cancelled_by,
        "created_at": _iso(o.created_at),
        "updated_at": _iso(o.updated_at),
    }


def message_json(m: ChatMessage) -> dict:
    return {
        "id": m.id,
        "order_id": m.order_id,
        "sender_id": m.sender_id,
        "content": m.content,
        "is_image": m.is_image,
        "is_admin": m.is_admin,
        "timestamp": _iso(m.created_at),
    }
