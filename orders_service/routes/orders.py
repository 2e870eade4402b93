from flask import Blueprint, g, request

from ..auth_mw import require_auth
from ..services import chat_service, order_service, rating_service
from ..utils.parsing import pick
from ..utils.responses import ok
from ..utils.serializers import message_json, order_json, rating_json

bp = Blueprint("orders", __name__, url_prefix="/orders")


def _body() -> dict:
    d = request.get_json(silent=True)
    return d if isinstance(d, dict) else {}


@bp.get("/")
def health():
    return {"service": "orders", "status": "ok"}


@bp.post("")
@require_auth
def create_order():
    """Mở đơn hàng sau khi đấu giá kết thúc (chỉ auctions-service hoặc admin gọi).

    body: {product_id, seller_id, buyer_id}; mỗi sản phẩm một đơn, trả về đơn cũ nếu đã tồn tại.
    """
    d = _body()
    order, created = order_service.create_order(
        pick(d, "product_id", "productId"),
        pick(d, "seller_id", "sellerId"),
        pick(d, "buyer_id", "buyerId"),
        actor=g.actor,
    )
    return ok(order_json(order), 201 if created else 200)


@bp.get("/<int:order_id>")
@require_auth
def get_order(order_id: int):
    return ok(order_json(order_service.get_order(order_id, g.actor)))


@bp.route("/<int:order_id>/step1", methods=["POST", "PUT"])
@require_auth
def submit_step1(order_id: int):
    order = order_service.submit_step1(order_id, g.actor, _body())
    return ok(order_json(order))


@bp.post("/<int:order_id>/confirm-payment")
@require_auth
def confirm_payment(order_id: int):
    order = order_service.confirm_payment(order_id, g.actor)
    return ok(order_json(order))


@bp.route("/<int:order_id>/step2", methods=["POST", "PUT"])
@require_auth
def submit_step2(order_id: int):
    order = order_service.submit_step2(order_id, g.actor, _body())
    return ok(order_json(order))


@bp.route("/<int:order_id>/step3", methods=["POST", "PUT"])
@require_auth
def submit_step3(order_id: int):
    order = order_service.submit_step3(order_id, g.actor)
    return ok(order_json(order))


@bp.post("/<int:order_id>/rating")
@require_auth
def submit_rating(order_id: int):
    d = _body()
    order = rating_service.submit_rating(order_id, g.actor, d.get("score"), d.get("comment"))
    return ok(order_json(order))


@bp.get("/<int:order_id>/rating/<role>")
@require_auth
def get_rating(order_id: int, role: str):
    rating = rating_service.get_rating(order_id, role, g.actor)
    return ok({"role": role, "rating": rating_json(rating)})


@bp.post("/<int:order_id>/cancel")
@require_auth
def cancel_order(order_id: int):
    order = order_service.cancel_order(order_id, g.actor)
    return ok(order_json(order))


@bp.delete("/<int:order_id>")
@require_auth
def delete_order(order_id: int):
    order_service.delete_order(order_id, g.actor)
    return "", 204


# -------------------------------------------------------------------
# CHAT
# -------------------------------------------------------------------


@bp.get("/<int:order_id>/chat")
@require_auth
def list_messages(order_id: int):
    messages = chat_service.list_messages(order_id, g.actor)
    return ok({"order_id": order_id, "messages": [message_json(m) for m in messages]})


@bp.post("/<int:order_id>/chat")
@require_auth
def append_message(order_id: int):
    d = _body()
    msg = chat_service.append_message(
        order_id, g.actor, d.get("content"), pick(d, "is_image", "isImage", default=False)
    )
    return ok(message_json(msg), 201)
