import logging

from flask import current_app

from ..db import commit_or_rollback, db
from ..models import ChatMessage
from ..utils.parsing import MAX_MESSAGE_LEN, clean_text, parse_bool
from ..utils.serializers import message_json
from .message_sink import sink_from_config
from .order_service import get_order

log = logging.getLogger(__name__)


def _sink():
    sink = current_app.extensions.get("order_message_sink")
    if sink is None:
        sink = sink_from_config(current_app.config)
        current_app.extensions["order_message_sink"] = sink
    return sink


def append_message(order_id: int, actor, content, is_image=False) -> ChatMessage:
    """Append to the order's chat. Admin messages are flagged for moderation display."""
    order = get_order(order_id, actor)
    content = clean_text(content, "content", required=True, max_len=MAX_MESSAGE_LEN)

    msg = ChatMessage(
        order_id=order.id,
        sender_id=actor.user_id,
        content=content,
        is_image=parse_bool(is_image),
        is_admin=actor.is_admin,
    )
    db.session.add(msg)
    commit_or_rollback()

    try:
        _sink().publish(message_json(msg))
    except Exception:
        # delivery is best effort, the message is already stored
        log.exception("chat sink failed for message %s", msg.id)
    return msg


def list_messages(order_id: int, actor):
    """Messages of the order's chat, oldest first."""
    order = get_order(order_id, actor)
    return (
        ChatMessage.query.filter_by(order_id=order.id)
        .order_by(ChatMessage.id.asc())
        .all()
    )
