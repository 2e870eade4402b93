from unittest import mock

import pytest

from conftest import BUYER_ID, PAYMENT_PROOF, SELLER_ID, SHIPPING_PROOF, STRANGER_ID, advance
from orders_service.auth_mw import Actor
from orders_service.db import commit_or_rollback, db
from orders_service.errors import NotFoundError, RoleError, StateError, ValidationError
from orders_service.models import ChatMessage, Order, OrderStage, OrderStatus
from orders_service.services import chat_service, order_service, rating_service


def test_new_order_starts_pending_at_step_1(order):
    assert order.status == OrderStatus.PENDING_PAYMENT
    assert order.step == 1
    assert order.created_at is not None


def test_create_order_is_idempotent(ctx, order):
    again, created = order_service.create_order(1000, SELLER_ID, BUYER_ID)
    assert created is False
    assert again.id == order.id
    assert Order.query.count() == 1


def test_create_order_rejects_same_seller_and_buyer(ctx):
    with pytest.raises(ValidationError):
        order_service.create_order(1, SELLER_ID, SELLER_ID)


def test_create_order_on_behalf_of_outsider_is_rejected(ctx, stranger):
    with pytest.raises(RoleError):
        order_service.create_order(1, SELLER_ID, BUYER_ID, actor=stranger)


def test_parties_cannot_open_orders_themselves(ctx, buyer, seller):
    for actor in (buyer, seller):
        with pytest.raises(RoleError):
            order_service.create_order(1, SELLER_ID, BUYER_ID, actor=actor)
    assert Order.query.count() == 0


def test_service_and_admin_can_open_orders(ctx, admin):
    o, created = order_service.create_order(1, SELLER_ID, BUYER_ID, actor=Actor(500, "service"))
    assert created is True
    again, created = order_service.create_order(1, SELLER_ID, BUYER_ID, actor=admin)
    assert created is False
    assert again.id == o.id


def test_one_order_per_product(ctx, order):
    with pytest.raises(StateError):
        order_service.create_order(order.product_id, SELLER_ID, STRANGER_ID)
    with pytest.raises(StateError):
        order_service.create_order(order.product_id, STRANGER_ID, BUYER_ID)
    assert Order.query.count() == 1
    assert order_service.get_order_or_404(order.id).buyer_id == BUYER_ID


def test_full_scenario(order, buyer, seller):
    o = order_service.submit_step1(order.id, buyer, {"address": "123 St", "paymentProof": PAYMENT_PROOF})
    assert o.step == 2
    assert o.status == OrderStatus.PENDING_PAYMENT
    assert o.shipping_address == "123 St"

    o = order_service.submit_step2(order.id, seller, {"shippingProof": SHIPPING_PROOF, "confirmPayment": True})
    assert o.status == OrderStatus.SHIPPED
    assert o.step == 3
    assert o.payment_confirmed_at is not None and o.shipped_at is not None

    o = order_service.submit_step3(order.id, buyer)
    assert o.status == OrderStatus.RECEIVED
    assert o.step == 4

    o = rating_service.submit_rating(order.id, seller, 1, "Great buyer, min 10 chars")
    assert o.status == OrderStatus.RECEIVED
    o = rating_service.submit_rating(order.id, buyer, 1, "Fast shipping, thanks")
    assert o.status == OrderStatus.COMPLETED
    assert o.step == 4
    assert o.completed_at is not None


@pytest.mark.parametrize("payload", [
    {"address": "123 St", "paymentProof": ""},
    {"address": "123 St"},
    {"address": "123 St", "paymentProof": "not-a-url"},
    {"address": "   ", "paymentProof": PAYMENT_PROOF},
])
def test_step1_validation_leaves_order_unchanged(order, buyer, payload):
    before = order.updated_at
    with pytest.raises(ValidationError):
        order_service.submit_step1(order.id, buyer, payload)
    o = order_service.get_order_or_404(order.id)
    assert o.step == 1
    assert o.shipping_address is None
    assert o.payment_proof is None
    assert o.updated_at == before


def test_step1_only_by_buyer(order, seller, stranger):
    for actor in (seller, stranger):
        with pytest.raises(RoleError):
            order_service.submit_step1(order.id, actor, {"address": "x", "paymentProof": PAYMENT_PROOF})


def test_step1_twice_is_state_error(order, buyer):
    advance(order.id, 2, buyer, None)
    with pytest.raises(StateError):
        order_service.submit_step1(order.id, buyer, {"address": "x", "paymentProof": PAYMENT_PROOF})


def test_step2_requires_shipping_proof(order, buyer, seller):
    advance(order.id, 2, buyer, seller)
    with pytest.raises(ValidationError):
        order_service.submit_step2(order.id, seller, {"confirmPayment": True})
    assert order_service.get_order_or_404(order.id).step == 2


def test_step2_requires_payment_confirmation(order, buyer, seller):
    advance(order.id, 2, buyer, seller)
    with pytest.raises(ValidationError):
        order_service.submit_step2(order.id, seller, {"shippingProof": SHIPPING_PROOF})


def test_step2_only_by_seller(order, buyer, seller):
    advance(order.id, 2, buyer, seller)
    with pytest.raises(RoleError):
        order_service.submit_step2(order.id, buyer, {"shippingProof": SHIPPING_PROOF, "confirmPayment": True})


def test_step2_cannot_skip_step1(order, seller):
    with pytest.raises(StateError):
        order_service.submit_step2(order.id, seller, {"shippingProof": SHIPPING_PROOF, "confirmPayment": True})


def test_step2_from_step1_with_capability_flag(app, order, seller):
    app.config["ORDER_STEP2_FROM_STEP1"] = True
    o = order_service.submit_step2(order.id, seller, {"shippingProof": SHIPPING_PROOF, "confirmPayment": "true"})
    assert o.status == OrderStatus.SHIPPED
    assert o.step == 3


def test_confirm_payment_then_ship(order, buyer, seller):
    advance(order.id, 2, buyer, seller)
    o = order_service.confirm_payment(order.id, seller)
    assert o.status == OrderStatus.PAID_CONFIRMED
    assert o.step == 2
    # repeating is a no-op
    assert order_service.confirm_payment(order.id, seller).status == OrderStatus.PAID_CONFIRMED

    o = order_service.submit_step2(order.id, seller, {"shippingProof": SHIPPING_PROOF, "note": "GHN 123"})
    assert o.status == OrderStatus.SHIPPED
    assert o.seller_note == "GHN 123"


def test_step3_double_confirmation(order, buyer, seller):
    advance(order.id, 4, buyer, seller)
    with pytest.raises(StateError):
        order_service.submit_step3(order.id, buyer)


def test_step3_only_by_buyer(order, buyer, seller):
    advance(order.id, 3, buyer, seller)
    with pytest.raises(RoleError):
        order_service.submit_step3(order.id, seller)


def test_missing_order(ctx, buyer):
    with pytest.raises(NotFoundError):
        order_service.submit_step3(12345, buyer)


def test_get_order_visibility(order, buyer, seller, admin, stranger):
    assert order_service.get_order(order.id, buyer).id == order.id
    assert order_service.get_order(order.id, seller).id == order.id
    assert order_service.get_order(order.id, admin).id == order.id
    with pytest.raises(RoleError):
        order_service.get_order(order.id, stranger)


# -------------------------------------------------------------------
# cancel / delete
# -------------------------------------------------------------------


def test_cancel_pending_order(order, admin):
    o = order_service.cancel_order(order.id, admin)
    assert o.status == OrderStatus.CANCELLED
    assert o.step == 1
    assert o.cancelled_by == admin.user_id


def test_cancel_keeps_step(order, buyer, seller, admin):
    advance(order.id, 3, buyer, seller)
    o = order_service.cancel_order(order.id, admin)
    assert o.status == OrderStatus.CANCELLED
    assert o.step == 3


def test_cancel_completed_order_fails(order, buyer, seller, admin):
    advance(order.id, 4, buyer, seller)
    rating_service.submit_rating(order.id, buyer, 1, "ok")
    rating_service.submit_rating(order.id, seller, 1, "ok")
    with pytest.raises(StateError):
        order_service.cancel_order(order.id, admin)


def test_cancel_twice_fails(order, admin):
    order_service.cancel_order(order.id, admin)
    with pytest.raises(StateError):
        order_service.cancel_order(order.id, admin)


def test_cancel_is_admin_only_by_default(order, buyer, seller):
    for actor in (buyer, seller):
        with pytest.raises(RoleError):
            order_service.cancel_order(order.id, actor)


def test_party_cancel_before_shipment_with_capability_flag(app, order, buyer, seller, stranger):
    app.config["ORDER_PARTY_CANCEL"] = True
    with pytest.raises(RoleError):
        order_service.cancel_order(order.id, stranger)
    advance(order.id, 2, buyer, seller)
    o = order_service.cancel_order(order.id, seller)
    assert o.status == OrderStatus.CANCELLED


def test_party_cannot_cancel_after_shipment(app, order, buyer, seller):
    app.config["ORDER_PARTY_CANCEL"] = True
    advance(order.id, 3, buyer, seller)
    with pytest.raises(StateError):
        order_service.cancel_order(order.id, buyer)


def test_cancelled_order_rejects_every_step(order, buyer, seller, admin):
    advance(order.id, 2, buyer, seller)
    order_service.cancel_order(order.id, admin)
    with pytest.raises(StateError):
        order_service.submit_step2(order.id, seller, {"shippingProof": SHIPPING_PROOF, "confirmPayment": True})
    with pytest.raises(StateError):
        order_service.confirm_payment(order.id, seller)


def test_delete_requires_terminal_state(order, admin):
    with pytest.raises(StateError):
        order_service.delete_order(order.id, admin)


def test_delete_requires_admin(order, buyer, admin):
    order_service.cancel_order(order.id, admin)
    with pytest.raises(RoleError):
        order_service.delete_order(order.id, buyer)


def test_delete_removes_order_and_chat(order, buyer, admin):
    order_id = order.id
    chat_service.append_message(order_id, buyer, "hello")
    order_service.cancel_order(order_id, admin)
    order_service.delete_order(order_id, admin)
    assert Order.query.count() == 0
    assert ChatMessage.query.count() == 0
    with pytest.raises(NotFoundError):
        order_service.get_order(order_id, admin)


# -------------------------------------------------------------------
# admin listing
# -------------------------------------------------------------------


def _seed(buyer, seller, admin):
    orders = [order_service.create_order(pid, SELLER_ID, BUYER_ID)[0] for pid in (1, 2, 3, 4)]
    advance(orders[1].id, 3, buyer, seller)
    order_service.cancel_order(orders[2].id, admin)
    advance(orders[3].id, 4, buyer, seller)
    rating_service.submit_rating(orders[3].id, buyer, 1, None)
    rating_service.submit_rating(orders[3].id, seller, -1, "late reply")
    return orders


def test_order_stats_counts_derived_statuses(ctx, buyer, seller, admin):
    _seed(buyer, seller, admin)
    stats = order_service.order_stats()
    assert stats["PENDING_PAYMENT"] == 1
    assert stats["SHIPPED"] == 1
    assert stats["CANCELLED"] == 1
    assert stats["COMPLETED"] == 1
    assert stats["RECEIVED"] == 0
    assert sum(stats.values()) == 4


def test_list_orders_filters(ctx, buyer, seller, admin):
    orders = _seed(buyer, seller, admin)
    assert [o.id for o in order_service.list_orders("SHIPPED").items] == [orders[1].id]
    assert [o.id for o in order_service.list_orders("cancelled").items] == [orders[2].id]
    ongoing = {o.id for o in order_service.list_orders("ongoing").items}
    assert ongoing == {orders[0].id, orders[1].id}
    with pytest.raises(ValidationError):
        order_service.list_orders("bogus")


def test_list_orders_puts_ongoing_first(ctx, buyer, seller, admin):
    _seed(buyer, seller, admin)
    items = order_service.list_orders().items
    flags = [o.is_terminal for o in items]
    assert flags == sorted(flags)


def test_list_orders_search_and_paginate(ctx, buyer, seller, admin):
    orders = _seed(buyer, seller, admin)
    found = order_service.list_orders(search=f"#{orders[2].product_id}").items
    assert orders[2].id in [o.id for o in found]
    page = order_service.list_orders(sort="oldest", per_page=3, page=2)
    assert page.total == 4
    assert [o.id for o in page.items] == [orders[3].id]


@pytest.mark.parametrize("search", ["abc", "\u00b2", "\u0663", "1.5"])
def test_list_orders_rejects_non_numeric_search(ctx, order, search):
    with pytest.raises(ValidationError):
        order_service.list_orders(search=search)


def test_stage_enum_matches_step():
    assert [s.step for s in OrderStage] == [1, 2, 3, 4, 4]


def test_failed_commit_rolls_back_and_reraises(ctx, order):
    order.buyer_note = "never saved"
    with mock.patch.object(db.session, "commit", side_effect=RuntimeError("disk full")):
        with pytest.raises(RuntimeError):
            commit_or_rollback("test commit")
    assert db.session.get(Order, order.id).buyer_note is None
