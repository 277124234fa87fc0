from datetime import date, datetime

import pytest
from sqlmodel import select

from canteen.cart import Cart
from canteen.errors import IllegalTransition, OrderError
from canteen.models import Notification, Order, SlotBooking
from canteen.orders import (
    advance_status,
    bulk_advance,
    cancel_order,
    create_order,
    list_orders,
    status_counts,
    tax_breakdown,
    with_tax,
)
from canteen.slots import book_slot
from tests.factories import FIXED_NOW, make_item


@pytest.fixture
def cart(session, biryani):
    lime = make_item(session, name="Fresh Lime Soda", price=60, category="Beverages", preparation_time=5)
    cart = Cart()
    cart.add(biryani, 2)
    cart.add(lime, 1)
    return cart


def notifications_for(session, user_id):
    return session.exec(select(Notification).where(Notification.user_id == user_id).order_by(Notification.id)).all()


def place(session, user, cart, time="09:45"):
    return create_order(session, user.id, cart, time, now=FIXED_NOW)


def test_create_order_snapshots_cart_and_totals(session, student, cart):
    order = place(session, student, cart, "10:00")

    assert order.id is not None
    assert order.total_amount == 300
    assert with_tax(order.total_amount) == 315.00
    assert order.status == "ordered"
    assert order.scheduled_time == "10:00"
    assert order.service_date == date(2026, 10, 19)
    assert order.token == "20261019-001"
    assert [(i["name"], i["quantity"]) for i in order.items] == [("Chicken Biryani", 2), ("Fresh Lime Soda", 1)]


def test_estimated_time_is_slowest_item(session, student, cart):
    order = place(session, student, cart)
    assert order.estimated_preparation_time == 25


def test_create_order_clears_cart_and_later_edits_do_not_touch_order(session, student, cart, dosa):
    order = place(session, student, cart)
    assert len(cart) == 0

    cart.add(dosa, 5)
    session.refresh(order)
    assert order.total_amount == 300
    assert len(order.items) == 2


def test_menu_edits_do_not_change_order_snapshot(session, student, cart, biryani):
    order = place(session, student, cart)
    biryani.price = 999
    session.add(biryani)
    session.commit()

    session.refresh(order)
    assert order.snapshot_items()[0].price == 120


def test_create_order_books_slot_and_notifies(session, student, cart):
    place(session, student, cart, "10:30")

    booking = session.exec(select(SlotBooking).where(SlotBooking.time == "10:30")).one()
    assert booking.booked == 1
    [note] = notifications_for(session, student.id)
    assert note.kind == "success"
    assert note.title == "Order Placed Successfully"
    assert "20261019-001" in note.message and "10:30" in note.message


def test_tokens_increment_per_order(session, student, biryani):
    tokens = []
    for _ in range(3):
        cart = Cart()
        cart.add(biryani)
        tokens.append(place(session, student, cart).token)
    assert tokens == ["20261019-001", "20261019-002", "20261019-003"]


def test_empty_cart_is_rejected(session, student):
    with pytest.raises(OrderError):
        place(session, student, Cart())
    assert session.exec(select(Order)).all() == []


def test_missing_user_is_rejected(session, cart):
    with pytest.raises(OrderError):
        create_order(session, None, cart, "10:00", now=FIXED_NOW)


@pytest.mark.parametrize("time", ["09:15", "09:30", "10:07", "23:00"])
def test_slot_inside_lead_time_or_unknown_is_rejected(session, student, cart, time):
    with pytest.raises(OrderError):
        place(session, student, cart, time)
    assert len(cart) == 2
    assert session.exec(select(Order)).all() == []


def test_full_slot_is_rejected(session, student, cart):
    for _ in range(20):
        book_slot(session, FIXED_NOW.date(), "11:00")
    session.commit()

    with pytest.raises(OrderError):
        place(session, student, cart, "11:00")
    assert notifications_for(session, student.id) == []
    assert len(cart) == 2


def test_legal_chain_advances_with_notifications(session, student, cart):
    order = place(session, student, cart)

    for status in ("preparing", "ready", "served"):
        order = advance_status(session, order.id, status)
        assert order.status == status

    notes = notifications_for(session, student.id)
    assert [n.title for n in notes] == [
        "Order Placed Successfully", "Order Preparing", "Order Ready", "Order Served",
    ]
    assert notes[2].message == "Your order is ready for pickup - Token: 20261019-001"
    assert all(n.kind == "info" for n in notes[1:])


@pytest.mark.parametrize("target", ["served", "ready", "ordered", "teleported"])
def test_out_of_order_transition_is_rejected_without_side_effects(session, student, cart, target):
    order = place(session, student, cart)
    before = len(notifications_for(session, student.id))

    with pytest.raises(IllegalTransition):
        advance_status(session, order.id, target)

    session.refresh(order)
    assert order.status == "ordered"
    assert len(notifications_for(session, student.id)) == before


@pytest.mark.parametrize("steps", [[], ["preparing"], ["preparing", "ready"]])
def test_cancel_from_any_non_terminal_state(session, student, cart, steps):
    order = place(session, student, cart)
    for status in steps:
        advance_status(session, order.id, status)

    order = cancel_order(session, order.id)

    assert order.status == "cancelled"
    last = notifications_for(session, student.id)[-1]
    assert last.kind == "error"
    assert last.message.startswith("Your order has been cancelled")


def test_terminal_states_stay_terminal(session, student, cart, biryani):
    served = place(session, student, cart)
    for status in ("preparing", "ready", "served"):
        advance_status(session, served.id, status)
    with pytest.raises(IllegalTransition):
        cancel_order(session, served.id)

    again = Cart()
    again.add(biryani)
    cancelled = cancel_order(session, place(session, student, again).id)
    with pytest.raises(IllegalTransition):
        advance_status(session, cancelled.id, "preparing")


def test_unknown_order(session):
    with pytest.raises(OrderError):
        advance_status(session, 404, "preparing")


def test_bulk_advance_only_moves_eligible_orders(session, student, biryani):
    orders = []
    for _ in range(3):
        cart = Cart()
        cart.add(biryani)
        orders.append(place(session, student, cart))
    advance_status(session, orders[0].id, "preparing")

    moved = bulk_advance(session, list_orders(session), "preparing")

    assert sorted(o.id for o in moved) == sorted([orders[1].id, orders[2].id])
    assert status_counts(session)["preparing"] == 3


def test_list_orders_filters_and_sorts_newest_first(session, student, biryani):
    placed = []
    for _ in range(3):
        cart = Cart()
        cart.add(biryani)
        placed.append(place(session, student, cart))
    advance_status(session, placed[1].id, "preparing")

    assert [o.id for o in list_orders(session)] == [o.id for o in reversed(placed)]
    assert [o.id for o in list_orders(session, status="preparing")] == [placed[1].id]
    assert [o.token for o in list_orders(session, search="-003")] == ["20261019-003"]


def test_status_counts(session, student, cart):
    place(session, student, cart)
    counts = status_counts(session)
    assert counts["ordered"] == 1
    assert counts["served"] == 0
    assert counts["total"] == 1


def test_tax_breakdown():
    assert tax_breakdown(300) == {"subtotal": 300, "tax": 15.0, "total": 315.0}
    assert with_tax(0) == 0


def test_next_day_orders_get_fresh_tokens(session, student, biryani):
    cart = Cart()
    cart.add(biryani)
    place(session, student, cart)

    cart.add(biryani)
    order = create_order(session, student.id, cart, "12:00", now=datetime(2026, 10, 20, 8, 0))
    assert order.token == "20261020-001"
