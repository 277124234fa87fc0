"""Order lifecycle: checkout, status progression and the notifications both emit.

    ordered -> preparing -> ready -> served
        \\__________\\_________\\____> cancelled

``served`` and ``cancelled`` are terminal. Amounts are stored pre-tax;
use ``with_tax`` / ``tax_breakdown`` wherever a charged total is shown.
"""
from __future__ import annotations

import logging
from datetime import datetime, date

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select, func

from .cart import Cart
from .config import TAX_RATE
from .errors import IllegalTransition, OrderError
from .models import Order
from .notifications import notify
from .slots import book_slot, find_slot, load_slots
from .tokens import next_token
from .utils import now_local

logger = logging.getLogger(__name__)

ORDERED = "ordered"
PREPARING = "preparing"
READY = "ready"
SERVED = "served"
CANCELLED = "cancelled"

STATUSES = (ORDERED, PREPARING, READY, SERVED, CANCELLED)
TERMINAL = {SERVED, CANCELLED}
ACTIVE = {ORDERED, PREPARING, READY}

NEXT_STATUS = {
    ORDERED: PREPARING,
    PREPARING: READY,
    READY: SERVED,
}

STATUS_MESSAGES = {
    PREPARING: "Your order is being prepared",
    READY: "Your order is ready for pickup",
    SERVED: "Your order has been served",
    CANCELLED: "Your order has been cancelled",
}


def with_tax(amount: float) -> float:
    return round(amount * (1 + TAX_RATE), 2)


def tax_breakdown(amount: float) -> dict:
    return {
        "subtotal": round(amount, 2),
        "tax": round(amount * TAX_RATE, 2),
        "total": with_tax(amount),
    }


def is_legal_transition(current: str, new_status: str) -> bool:
    if new_status == CANCELLED:
        return current not in TERMINAL
    return NEXT_STATUS.get(current) == new_status


def get_order(session: Session, order_id: int) -> Order:
    order = session.get(Order, order_id)
    if not order:
        raise OrderError("Order not found")
    return order


def create_order(
    session: Session,
    user_id: int | None,
    cart: Cart,
    scheduled_time: str,
    special_instructions: str | None = None,
    now: datetime | None = None,
) -> Order:
    if not user_id:
        raise OrderError("Please log in to place an order")
    if not cart.lines:
        raise OrderError("Your cart is empty")

    now = now or now_local()
    slot = find_slot(load_slots(session, now), scheduled_time)
    if not slot:
        raise OrderError(f"{scheduled_time} is not a bookable pickup time")
    if not slot.available:
        raise OrderError(f"The {scheduled_time} slot is full, please pick another")

    try:
        token = next_token(session, now.date())
        order = Order(
            user_id=user_id,
            items=cart.snapshot(),
            total_amount=cart.total(),
            status=ORDERED,
            scheduled_time=scheduled_time,
            service_date=now.date(),
            token=token,
            special_instructions=(special_instructions or "").strip() or None,
            # items are cooked in parallel, so the slowest one sets the wait
            estimated_preparation_time=max(line.preparation_time for line in cart.lines),
        )
        session.add(order)
        book_slot(session, now.date(), scheduled_time)
        notify(
            session,
            user_id,
            "Order Placed Successfully",
            f"Your order #{token} has been placed and will be ready by {scheduled_time}",
            kind="success",
        )
        session.commit()
    except IntegrityError:
        # another checkout created the same day counter or slot row first
        session.rollback()
        logger.warning("Checkout collided on %s", scheduled_time, extra={"user_id": user_id})
        raise OrderError("Another order was placed at the same moment, please try again")
    session.refresh(order)
    cart.clear()

    logger.info(
        "Order placed for %s",
        scheduled_time,
        extra={"user_id": user_id, "order_id": order.id, "order_token": token},
    )
    return order


def advance_status(session: Session, order_id: int, new_status: str) -> Order:
    order = get_order(session, order_id)
    if new_status not in STATUSES:
        raise IllegalTransition(f"Unknown status: {new_status}")
    if not is_legal_transition(order.status, new_status):
        logger.warning(
            "Rejected transition %s -> %s",
            order.status,
            new_status,
            extra={"order_id": order.id, "status": order.status},
        )
        raise IllegalTransition(f"Cannot move an order from {order.status} to {new_status}")

    order.status = new_status
    session.add(order)
    notify(
        session,
        order.user_id,
        f"Order {new_status.capitalize()}",
        f"{STATUS_MESSAGES[new_status]} - Token: {order.token}",
        kind="error" if new_status == CANCELLED else "info",
    )
    session.commit()
    session.refresh(order)
    logger.info("Order status changed", extra={"order_id": order.id, "status": new_status})
    return order


def cancel_order(session: Session, order_id: int) -> Order:
    return advance_status(session, order_id, CANCELLED)


def bulk_advance(session: Session, orders: list[Order], new_status: str) -> list[Order]:
    """Advance the orders whose next status is ``new_status``; skip the rest."""
    eligible = [o for o in orders if NEXT_STATUS.get(o.status) == new_status]
    return [advance_status(session, o.id, new_status) for o in eligible]


def list_orders(
    session: Session,
    status: str | None = None,
    search: str | None = None,
    user_id: int | None = None,
    service_date: date | None = None,
) -> list[Order]:
    stmt = select(Order).order_by(Order.created_at.desc(), Order.id.desc())
    if status:
        stmt = stmt.where(Order.status == status)
    if user_id is not None:
        stmt = stmt.where(Order.user_id == user_id)
    if service_date is not None:
        stmt = stmt.where(Order.service_date == service_date)
    orders = list(session.exec(stmt).all())
    if search:
        needle = search.strip().lower()
        orders = [o for o in orders if needle in o.token.lower() or needle in str(o.id)]
    return orders


def status_counts(session: Session) -> dict[str, int]:
    rows = session.exec(select(Order.status, func.count()).group_by(Order.status)).all()
    counts = {status: 0 for status in STATUSES}
    for status, n in rows:
        counts[status] = n
    counts["total"] = sum(counts[s] for s in STATUSES)
    return counts
