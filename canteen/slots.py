"""Pickup time slots for the rest of the service day.

Booked counts are persisted per (date, label) and updated with a plain
read-modify-write. Two checkouts racing for the last seat of a slot can both
succeed; there is no reservation transaction.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta

from sqlmodel import SQLModel, Session, select

from .config import SLOT_CAPACITY, SLOT_LEAD_MINUTES, SLOT_STEP_MINUTES, CLOSING_HOUR
from .models import SlotBooking


class TimeSlot(SQLModel):
    time: str  # "HH:MM"
    capacity: int
    booked: int = 0

    @property
    def available(self) -> bool:
        return self.booked < self.capacity

    @property
    def remaining(self) -> int:
        return max(0, self.capacity - self.booked)


def generate_slots(
    now: datetime,
    lead_minutes: int = SLOT_LEAD_MINUTES,
    step_minutes: int = SLOT_STEP_MINUTES,
    close_hour: int = CLOSING_HOUR,
    capacity: int = SLOT_CAPACITY,
) -> list[TimeSlot]:
    """Every step-aligned time strictly after now + lead, up to close_hour:00."""
    if step_minutes <= 0:
        raise ValueError("step_minutes must be positive")
    cutoff = now + timedelta(minutes=lead_minutes)
    midnight = datetime.combine(now.date(), datetime.min.time())
    closing = midnight + timedelta(hours=close_hour)

    slots: list[TimeSlot] = []
    t = midnight
    while t <= closing:
        if t > cutoff:
            slots.append(TimeSlot(time=t.strftime("%H:%M"), capacity=capacity))
        t += timedelta(minutes=step_minutes)
    return slots


def _bookings_for(session: Session, service_date: date) -> dict[str, SlotBooking]:
    rows = session.exec(select(SlotBooking).where(SlotBooking.service_date == service_date)).all()
    return {row.time: row for row in rows}


def load_slots(session: Session, now: datetime, **kwargs) -> list[TimeSlot]:
    slots = generate_slots(now, **kwargs)
    bookings = _bookings_for(session, now.date())
    for slot in slots:
        row = bookings.get(slot.time)
        if row:
            slot.booked = row.booked
    return slots


def find_slot(slots: list[TimeSlot], label: str) -> TimeSlot | None:
    for slot in slots:
        if slot.time == label:
            return slot
    return None


def book_slot(session: Session, service_date: date, label: str) -> SlotBooking:
    """Count one more pickup for the slot. The caller commits."""
    row = session.exec(
        select(SlotBooking).where(SlotBooking.service_date == service_date, SlotBooking.time == label)
    ).first()
    if not row:
        row = SlotBooking(service_date=service_date, time=label, booked=0)
    row.booked += 1
    session.add(row)
    return row
