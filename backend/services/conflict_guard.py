"""Commit-time checks that close the gap between listing slots and booking one.

Two layers keep a slot from being booked twice: a per (specialist, date) lock
serializes bookings inside this process, and the partial unique index on
``appointments`` rejects a second non-cancelled row across processes.
"""

import logging
from contextlib import contextmanager
from datetime import date, time
from threading import Lock
from weakref import WeakValueDictionary

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.core.clock import Clock
from backend.core.errors import AffiliateSuspended, SlotUnavailable
from backend.models.appointment import Appointment
from backend.services import availability_service, penalty_service
from backend.services.availability_service import TimeSlot

logger = logging.getLogger(__name__)

_locks_guard = Lock()
# Entries vanish once no booking holds or waits on the lock.
_booking_locks: WeakValueDictionary = WeakValueDictionary()


def _lock_for(specialist_id: int, slot_date: date) -> Lock:
    with _locks_guard:
        return _booking_locks.setdefault((specialist_id, slot_date), Lock())


@contextmanager
def booking_lock(specialist_id: int, slot_date: date):
    lock = _lock_for(specialist_id, slot_date)
    with lock:
        yield


def ensure_not_suspended(db: Session, affiliate_id: int, clock: Clock) -> None:
    penalty = penalty_service.get_blocking_penalty(db, affiliate_id, clock)
    if penalty is not None:
        logger.info('Booking rejected: affiliate %s is suspended by penalty %s', affiliate_id, penalty.id)
        raise AffiliateSuspended(penalty.suspended_until)


def ensure_bookable(
    db: Session,
    affiliate_id: int,
    specialist_id: int,
    slot_date: date,
    start_time: time,
    clock: Clock,
) -> TimeSlot:
    """Re-check suspension and slot availability; return the slot being booked."""
    ensure_not_suspended(db, affiliate_id, clock)

    slots = availability_service.available_slots(db, specialist_id, slot_date, clock)
    slot = availability_service.find_slot(slots, start_time)
    if slot is None:
        logger.info(
            'Booking rejected: slot %s %s for specialist %s is not available',
            slot_date,
            start_time,
            specialist_id,
        )
        raise SlotUnavailable()
    return slot


def commit_booking(db: Session, appointment: Appointment) -> Appointment:
    """Commit a new appointment; a uniqueness violation means another booking won."""
    db.add(appointment)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.info(
            'Booking lost the race for specialist %s at %s %s',
            appointment.specialist_id,
            appointment.date,
            appointment.start_time,
        )
        raise SlotUnavailable('The selected slot was booked by someone else. Refresh availability and try again.') from exc

    db.refresh(appointment)
    return appointment
