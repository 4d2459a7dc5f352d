"""Bookable slot calculation.

A specialist's slots for a date come from the active weekly schedules for that
weekday, cut into fixed-length slots, minus unavailability windows, occupied
slots and anything that already started.
"""

from datetime import date, time
from typing import NamedTuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.core.calendar import (
    add_minutes,
    combine,
    day_of_week,
    range_overlaps,
    time_to_minutes,
)
from backend.core.clock import Clock
from backend.models.appointment import Appointment, AppointmentStatus
from backend.models.schedule import UnavailabilityWindow, WeeklySchedule


class TimeSlot(NamedTuple):
    """Bookable time slot."""
    start_time: time
    end_time: time
    duration_minutes: int


def get_active_schedules(db: Session, specialist_id: int, slot_date: date) -> list[WeeklySchedule]:
    return db.query(WeeklySchedule).filter(
        WeeklySchedule.specialist_id == specialist_id,
        WeeklySchedule.day_of_week == day_of_week(slot_date).value,
        WeeklySchedule.active.is_(True),
    ).order_by(WeeklySchedule.start_time.asc(), WeeklySchedule.id.asc()).all()


def get_unavailability_for_date(db: Session, specialist_id: int, slot_date: date) -> list[UnavailabilityWindow]:
    return db.query(UnavailabilityWindow).filter(
        UnavailabilityWindow.specialist_id == specialist_id,
        UnavailabilityWindow.date_from <= slot_date,
        func.coalesce(UnavailabilityWindow.date_to, UnavailabilityWindow.date_from) >= slot_date,
    ).all()


def get_occupied_start_times(db: Session, specialist_id: int, slot_date: date) -> set[time]:
    """Start times held by any appointment that is not cancelled."""
    rows = db.query(Appointment.start_time).filter(
        Appointment.specialist_id == specialist_id,
        Appointment.date == slot_date,
        Appointment.status != AppointmentStatus.CANCELLED.value,
    ).all()
    return {start_time for (start_time,) in rows}


def discretize(schedule: WeeklySchedule) -> list[TimeSlot]:
    """Cut a schedule into consecutive slots; a trailing partial slot is dropped."""
    slots: list[TimeSlot] = []
    duration = schedule.slot_duration
    current = time_to_minutes(schedule.start_time)
    end = time_to_minutes(schedule.end_time)

    while current + duration <= end:
        start_time = add_minutes(time(0, 0), current)
        slots.append(TimeSlot(start_time, add_minutes(start_time, duration), duration))
        current += duration

    return slots


def available_slots(db: Session, specialist_id: int, slot_date: date, clock: Clock) -> list[TimeSlot]:
    schedules = get_active_schedules(db, specialist_id, slot_date)
    if not schedules:
        return []

    windows = get_unavailability_for_date(db, specialist_id, slot_date)
    if any(window.is_full_day for window in windows):
        return []

    occupied = get_occupied_start_times(db, specialist_id, slot_date)
    now = clock.now()

    seen: set[time] = set()
    slots: list[TimeSlot] = []
    for schedule in schedules:
        for slot in discretize(schedule):
            if any(
                range_overlaps(slot.start_time, slot.end_time, window.start_time, window.end_time)
                for window in windows
            ):
                continue
            if slot.start_time in occupied:
                continue
            if combine(slot_date, slot.start_time) <= now:
                continue
            if slot.start_time in seen:
                continue

            seen.add(slot.start_time)
            slots.append(slot)

    slots.sort(key=lambda slot: slot.start_time)
    return slots


def find_slot(slots: list[TimeSlot], start_time: time) -> TimeSlot | None:
    for slot in slots:
        if slot.start_time == start_time:
            return slot
    return None
