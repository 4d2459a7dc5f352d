"""Weekly schedules and unavailability windows of specialists."""

import logging
from datetime import date, time

from sqlalchemy.orm import Session

from backend.auth.context import CallerContext
from backend.core import config
from backend.core.calendar import DayOfWeek, range_overlaps
from backend.core.errors import NotFound, ScheduleOverlap, ValidationFailed
from backend.models.schedule import UnavailabilityWindow, WeeklySchedule
from backend.models.user import Role
from backend.services import user_service

logger = logging.getLogger(__name__)


def _ensure_can_manage(caller: CallerContext, specialist_id: int) -> None:
    caller.require_role(Role.SPECIALIST, Role.ADMIN)
    caller.require_self_or_admin(specialist_id, 'Specialists can only manage their own agenda.')


def validate_schedule_times(start_time: time, end_time: time, slot_duration: int) -> None:
    if start_time >= end_time:
        raise ValidationFailed('Schedule start time must be before its end time.')

    if not config.MIN_SLOT_DURATION_MINUTES <= slot_duration <= config.MAX_SLOT_DURATION_MINUTES:
        raise ValidationFailed(
            f'Slot duration must be between {config.MIN_SLOT_DURATION_MINUTES} '
            f'and {config.MAX_SLOT_DURATION_MINUTES} minutes.'
        )


def _ensure_no_overlap(
    db: Session,
    specialist_id: int,
    day: DayOfWeek,
    start_time: time,
    end_time: time,
    exclude_id: int | None = None,
) -> None:
    query = db.query(WeeklySchedule).filter(
        WeeklySchedule.specialist_id == specialist_id,
        WeeklySchedule.day_of_week == day.value,
        WeeklySchedule.active.is_(True),
    )
    if exclude_id is not None:
        query = query.filter(WeeklySchedule.id != exclude_id)

    for other in query.all():
        if range_overlaps(start_time, end_time, other.start_time, other.end_time):
            raise ScheduleOverlap(
                f'Overlaps the {day.value} schedule '
                f'{other.start_time.strftime("%H:%M")}-{other.end_time.strftime("%H:%M")}.'
            )


def _load_schedule(db: Session, schedule_id: int) -> WeeklySchedule:
    schedule = db.query(WeeklySchedule).filter(WeeklySchedule.id == schedule_id).first()
    if schedule is None:
        raise NotFound('Schedule not found.')
    return schedule


def create_schedule(
    db: Session,
    caller: CallerContext,
    specialist_id: int,
    day: DayOfWeek,
    start_time: time,
    end_time: time,
    slot_duration: int,
) -> WeeklySchedule:
    _ensure_can_manage(caller, specialist_id)
    user_service.get_active_user(db, specialist_id, Role.SPECIALIST)
    day = DayOfWeek(day)
    validate_schedule_times(start_time, end_time, slot_duration)
    _ensure_no_overlap(db, specialist_id, day, start_time, end_time)

    schedule = WeeklySchedule(
        specialist_id=specialist_id,
        day_of_week=day.value,
        start_time=start_time,
        end_time=end_time,
        slot_duration=slot_duration,
        active=True,
    )
    db.add(schedule)
    db.commit()
    db.refresh(schedule)

    logger.info('Schedule %s created for specialist %s on %s', schedule.id, specialist_id, day.value)
    return schedule


def update_schedule(
    db: Session,
    caller: CallerContext,
    schedule_id: int,
    day: DayOfWeek,
    start_time: time,
    end_time: time,
    slot_duration: int,
    specialist_id: int | None = None,
) -> WeeklySchedule:
    """Edit a schedule in place. Booked appointments keep their stored end time."""
    schedule = _load_schedule(db, schedule_id)
    _ensure_can_manage(caller, schedule.specialist_id)
    if specialist_id is not None and specialist_id != schedule.specialist_id:
        raise ValidationFailed('A schedule cannot be moved to another specialist.')
    day = DayOfWeek(day)
    validate_schedule_times(start_time, end_time, slot_duration)
    if schedule.active:
        _ensure_no_overlap(db, schedule.specialist_id, day, start_time, end_time, exclude_id=schedule.id)

    schedule.day_of_week = day.value
    schedule.start_time = start_time
    schedule.end_time = end_time
    schedule.slot_duration = slot_duration
    db.commit()
    db.refresh(schedule)

    logger.info('Schedule %s updated', schedule.id)
    return schedule


def deactivate_schedule(db: Session, caller: CallerContext, schedule_id: int) -> WeeklySchedule:
    schedule = _load_schedule(db, schedule_id)
    _ensure_can_manage(caller, schedule.specialist_id)

    if schedule.active:
        schedule.active = False
        db.commit()
        db.refresh(schedule)
        logger.info('Schedule %s deactivated', schedule.id)

    return schedule


def list_schedules(db: Session, specialist_id: int, include_inactive: bool = False) -> list[WeeklySchedule]:
    query = db.query(WeeklySchedule).filter(WeeklySchedule.specialist_id == specialist_id)
    if not include_inactive:
        query = query.filter(WeeklySchedule.active.is_(True))

    schedules = query.all()
    return sorted(schedules, key=lambda schedule: (DayOfWeek(schedule.day_of_week).number, schedule.start_time))


def create_unavailability(
    db: Session,
    caller: CallerContext,
    specialist_id: int,
    date_from: date,
    reason: str,
    date_to: date | None = None,
    start_time: time | None = None,
    end_time: time | None = None,
) -> UnavailabilityWindow:
    _ensure_can_manage(caller, specialist_id)
    user_service.get_active_user(db, specialist_id, Role.SPECIALIST)

    reason = (reason or '').strip()
    if not reason:
        raise ValidationFailed('A reason is required.')
    if len(reason) > config.MAX_TEXT_FIELD_LENGTH:
        raise ValidationFailed(f'Reason must be {config.MAX_TEXT_FIELD_LENGTH} characters or fewer.')

    if date_to is not None and date_to < date_from:
        raise ValidationFailed('The end date cannot be before the start date.')

    if (start_time is None) != (end_time is None):
        raise ValidationFailed('Provide both a start and an end time, or neither for a full day.')
    if start_time is not None and start_time >= end_time:
        raise ValidationFailed('Start time must be before end time.')

    window = UnavailabilityWindow(
        specialist_id=specialist_id,
        date_from=date_from,
        date_to=date_to,
        start_time=start_time,
        end_time=end_time,
        reason=reason,
    )
    db.add(window)
    db.commit()
    db.refresh(window)

    logger.info(
        'Unavailability %s registered for specialist %s from %s to %s',
        window.id,
        specialist_id,
        date_from,
        window.last_date,
    )
    return window


def delete_unavailability(db: Session, caller: CallerContext, window_id: int) -> None:
    window = db.query(UnavailabilityWindow).filter(UnavailabilityWindow.id == window_id).first()
    if window is None:
        raise NotFound('Unavailability not found.')
    _ensure_can_manage(caller, window.specialist_id)

    db.delete(window)
    db.commit()
    logger.info('Unavailability %s deleted', window_id)


def list_unavailability(db: Session, specialist_id: int) -> list[UnavailabilityWindow]:
    return db.query(UnavailabilityWindow).filter(
        UnavailabilityWindow.specialist_id == specialist_id,
    ).order_by(UnavailabilityWindow.date_from.asc(), UnavailabilityWindow.id.asc()).all()
