"""Appointment lifecycle - booking, confirmation, cancellation, completion,
absence and follow-up derivation.

States and transitions:

    PENDING ──confirm──> CONFIRMED
    PENDING | CONFIRMED ──cancel──> CANCELLED
    PENDING | CONFIRMED ──complete──> COMPLETED   (date <= today)
    PENDING | CONFIRMED ──mark_absent──> ABSENT   (date <= today, applies a penalty)
    COMPLETED ──derive──> new appointment linked by parent_appointment_id

COMPLETED, CANCELLED and ABSENT are terminal.
"""

import logging
from datetime import date, time

from sqlalchemy.orm import Session

from backend.auth.context import CallerContext
from backend.core import config
from backend.core.clock import Clock
from backend.core.errors import (
    FutureDate,
    InvalidTransition,
    MissingReason,
    NotFound,
    PermissionDenied,
    SlotUnavailable,
    SourceNotCompleted,
    ValidationFailed,
)
from backend.models.appointment import Appointment, AppointmentStatus, AppointmentType, OPEN_STATUSES
from backend.models.user import Role
from backend.services import conflict_guard, penalty_service, user_service
from backend.services.notification_service import (
    APPOINTMENT_CANCELLED,
    APPOINTMENT_CREATED,
    NotificationChannel,
    publish,
)

logger = logging.getLogger(__name__)


def _initial_status() -> AppointmentStatus:
    if config.AUTO_CONFIRM_APPOINTMENTS:
        return AppointmentStatus.CONFIRMED
    return AppointmentStatus.PENDING


def _coerce_type(value: AppointmentType | str) -> AppointmentType:
    try:
        return AppointmentType(value.strip().upper() if isinstance(value, str) else value)
    except ValueError as exc:
        raise ValidationFailed(f'Invalid appointment type {value!r}.') from exc


def _normalize_text(value: str | None, field_name: str) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > config.MAX_TEXT_FIELD_LENGTH:
        raise ValidationFailed(f'{field_name} must be {config.MAX_TEXT_FIELD_LENGTH} characters or fewer.')

    return normalized


def _require_open(appointment: Appointment, action: str) -> None:
    if appointment.status not in OPEN_STATUSES:
        raise InvalidTransition(
            f'Cannot {action} appointment {appointment.id}: it is {appointment.status}.'
        )


def _require_not_future(appointment: Appointment, clock: Clock, action: str) -> None:
    if appointment.date > clock.today():
        raise FutureDate(f'Cannot {action} appointment {appointment.id} before {appointment.date.isoformat()}.')


def _ensure_participant(caller: CallerContext, appointment: Appointment) -> None:
    if caller.is_admin:
        return
    if caller.role == Role.AFFILIATE and caller.user_id == appointment.affiliate_id:
        return
    if caller.role == Role.SPECIALIST and caller.user_id == appointment.specialist_id:
        return
    raise PermissionDenied('Only the affiliate, the specialist or an administrator can access this appointment.')


def _ensure_attending_specialist(caller: CallerContext, appointment: Appointment) -> None:
    caller.require_role(Role.SPECIALIST, Role.ADMIN)
    if caller.role == Role.SPECIALIST and caller.user_id != appointment.specialist_id:
        raise PermissionDenied('Only the attending specialist can update this appointment.')


def _load(db: Session, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise NotFound('Appointment not found.')
    return appointment


def get_appointment(db: Session, caller: CallerContext, appointment_id: int) -> Appointment:
    appointment = _load(db, appointment_id)
    _ensure_participant(caller, appointment)
    return appointment


def list_appointments(
    db: Session,
    caller: CallerContext,
    status: AppointmentStatus | None = None,
    specialist_id: int | None = None,
    affiliate_id: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> list[Appointment]:
    if caller.role == Role.AFFILIATE:
        affiliate_id = caller.user_id
    elif caller.role == Role.SPECIALIST:
        specialist_id = caller.user_id

    query = db.query(Appointment)
    if status is not None:
        query = query.filter(Appointment.status == AppointmentStatus(status).value)
    if specialist_id is not None:
        query = query.filter(Appointment.specialist_id == specialist_id)
    if affiliate_id is not None:
        query = query.filter(Appointment.affiliate_id == affiliate_id)
    if date_from is not None:
        query = query.filter(Appointment.date >= date_from)
    if date_to is not None:
        query = query.filter(Appointment.date <= date_to)

    return query.order_by(Appointment.date.asc(), Appointment.start_time.asc(), Appointment.id.asc()).all()


def _book(
    db: Session,
    affiliate_id: int,
    specialist_id: int,
    appointment_date: date,
    start_time: time,
    appointment_type: AppointmentType,
    clock: Clock,
    notifier: NotificationChannel,
    parent_appointment_id: int | None = None,
    idempotency_key: str | None = None,
) -> Appointment:
    user_service.get_active_user(db, affiliate_id, Role.AFFILIATE)
    user_service.get_active_user(db, specialist_id, Role.SPECIALIST)

    with conflict_guard.booking_lock(specialist_id, appointment_date):
        slot = conflict_guard.ensure_bookable(
            db,
            affiliate_id,
            specialist_id,
            appointment_date,
            start_time,
            clock,
        )

        now = clock.now()
        appointment = Appointment(
            affiliate_id=affiliate_id,
            specialist_id=specialist_id,
            date=appointment_date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            duration_minutes=slot.duration_minutes,
            appointment_type=appointment_type.value,
            status=_initial_status().value,
            penalty_applied=False,
            parent_appointment_id=parent_appointment_id,
            idempotency_key=idempotency_key,
            created_at=now,
            updated_at=now,
        )
        conflict_guard.commit_booking(db, appointment)

    logger.info(
        'Appointment %s booked for affiliate %s with specialist %s on %s at %s',
        appointment.id,
        affiliate_id,
        specialist_id,
        appointment_date,
        appointment.start_time,
    )
    publish(
        notifier,
        APPOINTMENT_CREATED,
        appointment,
        f'New appointment on {appointment_date.isoformat()} at {appointment.start_time.strftime("%H:%M")}.',
        now,
    )
    return appointment


def _find_replay(
    db: Session,
    affiliate_id: int,
    idempotency_key: str,
    specialist_id: int,
    appointment_date: date,
    start_time: time,
    appointment_type: AppointmentType,
) -> Appointment | None:
    existing = db.query(Appointment).filter(
        Appointment.affiliate_id == affiliate_id,
        Appointment.idempotency_key == idempotency_key,
    ).first()
    if existing is None:
        return None

    requested = (specialist_id, appointment_date, start_time, appointment_type.value)
    stored = (existing.specialist_id, existing.date, existing.start_time, existing.appointment_type)
    if requested != stored:
        raise ValidationFailed('This idempotency key was already used for a different booking.')

    logger.info('Returning appointment %s for repeated idempotency key', existing.id)
    return existing


def create_appointment(
    db: Session,
    caller: CallerContext,
    affiliate_id: int,
    specialist_id: int,
    appointment_date: date,
    start_time: time,
    appointment_type: AppointmentType | str,
    clock: Clock,
    notifier: NotificationChannel,
    idempotency_key: str | None = None,
) -> Appointment:
    """
    Book a slot for an affiliate.

    Raises SlotUnavailable when the slot is not (or no longer) free, and
    AffiliateSuspended when the affiliate has a blocking penalty. A repeated
    call with the same idempotency key returns the original appointment; reusing
    the key for a different booking raises ValidationFailed.
    """
    caller.require_role(Role.AFFILIATE, Role.ADMIN)
    caller.require_self_or_admin(affiliate_id, 'Affiliates can only book appointments for themselves.')
    appointment_type = _coerce_type(appointment_type)
    replay_args = (specialist_id, appointment_date, start_time, appointment_type)

    idempotency_key = (idempotency_key or '').strip() or None
    if idempotency_key:
        existing = _find_replay(db, affiliate_id, idempotency_key, *replay_args)
        if existing is not None:
            return existing

    try:
        return _book(
            db,
            affiliate_id,
            specialist_id,
            appointment_date,
            start_time,
            appointment_type,
            clock,
            notifier,
            idempotency_key=idempotency_key,
        )
    except SlotUnavailable:
        # A concurrent request carrying the same key may have committed first.
        if idempotency_key:
            existing = _find_replay(db, affiliate_id, idempotency_key, *replay_args)
            if existing is not None:
                return existing
        raise


def confirm_appointment(db: Session, caller: CallerContext, appointment_id: int, clock: Clock) -> Appointment:
    appointment = _load(db, appointment_id)
    _ensure_attending_specialist(caller, appointment)

    if appointment.status != AppointmentStatus.PENDING.value:
        raise InvalidTransition(f'Cannot confirm appointment {appointment.id}: it is {appointment.status}.')

    appointment.status = AppointmentStatus.CONFIRMED.value
    appointment.updated_at = clock.now()
    db.commit()
    db.refresh(appointment)

    logger.info('Appointment %s confirmed', appointment.id)
    return appointment


def cancel_appointment(
    db: Session,
    caller: CallerContext,
    appointment_id: int,
    reason: str | None,
    clock: Clock,
    notifier: NotificationChannel,
    cancelled_by: Role | str | None = None,
) -> Appointment:
    appointment = _load(db, appointment_id)
    _ensure_participant(caller, appointment)

    cancelled_by = Role(cancelled_by) if cancelled_by is not None else caller.role
    if cancelled_by != caller.role and not caller.is_admin:
        raise PermissionDenied('Only administrators can cancel on behalf of another role.')

    _require_open(appointment, 'cancel')

    reason = _normalize_text(reason, 'Cancellation reason')
    if reason is None:
        raise MissingReason()

    now = clock.now()
    appointment.status = AppointmentStatus.CANCELLED.value
    appointment.cancellation_reason = reason
    appointment.cancelled_by = cancelled_by.value
    appointment.updated_at = now

    if penalty_service.is_late_cancellation(appointment, cancelled_by, clock):
        penalty_service.apply_penalty(db, appointment, clock)

    db.commit()
    db.refresh(appointment)

    logger.info('Appointment %s cancelled by %s', appointment.id, cancelled_by.value)
    publish(
        notifier,
        APPOINTMENT_CANCELLED,
        appointment,
        f'Appointment on {appointment.date.isoformat()} at {appointment.start_time.strftime("%H:%M")} was cancelled.',
        now,
    )
    return appointment


def complete_appointment(
    db: Session,
    caller: CallerContext,
    appointment_id: int,
    clock: Clock,
    clinical_notes: str | None = None,
    prescription: str | None = None,
) -> Appointment:
    appointment = _load(db, appointment_id)
    _ensure_attending_specialist(caller, appointment)
    _require_open(appointment, 'complete')
    _require_not_future(appointment, clock, 'complete')

    appointment.status = AppointmentStatus.COMPLETED.value
    appointment.clinical_notes = _normalize_text(clinical_notes, 'Clinical notes')
    appointment.prescription = _normalize_text(prescription, 'Prescription')
    appointment.updated_at = clock.now()
    db.commit()
    db.refresh(appointment)

    logger.info('Appointment %s completed', appointment.id)
    return appointment


def mark_absent(db: Session, caller: CallerContext, appointment_id: int, clock: Clock) -> Appointment:
    appointment = _load(db, appointment_id)
    _ensure_attending_specialist(caller, appointment)
    _require_open(appointment, 'mark absent')
    _require_not_future(appointment, clock, 'mark absent')

    appointment.status = AppointmentStatus.ABSENT.value
    appointment.updated_at = clock.now()
    penalty_service.apply_absence_penalty(db, appointment, clock)
    db.commit()
    db.refresh(appointment)

    logger.info('Appointment %s marked absent', appointment.id)
    return appointment


def derive_appointment(
    db: Session,
    caller: CallerContext,
    source_appointment_id: int,
    appointment_date: date,
    start_time: time,
    appointment_type: AppointmentType | str,
    clock: Clock,
    notifier: NotificationChannel,
) -> Appointment:
    """Book a follow-up with the same affiliate and specialist as a completed appointment."""
    source = _load(db, source_appointment_id)
    _ensure_attending_specialist(caller, source)
    appointment_type = _coerce_type(appointment_type)

    if source.status != AppointmentStatus.COMPLETED.value:
        raise SourceNotCompleted()

    return _book(
        db,
        source.affiliate_id,
        source.specialist_id,
        appointment_date,
        start_time,
        appointment_type,
        clock,
        notifier,
        parent_appointment_id=source.id,
    )
