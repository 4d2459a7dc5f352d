from datetime import date, datetime, time

from fastapi import APIRouter, Body, Depends, Query, status
from pydantic import field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.context import CallerContext
from backend.auth.dependencies import get_current_caller
from backend.core.calendar import parse_time
from backend.core.clock import Clock, get_clock
from backend.core.errors import SchedulingError
from backend.database import get_db
from backend.models.appointment import AppointmentStatus, AppointmentType
from backend.models.user import Role
from backend.routes import common
from backend.services import appointment_service
from backend.services.notification_service import NotificationChannel, get_notification_channel

router = APIRouter(tags=['appointments'])


def _normalize_type(value):
    if isinstance(value, str):
        return value.strip().upper()
    return value


class CreateAppointmentRequest(common.CamelModel):
    affiliate_id: int | None = None
    specialist_id: int
    date: date
    start_time: time
    type: AppointmentType
    idempotency_key: str | None = None

    @field_validator('start_time', mode='before')
    @classmethod
    def parse_start_time(cls, value):
        return parse_time(value)

    @field_validator('type', mode='before')
    @classmethod
    def normalize_type(cls, value):
        return _normalize_type(value)


class DeriveAppointmentRequest(common.CamelModel):
    date: date
    start_time: time
    type: AppointmentType

    @field_validator('start_time', mode='before')
    @classmethod
    def parse_start_time(cls, value):
        return parse_time(value)

    @field_validator('type', mode='before')
    @classmethod
    def normalize_type(cls, value):
        return _normalize_type(value)


class CancelAppointmentRequest(common.CamelModel):
    reason: str | None = None
    cancelled_by: Role | None = None

    @field_validator('cancelled_by', mode='before')
    @classmethod
    def normalize_role(cls, value):
        if isinstance(value, str):
            return value.strip().upper() or None
        return value


class CompleteAppointmentRequest(common.CamelModel):
    clinical_notes: str | None = None
    prescription: str | None = None


class AppointmentResponse(common.CamelModel):
    id: int
    affiliate_id: int
    specialist_id: int
    date: date
    start_time: time
    end_time: time
    duration_minutes: int
    type: AppointmentType
    status: AppointmentStatus
    clinical_notes: str | None = None
    prescription: str | None = None
    cancellation_reason: str | None = None
    cancelled_by: Role | None = None
    penalty_applied: bool
    parent_appointment_id: int | None = None
    created_at: datetime | None = None


def to_response(appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        affiliate_id=appointment.affiliate_id,
        specialist_id=appointment.specialist_id,
        date=appointment.date,
        start_time=appointment.start_time,
        end_time=appointment.end_time,
        duration_minutes=appointment.duration_minutes,
        type=appointment.appointment_type,
        status=appointment.status,
        clinical_notes=appointment.clinical_notes,
        prescription=appointment.prescription,
        cancellation_reason=appointment.cancellation_reason,
        cancelled_by=appointment.cancelled_by,
        penalty_applied=bool(appointment.penalty_applied),
        parent_appointment_id=appointment.parent_appointment_id,
        created_at=appointment.created_at,
    )


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    status_filter: AppointmentStatus | None = Query(default=None, alias='status'),
    specialist_id: int | None = Query(default=None, alias='specialistId'),
    affiliate_id: int | None = Query(default=None, alias='affiliateId'),
    date_from: date | None = Query(default=None, alias='dateFrom'),
    date_to: date | None = Query(default=None, alias='dateTo'),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    common.ensure_database_ready()

    try:
        appointments = appointment_service.list_appointments(
            db,
            caller,
            status=status_filter,
            specialist_id=specialist_id,
            affiliate_id=affiliate_id,
            date_from=date_from,
            date_to=date_to,
        )
    except SQLAlchemyError as exc:
        raise common.database_unavailable() from exc

    return [to_response(appointment) for appointment in appointments]


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    common.ensure_database_ready()

    try:
        return to_response(appointment_service.get_appointment(db, caller, appointment_id))
    except SchedulingError as exc:
        raise common.to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise common.database_unavailable() from exc


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
    clock: Clock = Depends(get_clock),
    notifier: NotificationChannel = Depends(get_notification_channel),
):
    common.ensure_database_ready()

    affiliate_id = data.affiliate_id if data.affiliate_id is not None else caller.user_id
    try:
        appointment = appointment_service.create_appointment(
            db,
            caller,
            affiliate_id=affiliate_id,
            specialist_id=data.specialist_id,
            appointment_date=data.date,
            start_time=data.start_time,
            appointment_type=data.type,
            clock=clock,
            notifier=notifier,
            idempotency_key=data.idempotency_key,
        )
    except SchedulingError as exc:
        raise common.to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise common.database_unavailable() from exc

    return to_response(appointment)


@router.patch('/{appointment_id}/confirm', response_model=AppointmentResponse)
def confirm_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
    clock: Clock = Depends(get_clock),
):
    common.ensure_database_ready()

    try:
        return to_response(appointment_service.confirm_appointment(db, caller, appointment_id, clock))
    except SchedulingError as exc:
        raise common.to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise common.database_unavailable() from exc


@router.patch('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    data: CancelAppointmentRequest,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
    clock: Clock = Depends(get_clock),
    notifier: NotificationChannel = Depends(get_notification_channel),
):
    common.ensure_database_ready()

    try:
        appointment = appointment_service.cancel_appointment(
            db,
            caller,
            appointment_id,
            reason=data.reason,
            clock=clock,
            notifier=notifier,
            cancelled_by=data.cancelled_by,
        )
    except SchedulingError as exc:
        raise common.to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise common.database_unavailable() from exc

    return to_response(appointment)


@router.patch('/{appointment_id}/complete', response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    data: CompleteAppointmentRequest | None = Body(default=None),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
    clock: Clock = Depends(get_clock),
):
    common.ensure_database_ready()

    data = data or CompleteAppointmentRequest()
    try:
        appointment = appointment_service.complete_appointment(
            db,
            caller,
            appointment_id,
            clock=clock,
            clinical_notes=data.clinical_notes,
            prescription=data.prescription,
        )
    except SchedulingError as exc:
        raise common.to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise common.database_unavailable() from exc

    return to_response(appointment)


@router.patch('/{appointment_id}/absent', response_model=AppointmentResponse)
def mark_absent(
    appointment_id: int,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
    clock: Clock = Depends(get_clock),
):
    common.ensure_database_ready()

    try:
        return to_response(appointment_service.mark_absent(db, caller, appointment_id, clock))
    except SchedulingError as exc:
        raise common.to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise common.database_unavailable() from exc


@router.post('/{appointment_id}/derive', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def derive_appointment(
    appointment_id: int,
    data: DeriveAppointmentRequest,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
    clock: Clock = Depends(get_clock),
    notifier: NotificationChannel = Depends(get_notification_channel),
):
    common.ensure_database_ready()

    try:
        appointment = appointment_service.derive_appointment(
            db,
            caller,
            appointment_id,
            appointment_date=data.date,
            start_time=data.start_time,
            appointment_type=data.type,
            clock=clock,
            notifier=notifier,
        )
    except SchedulingError as exc:
        raise common.to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise common.database_unavailable() from exc

    return to_response(appointment)
