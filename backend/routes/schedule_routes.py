from datetime import time

from fastapi import APIRouter, Depends, Query, status
from pydantic import field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.context import CallerContext
from backend.auth.dependencies import get_current_caller
from backend.core.calendar import DayOfWeek, parse_date, parse_time
from backend.core.clock import Clock, get_clock
from backend.core.errors import SchedulingError
from backend.database import get_db
from backend.models.user import Role
from backend.routes import common
from backend.services import availability_service, schedule_service, user_service

router = APIRouter(tags=['schedules'])


class ScheduleRequest(common.CamelModel):
    specialist_id: int
    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    slot_duration: int = 30

    @field_validator('day_of_week', mode='before')
    @classmethod
    def normalize_day(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def parse_times(cls, value):
        return parse_time(value)


class ScheduleResponse(common.CamelModel):
    id: int
    specialist_id: int
    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    slot_duration: int
    active: bool


class SlotResponse(common.CamelModel):
    start_time: time
    end_time: time
    duration_minutes: int


@router.get('/available-slots', response_model=list[SlotResponse])
def list_available_slots(
    specialist_id: int = Query(..., alias='specialistId'),
    date: str = Query(...),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    try:
        slot_date = parse_date(date)
        user_service.get_active_user(db, specialist_id, Role.SPECIALIST)
        slots = availability_service.available_slots(db, specialist_id, slot_date, clock)
    except SchedulingError as exc:
        raise common.to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise common.database_unavailable() from exc

    return [
        SlotResponse(start_time=slot.start_time, end_time=slot.end_time, duration_minutes=slot.duration_minutes)
        for slot in slots
    ]


@router.get('/specialist/{specialist_id}', response_model=list[ScheduleResponse])
def list_specialist_schedules(
    specialist_id: int,
    include_inactive: bool = Query(default=False, alias='includeInactive'),
    db: Session = Depends(get_db),
):
    try:
        return schedule_service.list_schedules(db, specialist_id, include_inactive=include_inactive)
    except SQLAlchemyError as exc:
        raise common.database_unavailable() from exc


@router.post('', response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED)
def create_schedule(
    data: ScheduleRequest,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    try:
        return schedule_service.create_schedule(
            db,
            caller,
            specialist_id=data.specialist_id,
            day=data.day_of_week,
            start_time=data.start_time,
            end_time=data.end_time,
            slot_duration=data.slot_duration,
        )
    except SchedulingError as exc:
        raise common.to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise common.database_unavailable() from exc


@router.put('/{schedule_id}', response_model=ScheduleResponse)
def update_schedule(
    schedule_id: int,
    data: ScheduleRequest,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    try:
        return schedule_service.update_schedule(
            db,
            caller,
            schedule_id,
            specialist_id=data.specialist_id,
            day=data.day_of_week,
            start_time=data.start_time,
            end_time=data.end_time,
            slot_duration=data.slot_duration,
        )
    except SchedulingError as exc:
        raise common.to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise common.database_unavailable() from exc


@router.delete('/{schedule_id}/deactivate', response_model=ScheduleResponse)
def deactivate_schedule(
    schedule_id: int,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    try:
        return schedule_service.deactivate_schedule(db, caller, schedule_id)
    except SchedulingError as exc:
        raise common.to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise common.database_unavailable() from exc
