from datetime import date, time

from fastapi import APIRouter, Depends, status
from pydantic import field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.context import CallerContext
from backend.auth.dependencies import get_current_caller
from backend.core.calendar import parse_time
from backend.core.errors import SchedulingError
from backend.database import get_db
from backend.routes import common
from backend.services import schedule_service

router = APIRouter(tags=['unavailability'])


class CreateUnavailabilityRequest(common.CamelModel):
    specialist_id: int
    date_from: date
    date_to: date | None = None
    start_time: time | None = None
    end_time: time | None = None
    reason: str

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def parse_optional_times(cls, value):
        if value is None or value == '':
            return None
        return parse_time(value)

    @field_validator('date_to', mode='before')
    @classmethod
    def blank_date_to(cls, value):
        if value == '':
            return None
        return value

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('A reason is required.')
        return normalized


class UnavailabilityResponse(common.CamelModel):
    id: int
    specialist_id: int
    date_from: date
    date_to: date | None = None
    start_time: time | None = None
    end_time: time | None = None
    reason: str


@router.post('', response_model=UnavailabilityResponse, status_code=status.HTTP_201_CREATED)
def create_unavailability(
    data: CreateUnavailabilityRequest,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    try:
        return schedule_service.create_unavailability(
            db,
            caller,
            specialist_id=data.specialist_id,
            date_from=data.date_from,
            date_to=data.date_to,
            start_time=data.start_time,
            end_time=data.end_time,
            reason=data.reason,
        )
    except SchedulingError as exc:
        raise common.to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise common.database_unavailable() from exc


@router.delete('/{window_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_unavailability(
    window_id: int,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    try:
        schedule_service.delete_unavailability(db, caller, window_id)
    except SchedulingError as exc:
        raise common.to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise common.database_unavailable() from exc


@router.get('/specialist/{specialist_id}', response_model=list[UnavailabilityResponse])
def list_specialist_unavailability(specialist_id: int, db: Session = Depends(get_db)):
    try:
        return schedule_service.list_unavailability(db, specialist_id)
    except SQLAlchemyError as exc:
        raise common.database_unavailable() from exc
