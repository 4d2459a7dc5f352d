from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.context import CallerContext
from backend.auth.dependencies import get_current_caller
from backend.core.clock import Clock, get_clock
from backend.core.errors import SchedulingError
from backend.database import get_db
from backend.routes import common
from backend.services import penalty_service

router = APIRouter(tags=['penalties'])


class PenaltyResponse(common.CamelModel):
    id: int
    affiliate_id: int
    appointment_id: int
    applied_at: datetime
    suspended_until: datetime | None = None
    active: bool
    expired: bool
    lifted_at: datetime | None = None


def to_response(penalty, now: datetime) -> PenaltyResponse:
    return PenaltyResponse(
        id=penalty.id,
        affiliate_id=penalty.affiliate_id,
        appointment_id=penalty.appointment_id,
        applied_at=penalty.applied_at,
        suspended_until=penalty.suspended_until,
        active=penalty.active,
        expired=penalty_service.is_expired(penalty, now),
        lifted_at=penalty.lifted_at,
    )


@router.get('', response_model=list[PenaltyResponse])
def list_penalties(
    affiliate_id: int | None = Query(default=None, alias='affiliateId'),
    active: bool | None = Query(default=None),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
    clock: Clock = Depends(get_clock),
):
    try:
        penalties = penalty_service.list_penalties(db, caller, affiliate_id=affiliate_id, active=active)
    except SchedulingError as exc:
        raise common.to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise common.database_unavailable() from exc

    now = clock.now()
    return [to_response(penalty, now) for penalty in penalties]


@router.delete('/{penalty_id}', response_model=PenaltyResponse)
def lift_penalty(
    penalty_id: int,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
    clock: Clock = Depends(get_clock),
):
    try:
        penalty = penalty_service.lift_penalty(db, caller, penalty_id, clock)
    except SchedulingError as exc:
        raise common.to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise common.database_unavailable() from exc

    return to_response(penalty, clock.now())
