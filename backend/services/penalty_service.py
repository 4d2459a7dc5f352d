"""Penalty engine: booking suspensions after no-shows and late cancellations.

Expiry is evaluated against the clock; it never clears ``active``. An expired
penalty stops blocking bookings on its own but stays active until an
administrator lifts it.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import or_
from sqlalchemy.orm import Session

from backend.auth.context import CallerContext
from backend.core import config
from backend.core.clock import Clock
from backend.core.errors import NotFound
from backend.models.appointment import Appointment
from backend.models.penalty import AffiliatePenalty
from backend.models.user import Role

logger = logging.getLogger(__name__)


def compute_suspended_until(applied_at: datetime, suspension_days: int | None = None) -> datetime | None:
    if suspension_days is None:
        suspension_days = config.PENALTY_SUSPENSION_DAYS
    if suspension_days <= 0:
        return None
    return applied_at + timedelta(days=suspension_days)


def apply_penalty(db: Session, appointment: Appointment, clock: Clock) -> AffiliatePenalty:
    """Suspend the appointment's affiliate. Flushes but leaves the commit to the caller."""
    applied_at = clock.now()
    penalty = AffiliatePenalty(
        affiliate_id=appointment.affiliate_id,
        appointment_id=appointment.id,
        applied_at=applied_at,
        suspended_until=compute_suspended_until(applied_at),
        active=True,
    )
    appointment.penalty_applied = True
    db.add(penalty)
    db.flush()

    logger.info(
        'Penalty %s applied to affiliate %s for appointment %s (until %s)',
        penalty.id,
        appointment.affiliate_id,
        appointment.id,
        penalty.suspended_until or 'lifted',
    )
    return penalty


def apply_absence_penalty(db: Session, appointment: Appointment, clock: Clock) -> AffiliatePenalty:
    return apply_penalty(db, appointment, clock)


def is_late_cancellation(appointment: Appointment, cancelled_by: Role, clock: Clock) -> bool:
    window_hours = config.LATE_CANCELLATION_WINDOW_HOURS
    if window_hours <= 0 or cancelled_by != Role.AFFILIATE:
        return False

    starts_at = datetime.combine(appointment.date, appointment.start_time)
    return starts_at - clock.now() < timedelta(hours=window_hours)


def _blocking_penalties_query(db: Session, affiliate_id: int, now: datetime):
    return db.query(AffiliatePenalty).filter(
        AffiliatePenalty.affiliate_id == affiliate_id,
        AffiliatePenalty.active.is_(True),
        or_(
            AffiliatePenalty.suspended_until.is_(None),
            AffiliatePenalty.suspended_until > now,
        ),
    )


def get_blocking_penalty(db: Session, affiliate_id: int, clock: Clock) -> AffiliatePenalty | None:
    """The penalty that keeps the affiliate suspended the longest, if any."""
    penalties = _blocking_penalties_query(db, affiliate_id, clock.now()).all()
    if not penalties:
        return None

    indefinite = [penalty for penalty in penalties if penalty.suspended_until is None]
    if indefinite:
        return indefinite[0]
    return max(penalties, key=lambda penalty: penalty.suspended_until)


def is_suspended(db: Session, affiliate_id: int, clock: Clock) -> bool:
    return _blocking_penalties_query(db, affiliate_id, clock.now()).first() is not None


def is_expired(penalty: AffiliatePenalty, now: datetime) -> bool:
    return penalty.suspended_until is not None and penalty.suspended_until <= now


def lift_penalty(db: Session, caller: CallerContext, penalty_id: int, clock: Clock) -> AffiliatePenalty:
    caller.require_role(Role.ADMIN)

    penalty = db.query(AffiliatePenalty).filter(AffiliatePenalty.id == penalty_id).first()
    if penalty is None:
        raise NotFound('Penalty not found.')

    if penalty.active:
        penalty.active = False
        penalty.lifted_at = clock.now()
        db.commit()
        db.refresh(penalty)
        logger.info('Penalty %s lifted by admin %s', penalty.id, caller.user_id)

    return penalty


def list_penalties(
    db: Session,
    caller: CallerContext,
    affiliate_id: int | None = None,
    active: bool | None = None,
) -> list[AffiliatePenalty]:
    if caller.role == Role.AFFILIATE:
        affiliate_id = caller.user_id
    else:
        caller.require_role(Role.ADMIN)

    query = db.query(AffiliatePenalty)
    if affiliate_id is not None:
        query = query.filter(AffiliatePenalty.affiliate_id == affiliate_id)
    if active is not None:
        query = query.filter(AffiliatePenalty.active.is_(active))

    return query.order_by(AffiliatePenalty.applied_at.desc(), AffiliatePenalty.id.desc()).all()
