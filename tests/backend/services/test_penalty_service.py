from datetime import date, datetime, time, timedelta

import pytest

from backend.core import config
from backend.core.clock import FixedClock
from backend.core.errors import NotFound, PermissionDenied
from backend.models.appointment import AppointmentStatus
from backend.models.penalty import AffiliatePenalty
from backend.models.user import Role
from backend.services import appointment_service, penalty_service

NOW = datetime(2026, 1, 5, 8, 0)


@pytest.fixture
def absent_appointment(affiliate, specialist, make_appointment):
    return make_appointment(affiliate.id, specialist.id, date(2026, 1, 2), status=AppointmentStatus.ABSENT)


def _add_penalty(db, affiliate_id, appointment_id, suspended_until, active=True):
    penalty = AffiliatePenalty(
        affiliate_id=affiliate_id,
        appointment_id=appointment_id,
        applied_at=NOW - timedelta(days=1),
        suspended_until=suspended_until,
        active=active,
    )
    db.add(penalty)
    db.commit()
    db.refresh(penalty)
    return penalty


@pytest.mark.parametrize(
    ('days', 'expected'),
    [(30, NOW + timedelta(days=30)), (1, NOW + timedelta(days=1)), (0, None), (-1, None)],
)
def test_compute_suspended_until_follows_policy(days, expected) -> None:
    assert penalty_service.compute_suspended_until(NOW, days) == expected


def test_indefinite_policy_creates_open_ended_penalty(
    db, clock, affiliate, specialist, specialist_caller, make_appointment, monkeypatch
) -> None:
    monkeypatch.setattr(config, 'PENALTY_SUSPENSION_DAYS', 0)
    appointment = make_appointment(affiliate.id, specialist.id, date(2026, 1, 5))

    appointment_service.mark_absent(db, specialist_caller, appointment.id, clock)

    penalty = db.query(AffiliatePenalty).one()
    assert penalty.suspended_until is None
    assert penalty_service.is_suspended(db, affiliate.id, FixedClock(NOW + timedelta(days=3650)))


def test_is_suspended_respects_active_flag_and_expiry(db, affiliate, absent_appointment) -> None:
    clock = FixedClock(NOW)
    assert not penalty_service.is_suspended(db, affiliate.id, clock)

    _add_penalty(db, affiliate.id, absent_appointment.id, NOW - timedelta(minutes=1))
    assert not penalty_service.is_suspended(db, affiliate.id, clock)

    _add_penalty(db, affiliate.id, absent_appointment.id, NOW + timedelta(days=1), active=False)
    assert not penalty_service.is_suspended(db, affiliate.id, clock)

    _add_penalty(db, affiliate.id, absent_appointment.id, NOW + timedelta(days=1))
    assert penalty_service.is_suspended(db, affiliate.id, clock)
    assert not penalty_service.is_suspended(db, affiliate.id, FixedClock(NOW + timedelta(days=1)))


def test_blocking_penalty_prefers_the_longest_suspension(db, affiliate, absent_appointment) -> None:
    clock = FixedClock(NOW)
    _add_penalty(db, affiliate.id, absent_appointment.id, NOW + timedelta(days=2))
    longest = _add_penalty(db, affiliate.id, absent_appointment.id, NOW + timedelta(days=9))
    assert penalty_service.get_blocking_penalty(db, affiliate.id, clock).id == longest.id

    indefinite = _add_penalty(db, affiliate.id, absent_appointment.id, None)
    assert penalty_service.get_blocking_penalty(db, affiliate.id, clock).id == indefinite.id


def test_expiry_does_not_clear_the_active_flag(db, affiliate, absent_appointment) -> None:
    penalty = _add_penalty(db, affiliate.id, absent_appointment.id, NOW + timedelta(days=1))
    later = NOW + timedelta(days=5)

    assert not penalty_service.is_suspended(db, affiliate.id, FixedClock(later))
    assert penalty_service.is_expired(penalty, later)
    db.refresh(penalty)
    assert penalty.active is True


def test_lift_penalty_deactivates_without_touching_suspended_until(
    db, admin_caller, affiliate, absent_appointment
) -> None:
    until = NOW + timedelta(days=10)
    penalty = _add_penalty(db, affiliate.id, absent_appointment.id, until)
    clock = FixedClock(NOW)

    lifted = penalty_service.lift_penalty(db, admin_caller, penalty.id, clock)

    assert lifted.active is False
    assert lifted.suspended_until == until
    assert lifted.lifted_at == NOW
    assert not penalty_service.is_suspended(db, affiliate.id, clock)


def test_lift_penalty_requires_admin_and_existing_penalty(
    db, affiliate_caller, admin_caller, affiliate, absent_appointment
) -> None:
    penalty = _add_penalty(db, affiliate.id, absent_appointment.id, None)

    with pytest.raises(PermissionDenied):
        penalty_service.lift_penalty(db, affiliate_caller, penalty.id, FixedClock(NOW))
    with pytest.raises(NotFound):
        penalty_service.lift_penalty(db, admin_caller, 999, FixedClock(NOW))


def test_list_penalties_scopes_affiliates_to_their_own(
    db, affiliate, affiliate_caller, admin_caller, specialist_caller, make_user, absent_appointment
) -> None:
    other = make_user(Role.AFFILIATE, 'luis@network.test')
    _add_penalty(db, affiliate.id, absent_appointment.id, None)
    _add_penalty(db, other.id, absent_appointment.id, None, active=False)

    assert len(penalty_service.list_penalties(db, admin_caller)) == 2
    assert len(penalty_service.list_penalties(db, admin_caller, active=False)) == 1
    own = penalty_service.list_penalties(db, affiliate_caller, affiliate_id=other.id)
    assert [penalty.affiliate_id for penalty in own] == [affiliate.id]

    with pytest.raises(PermissionDenied):
        penalty_service.list_penalties(db, specialist_caller)


def test_late_cancellation_by_affiliate_is_penalized_when_enabled(
    db, notifier, affiliate, affiliate_caller, specialist, make_appointment, monkeypatch
) -> None:
    monkeypatch.setattr(config, 'LATE_CANCELLATION_WINDOW_HOURS', 24)
    clock = FixedClock(datetime(2026, 1, 11, 12, 0))
    late = make_appointment(affiliate.id, specialist.id, date(2026, 1, 12), start=time(9, 0))
    early = make_appointment(affiliate.id, specialist.id, date(2026, 1, 20), start=time(9, 0))

    cancelled_late = appointment_service.cancel_appointment(db, affiliate_caller, late.id, 'Work', clock, notifier)
    cancelled_early = appointment_service.cancel_appointment(db, affiliate_caller, early.id, 'Work', clock, notifier)

    assert cancelled_late.penalty_applied is True
    assert cancelled_early.penalty_applied is False
    assert db.query(AffiliatePenalty).count() == 1


def test_late_cancellation_by_specialist_is_not_penalized(
    db, notifier, affiliate, specialist, specialist_caller, make_appointment, monkeypatch
) -> None:
    monkeypatch.setattr(config, 'LATE_CANCELLATION_WINDOW_HOURS', 24)
    clock = FixedClock(datetime(2026, 1, 11, 12, 0))
    appointment = make_appointment(affiliate.id, specialist.id, date(2026, 1, 12), start=time(9, 0))

    appointment_service.cancel_appointment(db, specialist_caller, appointment.id, 'Emergency', clock, notifier)

    assert db.query(AffiliatePenalty).count() == 0
