from datetime import date, time

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from backend.core.calendar import DayOfWeek
from backend.routes.schedule_routes import (
    ScheduleRequest,
    ScheduleResponse,
    create_schedule,
    deactivate_schedule,
    list_available_slots,
    list_specialist_schedules,
    update_schedule,
)
from backend.routes.unavailability_routes import (
    CreateUnavailabilityRequest,
    create_unavailability,
    delete_unavailability,
    list_specialist_unavailability,
)


def _slot_starts(slots):
    return [slot.start_time for slot in slots]


def test_available_slots_for_a_weekly_rule(db, clock, specialist, make_schedule) -> None:
    make_schedule(specialist.id, start=time(9, 0), end=time(10, 0), slot_duration=30)

    slots = list_available_slots(specialist_id=specialist.id, date='2026-01-12', db=db, clock=clock)

    assert [(slot.start_time, slot.end_time, slot.duration_minutes) for slot in slots] == [
        (time(9, 0), time(9, 30), 30),
        (time(9, 30), time(10, 0), 30),
    ]


def test_available_slots_skip_booked_and_blocked_times(
    db, clock, affiliate, specialist, specialist_caller, make_schedule, make_appointment
) -> None:
    make_schedule(specialist.id, start=time(9, 0), end=time(12, 0), slot_duration=30)
    make_appointment(affiliate.id, specialist.id, date(2026, 1, 12), start=time(9, 30), end=time(10, 0))
    create_unavailability(
        CreateUnavailabilityRequest(
            specialist_id=specialist.id,
            date_from='2026-01-12',
            start_time='10:45',
            end_time='11:15',
            reason='Staff meeting',
        ),
        db=db,
        caller=specialist_caller,
    )

    slots = list_available_slots(specialist_id=specialist.id, date='2026-01-12', db=db, clock=clock)

    assert _slot_starts(slots) == [time(9, 0), time(10, 0), time(11, 30)]


def test_available_slots_rejects_malformed_date(db, clock, specialist) -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_available_slots(specialist_id=specialist.id, date='12-01-2026', db=db, clock=clock)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail['error'] == 'parse_error'


def test_available_slots_for_unknown_specialist(db, clock, affiliate) -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_available_slots(specialist_id=affiliate.id, date='2026-01-12', db=db, clock=clock)

    assert exception_info.value.status_code == 404


def test_schedule_request_normalizes_day_and_times() -> None:
    request = ScheduleRequest(
        specialist_id=1,
        day_of_week=' monday ',
        start_time='09:00',
        end_time='12:30:00',
    )

    assert request.day_of_week == DayOfWeek.MONDAY
    assert request.start_time == time(9, 0)
    assert request.end_time == time(12, 30)
    assert request.slot_duration == 30


def test_schedule_request_rejects_unknown_day() -> None:
    with pytest.raises(ValidationError):
        ScheduleRequest(specialist_id=1, day_of_week='FUNDAY', start_time='09:00', end_time='10:00')


def test_create_update_and_deactivate_schedule(db, specialist, specialist_caller) -> None:
    request = ScheduleRequest(
        specialist_id=specialist.id,
        day_of_week='TUESDAY',
        start_time='14:00',
        end_time='16:00',
        slot_duration=20,
    )
    created = create_schedule(request, db=db, caller=specialist_caller)
    assert created.day_of_week == 'TUESDAY'

    with pytest.raises(HTTPException) as exception_info:
        create_schedule(request, db=db, caller=specialist_caller)
    assert exception_info.value.status_code == 409
    assert exception_info.value.detail['error'] == 'schedule_overlap'

    updated = update_schedule(
        created.id,
        ScheduleRequest(
            specialist_id=specialist.id,
            day_of_week='TUESDAY',
            start_time='14:00',
            end_time='17:00',
            slot_duration=20,
        ),
        db=db,
        caller=specialist_caller,
    )
    assert updated.end_time == time(17, 0)

    deactivated = deactivate_schedule(created.id, db=db, caller=specialist_caller)
    assert deactivated.active is False
    assert list_specialist_schedules(specialist.id, include_inactive=False, db=db) == []
    assert len(list_specialist_schedules(specialist.id, include_inactive=True, db=db)) == 1


def test_create_schedule_rejects_short_slots(db, specialist, specialist_caller) -> None:
    request = ScheduleRequest(
        specialist_id=specialist.id,
        day_of_week='MONDAY',
        start_time='09:00',
        end_time='10:00',
        slot_duration=5,
    )

    with pytest.raises(HTTPException) as exception_info:
        create_schedule(request, db=db, caller=specialist_caller)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail['error'] == 'validation_failed'


def test_affiliate_cannot_create_schedule(db, specialist, affiliate_caller) -> None:
    request = ScheduleRequest(specialist_id=specialist.id, day_of_week='MONDAY', start_time='09:00', end_time='10:00')

    with pytest.raises(HTTPException) as exception_info:
        create_schedule(request, db=db, caller=affiliate_caller)

    assert exception_info.value.status_code == 403


def test_full_day_unavailability_empties_the_date(db, clock, specialist, specialist_caller, make_schedule) -> None:
    make_schedule(specialist.id)
    window = create_unavailability(
        CreateUnavailabilityRequest(
            specialist_id=specialist.id,
            date_from='2026-01-12',
            date_to='2026-01-16',
            start_time='',
            end_time='',
            reason='Vacation',
        ),
        db=db,
        caller=specialist_caller,
    )

    assert list_available_slots(specialist_id=specialist.id, date='2026-01-12', db=db, clock=clock) == []
    assert [item.id for item in list_specialist_unavailability(specialist.id, db=db)] == [window.id]

    delete_unavailability(window.id, db=db, caller=specialist_caller)

    assert len(list_available_slots(specialist_id=specialist.id, date='2026-01-12', db=db, clock=clock)) == 2


def test_unavailability_request_requires_reason() -> None:
    with pytest.raises(ValidationError):
        CreateUnavailabilityRequest(specialist_id=1, date_from='2026-01-12', reason='   ')


def test_delete_unknown_unavailability(db, specialist_caller) -> None:
    with pytest.raises(HTTPException) as exception_info:
        delete_unavailability(999, db=db, caller=specialist_caller)

    assert exception_info.value.status_code == 404


def test_unavailability_request_accepts_the_web_client_field_names() -> None:
    request = CreateUnavailabilityRequest(**{
        'specialistId': 4,
        'dateFrom': '2026-01-12',
        'dateTo': None,
        'startTime': '09:00:00',
        'endTime': '12:00:00',
        'reason': 'Congress',
    })

    assert request.specialist_id == 4
    assert request.date_from == date(2026, 1, 12)
    assert (request.start_time, request.end_time) == (time(9, 0), time(12, 0))


def test_schedule_payloads_use_camel_case(db, specialist, specialist_caller) -> None:
    request = ScheduleRequest(**{
        'specialistId': specialist.id,
        'dayOfWeek': 'THURSDAY',
        'startTime': '08:00:00',
        'endTime': '09:00:00',
        'slotDuration': 15,
    })
    created = create_schedule(request, db=db, caller=specialist_caller)

    payload = ScheduleResponse.model_validate(created).model_dump(by_alias=True, mode='json')

    assert payload['specialistId'] == specialist.id
    assert payload['dayOfWeek'] == 'THURSDAY'
    assert payload['slotDuration'] == 15
