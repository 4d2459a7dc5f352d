"""Domain errors raised by the scheduling services.

Every error is request-scoped: routes turn them into an HTTP response and the
process keeps serving.
"""

from datetime import datetime


class SchedulingError(Exception):
    status_code = 400
    code = 'scheduling_error'

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict:
        return {'error': self.code, 'message': self.message}


class ParseError(SchedulingError, ValueError):
    """Malformed date or time input."""
    code = 'parse_error'


class ValidationFailed(SchedulingError):
    code = 'validation_failed'


class MissingReason(SchedulingError):
    code = 'missing_reason'

    def __init__(self, message: str = 'A cancellation reason is required.'):
        super().__init__(message)


class FutureDate(SchedulingError):
    status_code = 409
    code = 'future_date'


class InvalidTransition(SchedulingError):
    status_code = 409
    code = 'invalid_transition'


class SourceNotCompleted(SchedulingError):
    status_code = 409
    code = 'source_not_completed'

    def __init__(self, message: str = 'Only completed appointments can be derived.'):
        super().__init__(message)


class SlotUnavailable(SchedulingError):
    """The requested slot is not free. Refetch availability and retry."""
    status_code = 409
    code = 'slot_unavailable'

    def __init__(self, message: str = 'The selected slot is no longer available.'):
        super().__init__(message)


class ScheduleOverlap(SchedulingError):
    status_code = 409
    code = 'schedule_overlap'


class AffiliateSuspended(SchedulingError):
    status_code = 403
    code = 'affiliate_suspended'

    def __init__(self, suspended_until: datetime | None):
        if suspended_until is None:
            message = 'Booking is suspended until an administrator lifts the penalty.'
        else:
            message = f'Booking is suspended until {suspended_until.isoformat(timespec="minutes")}.'
        super().__init__(message)
        self.suspended_until = suspended_until

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail['suspended_until'] = self.suspended_until.isoformat() if self.suspended_until else None
        return detail


class PermissionDenied(SchedulingError):
    status_code = 403
    code = 'permission_denied'


class NotFound(SchedulingError):
    status_code = 404
    code = 'not_found'
