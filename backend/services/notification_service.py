"""Fire-and-forget notifications to specialists about their agenda."""

import logging
from collections import defaultdict, deque
from datetime import datetime
from threading import Lock

from backend.core import config

logger = logging.getLogger(__name__)

APPOINTMENT_CREATED = 'APPOINTMENT_CREATED'
APPOINTMENT_CANCELLED = 'APPOINTMENT_CANCELLED'


class NotificationChannel:
    def notify(self, specialist_id: int, event: dict) -> None:
        raise NotImplementedError

    def recent(self, specialist_id: int) -> list[dict]:
        return []


class InMemoryNotificationChannel(NotificationChannel):
    """Logs each event and keeps the latest few per specialist."""

    def __init__(self, feed_size: int = config.NOTIFICATION_FEED_SIZE):
        self._feeds: dict[int, deque] = defaultdict(lambda: deque(maxlen=feed_size))
        self._lock = Lock()

    def notify(self, specialist_id: int, event: dict) -> None:
        logger.info('Notifying specialist %s: %s', specialist_id, event.get('type'))
        with self._lock:
            self._feeds[specialist_id].appendleft(event)

    def recent(self, specialist_id: int) -> list[dict]:
        with self._lock:
            return list(self._feeds.get(specialist_id, ()))


_channel = InMemoryNotificationChannel()


def get_notification_channel() -> NotificationChannel:
    return _channel


def build_event(event_type: str, appointment, message: str, timestamp: datetime) -> dict:
    return {
        'type': event_type,
        'specialistId': appointment.specialist_id,
        'appointmentId': appointment.id,
        'date': appointment.date.isoformat(),
        'startTime': appointment.start_time.isoformat(),
        'message': message,
        'timestamp': timestamp.isoformat(),
    }


def publish(channel: NotificationChannel, event_type: str, appointment, message: str, timestamp: datetime) -> None:
    """Deliver an event without letting a channel failure undo the committed change."""
    event = build_event(event_type, appointment, message, timestamp)
    try:
        channel.notify(appointment.specialist_id, event)
    except Exception:
        logger.exception(
            'Notification %s for appointment %s could not be delivered',
            event_type,
            appointment.id,
        )
