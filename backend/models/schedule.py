"""Weekly schedule and unavailability model definitions."""

from sqlalchemy import Boolean, Column, Date, ForeignKey, Index, Integer, String, Time
from backend.database import Base


class WeeklySchedule(Base):
    """A specialist's recurring availability for one weekday."""
    __tablename__ = "weekly_schedules"
    __table_args__ = (
        Index('idx_weekly_schedules_specialist_day', 'specialist_id', 'day_of_week'),
    )

    id = Column(Integer, primary_key=True)
    specialist_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    day_of_week = Column(String, nullable=False)  # MONDAY..SUNDAY
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    slot_duration = Column(Integer, nullable=False)
    active = Column(Boolean, default=True, nullable=False)


class UnavailabilityWindow(Base):
    """A date range, optionally limited to a time range, the specialist is not seeing patients."""
    __tablename__ = "unavailability_windows"
    __table_args__ = (
        Index('idx_unavailability_specialist_dates', 'specialist_id', 'date_from', 'date_to'),
    )

    id = Column(Integer, primary_key=True)
    specialist_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    date_from = Column(Date, nullable=False)
    date_to = Column(Date)
    start_time = Column(Time)
    end_time = Column(Time)
    reason = Column(String, nullable=False)

    @property
    def last_date(self):
        return self.date_to or self.date_from

    @property
    def is_full_day(self) -> bool:
        return self.start_time is None or self.end_time is None
