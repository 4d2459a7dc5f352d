"""Affiliate penalty model definitions."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer
from backend.database import Base


class AffiliatePenalty(Base):
    """Suspends an affiliate's booking privilege. Lifted, never deleted."""
    __tablename__ = "affiliate_penalties"

    id = Column(Integer, primary_key=True)
    affiliate_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False)
    applied_at = Column(DateTime, nullable=False)
    suspended_until = Column(DateTime)  # null = until lifted
    active = Column(Boolean, default=True, nullable=False)
    lifted_at = Column(DateTime)
