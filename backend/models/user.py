"""User model definitions."""

import enum

from sqlalchemy import Boolean, Column, Integer, String
from backend.database import Base


class Role(str, enum.Enum):
    ADMIN = 'ADMIN'
    AFFILIATE = 'AFFILIATE'
    SPECIALIST = 'SPECIALIST'


class User(Base):
    """An administrator, affiliate or specialist of the network."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    full_name = Column(String)
    dni = Column(String)
    role = Column(String, nullable=False)  # ADMIN/AFFILIATE/SPECIALIST
    speciality = Column(String)
    health_insurance_code = Column(String)
    active = Column(Boolean, default=True, nullable=False)
