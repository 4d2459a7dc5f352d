import logging
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config

logger = logging.getLogger(__name__)

DATABASE_URL = config.DATABASE_URL

connect_args = {'check_same_thread': False} if DATABASE_URL.startswith('sqlite') else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_appointment_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_appointment_schema() -> None:
    """Bring an older appointments table up to the current columns and indexes.

    The partial unique index is what serializes concurrent bookings of the same
    slot, so it is created even when the table predates it.
    """
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('parent_appointment_id', 'ALTER TABLE appointments ADD COLUMN parent_appointment_id INTEGER'),
            ('penalty_applied', 'ALTER TABLE appointments ADD COLUMN penalty_applied BOOLEAN DEFAULT FALSE'),
            ('idempotency_key', 'ALTER TABLE appointments ADD COLUMN idempotency_key VARCHAR'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    logger.info('Adding missing column appointments.%s', column_name)
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_active_slot '
                    "ON appointments(specialist_id, date, start_time) WHERE status <> 'CANCELLED'"
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_affiliate_date ON appointments(affiliate_id, date)')
            )
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_affiliate_idempotency '
                    'ON appointments(affiliate_id, idempotency_key) WHERE idempotency_key IS NOT NULL'
                )
            )

        _appointment_schema_checked = True
