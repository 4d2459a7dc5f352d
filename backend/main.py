import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from backend.core import config
from backend.core.errors import SchedulingError
from backend.database import Base, engine, ensure_appointment_schema
from backend.models import appointment, penalty, schedule, user  # noqa: F401
from backend.routes import (
    appointment_routes,
    notification_routes,
    penalty_routes,
    schedule_routes,
    unavailability_routes,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

config.validate_runtime_config()

app = FastAPI(title='Medical Network Scheduling API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={'detail': exc.to_detail()})


@app.get('/')
def root():
    return {'status': 'Medical Network Scheduling API Running'}


app.include_router(schedule_routes.router, prefix='/schedules')
app.include_router(unavailability_routes.router, prefix='/unavailability')
app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(penalty_routes.router, prefix='/penalties')
app.include_router(notification_routes.router, prefix='/notifications')
