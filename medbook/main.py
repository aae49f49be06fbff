import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from medbook.core import config
from medbook.database import Base, engine, ensure_appointment_schema
from medbook.models import appointment, doctor, patient, schedule, user  # noqa: F401
from medbook.routes import appointment_routes, auth_routes, schedule_routes

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger(__name__)

app = FastAPI(title='MedBook')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'MedBook API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(schedule_routes.router, prefix='/schedules')
app.include_router(appointment_routes.router, prefix='/appointments')
