import redis
from celery import Task
from sqlalchemy.exc import OperationalError
from sqlmodel import Session

from forge.celery_app import celery_app
from forge.config import DATABASE_URL, REDIS_URL
from forge.database import create_db_engine
from forge.repositories.app_repository import AppRepository
from forge.repositories.job_repository import JobRepository
from forge.services.event_service import EventService
from forge.services.maintenance_service import MaintenanceService

class BaseTaskWithRetry(Task):
    autoretry_for = (OperationalError,)
    retry_kwargs = {"max_retries": 5, "countdown": 10}
    retry_backoff = True

def _run_maintenance(fn):
    # Each run owns its engine; nothing is shared across task invocations
    engine = create_db_engine(DATABASE_URL)
    try:
        with Session(engine) as session:
            service = MaintenanceService(
                jobs=JobRepository(session),
                apps=AppRepository(session),
                events=EventService(redis.from_url(REDIS_URL)),
            )
            return fn(service)
    finally:
        engine.dispose()

@celery_app.task(base=BaseTaskWithRetry)
def sanity_check_stuck_jobs():
    return _run_maintenance(lambda service: service.report_stuck_jobs())

@celery_app.task(base=BaseTaskWithRetry)
def prune_artifacts():
    return _run_maintenance(lambda service: service.prune_artifacts())
