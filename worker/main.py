"""Composition root of a build worker process.

Everything long-lived (engine, redis client, runner, materializer) is built
here once and handed down; per-iteration objects are built per session.
"""
import logging
import os
import signal
import sys
import threading

import redis
from sqlmodel import Session

from forge.build.artifacts import ArtifactCommitter
from forge.build.icons import PillowIconRenderer
from forge.build.materializer import ProjectMaterializer
from forge.build.runner import DockerBuildRunner, MockBuildRunner
from forge.config import (
    ARTIFACTS_ROOT,
    BUILD_IMAGE,
    BUILD_WORK_ROOT,
    DATABASE_URL,
    ICON_RENDERING_ENABLED,
    MOCK_BUILD,
    MOCK_BUILD_FAIL_ONCE,
    REDIS_URL,
    WORKER_ID,
)
from forge.database import create_db_engine, init_db
from forge.logging_config import configure_logging
from forge.repositories.app_repository import AppRepository
from forge.repositories.job_repository import JobRepository
from forge.services.build_service import BuildService
from forge.services.event_service import EventService
from forge.services.queue_service import QueueService
from worker.loop import BuildWorker, default_worker_id

logger = logging.getLogger("worker")

def make_pipeline(materializer, runner, events, artifacts_root=ARTIFACTS_ROOT, work_root=BUILD_WORK_ROOT):
    def pipeline(session: Session) -> BuildService:
        apps = AppRepository(session)
        return BuildService(
            queue=QueueService(JobRepository(session)),
            apps=apps,
            materializer=materializer,
            runner=runner,
            committer=ArtifactCommitter(apps, artifacts_root),
            events=events,
            work_root=work_root,
        )
    return pipeline

def main() -> int:
    configure_logging()
    worker_id = WORKER_ID or default_worker_id()

    try:
        os.makedirs(BUILD_WORK_ROOT, exist_ok=True)
        os.makedirs(ARTIFACTS_ROOT, exist_ok=True)
    except OSError as e:
        logger.critical("Cannot create scratch or artifact directories: %s", e)
        return 1

    engine = create_db_engine(DATABASE_URL)
    init_db(engine)

    icon_renderer = PillowIconRenderer() if ICON_RENDERING_ENABLED else None
    if icon_renderer is None:
        logger.info("Icon rendering disabled; builds use the bundled icon")
    runner = MockBuildRunner(fail_once=MOCK_BUILD_FAIL_ONCE) if MOCK_BUILD else DockerBuildRunner()
    events = EventService(redis.from_url(REDIS_URL))

    logger.info("Starting worker %s", worker_id)
    logger.info("Artifacts root: %s", ARTIFACTS_ROOT)
    logger.info("Build image: %s%s", BUILD_IMAGE, " (MOCK_BUILD)" if MOCK_BUILD else "")

    stop = threading.Event()

    def _stop(signum, _frame):
        logger.info("Signal %d received, finishing current job", signum)
        stop.set()

    signal.signal(signal.SIGTERM, _stop)
    signal.signal(signal.SIGINT, _stop)

    worker = BuildWorker(engine, worker_id, make_pipeline(ProjectMaterializer(icon_renderer=icon_renderer), runner, events))
    try:
        worker.run(stop)
    finally:
        engine.dispose()
    return 0

if __name__ == "__main__":
    sys.exit(main())
