import logging
import os
import socket
import threading
import time
from typing import Callable, Optional
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from forge.config import WORKER_POLL_INTERVAL_MS
from forge.models.enums import BuildJobStatus
from forge.services.build_service import BuildService

logger = logging.getLogger(__name__)

HEARTBEAT_EVERY_POLLS = 150

def default_worker_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"

class BuildWorker:
    """Single sequential polling loop: claim one job, run it, poll again.

    Scaling out means more processes; claims between them are settled by the
    job table alone.
    """

    def __init__(
        self,
        engine: Engine,
        worker_id: str,
        pipeline: Callable[[Session], BuildService],
        poll_interval_ms: int = WORKER_POLL_INTERVAL_MS,
    ):
        self.engine = engine
        self.worker_id = worker_id
        self.pipeline = pipeline
        self.poll_interval_ms = poll_interval_ms
        self.polls = 0

    def run_once(self) -> Optional[str]:
        """Claim and process at most one job; None when nothing was claimed."""
        self.polls += 1
        if self.polls % HEARTBEAT_EVERY_POLLS == 1:
            logger.info("Worker %s alive, poll #%d", self.worker_id, self.polls)

        with Session(self.engine) as session:
            service = self.pipeline(session)
            try:
                job = service.queue.claim_next(self.worker_id)
            except SQLAlchemyError as e:
                logger.warning("Claim failed on worker %s, retrying next poll: %s", self.worker_id, e)
                self._rollback(session)
                return None
            if job is None:
                return None

            # Read before processing; the row may be expired and unreachable afterwards
            job_id = job.id
            try:
                return service.process(job)
            except Exception as e:
                # process() records its own failures; this only covers a failure while recording one
                logger.exception("Unhandled error on job %s", job_id)
                self._rollback(session)
                try:
                    service.queue.complete(job_id, BuildJobStatus.FAILED, str(e) or type(e).__name__)
                except Exception:
                    logger.exception("Could not mark job %s failed", job_id)
                return "FAILED"

    def _rollback(self, session: Session) -> None:
        try:
            session.rollback()
        except SQLAlchemyError as e:
            logger.warning("Rollback failed on worker %s: %s", self.worker_id, e)

    def run(self, stop_event: Optional[threading.Event] = None):
        logger.info("Worker %s polling every %dms", self.worker_id, self.poll_interval_ms)
        while not (stop_event and stop_event.is_set()):
            try:
                result = self.run_once()
            except Exception:
                logger.exception("Poll failed on worker %s", self.worker_id)
                result = None
            if result is not None:
                continue
            if stop_event:
                stop_event.wait(self.poll_interval_ms / 1000.0)
            else:
                time.sleep(self.poll_interval_ms / 1000.0)
        logger.info("Worker %s stopped", self.worker_id)
