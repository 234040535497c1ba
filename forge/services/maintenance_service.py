import logging
import os
import time
from typing import Callable, List
from forge.build.artifacts import prune_app_artifacts
from forge.config import (
    ARTIFACT_MAX_PER_APP,
    ARTIFACT_RETENTION_DAYS,
    ARTIFACTS_ROOT,
    JOB_LEASE_TTL_MS,
    MAX_BUILD_ATTEMPTS,
)
from forge.models.enums import BuildEvent
from forge.repositories.app_repository import AppRepository
from forge.repositories.job_repository import JobRepository
from forge.services.event_service import EventService

logger = logging.getLogger(__name__)

class MaintenanceService:
    def __init__(
        self,
        jobs: JobRepository,
        apps: AppRepository,
        events: EventService,
        artifacts_root: str = ARTIFACTS_ROOT,
        max_attempts: int = MAX_BUILD_ATTEMPTS,
        lease_ttl_ms: int = JOB_LEASE_TTL_MS,
        clock: Callable[[], float] = time.time,
    ):
        self.jobs = jobs
        self.apps = apps
        self.events = events
        self.artifacts_root = artifacts_root
        self.max_attempts = max_attempts
        self.lease_ttl_ms = lease_ttl_ms
        self.clock = clock

    def report_stuck_jobs(self) -> List[str]:
        """Flag running jobs that lost their lease with no attempts left.

        claim_next will never pick these up again; they need an operator to
        requeue or fail them. Nothing is modified here.
        """
        stale_before = self.clock() - self.lease_ttl_ms / 1000.0
        stuck = self.jobs.list_exhausted_leases(stale_before, self.max_attempts)
        for job in stuck:
            logger.warning("Job %s for app %s stuck: lease expired after %d/%d attempts",
                           job.id, job.app_id, job.attempts, self.max_attempts)
            self.events.publish(job.app_id, {
                "type": BuildEvent.STUCK,
                "app_id": job.app_id,
                "job_id": job.id,
                "attempts": job.attempts,
                "message": "Build stopped responding and has no attempts left.",
                "action": "REQUEUE_AVAILABLE",
            })
        return [job.id for job in stuck]

    def prune_artifacts(self, keep: int = ARTIFACT_MAX_PER_APP, retention_days: int = ARTIFACT_RETENTION_DAYS) -> int:
        if not os.path.isdir(self.artifacts_root):
            return 0
        live = self.apps.live_artifacts()
        removed = 0
        for app_id in os.listdir(self.artifacts_root):
            app_dir = os.path.join(self.artifacts_root, app_id)
            protected = [os.path.join(self.artifacts_root, p) for p in live.get(app_id, [])]
            gone = prune_app_artifacts(app_dir, protected, keep=keep, retention_days=retention_days, now=self.clock())
            if gone:
                logger.info("Pruned %d artifacts of app %s", len(gone), app_id)
            removed += len(gone)
        return removed
