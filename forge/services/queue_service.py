import logging
import time
import uuid
from typing import Callable, Optional
from forge.config import JOB_ERROR_MAX_CHARS, JOB_LEASE_TTL_MS, MAX_BUILD_ATTEMPTS
from forge.models.build_job import BuildJob
from forge.models.enums import BuildJobStatus, TERMINAL_JOB_STATUSES
from forge.repositories.job_repository import JobRepository

logger = logging.getLogger(__name__)

class QueueService:
    """Enqueue/claim/complete/requeue over the build job table.

    Every cross-worker guarantee comes from JobRepository.try_claim; this class
    holds no state besides its configuration.
    """

    def __init__(
        self,
        repo: JobRepository,
        max_attempts: int = MAX_BUILD_ATTEMPTS,
        lease_ttl_ms: int = JOB_LEASE_TTL_MS,
        clock: Callable[[], float] = time.time,
    ):
        self.repo = repo
        self.max_attempts = max_attempts
        self.lease_ttl_ms = lease_ttl_ms
        self.clock = clock

    def enqueue(self, owner_id: str, app_id: str) -> BuildJob:
        # Point-in-time check, not a uniqueness constraint
        existing = self.repo.find_active_for_app(app_id)
        if existing:
            logger.info("Build already %s for app %s (job %s)", existing.status.value, app_id, existing.id)
            return existing
        job = self.repo.create(owner_id, app_id, now=self.clock())
        logger.info("Enqueued build job %s for app %s", job.id, app_id)
        return job

    def claim_next(self, worker_id: str) -> Optional[BuildJob]:
        now = self.clock()
        stale_before = now - self.lease_ttl_ms / 1000.0

        job_id = self.repo.next_claim_candidate(stale_before, self.max_attempts)
        if not job_id:
            return None

        lock_token = f"{worker_id}:{uuid.uuid4().hex}"
        if not self.repo.try_claim(job_id, lock_token, now, stale_before, self.max_attempts):
            logger.debug("Lost claim race for job %s", job_id)
            return None

        job = self.repo.refresh(job_id)
        if job is None or job.lock_token != lock_token:
            # Reclaimed by someone else between our commit and this read
            return None
        logger.info("Claimed job %s for app %s (attempt %d, worker %s)", job.id, job.app_id, job.attempts, worker_id)
        return job

    def complete(self, job_id: str, status: BuildJobStatus, error: Optional[str] = None) -> Optional[BuildJob]:
        status = BuildJobStatus(status)
        if status not in TERMINAL_JOB_STATUSES:
            raise ValueError(f"complete() needs a terminal status, got {status.value}")
        if error is not None:
            error = error[:JOB_ERROR_MAX_CHARS]

        changed = self.repo.complete(job_id, status, error)
        job = self.repo.refresh(job_id)
        if changed:
            logger.info("Job %s -> %s%s", job_id, status.value, f" ({error})" if error else "")
        elif job is not None:
            logger.debug("Job %s already terminal (%s); complete() ignored", job_id, job.status.value)
        return job

    def requeue(self, job_id: str) -> bool:
        if not self.repo.requeue(job_id):
            return False
        job = self.repo.refresh(job_id)
        if job is not None and job.attempts >= self.max_attempts:
            logger.warning(
                "Job %s requeued with %d/%d attempts used; it stays unclaimable until MAX_BUILD_ATTEMPTS is raised",
                job_id, job.attempts, self.max_attempts,
            )
        else:
            logger.info("Job %s requeued", job_id)
        return True
