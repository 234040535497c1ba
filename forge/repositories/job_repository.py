import time
import uuid
from typing import List, Optional
from sqlalchemy import and_, or_, update
from sqlmodel import select
from forge.repositories.base_repository import BaseRepository
from forge.models.build_job import BuildJob
from forge.models.enums import BuildJobStatus, ACTIVE_JOB_STATUSES, TERMINAL_JOB_STATUSES

class JobRepository(BaseRepository):
    def get(self, job_id: str) -> Optional[BuildJob]:
        return self.session.get(BuildJob, job_id)

    def create(self, owner_id: str, app_id: str, now: Optional[float] = None) -> BuildJob:
        now = time.time() if now is None else now
        job = BuildJob(
            id=str(uuid.uuid4()),
            app_id=app_id,
            owner_id=owner_id,
            status=BuildJobStatus.QUEUED,
            attempts=0,
            created_at=now,
            updated_at=now,
        )
        self.session.add(job)
        self.session.commit()
        self.session.refresh(job)
        return job

    def find_active_for_app(self, app_id: str) -> Optional[BuildJob]:
        statement = (
            select(BuildJob)
            .where(BuildJob.app_id == app_id, BuildJob.status.in_(ACTIVE_JOB_STATUSES))
            .order_by(BuildJob.created_at, BuildJob.id)
            .limit(1)
        )
        return self.session.exec(statement).first()

    @staticmethod
    def _claimable(stale_before: float, max_attempts: int):
        return and_(
            or_(
                BuildJob.status == BuildJobStatus.QUEUED,
                and_(BuildJob.status == BuildJobStatus.RUNNING, BuildJob.locked_at < stale_before),
            ),
            BuildJob.attempts < max_attempts,
        )

    def next_claim_candidate(self, stale_before: float, max_attempts: int) -> Optional[str]:
        """Id of the oldest claimable job, or None."""
        statement = (
            select(BuildJob.id)
            .where(self._claimable(stale_before, max_attempts))
            .order_by(BuildJob.created_at, BuildJob.id)
            .limit(1)
        )
        return self.session.exec(statement).first()

    def try_claim(self, job_id: str, lock_token: str, now: float, stale_before: float, max_attempts: int) -> bool:
        """Conditional update re-stating the claim predicate.

        Returns True only when exactly one row changed; anything else means a
        competing worker got there first or the row moved on since selection.
        """
        statement = (
            update(BuildJob)
            .where(BuildJob.id == job_id, self._claimable(stale_before, max_attempts))
            .values(
                status=BuildJobStatus.RUNNING,
                attempts=BuildJob.attempts + 1,
                lock_token=lock_token,
                locked_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.session.exec(statement)
        self.session.commit()
        return result.rowcount == 1

    def complete(self, job_id: str, status: BuildJobStatus, error: Optional[str]) -> int:
        now = time.time()
        statement = (
            update(BuildJob)
            .where(BuildJob.id == job_id, BuildJob.status.not_in(TERMINAL_JOB_STATUSES))
            .values(status=status, error=error, lock_token=None, locked_at=None, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = self.session.exec(statement)
        self.session.commit()
        return result.rowcount

    def requeue(self, job_id: str) -> int:
        now = time.time()
        statement = (
            update(BuildJob)
            .where(BuildJob.id == job_id, BuildJob.status.in_(ACTIVE_JOB_STATUSES))
            .values(status=BuildJobStatus.QUEUED, error=None, lock_token=None, locked_at=None, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = self.session.exec(statement)
        self.session.commit()
        return result.rowcount

    def refresh(self, job_id: str) -> Optional[BuildJob]:
        return self.session.get(BuildJob, job_id, populate_existing=True)

    def list_exhausted_leases(self, stale_before: float, max_attempts: int) -> List[BuildJob]:
        """Running jobs past their lease that claim_next will never pick up again."""
        statement = (
            select(BuildJob)
            .where(
                BuildJob.status == BuildJobStatus.RUNNING,
                BuildJob.locked_at < stale_before,
                BuildJob.attempts >= max_attempts,
            )
            .order_by(BuildJob.created_at)
        )
        return list(self.session.exec(statement).all())
