import threading
from sqlmodel import Session
from forge.models.enums import BuildJobStatus
from forge.repositories.job_repository import JobRepository
from forge.services.queue_service import QueueService

CLAIMERS = 8

def _race(engine, claimers, target):
    """Every claimer selects the candidate, waits for the others, then updates."""
    barrier = threading.Barrier(claimers)
    results = [None] * claimers
    errors = []

    class RacingRepo(JobRepository):
        def next_claim_candidate(self, stale_before, max_attempts):
            job_id = super().next_claim_candidate(stale_before, max_attempts)
            barrier.wait(timeout=10)
            return job_id

    def claimer(i):
        try:
            with Session(engine) as session:
                queue = QueueService(RacingRepo(session), max_attempts=3, lease_ttl_ms=60_000)
                results[i] = target(queue, f"worker-{i}")
        except Exception as e:  # surfaced through the assertion below
            errors.append(e)

    threads = [threading.Thread(target=claimer, args=(i,)) for i in range(claimers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    assert errors == []
    return results

def test_only_one_of_many_claimers_wins(engine):
    with Session(engine) as session:
        job = QueueService(JobRepository(session)).enqueue("owner-1", "app-A")
        job_id = job.id

    results = _race(engine, CLAIMERS, lambda queue, worker_id: queue.claim_next(worker_id))

    winners = [r for r in results if r is not None]
    assert len(winners) == 1
    assert winners[0].id == job_id

    with Session(engine) as session:
        stored = JobRepository(session).get(job_id)
        assert stored.status == BuildJobStatus.RUNNING
        assert stored.attempts == 1
        assert stored.lock_token.split(":")[0] == f"worker-{results.index(winners[0])}"
