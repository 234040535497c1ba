import pytest
from forge.models.enums import BuildJobStatus
from forge.repositories.job_repository import JobRepository
from forge.services.queue_service import QueueService

LEASE_MS = 60_000

@pytest.fixture
def queue(session, clock):
    return QueueService(JobRepository(session), max_attempts=3, lease_ttl_ms=LEASE_MS, clock=clock)

def test_enqueue_creates_queued_job(queue):
    job = queue.enqueue("owner-1", "app-A")
    assert job.status == BuildJobStatus.QUEUED
    assert job.attempts == 0

def test_enqueue_twice_returns_same_job(queue):
    first = queue.enqueue("owner-1", "app-A")
    second = queue.enqueue("owner-1", "app-A")
    assert second.id == first.id

def test_enqueue_returns_running_job_unchanged(queue):
    job = queue.enqueue("owner-1", "app-A")
    claimed = queue.claim_next("w1")
    again = queue.enqueue("owner-1", "app-A")
    assert again.id == job.id
    assert again.status == BuildJobStatus.RUNNING
    assert again.lock_token == claimed.lock_token

def test_enqueue_after_terminal_job_creates_new_one(queue):
    job = queue.enqueue("owner-1", "app-A")
    queue.claim_next("w1")
    queue.complete(job.id, BuildJobStatus.SUCCEEDED)
    assert queue.enqueue("owner-1", "app-A").id != job.id

def test_claim_next_empty_queue(queue):
    assert queue.claim_next("w1") is None

def test_claim_sets_lease(queue, clock):
    queue.enqueue("owner-1", "app-A")
    job = queue.claim_next("w1")
    assert job.status == BuildJobStatus.RUNNING
    assert job.attempts == 1
    assert job.lock_token.startswith("w1:")
    assert len(job.lock_token) > len("w1:")
    assert job.locked_at == clock.now

def test_claim_is_fifo_by_creation(queue, clock):
    first = queue.enqueue("owner-1", "app-A")
    clock.advance(1)
    second = queue.enqueue("owner-1", "app-B")
    assert queue.claim_next("w1").id == first.id
    assert queue.claim_next("w1").id == second.id
    assert queue.claim_next("w1") is None

def test_running_job_with_live_lease_is_not_reclaimed(queue, clock):
    queue.enqueue("owner-1", "app-A")
    queue.claim_next("w1")
    clock.advance(LEASE_MS / 1000 - 1)
    assert queue.claim_next("w2") is None

def test_crashed_worker_job_is_reclaimed_after_lease(queue, clock):
    j1 = queue.enqueue("owner-1", "app-A")
    assert j1.status == BuildJobStatus.QUEUED and j1.attempts == 0

    first = queue.claim_next("W1")
    assert first.id == j1.id
    assert first.attempts == 1
    assert first.lock_token.startswith("W1:")

    # No completion: the worker died. Lease expires.
    clock.advance(LEASE_MS / 1000 + 1)
    second = queue.claim_next("W2")
    assert second.id == j1.id
    assert second.status == BuildJobStatus.RUNNING
    assert second.attempts == 2
    assert second.lock_token.startswith("W2:")

    # Exactly one reclaim
    assert queue.claim_next("W3") is None

def test_reclaimed_job_keeps_its_queue_position(queue, clock):
    old = queue.enqueue("owner-1", "app-A")
    queue.claim_next("w1")
    clock.advance(LEASE_MS / 1000 + 1)
    queue.enqueue("owner-1", "app-B")
    assert queue.claim_next("w2").id == old.id

def test_exhausted_job_is_never_claimed(queue, clock):
    job = queue.enqueue("owner-1", "app-A")
    for _ in range(3):
        assert queue.claim_next("w1").id == job.id
        clock.advance(LEASE_MS / 1000 + 1)

    clock.advance(10 * LEASE_MS / 1000)
    assert queue.claim_next("w2") is None
    stuck = queue.repo.get(job.id)
    assert stuck.status == BuildJobStatus.RUNNING
    assert stuck.attempts == 3

def test_complete_is_idempotent(queue):
    job = queue.enqueue("owner-1", "app-A")
    queue.claim_next("w1")
    done = queue.complete(job.id, BuildJobStatus.FAILED, "Android build failed")
    assert done.status == BuildJobStatus.FAILED
    assert done.error == "Android build failed"
    assert done.lock_token is None and done.locked_at is None

    again = queue.complete(job.id, BuildJobStatus.SUCCEEDED)
    assert again.status == BuildJobStatus.FAILED
    assert again.error == "Android build failed"

def test_complete_rejects_non_terminal_status(queue):
    job = queue.enqueue("owner-1", "app-A")
    with pytest.raises(ValueError):
        queue.complete(job.id, BuildJobStatus.RUNNING)

def test_complete_unknown_job_returns_none(queue):
    assert queue.complete("missing", BuildJobStatus.FAILED, "x") is None

def test_requeue_resets_running_job(queue):
    job = queue.enqueue("owner-1", "app-A")
    queue.claim_next("w1")
    assert queue.requeue(job.id) is True

    reset = queue.repo.get(job.id)
    assert reset.status == BuildJobStatus.QUEUED
    assert reset.attempts == 1
    assert reset.lock_token is None and reset.locked_at is None
    assert reset.error is None
    assert queue.claim_next("w2").attempts == 2

def test_requeue_leaves_terminal_job_alone(queue):
    job = queue.enqueue("owner-1", "app-A")
    queue.claim_next("w1")
    queue.complete(job.id, BuildJobStatus.SUCCEEDED)
    assert queue.requeue(job.id) is False
    assert queue.repo.get(job.id).status == BuildJobStatus.SUCCEEDED
    assert queue.requeue("missing") is False
