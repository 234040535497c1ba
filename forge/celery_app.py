from celery import Celery
from forge.config import ARTIFACT_PRUNE_INTERVAL_SECONDS, REDIS_URL, SANITY_CHECK_INTERVAL_SECONDS

celery_app = Celery("appforge", broker=REDIS_URL, backend=REDIS_URL, include=["worker.tasks"])

celery_app.conf.beat_schedule = {
    "sanity-check-stuck-jobs": {
        "task": "worker.tasks.sanity_check_stuck_jobs",
        "schedule": SANITY_CHECK_INTERVAL_SECONDS,
    },
    "prune-artifacts": {
        "task": "worker.tasks.prune_artifacts",
        "schedule": ARTIFACT_PRUNE_INTERVAL_SECONDS,
    },
}

celery_app.conf.task_acks_late = True
celery_app.conf.worker_prefetch_multiplier = 1
