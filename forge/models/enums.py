from enum import Enum

class BuildJobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

ACTIVE_JOB_STATUSES = (BuildJobStatus.QUEUED, BuildJobStatus.RUNNING)
TERMINAL_JOB_STATUSES = (BuildJobStatus.SUCCEEDED, BuildJobStatus.FAILED)

class AppStatus(str, Enum):
    DRAFT = "draft"
    PROCESSING = "processing"
    LIVE = "live"
    FAILED = "failed"

class BuildEvent(str, Enum):
    STARTED = "BUILD_STARTED"
    SUCCEEDED = "BUILD_SUCCEEDED"
    FAILED = "BUILD_FAILED"
    STUCK = "JOB_STUCK"
