import os
import tempfile
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./appforge.db")
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Storage locations
ARTIFACTS_ROOT = os.getenv("ARTIFACTS_ROOT", os.path.abspath("artifacts"))
BUILD_WORK_ROOT = os.getenv("BUILD_WORK_ROOT", os.path.join(tempfile.gettempdir(), "appforge-builds"))

# Build environment
BUILD_IMAGE = os.getenv("BUILD_IMAGE", "appforge-android-builder:latest")
BUILD_COMMAND = os.getenv("BUILD_COMMAND", "gradle --no-daemon assembleRelease bundleRelease")
BUILD_TIMEOUT_MS = int(os.getenv("BUILD_TIMEOUT_MS", "1200000"))  # 20 min
BUILD_LOG_TAIL_CHARS = int(os.getenv("BUILD_LOG_TAIL_CHARS", "20000"))
MOCK_BUILD = os.getenv("MOCK_BUILD", "false").strip().lower() in ("1", "true", "yes")
MOCK_BUILD_FAIL_ONCE = os.getenv("MOCK_BUILD_FAIL_ONCE", "false").strip().lower() in ("1", "true", "yes")

# Queue / worker
WORKER_ID = os.getenv("WORKER_ID", "")
WORKER_POLL_INTERVAL_MS = int(os.getenv("WORKER_POLL_INTERVAL_MS", "2000"))
MAX_BUILD_ATTEMPTS = int(os.getenv("MAX_BUILD_ATTEMPTS", "3"))
JOB_LEASE_TTL_MS = int(os.getenv("JOB_LEASE_TTL_MS", "1800000"))  # 30 min
JOB_ERROR_MAX_CHARS = 10000

PACKAGE_NAME_PREFIX = os.getenv("PACKAGE_NAME_PREFIX", "com.appforge")

# Icons
ICON_RENDERING_ENABLED = os.getenv("ICON_RENDERING_ENABLED", "true").strip().lower() in ("1", "true", "yes")
ICON_FETCH_CONNECT_TIMEOUT_S = float(os.getenv("ICON_FETCH_CONNECT_TIMEOUT_S", "3.0"))
ICON_FETCH_READ_TIMEOUT_S = float(os.getenv("ICON_FETCH_READ_TIMEOUT_S", "15.0"))
ICON_MAX_BYTES = int(os.getenv("ICON_MAX_BYTES", str(5 * 1024 * 1024)))

# Artifact retention
ARTIFACT_MAX_PER_APP = int(os.getenv("ARTIFACT_MAX_PER_APP", "10"))
ARTIFACT_RETENTION_DAYS = int(os.getenv("ARTIFACT_RETENTION_DAYS", "30"))

# Celery beat schedule (seconds)
SANITY_CHECK_INTERVAL_SECONDS = int(os.getenv("SANITY_CHECK_INTERVAL_SECONDS", "60"))
ARTIFACT_PRUNE_INTERVAL_SECONDS = int(os.getenv("ARTIFACT_PRUNE_INTERVAL_SECONDS", "21600"))

# Release output paths inside a generated project
APK_RELATIVE_PATH = os.path.join("app", "build", "outputs", "apk", "release", "app-release.apk")
AAB_RELATIVE_PATH = os.path.join("app", "build", "outputs", "bundle", "release", "app-release.aab")
APK_MIME = "application/vnd.android.package-archive"
