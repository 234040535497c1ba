import logging
import os
import re
import shutil
import time
import uuid
from typing import Optional
from pydantic import ValidationError
from forge.build.artifacts import ArtifactCommitter
from forge.build.logs import LogTail
from forge.build.materializer import ProjectMaterializer
from forge.build.runner import BuildRunner
from forge.config import (
    BUILD_COMMAND,
    BUILD_IMAGE,
    BUILD_LOG_TAIL_CHARS,
    BUILD_TIMEOUT_MS,
    BUILD_WORK_ROOT,
    PACKAGE_NAME_PREFIX,
)
from forge.errors import BuildFailedError, BuildPipelineError, MaterializeError
from forge.models.app import App
from forge.models.build_job import BuildJob
from forge.models.enums import AppStatus, BuildEvent, BuildJobStatus
from forge.repositories.app_repository import AppRepository
from forge.schemas.build import ProjectConfig
from forge.services.event_service import EventService
from forge.services.queue_service import QueueService

logger = logging.getLogger(__name__)

BUILD_ERROR_MAX_CHARS = 500

def derive_package_name(app_id: str, prefix: str = PACKAGE_NAME_PREFIX) -> str:
    # Java package segments cannot start with a digit
    suffix = re.sub(r"[^a-z0-9]", "", app_id.lower())[:8] or "app"
    if suffix[0].isdigit():
        suffix = "a" + suffix[:7]
    return f"{prefix}.{suffix}"

def _stamp(message: str) -> str:
    return f"[{time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime())}] {message}\n"

class BuildService:
    """Runs one claimed build job end to end.

    Materialize → build → commit on success; any exception on the way becomes
    a failed app + failed job. The scratch directory is removed either way.
    """

    def __init__(
        self,
        queue: QueueService,
        apps: AppRepository,
        materializer: ProjectMaterializer,
        runner: BuildRunner,
        committer: ArtifactCommitter,
        events: EventService,
        work_root: str = BUILD_WORK_ROOT,
        build_image: str = BUILD_IMAGE,
        build_command: str = BUILD_COMMAND,
        timeout_ms: int = BUILD_TIMEOUT_MS,
        log_limit: int = BUILD_LOG_TAIL_CHARS,
        package_prefix: str = PACKAGE_NAME_PREFIX,
    ):
        self.queue = queue
        self.apps = apps
        self.materializer = materializer
        self.runner = runner
        self.committer = committer
        self.events = events
        self.work_root = work_root
        self.build_image = build_image
        self.build_command = build_command
        self.timeout_ms = timeout_ms
        self.log_limit = log_limit
        self.package_prefix = package_prefix

    def process(self, job: BuildJob) -> str:
        logs = LogTail(self.log_limit)
        work_dir: Optional[str] = None
        try:
            app = self.apps.get(job.app_id)
            if not app:
                logger.warning("App %s not found for job %s", job.app_id, job.id)
                self.queue.complete(job.id, BuildJobStatus.FAILED, "App not found")
                return "FAILED"

            package_name = app.package_name or derive_package_name(app.id, self.package_prefix)
            version_code = (app.version_code or 0) + 1
            self.apps.update_build(
                app.id,
                status=AppStatus.PROCESSING,
                package_name=package_name,
                version_code=version_code,
                build_error=None,
                build_logs=None,
            )
            self.events.publish(app.id, {"type": BuildEvent.STARTED, "app_id": app.id, "job_id": job.id,
                                         "attempt": job.attempts, "version_code": version_code})

            work_dir = os.path.join(self.work_root, f"build-{job.id}-{uuid.uuid4().hex}")
            os.makedirs(work_dir)

            logs.write(_stamp(f"Starting Android build for {app.name}"))
            logs.write(_stamp(f"Package: {package_name}"))
            logs.write(_stamp(f"Version code: {version_code}"))
            logs.write(_stamp(f"Attempt: {job.attempts}"))
            logs.write(_stamp("Generating Android project"))
            self.apps.update_build(app.id, build_logs=logs.getvalue())

            project = self.materializer.materialize(self._project_config(app, package_name, version_code), work_dir)
            if project.icon.rendered:
                logs.write(_stamp("Custom icon: rendered from uploaded logo"))
            else:
                logs.write(_stamp(f"Custom icon: default ({project.icon.reason})"))

            logs.write(_stamp(f"Project generated. Starting build in {self.build_image}"))
            self.apps.update_build(app.id, build_logs=logs.getvalue())
            result = self.runner.run(self.build_image, project.project_dir, self.build_command, self.timeout_ms)
            logs.write("\n=== Build Output ===\n")
            logs.write(result.output)

            if not result.ok:
                if result.timed_out:
                    raise BuildFailedError(f"Android build timed out after {self.timeout_ms}ms", timed_out=True)
                raise BuildFailedError(f"Android build failed (exit code {result.exit_code})", exit_code=result.exit_code)

            self.committer.commit(project.project_dir, app.id, job.id, package_name, version_code, logs.getvalue())
            self.queue.complete(job.id, BuildJobStatus.SUCCEEDED)
            self.events.publish(app.id, {"type": BuildEvent.SUCCEEDED, "app_id": app.id, "job_id": job.id,
                                         "version_code": version_code})
            return "SUCCEEDED"

        except Exception as e:
            self._fail(job, e, logs)
            return "FAILED"

        finally:
            if work_dir:
                shutil.rmtree(work_dir, ignore_errors=True)

    @staticmethod
    def _project_config(app: App, package_name: str, version_code: int) -> ProjectConfig:
        try:
            return ProjectConfig(
                app_id=app.id,
                app_name=app.name,
                start_url=app.url,
                primary_color=app.primary_color,
                icon_color=app.icon_color,
                package_name=package_name,
                version_code=version_code,
                icon_url=app.icon_url,
                features=app.features or {},
            )
        except ValidationError as e:
            problems = "; ".join(f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors())
            raise MaterializeError(f"Invalid project configuration: {problems}")

    def _fail(self, job: BuildJob, err: Exception, logs: LogTail):
        message = (str(err) or type(err).__name__)[:BUILD_ERROR_MAX_CHARS]
        if isinstance(err, BuildPipelineError):
            logger.error("Build job %s for app %s failed: %s", job.id, job.app_id, message)
        else:
            logger.exception("Build job %s for app %s raised", job.id, job.app_id)
        logs.write(f"\n[error] {message}\n")

        # Drop anything the failed step left pending on the shared session
        self.apps.session.rollback()
        try:
            self.apps.update_build(
                job.app_id,
                status=AppStatus.FAILED,
                build_error=message,
                build_logs=logs.getvalue(),
                last_build_at=time.time(),
            )
        finally:
            self.queue.complete(job.id, BuildJobStatus.FAILED, message)
        self.events.publish(job.app_id, {"type": BuildEvent.FAILED, "app_id": job.app_id, "job_id": job.id,
                                         "message": message, "action": "RETRY_AVAILABLE"})
