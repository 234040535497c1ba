import logging
import os
import shutil
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional
from forge.config import (
    AAB_RELATIVE_PATH,
    APK_MIME,
    APK_RELATIVE_PATH,
    ARTIFACT_MAX_PER_APP,
    ARTIFACT_RETENTION_DAYS,
    ARTIFACTS_ROOT,
)
from forge.errors import ArtifactMissingError
from forge.models.app import App
from forge.models.enums import AppStatus
from forge.repositories.app_repository import AppRepository

logger = logging.getLogger(__name__)

ARTIFACT_SUFFIXES = (".apk", ".aab")

@dataclass
class CommittedArtifact:
    path: str  # relative to the artifacts root, forward slashes
    size: int
    bundle_path: Optional[str] = None

class ArtifactCommitter:
    """Copies build output into per-app storage, then points the app at it.

    Files are named after the job id and renamed into place only once fully
    written, so the app row never references a partial file and builds never
    overwrite each other.
    """

    def __init__(
        self,
        apps: AppRepository,
        artifacts_root: str = ARTIFACTS_ROOT,
        keep: int = ARTIFACT_MAX_PER_APP,
        retention_days: int = ARTIFACT_RETENTION_DAYS,
    ):
        self.apps = apps
        self.artifacts_root = artifacts_root
        self.keep = keep
        self.retention_days = retention_days

    def _copy_into_place(self, src: str, app_id: str, file_name: str) -> str:
        app_dir = os.path.join(self.artifacts_root, app_id)
        os.makedirs(app_dir, exist_ok=True)
        dest = os.path.join(app_dir, file_name)
        partial = dest + ".part"
        try:
            shutil.copyfile(src, partial)
            os.replace(partial, dest)
        except OSError:
            if os.path.exists(partial):
                os.remove(partial)
            raise
        return f"{app_id}/{file_name}"

    def store(self, project_dir: str, app_id: str, job_id: str) -> CommittedArtifact:
        apk_src = os.path.join(project_dir, APK_RELATIVE_PATH)
        if not os.path.isfile(apk_src):
            raise ArtifactMissingError(f"Release APK not found at {APK_RELATIVE_PATH}")

        rel = self._copy_into_place(apk_src, app_id, f"{job_id}.apk")
        size = os.stat(os.path.join(self.artifacts_root, rel)).st_size

        bundle_rel = None
        aab_src = os.path.join(project_dir, AAB_RELATIVE_PATH)
        if os.path.isfile(aab_src):
            bundle_rel = self._copy_into_place(aab_src, app_id, f"{job_id}.aab")
        else:
            logger.info("No app bundle produced for job %s", job_id)

        return CommittedArtifact(path=rel, size=size, bundle_path=bundle_rel)

    def commit(
        self,
        project_dir: str,
        app_id: str,
        job_id: str,
        package_name: str,
        version_code: int,
        build_logs: str,
    ) -> App:
        artifact = self.store(project_dir, app_id, job_id)
        app = self.apps.update_build(
            app_id,
            status=AppStatus.LIVE,
            package_name=package_name,
            version_code=version_code,
            artifact_path=artifact.path,
            artifact_mime=APK_MIME,
            artifact_size=artifact.size,
            bundle_path=artifact.bundle_path,
            build_error=None,
            build_logs=build_logs,
            last_build_at=time.time(),
        )
        logger.info("App %s live with %s (%d bytes)", app_id, artifact.path, artifact.size)
        self.prune(app_id, [artifact.path, artifact.bundle_path])
        return app

    def prune(self, app_id: str, protected: Iterable[Optional[str]]) -> List[str]:
        """Best-effort cleanup of older artifacts of one app."""
        app_dir = os.path.join(self.artifacts_root, app_id)
        keep_paths = [os.path.join(self.artifacts_root, p) for p in protected if p]
        try:
            removed = prune_app_artifacts(app_dir, keep_paths, keep=self.keep, retention_days=self.retention_days)
        except OSError as e:
            logger.warning("Could not prune artifacts of app %s: %s", app_id, e)
            return []
        if removed:
            logger.info("Pruned %d old artifacts of app %s", len(removed), app_id)
        return removed

def prune_app_artifacts(
    app_dir: str,
    protected: Iterable[str] = (),
    keep: int = ARTIFACT_MAX_PER_APP,
    retention_days: int = ARTIFACT_RETENTION_DAYS,
    now: Optional[float] = None,
) -> List[str]:
    """Delete old artifacts of one app; returns the removed paths.

    Only the newest `keep` files of each kind (apk, aab) stay, and of those
    only the ones inside the retention window. Protected paths (what the app currently points at) are
    never removed.
    """
    if not os.path.isdir(app_dir):
        return []
    now = time.time() if now is None else now
    protected = {os.path.abspath(p) for p in protected}
    cutoff = now - retention_days * 86400 if retention_days > 0 else None

    entries = []
    for name in os.listdir(app_dir):
        path = os.path.join(app_dir, name)
        if os.path.isfile(path) and name.lower().endswith(ARTIFACT_SUFFIXES):
            entries.append((os.stat(path).st_mtime, path))
    entries.sort(reverse=True)

    removed = []
    seen = {}  # suffix -> files of that kind already ranked
    for mtime, path in entries:
        suffix = os.path.splitext(path)[1].lower()
        rank = seen.get(suffix, 0)
        seen[suffix] = rank + 1
        if os.path.abspath(path) in protected:
            continue
        if rank < keep and (cutoff is None or mtime >= cutoff):
            continue
        os.remove(path)
        removed.append(path)
    return removed
