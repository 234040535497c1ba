import time
from typing import Any, Dict, List, Optional
from sqlmodel import select
from forge.repositories.base_repository import BaseRepository
from forge.models.app import App

BUILD_FIELDS = {
    "status",
    "package_name",
    "version_code",
    "artifact_path",
    "artifact_mime",
    "artifact_size",
    "bundle_path",
    "build_logs",
    "build_error",
    "last_build_at",
}

class AppRepository(BaseRepository):
    def get(self, app_id: str) -> Optional[App]:
        return self.session.get(App, app_id, populate_existing=True)

    def create(self, app: App) -> App:
        self.session.add(app)
        self.session.commit()
        self.session.refresh(app)
        return app

    def update_build(self, app_id: str, **fields: Any) -> Optional[App]:
        """Write a set of build fields in one commit.

        Only the columns this pipeline owns may be touched; anything else is a
        programming error.
        """
        unknown = set(fields) - BUILD_FIELDS
        if unknown:
            raise ValueError(f"Not a build field: {', '.join(sorted(unknown))}")

        app = self.get(app_id)
        if not app:
            return None
        for key, value in fields.items():
            setattr(app, key, value)
        app.updated_at = time.time()
        self.session.add(app)
        self.session.commit()
        self.session.refresh(app)
        return app

    def live_artifacts(self) -> Dict[str, List[str]]:
        """Artifact paths currently referenced by each app."""
        statement = select(App.id, App.artifact_path, App.bundle_path)
        out: Dict[str, List[str]] = {}
        for app_id, artifact_path, bundle_path in self.session.exec(statement).all():
            out[app_id] = [p for p in (artifact_path, bundle_path) if p]
        return out
