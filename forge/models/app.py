import time
from typing import Dict, Optional
from sqlmodel import SQLModel, Field, JSON
from forge.models.enums import AppStatus

class App(SQLModel, table=True):
    id: str = Field(primary_key=True)
    owner_id: str
    name: str
    url: str
    primary_color: str = Field(default="#2563EB")
    icon_color: Optional[str] = None
    icon_url: Optional[str] = None
    features: Dict = Field(default_factory=dict, sa_type=JSON)

    status: AppStatus = Field(default=AppStatus.DRAFT)
    package_name: Optional[str] = None
    version_code: int = Field(default=0)

    # Written together with status=live, after the copy has completed
    artifact_path: Optional[str] = None
    artifact_mime: Optional[str] = None
    artifact_size: Optional[int] = None
    bundle_path: Optional[str] = None

    build_logs: Optional[str] = None
    build_error: Optional[str] = None
    last_build_at: Optional[float] = None

    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)
