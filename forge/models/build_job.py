import time
from typing import Optional
from sqlmodel import SQLModel, Field
from forge.models.enums import BuildJobStatus

class BuildJob(SQLModel, table=True):
    id: str = Field(primary_key=True)
    app_id: str = Field(index=True)
    owner_id: str
    status: BuildJobStatus = Field(default=BuildJobStatus.QUEUED, index=True)
    attempts: int = Field(default=0)

    # Both set while running, both cleared otherwise
    lock_token: Optional[str] = None
    locked_at: Optional[float] = None

    error: Optional[str] = None

    created_at: float = Field(default_factory=time.time, index=True)
    updated_at: float = Field(default_factory=time.time)
