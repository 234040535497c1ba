import re
from pydantic import BaseModel, Field, field_validator
from typing import Optional

# Template placeholder syntax; user text must never look like one
TOKEN_RE = re.compile(r"__[A-Z][A-Z0-9_]*__")

class ProjectFeatures(BaseModel):
    pull_to_refresh: bool = True
    offline_screen: bool = True
    bottom_nav: bool = False

class ProjectConfig(BaseModel):
    app_id: str
    app_name: str
    start_url: str
    primary_color: str = "#2563EB"
    icon_color: Optional[str] = None
    package_name: str
    version_code: int = Field(ge=1)
    icon_url: Optional[str] = None
    features: ProjectFeatures = Field(default_factory=ProjectFeatures)

    @field_validator("app_name", "start_url")
    @classmethod
    def no_placeholders(cls, v: str) -> str:
        m = TOKEN_RE.search(v)
        if m:
            raise ValueError(f"must not contain the reserved placeholder {m.group(0)}")
        return v
