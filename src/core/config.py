"""Configuration models and YAML loader for the pipeline engine."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from src.core.schemas import Stage
from src.pipeline.stages import TEMPLATES

STAGE_TEMPLATES = tuple(TEMPLATES)
EXPORT_FORMATS = ("csv", "excel", "pdf", "google_sheets")


class BackendPaths(BaseModel):
    """Endpoint paths on the application-data service."""

    applications: str = "/api/ats/applications"
    bulk: str = "/api/ats/applications/bulk"
    export: str = "/api/ats/applications/export"
    reveal_contact: str = "/api/applications/reveal-contact"


class BackendConfig(BaseModel):
    """Connection settings for the application-data service."""

    base_url: str = "http://localhost:3000"
    timeout_s: float = Field(default=30.0, gt=0)
    api_token: str | None = None
    paths: BackendPaths = Field(default_factory=BackendPaths)

    @field_validator("base_url")
    @classmethod
    def base_url_not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "base_url must not be empty"
            raise ValueError(msg)
        return v.strip().rstrip("/")


class WorkspaceConfig(BaseModel):
    """Pipeline stages and business rules for one workspace."""

    name: str = "Main Hiring Workspace"
    stage_template: str = "kanban"
    stages: list[Stage] = Field(default_factory=list)
    new_stage: str | None = None
    screening_stage: str | None = None
    privileged: bool = True
    page_size: int = Field(default=100, ge=1, le=1000)

    @field_validator("stage_template")
    @classmethod
    def template_known(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in STAGE_TEMPLATES:
            msg = f"stage_template must be one of {list(STAGE_TEMPLATES)}, got '{v}'"
            raise ValueError(msg)
        return v

    @field_validator("stages")
    @classmethod
    def stage_ids_unique(cls, v: list[Stage]) -> list[Stage]:
        ids = [s.id for s in v]
        if len(ids) != len(set(ids)):
            msg = "stage ids must be unique"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def stage_roles_known(self) -> "WorkspaceConfig":
        """Default the intake and screening stages from the stage set, and check explicit ones.

        Intake defaults to the first stage; screening to ``phone_screening`` when
        the stage set has one, else no stage clears new-lead flags.
        """
        ids = [s.id for s in self.stages] or [s.id for s in TEMPLATES[self.stage_template]]
        if self.new_stage is None:
            self.new_stage = ids[0]
        elif self.new_stage not in ids:
            msg = f"new_stage '{self.new_stage}' is not one of the workspace stages {ids}"
            raise ValueError(msg)
        if self.screening_stage is None:
            self.screening_stage = "phone_screening" if "phone_screening" in ids else None
        elif self.screening_stage not in ids:
            msg = f"screening_stage '{self.screening_stage}' is not one of the workspace stages {ids}"
            raise ValueError(msg)
        return self


class ExportConfig(BaseModel):
    """Where exported files land and which format is used by default."""

    output_dir: str = "exports"
    default_format: str = "csv"

    @field_validator("default_format")
    @classmethod
    def format_known(cls, v: str) -> str:
        if v not in EXPORT_FORMATS:
            msg = f"default_format must be one of {list(EXPORT_FORMATS)}, got '{v}'"
            raise ValueError(msg)
        return v


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    backend: BackendConfig = Field(default_factory=BackendConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
