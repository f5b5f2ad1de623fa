"""Configuration models for watchdog deployments and runtime manifests."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

ARTIFACT_NAME = "watchdog.yaml"
REFERENCE_HASH_NAME = "watchdog.sha256"
LOG_FILE_NAME = "watchdog.log"


class StartMode(str, Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"
    DISABLED = "disabled"


class MissingReferencePolicy(str, Enum):
    HALT = "halt"
    REPORT_ONLY = "report_only"


class DeploymentAction(str, Enum):
    INSTALL = "install"
    REMOVE = "remove"


class ServiceTarget(BaseModel):
    """A critical service the watchdog keeps running."""

    name: str = Field(..., description="Operating-system service identifier.")
    desired_start_mode: StartMode = Field(
        default=StartMode.AUTOMATIC,
        description="Start mode to enforce; only automatic is ever enforced.",
    )
    max_retries: int = Field(
        default=3, ge=1, description="Upper bound on start requests issued per run."
    )
    retry_delay: float = Field(
        default=10.0,
        ge=0,
        description="Seconds to wait after a start request before re-querying state.",
    )

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Service name must not be empty")
        return normalized


class RuntimeManifest(BaseModel):
    """Everything a watchdog run needs; the reference hash covers this document."""

    services: list[ServiceTarget] = Field(default_factory=list)
    reference_hash_path: Path = Field(..., description="Where the reference hash is stored.")
    reporting_field: str | None = Field(
        default=None, description="Monitoring field that receives activity records."
    )
    event_source: str = Field(default="ServiceWatchdog")
    service_event_id: int = Field(default=1002)


class DeploymentConfig(BaseModel):
    """Explicit configuration for one install or remove operation."""

    action: DeploymentAction
    root_directory: Path
    trigger_name: str = Field(default="ServiceWatchdog")
    interval_minutes: int = Field(default=15, ge=1)
    legacy_trigger_name: str | None = None
    reporting_field: str | None = None
    event_source: str = Field(default="ServiceWatchdog")
    event_log_path: Path | None = None
    services: list[ServiceTarget] = Field(default_factory=list)
    missing_reference_policy: MissingReferencePolicy = Field(default=MissingReferencePolicy.HALT)

    @property
    def artifact_path(self) -> Path:
        return self.root_directory / ARTIFACT_NAME

    @property
    def reference_hash_path(self) -> Path:
        return self.root_directory / REFERENCE_HASH_NAME

    @property
    def log_path(self) -> Path:
        return self.root_directory / LOG_FILE_NAME

    def to_manifest(self) -> RuntimeManifest:
        return RuntimeManifest(
            services=list(self.services),
            reference_hash_path=self.reference_hash_path,
            reporting_field=self.reporting_field,
            event_source=self.event_source,
        )


__all__ = [
    "ARTIFACT_NAME",
    "LOG_FILE_NAME",
    "REFERENCE_HASH_NAME",
    "DeploymentAction",
    "DeploymentConfig",
    "MissingReferencePolicy",
    "RuntimeManifest",
    "ServiceTarget",
    "StartMode",
]
