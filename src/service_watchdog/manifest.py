"""Runtime manifest and service list loading utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .models import RuntimeManifest, ServiceTarget

WINDOWS_CRITICAL_SERVICES = ("wuauserv", "BITS", "WinDefend", "EventLog", "Schedule")
SYSTEMD_CRITICAL_SERVICES = ("systemd-journald", "cron", "ssh")


class ManifestLoadError(RuntimeError):
    """Raised when a manifest or service list cannot be parsed."""


def _read_yaml(path: Path) -> Any:
    try:
        return yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise ManifestLoadError(f"Failed to read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ManifestLoadError(f"Failed to parse YAML in {path}: {exc}") from exc


def load_manifest(path: Path) -> RuntimeManifest:
    """Parse and validate a runtime manifest."""

    document = _read_yaml(path)
    if not isinstance(document, dict):
        raise ManifestLoadError(f"Manifest {path} must be a mapping")
    try:
        return RuntimeManifest.model_validate(document)
    except ValidationError as exc:
        raise ManifestLoadError(f"Manifest validation error in {path}: {exc}") from exc


def dump_manifest(manifest: RuntimeManifest) -> str:
    """Render a manifest deterministically so identical configs hash identically."""

    return yaml.safe_dump(manifest.model_dump(mode="json"), sort_keys=False)


def load_service_targets(path: Path) -> list[ServiceTarget]:
    """Load a service list; entries are bare names or per-service mappings.

    All entry errors are collected and raised together.
    """

    document = _read_yaml(path)
    if document is None:
        return []
    if isinstance(document, dict):
        document = document.get("services", [])
    if not isinstance(document, list):
        raise ManifestLoadError(f"Service list in {path} must be a sequence")

    targets: list[ServiceTarget] = []
    errors: list[str] = []
    for index, entry in enumerate(document):
        payload = {"name": entry} if isinstance(entry, str) else entry
        try:
            targets.append(ServiceTarget.model_validate(payload))
        except ValidationError as exc:
            errors.append(f"Service entry {index} in {path}: {exc}")

    if errors:
        raise ManifestLoadError("; ".join(errors))
    return targets


def default_service_targets(backend: str) -> list[ServiceTarget]:
    names = WINDOWS_CRITICAL_SERVICES if backend == "windows" else SYSTEMD_CRITICAL_SERVICES
    return [ServiceTarget(name=name) for name in names]


__all__ = [
    "ManifestLoadError",
    "default_service_targets",
    "dump_manifest",
    "load_manifest",
    "load_service_targets",
]
