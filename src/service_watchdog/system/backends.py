"""Host backend selection."""

from __future__ import annotations

import os
from dataclasses import dataclass

from ..config import ConfigurationError
from .permissions import FilePermissions, PosixFilePermissions, WindowsFilePermissions
from .runner import CommandRunner
from .scheduler import JobScheduler, SystemdTimerScheduler, WindowsTaskScheduler
from .services import ServiceManager, SystemdServiceManager, WindowsServiceManager

WINDOWS_MAX_PATH = 260
POSIX_FALLBACK_MAX_PATH = 4096


@dataclass(slots=True)
class HostBackend:
    name: str
    services: ServiceManager
    scheduler: JobScheduler
    permissions: FilePermissions
    max_path: int


def detect_backend_name() -> str:
    return "windows" if os.name == "nt" else "systemd"


def _posix_max_path() -> int:
    try:
        return int(os.pathconf("/", "PC_PATH_MAX"))
    except (AttributeError, OSError, ValueError):
        return POSIX_FALLBACK_MAX_PATH


def create_backend(name: str = "auto", runner: CommandRunner | None = None) -> HostBackend:
    """Build the service, scheduler and permission adapters for this host."""

    resolved = detect_backend_name() if name == "auto" else name
    runner = runner or CommandRunner()
    if resolved == "windows":
        return HostBackend(
            name="windows",
            services=WindowsServiceManager(runner),
            scheduler=WindowsTaskScheduler(runner),
            permissions=WindowsFilePermissions(runner),
            max_path=WINDOWS_MAX_PATH,
        )
    if resolved == "systemd":
        return HostBackend(
            name="systemd",
            services=SystemdServiceManager(runner),
            scheduler=SystemdTimerScheduler(runner),
            permissions=PosixFilePermissions(),
            max_path=_posix_max_path(),
        )
    raise ConfigurationError(f"Unknown backend {name!r}; expected auto, windows or systemd")


__all__ = ["HostBackend", "create_backend", "detect_backend_name"]
