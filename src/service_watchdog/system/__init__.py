"""Adapters for the host service manager, scheduler and file permissions."""

from .backends import HostBackend, create_backend, detect_backend_name
from .runner import CommandNotFoundError, CommandResult, CommandRunner, CommandRunnerError
from .scheduler import JobScheduler, RecurringJob, SystemdTimerScheduler, WindowsTaskScheduler
from .services import ServiceManager, ServiceStatus, SystemdServiceManager, WindowsServiceManager

__all__ = [
    "CommandNotFoundError",
    "CommandResult",
    "CommandRunner",
    "CommandRunnerError",
    "HostBackend",
    "JobScheduler",
    "RecurringJob",
    "ServiceManager",
    "ServiceStatus",
    "SystemdServiceManager",
    "SystemdTimerScheduler",
    "WindowsServiceManager",
    "WindowsTaskScheduler",
    "create_backend",
    "detect_backend_name",
]
