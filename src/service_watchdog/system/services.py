"""Service control manager adapters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from ..models import StartMode
from .runner import CommandResult, CommandRunner


@dataclass(slots=True)
class ServiceStatus:
    name: str
    exists: bool
    running: bool = False
    start_mode: StartMode | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, name: str, error: str) -> "ServiceStatus":
        return cls(name=name, exists=True, error=error)


class ServiceManager(Protocol):
    """Minimal service control API used by the remediator."""

    def query(self, name: str) -> ServiceStatus:
        ...

    def set_start_mode(self, name: str, mode: StartMode) -> CommandResult:
        ...

    def start(self, name: str) -> CommandResult:
        ...


def _sc_field(output: str, key: str) -> str | None:
    for line in output.splitlines():
        label, sep, value = line.partition(":")
        if sep and label.strip().upper() == key:
            return value.strip()
    return None


class WindowsServiceManager:
    """Drive the Windows service control manager through ``sc.exe``."""

    SERVICE_DOES_NOT_EXIST = 1060
    SERVICE_ALREADY_RUNNING = 1056

    _START_TYPES = {
        "AUTO_START": StartMode.AUTOMATIC,
        "BOOT_START": StartMode.AUTOMATIC,
        "SYSTEM_START": StartMode.AUTOMATIC,
        "DEMAND_START": StartMode.MANUAL,
        "DISABLED": StartMode.DISABLED,
    }
    _START_ARGUMENTS = {
        StartMode.AUTOMATIC: "auto",
        StartMode.MANUAL: "demand",
        StartMode.DISABLED: "disabled",
    }

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self._runner = runner or CommandRunner()

    def query(self, name: str) -> ServiceStatus:
        state = self._runner.run("sc.exe", "query", name)
        if state.returncode == self.SERVICE_DOES_NOT_EXIST:
            return ServiceStatus(name=name, exists=False)
        if not state.ok:
            return ServiceStatus.failed(name, f"sc.exe query failed ({state.describe()})")

        state_value = _sc_field(state.stdout, "STATE")
        if state_value is None:
            return ServiceStatus.failed(name, "sc.exe query output has no STATE line")
        running = "RUNNING" in state_value.split()

        config = self._runner.run("sc.exe", "qc", name)
        if not config.ok:
            return ServiceStatus.failed(name, f"sc.exe qc failed ({config.describe()})")
        start_type = _sc_field(config.stdout, "START_TYPE") or ""
        start_mode = next(
            (mode for token, mode in self._START_TYPES.items() if token in start_type.split()),
            None,
        )
        return ServiceStatus(name=name, exists=True, running=running, start_mode=start_mode)

    def set_start_mode(self, name: str, mode: StartMode) -> CommandResult:
        # sc.exe expects the option and its value as separate arguments: "start=" "auto".
        return self._runner.run("sc.exe", "config", name, "start=", self._START_ARGUMENTS[mode])

    def start(self, name: str) -> CommandResult:
        result = self._runner.run("sc.exe", "start", name)
        if result.returncode == self.SERVICE_ALREADY_RUNNING:
            return CommandResult.success(result.args, "already running")
        return result


class SystemdServiceManager:
    """Drive systemd units through ``systemctl``."""

    _AUTOMATIC_STATES = {"enabled", "enabled-runtime", "static", "generated", "alias", "transient"}
    _DISABLED_STATES = {"masked", "masked-runtime"}

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self._runner = runner or CommandRunner()

    @staticmethod
    def unit_name(name: str) -> str:
        return name if "." in name else f"{name}.service"

    def query(self, name: str) -> ServiceStatus:
        unit = self.unit_name(name)
        result = self._runner.run(
            "systemctl",
            "show",
            unit,
            "--property=LoadState,ActiveState,UnitFileState",
        )
        if not result.ok:
            return ServiceStatus.failed(name, f"systemctl show failed ({result.describe()})")

        properties: dict[str, str] = {}
        for line in result.stdout.splitlines():
            key, sep, value = line.partition("=")
            if sep:
                properties[key.strip()] = value.strip()

        load_state = properties.get("LoadState")
        if load_state is None:
            return ServiceStatus.failed(name, "systemctl show output has no LoadState")
        if load_state == "not-found":
            return ServiceStatus(name=name, exists=False)

        unit_file_state = properties.get("UnitFileState", "")
        if unit_file_state in self._AUTOMATIC_STATES:
            start_mode = StartMode.AUTOMATIC
        elif unit_file_state in self._DISABLED_STATES or load_state == "masked":
            start_mode = StartMode.DISABLED
        else:
            start_mode = StartMode.MANUAL

        running = properties.get("ActiveState") in {"active", "reloading"}
        return ServiceStatus(name=name, exists=True, running=running, start_mode=start_mode)

    def set_start_mode(self, name: str, mode: StartMode) -> CommandResult:
        unit = self.unit_name(name)
        if mode is StartMode.DISABLED:
            return self._runner.run("systemctl", "mask", unit)
        unmasked = self._runner.run("systemctl", "unmask", unit)
        if not unmasked.ok:
            return unmasked
        verb = "enable" if mode is StartMode.AUTOMATIC else "disable"
        return self._runner.run("systemctl", verb, unit)

    def start(self, name: str) -> CommandResult:
        return self._runner.run("systemctl", "start", "--no-block", self.unit_name(name))


__all__ = [
    "ServiceManager",
    "ServiceStatus",
    "SystemdServiceManager",
    "WindowsServiceManager",
]
