"""Recurring job registration on the host scheduler."""

from __future__ import annotations

import os
import re
import shlex
import subprocess
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Protocol, Sequence
from xml.sax.saxutils import escape

from ..config import ConfigurationError
from .runner import CommandResult, CommandRunner


@dataclass(slots=True)
class RecurringJob:
    """A job that fires at host startup and then every ``interval_minutes``."""

    name: str
    command: tuple[str, ...]
    interval_minutes: int
    at_startup: bool = True
    privileged: bool = True
    elevation: str = "highest"
    description: str = "Service watchdog supervision run"


class JobScheduler(Protocol):
    """Minimal recurring-trigger API used by the deployment manager."""

    def validate_name(self, name: str) -> None:
        ...

    def exists(self, name: str) -> bool:
        ...

    def register(self, job: RecurringJob) -> CommandResult:
        ...

    def unregister(self, name: str) -> CommandResult:
        ...


_TASK_XML = """<?xml version="1.0" encoding="UTF-16"?>
<Task version="1.2" xmlns="http://schemas.microsoft.com/windows/2004/02/mit/task">
  <RegistrationInfo>
    <Description>{description}</Description>
  </RegistrationInfo>
  <Triggers>
{triggers}
  </Triggers>
  <Principals>
    <Principal id="Author">
      <UserId>S-1-5-18</UserId>
      <RunLevel>{run_level}</RunLevel>
    </Principal>
  </Principals>
  <Settings>
    <MultipleInstancesPolicy>IgnoreNew</MultipleInstancesPolicy>
    <DisallowStartIfOnBatteries>false</DisallowStartIfOnBatteries>
    <StopIfGoingOnBatteries>false</StopIfGoingOnBatteries>
    <StartWhenAvailable>true</StartWhenAvailable>
    <RunOnlyIfIdle>false</RunOnlyIfIdle>
    <ExecutionTimeLimit>PT1H</ExecutionTimeLimit>
    <Enabled>true</Enabled>
  </Settings>
  <Actions Context="Author">
    <Exec>
      <Command>{command}</Command>
      <Arguments>{arguments}</Arguments>
    </Exec>
  </Actions>
</Task>
"""

_REPETITION = """      <Repetition>
        <Interval>PT{interval}M</Interval>
        <StopAtDurationEnd>false</StopAtDurationEnd>
      </Repetition>"""


class WindowsTaskScheduler:
    """Register scheduled tasks through ``schtasks.exe`` and task XML."""

    _ILLEGAL_CHARACTERS = set('<>:"/\\|?*')
    _TASK_NOT_FOUND = "cannot find"

    def __init__(
        self,
        runner: CommandRunner | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._runner = runner or CommandRunner()
        self._clock = clock or datetime.now

    def validate_name(self, name: str) -> None:
        if not name or not name.strip():
            raise ConfigurationError("Trigger name must not be empty")
        illegal = sorted({char for char in name if char in self._ILLEGAL_CHARACTERS or ord(char) < 32})
        if illegal:
            raise ConfigurationError(
                f"Trigger name {name!r} contains characters Task Scheduler rejects: {illegal!r}"
            )

    def render_xml(self, job: RecurringJob) -> str:
        repetition = _REPETITION.format(interval=job.interval_minutes)
        start_boundary = self._clock().replace(microsecond=0).isoformat()
        triggers = [
            "    <TimeTrigger>\n"
            f"{repetition}\n"
            f"      <StartBoundary>{start_boundary}</StartBoundary>\n"
            "      <Enabled>true</Enabled>\n"
            "    </TimeTrigger>"
        ]
        if job.at_startup:
            triggers.insert(
                0,
                "    <BootTrigger>\n"
                "      <Enabled>true</Enabled>\n"
                "    </BootTrigger>",
            )
        return _TASK_XML.format(
            description=escape(job.description),
            triggers="\n".join(triggers),
            run_level="HighestAvailable" if job.elevation == "highest" else "LeastPrivilege",
            command=escape(job.command[0]),
            arguments=escape(subprocess.list2cmdline(job.command[1:])),
        )

    def exists(self, name: str) -> bool:
        return self._runner.run("schtasks.exe", "/Query", "/TN", name).ok

    def register(self, job: RecurringJob) -> CommandResult:
        handle, raw_path = tempfile.mkstemp(prefix="watchdog-task-", suffix=".xml")
        os.close(handle)
        xml_path = Path(raw_path)
        try:
            xml_path.write_text(self.render_xml(job), encoding="utf-16")
            # /F overwrites an existing task of the same name instead of failing.
            return self._runner.run(
                "schtasks.exe", "/Create", "/TN", job.name, "/XML", str(xml_path), "/F"
            )
        except OSError as exc:
            return CommandResult.failure(("schtasks.exe", "/Create", "/TN", job.name), str(exc))
        finally:
            xml_path.unlink(missing_ok=True)

    def unregister(self, name: str) -> CommandResult:
        query = self._runner.run("schtasks.exe", "/Query", "/TN", name)
        if not query.ok:
            if self._TASK_NOT_FOUND in (query.stderr + query.stdout).lower():
                return CommandResult.success(("schtasks.exe", "/Delete", "/TN", name), "not registered")
            return query
        return self._runner.run("schtasks.exe", "/Delete", "/TN", name, "/F")


class SystemdTimerScheduler:
    """Register a oneshot service plus timer unit pair with systemd."""

    _NAME_PATTERN = re.compile(r"^[A-Za-z0-9:_.\-]+$")

    def __init__(
        self,
        runner: CommandRunner | None = None,
        *,
        unit_directory: Path = Path("/etc/systemd/system"),
    ) -> None:
        self._runner = runner or CommandRunner()
        self._unit_directory = Path(unit_directory)

    def validate_name(self, name: str) -> None:
        if not name or not self._NAME_PATTERN.match(name):
            raise ConfigurationError(
                f"Trigger name {name!r} is not a valid systemd unit name "
                "(allowed: letters, digits, ':', '_', '.', '-')"
            )

    def unit_paths(self, name: str) -> tuple[Path, Path]:
        return (
            self._unit_directory / f"{name}.service",
            self._unit_directory / f"{name}.timer",
        )

    def render_units(self, job: RecurringJob) -> tuple[str, str]:
        service = "\n".join(
            [
                "[Unit]",
                f"Description={job.description}",
                "",
                "[Service]",
                "Type=oneshot",
                "User=root",
                f"ExecStart={shlex.join(job.command)}",
                "",
            ]
        )
        timer_lines = ["[Unit]", f"Description={job.description} timer", "", "[Timer]"]
        if job.at_startup:
            timer_lines.append("OnBootSec=1min")
        timer_lines += [
            f"OnUnitActiveSec={job.interval_minutes}min",
            "Persistent=true",
            "",
            "[Install]",
            "WantedBy=timers.target",
            "",
        ]
        return service, "\n".join(timer_lines)

    def exists(self, name: str) -> bool:
        return self.unit_paths(name)[1].exists()

    def register(self, job: RecurringJob) -> CommandResult:
        service_path, timer_path = self.unit_paths(job.name)
        service_text, timer_text = self.render_units(job)
        try:
            self._unit_directory.mkdir(parents=True, exist_ok=True)
            service_path.write_text(service_text, encoding="utf-8")
            timer_path.write_text(timer_text, encoding="utf-8")
        except OSError as exc:
            return CommandResult.failure(("systemctl", "enable", timer_path.name), str(exc))

        reload = self._runner.run("systemctl", "daemon-reload")
        if not reload.ok:
            return reload
        return self._runner.run("systemctl", "enable", "--now", timer_path.name)

    def unregister(self, name: str) -> CommandResult:
        service_path, timer_path = self.unit_paths(name)
        if not timer_path.exists() and not service_path.exists():
            return CommandResult.success(("systemctl", "disable", timer_path.name), "not registered")

        disabled = self._runner.run("systemctl", "disable", "--now", timer_path.name)
        try:
            timer_path.unlink(missing_ok=True)
            service_path.unlink(missing_ok=True)
        except OSError as exc:
            return CommandResult.failure(("systemctl", "disable", timer_path.name), str(exc))
        reload = self._runner.run("systemctl", "daemon-reload")
        return disabled if not disabled.ok else reload


def quote_command(command: Sequence[str]) -> str:
    if os.name == "nt":
        return subprocess.list2cmdline(list(command))
    return shlex.join(command)


__all__ = [
    "JobScheduler",
    "RecurringJob",
    "SystemdTimerScheduler",
    "WindowsTaskScheduler",
    "quote_command",
]
