from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from service_watchdog.config import ConfigurationError
from service_watchdog.system.runner import CommandResult, FakeCommandRunner
from service_watchdog.system.scheduler import (
    RecurringJob,
    SystemdTimerScheduler,
    WindowsTaskScheduler,
)


def _job(name: str = "ServiceWatchdog", interval: int = 15) -> RecurringJob:
    return RecurringJob(
        name=name,
        command=("C:\\Python\\python.exe", "-m", "service_watchdog", "run", "--manifest", "C:\\Watch Dog\\watchdog.yaml"),
        interval_minutes=interval,
    )


def test_task_xml_has_startup_and_recurring_triggers() -> None:
    scheduler = WindowsTaskScheduler(FakeCommandRunner(), clock=lambda: datetime(2024, 1, 2, 3, 4, 5, 678))

    xml = scheduler.render_xml(_job(interval=30))

    assert "<BootTrigger>" in xml
    assert "<TimeTrigger>" in xml
    assert xml.count("<Interval>PT30M</Interval>") == 1
    boot = xml[xml.index("<BootTrigger>") : xml.index("</BootTrigger>")]
    assert "<Repetition>" not in boot
    assert "<StartBoundary>2024-01-02T03:04:05</StartBoundary>" in xml
    assert "<UserId>S-1-5-18</UserId>" in xml
    assert "<RunLevel>HighestAvailable</RunLevel>" in xml
    assert "<MultipleInstancesPolicy>IgnoreNew</MultipleInstancesPolicy>" in xml
    assert '"C:\\Watch Dog\\watchdog.yaml"' in xml


@pytest.mark.parametrize("name", ["", "  ", "bad/name", "what?", "tab\tname"])
def test_task_names_rejected(name: str) -> None:
    with pytest.raises(ConfigurationError):
        WindowsTaskScheduler(FakeCommandRunner()).validate_name(name)


def test_task_register_uses_xml_and_force() -> None:
    captured: dict[str, str] = {}

    def handler(args: tuple[str, ...]) -> CommandResult:
        if "/XML" in args:
            captured["xml"] = Path(args[args.index("/XML") + 1]).read_text(encoding="utf-16")
        return CommandResult(args=args, returncode=0, stdout="SUCCESS", stderr="")

    runner = FakeCommandRunner(handler=handler)
    result = WindowsTaskScheduler(runner).register(_job())

    assert result.ok
    args = runner.invocations[0]
    assert args[:4] == ("schtasks.exe", "/Create", "/TN", "ServiceWatchdog")
    assert args[-1] == "/F"
    assert not Path(args[args.index("/XML") + 1]).exists()
    assert "<BootTrigger>" in captured["xml"]


def test_task_unregister_absent_is_success() -> None:
    runner = FakeCommandRunner([CommandResult(("schtasks.exe",), 1, "", "ERROR: The system cannot find the file specified.")])

    result = WindowsTaskScheduler(runner).unregister("ServiceWatchdog")

    assert result.ok
    assert result.stdout == "not registered"
    assert len(runner.invocations) == 1


def test_task_unregister_query_failure_is_reported() -> None:
    runner = FakeCommandRunner([CommandResult(("schtasks.exe",), 1, "", "ERROR: Access is denied.")])

    result = WindowsTaskScheduler(runner).unregister("ServiceWatchdog")

    assert not result.ok
    assert "Access is denied." in result.describe()
    assert len(runner.invocations) == 1


def test_task_unregister_present_deletes() -> None:
    runner = FakeCommandRunner()

    assert WindowsTaskScheduler(runner).unregister("ServiceWatchdog").ok
    assert runner.invocations[-1] == ("schtasks.exe", "/Delete", "/TN", "ServiceWatchdog", "/F")


def test_systemd_units_render() -> None:
    scheduler = SystemdTimerScheduler(FakeCommandRunner(), unit_directory=Path("/unused"))
    job = RecurringJob(name="service-watchdog", command=("/usr/bin/python3", "-m", "service_watchdog", "run"), interval_minutes=5)

    service, timer = scheduler.render_units(job)

    assert "Type=oneshot" in service
    assert "User=root" in service
    assert "ExecStart=/usr/bin/python3 -m service_watchdog run" in service
    assert "OnBootSec=1min" in timer
    assert "OnUnitActiveSec=5min" in timer
    assert "WantedBy=timers.target" in timer


def test_systemd_register_and_unregister(tmp_path: Path) -> None:
    runner = FakeCommandRunner()
    scheduler = SystemdTimerScheduler(runner, unit_directory=tmp_path)
    job = RecurringJob(name="service-watchdog", command=("/usr/bin/python3", "-m", "service_watchdog", "run"), interval_minutes=15)

    assert not scheduler.exists(job.name)
    assert scheduler.register(job).ok
    assert scheduler.exists(job.name)
    assert (tmp_path / "service-watchdog.service").exists()
    assert runner.invocations == [
        ("systemctl", "daemon-reload"),
        ("systemctl", "enable", "--now", "service-watchdog.timer"),
    ]

    assert scheduler.unregister(job.name).ok
    assert not scheduler.exists(job.name)
    assert not (tmp_path / "service-watchdog.service").exists()
    assert runner.invocations[-2:] == [
        ("systemctl", "disable", "--now", "service-watchdog.timer"),
        ("systemctl", "daemon-reload"),
    ]


def test_systemd_unregister_absent_runs_nothing(tmp_path: Path) -> None:
    runner = FakeCommandRunner()

    result = SystemdTimerScheduler(runner, unit_directory=tmp_path).unregister("service-watchdog")

    assert result.ok
    assert runner.invocations == []


def test_systemd_register_reports_enable_failure(tmp_path: Path) -> None:
    runner = FakeCommandRunner(
        [
            CommandResult(("systemctl",), 0, "", ""),
            CommandResult(("systemctl",), 1, "", "Access denied"),
        ]
    )

    result = SystemdTimerScheduler(runner, unit_directory=tmp_path).register(_job("service-watchdog"))

    assert not result.ok
    assert result.describe() == "exit 1: Access denied"


@pytest.mark.parametrize("name", ["", "has space", "slash/name"])
def test_systemd_names_rejected(name: str) -> None:
    with pytest.raises(ConfigurationError):
        SystemdTimerScheduler(FakeCommandRunner()).validate_name(name)
