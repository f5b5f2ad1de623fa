"""Best-effort activity reporting to an external monitoring sink."""

from __future__ import annotations

import logging
import socket
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Protocol

from .outcomes import ActivityRecord
from .system.runner import CommandNotFoundError, CommandRunner

logger = logging.getLogger(__name__)


class ActivitySinkError(RuntimeError):
    """Raised by a sink when a record could not be delivered."""


class ActivitySink(Protocol):
    def submit(self, field: str, record: ActivityRecord) -> None:
        ...


class NullActivitySink:
    """Used when no monitoring agent is available on the host."""

    def submit(self, field: str, record: ActivityRecord) -> None:
        return None


class CommandActivitySink:
    """Write records into a monitoring agent's custom field through its CLI."""

    def __init__(self, executable: Path, runner: CommandRunner | None = None) -> None:
        self._executable = Path(executable)
        self._runner = runner or CommandRunner(timeout=15.0)

    @property
    def executable(self) -> Path:
        return self._executable

    def submit(self, field: str, record: ActivityRecord) -> None:
        result = self._runner.run(str(self._executable), "set", field, record.render())
        if not result.ok:
            raise ActivitySinkError(f"{self._executable.name} rejected record ({result.describe()})")


def probe_sink(command: str | None, runner: CommandRunner | None = None) -> ActivitySink:
    """Return a command-backed sink when ``command`` resolves, else a no-op sink."""

    if not command:
        return NullActivitySink()
    try:
        executable = CommandRunner.resolve(command)
    except CommandNotFoundError as exc:
        logger.info("Monitoring sink unavailable, activity stays local: %s", exc)
        return NullActivitySink()
    return CommandActivitySink(executable, runner)


class ActivityReporter:
    """Timestamp, tag and forward activity messages; delivery failures are swallowed."""

    def __init__(
        self,
        sink: ActivitySink,
        *,
        field: str | None = None,
        hostname: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._sink = sink
        self._field = field
        self._hostname = hostname or socket.gethostname()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def report(self, message: str, *, level: str = "info") -> ActivityRecord:
        record = ActivityRecord(
            time=self._clock(),
            hostname=self._hostname,
            message=message,
            level=level,
        )
        logger.log(
            logging.WARNING if level in {"warning", "error"} else logging.INFO,
            "Activity: %s",
            message,
        )
        if self._field is None:
            return record
        try:
            self._sink.submit(self._field, record)
        except Exception as exc:
            logger.debug("Activity record not delivered: %s", exc)
        return record


__all__ = [
    "ActivityReporter",
    "ActivitySink",
    "ActivitySinkError",
    "CommandActivitySink",
    "NullActivitySink",
    "probe_sink",
]
