"""Install, re-install and remove a watchdog deployment."""

from __future__ import annotations

import logging
import os
import shutil
import sys
from dataclasses import dataclass, field
from pathlib import Path

from .config import ConfigurationError
from .integrity import compute_digest
from .manifest import dump_manifest
from .models import ARTIFACT_NAME, REFERENCE_HASH_NAME, DeploymentAction, DeploymentConfig
from .storage import EventLog
from .system.backends import HostBackend
from .system.scheduler import RecurringJob, quote_command

logger = logging.getLogger(__name__)

_LONGEST_FILE_NAME = max(len(ARTIFACT_NAME), len(REFERENCE_HASH_NAME)) + len(".tmp") + 2


class DeploymentError(RuntimeError):
    """Raised by a deployment step that must abort the install."""


@dataclass(slots=True)
class StepResult:
    name: str
    ok: bool
    message: str = ""
    fatal: bool = False

    @property
    def label(self) -> str:
        if self.ok:
            return "[ok]"
        return "[FAIL]" if self.fatal else "[warn]"

    def render(self) -> str:
        return f"{self.label} {self.name}" + (f": {self.message}" if self.message else "")


@dataclass(slots=True)
class DeploymentReport:
    action: DeploymentAction
    steps: list[StepResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not any(step.fatal and not step.ok for step in self.steps)

    def record(self, name: str, ok: bool, message: str = "", *, fatal: bool = False) -> StepResult:
        step = StepResult(name=name, ok=ok, message=message, fatal=fatal and not ok)
        self.steps.append(step)
        level = logging.INFO if ok else (logging.ERROR if step.fatal else logging.WARNING)
        logger.log(level, "%s %s", step.label, name, extra={"action": self.action.value, "detail": message})
        return step

    def render(self) -> str:
        lines = [step.render() for step in self.steps]
        outcome = "succeeded" if self.ok else "FAILED"
        lines.append(f"{self.action.value.capitalize()} {outcome}")
        return "\n".join(lines)


class DeploymentManager:
    """Owns the root directory, its artifacts and the recurring trigger."""

    def __init__(
        self,
        backend: HostBackend,
        *,
        event_log: EventLog | None = None,
        python_executable: str | None = None,
    ) -> None:
        self._backend = backend
        self._event_log = event_log
        self._python = python_executable or sys.executable

    def validate(self, config: DeploymentConfig) -> None:
        """Reject configuration the host cannot honour; never touches the host."""

        root = config.root_directory
        if not str(root).strip():
            raise ConfigurationError("Root directory must not be empty")
        projected = len(str(root)) + _LONGEST_FILE_NAME
        if projected >= self._backend.max_path:
            raise ConfigurationError(
                f"Root directory {root} is too long: artifact paths would reach "
                f"{projected} characters (must stay below {self._backend.max_path})"
            )
        self._backend.scheduler.validate_name(config.trigger_name)
        if config.legacy_trigger_name:
            self._backend.scheduler.validate_name(config.legacy_trigger_name)
        if config.interval_minutes < 1:
            raise ConfigurationError("Interval must be at least one minute")

    def build_job(self, config: DeploymentConfig) -> RecurringJob:
        """Build the trigger command; halt-path escalation settings travel on it."""

        command = [
            self._python,
            "-m",
            "service_watchdog",
            "run",
            "--manifest",
            str(config.artifact_path),
            "--reference",
            str(config.reference_hash_path),
            "--event-source",
            config.event_source,
            "--missing-reference-policy",
            config.missing_reference_policy.value,
        ]
        if config.event_log_path is not None:
            command += ["--event-log", str(config.event_log_path)]
        if config.reporting_field:
            command += ["--reporting-field", config.reporting_field]
        return RecurringJob(
            name=config.trigger_name,
            command=tuple(command),
            interval_minutes=config.interval_minutes,
        )

    def apply(self, config: DeploymentConfig) -> DeploymentReport:
        if config.action is DeploymentAction.INSTALL:
            return self.install(config)
        return self.remove(config)

    def _retire_legacy_trigger(self, config: DeploymentConfig, report: DeploymentReport) -> None:
        legacy = config.legacy_trigger_name
        if not legacy or legacy == config.trigger_name:
            return
        result = self._backend.scheduler.unregister(legacy)
        report.record(
            f"retire legacy trigger {legacy}",
            result.ok,
            result.stdout.strip() if result.ok else result.describe(),
        )

    def install(self, config: DeploymentConfig) -> DeploymentReport:
        self.validate(config)
        report = DeploymentReport(DeploymentAction.INSTALL)
        scheduler = self._backend.scheduler

        self._retire_legacy_trigger(config, report)

        if scheduler.exists(config.trigger_name):
            report.record(
                f"existing trigger {config.trigger_name} found",
                True,
                "updating deployment in place",
            )

        try:
            self._write_artifacts(config, report)
        except DeploymentError:
            return report

        self._harden(config, report)
        self._ensure_event_source(config, report)

        job = self.build_job(config)
        result = scheduler.register(job)
        report.record(
            f"register trigger {config.trigger_name}",
            result.ok,
            (
                f"every {config.interval_minutes} min and at startup: {quote_command(job.command)}"
                if result.ok
                else result.describe()
            ),
            fatal=True,
        )
        return report

    def _write_artifacts(self, config: DeploymentConfig, report: DeploymentReport) -> None:
        root = config.root_directory
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            report.record(f"create {root}", False, str(exc), fatal=True)
            raise DeploymentError(str(exc)) from exc
        report.record(f"create {root}", True)

        artifact = config.artifact_path
        reference = config.reference_hash_path
        staged_artifact = artifact.with_name(f".{artifact.name}.tmp")
        staged_reference = reference.with_name(f".{reference.name}.tmp")

        try:
            staged_artifact.write_text(dump_manifest(config.to_manifest()), encoding="utf-8")
        except OSError as exc:
            report.record(f"write {artifact.name}", False, str(exc), fatal=True)
            staged_artifact.unlink(missing_ok=True)
            raise DeploymentError(str(exc)) from exc

        try:
            digest = compute_digest(staged_artifact)
            staged_reference.write_text(digest + "\n", encoding="utf-8")
            # Both files are renamed into place only after both are staged.
            os.replace(staged_artifact, artifact)
            os.replace(staged_reference, reference)
        except OSError as exc:
            report.record(f"persist {reference.name}", False, str(exc), fatal=True)
            staged_artifact.unlink(missing_ok=True)
            staged_reference.unlink(missing_ok=True)
            raise DeploymentError(str(exc)) from exc

        report.record(f"write {artifact.name}", True, str(artifact))
        report.record(f"persist {reference.name}", True, f"sha256 {digest}")

    def _harden(self, config: DeploymentConfig, report: DeploymentReport) -> None:
        for path, executable in ((config.artifact_path, True), (config.reference_hash_path, False)):
            result = self._backend.permissions.harden(path, executable=executable)
            report.record(
                f"restrict access to {path.name}",
                result.ok,
                "" if result.ok else result.describe(),
            )

    def _ensure_event_source(self, config: DeploymentConfig, report: DeploymentReport) -> None:
        if self._event_log is None:
            report.record(f"event source {config.event_source}", False, "no event log configured")
            return
        try:
            self._event_log.ensure_source(config.event_source)
        except Exception as exc:
            report.record(f"event source {config.event_source}", False, str(exc))
            return
        report.record(f"event source {config.event_source}", True)

    def remove(self, config: DeploymentConfig) -> DeploymentReport:
        self.validate(config)
        report = DeploymentReport(DeploymentAction.REMOVE)
        self._retire_legacy_trigger(config, report)

        result = self._backend.scheduler.unregister(config.trigger_name)
        report.record(
            f"unregister trigger {config.trigger_name}",
            result.ok,
            result.stdout.strip() if result.ok else result.describe(),
            fatal=True,
        )

        root = config.root_directory
        if not root.exists():
            report.record(f"delete {root}", True, "already absent")
            return report
        try:
            shutil.rmtree(root)
        except OSError as exc:
            report.record(f"delete {root}", False, str(exc), fatal=True)
        else:
            report.record(f"delete {root}", True)
        return report


__all__ = ["DeploymentError", "DeploymentManager", "DeploymentReport", "StepResult"]
