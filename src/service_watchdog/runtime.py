"""One supervised watchdog run: integrity check, service sweep, report."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Callable

from . import integrity
from .manifest import ManifestLoadError, load_manifest
from .models import MissingReferencePolicy, RuntimeManifest
from .outcomes import IntegrityStatus, OutcomeKind, RunResult, ServiceOutcome
from .remediation import ServiceRemediator
from .reporting import ActivityReporter, ActivitySink
from .storage import EventLog, Severity
from .system.services import ServiceManager

logger = logging.getLogger(__name__)

DEFAULT_INTEGRITY_EVENT_ID = 1001


class WatchdogRuntime:
    """Run the watchdog state machine against a deployed artifact.

    The manifest is only trusted after the integrity check passes. Until then,
    escalations use the ``event_source``/``reporting_field`` given here.
    """

    def __init__(
        self,
        artifact_path: Path,
        reference_hash_path: Path,
        *,
        services: ServiceManager,
        sink: ActivitySink,
        event_log: EventLog,
        event_source: str = "ServiceWatchdog",
        integrity_event_id: int = DEFAULT_INTEGRITY_EVENT_ID,
        reporting_field: str | None = None,
        missing_reference_policy: MissingReferencePolicy = MissingReferencePolicy.HALT,
        sleep: Callable[[float], None] = time.sleep,
        hostname: str | None = None,
    ) -> None:
        self._artifact_path = Path(artifact_path)
        self._reference_hash_path = Path(reference_hash_path)
        self._services = services
        self._sink = sink
        self._event_log = event_log
        self._event_source = event_source
        self._integrity_event_id = integrity_event_id
        self._reporting_field = reporting_field
        self._missing_reference_policy = MissingReferencePolicy(missing_reference_policy)
        self._sleep = sleep
        self._hostname = hostname

    def _reporter(self, field: str | None) -> ActivityReporter:
        return ActivityReporter(self._sink, field=field, hostname=self._hostname)

    def _escalate(
        self,
        *,
        source: str,
        event_id: int,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        try:
            self._event_log.write_event(
                source=source,
                event_id=event_id,
                severity=Severity.ERROR,
                message=message,
                metadata=metadata,
            )
        except Exception as exc:
            logger.error(
                "Escalation could not be written to the event log: %s | %s",
                exc,
                message,
                extra={"event_source": source, "event_id": event_id},
            )

    def _halt(self, status: IntegrityStatus, detail: str) -> RunResult:
        message = f"Integrity check {status.value}: {detail}; no services were touched"
        self._escalate(
            source=self._event_source,
            event_id=self._integrity_event_id,
            message=message,
            metadata={"integrity_status": status.value, "artifact": str(self._artifact_path)},
        )
        self._reporter(self._reporting_field).report(message, level="error")
        return RunResult(integrity_status=status, halted=True)

    def run(self) -> RunResult:
        status = integrity.verify(self._artifact_path, self._reference_hash_path)
        logger.info("Integrity check: %s", status.value, extra={"artifact": str(self._artifact_path)})

        if status is IntegrityStatus.MISSING:
            if self._missing_reference_policy is MissingReferencePolicy.HALT:
                return self._halt(status, f"reference hash {self._reference_hash_path} is absent")
            return self._observe_only()
        if status is not IntegrityStatus.VERIFIED:
            return self._halt(status, f"artifact {self._artifact_path} does not match its reference")

        try:
            manifest = load_manifest(self._artifact_path)
        except ManifestLoadError as exc:
            return self._halt(IntegrityStatus.CHECK_FAILED, str(exc))

        return self._sweep(manifest)

    def _sweep(self, manifest: RuntimeManifest) -> RunResult:
        reporter = self._reporter(manifest.reporting_field or self._reporting_field)
        remediator = ServiceRemediator(self._services, sleep=self._sleep)
        result = RunResult(integrity_status=IntegrityStatus.VERIFIED)

        for target in manifest.services:
            outcome = remediator.remediate(target)
            result.service_outcomes.append(outcome)
            self._report_outcome(reporter, outcome)
            if outcome.kind is OutcomeKind.FAILED_AFTER_RETRIES:
                self._escalate(
                    source=manifest.event_source,
                    event_id=manifest.service_event_id,
                    message=outcome.describe(),
                    metadata={"service": outcome.service, "attempts": outcome.attempts},
                )

        reporter.report(self._summary(result))
        return result

    def _observe_only(self) -> RunResult:
        """Degraded run: escalate the missing reference, then only look at services."""

        message = (
            f"Integrity check missing: reference hash {self._reference_hash_path} is absent; "
            "services observed without remediation"
        )
        self._escalate(
            source=self._event_source,
            event_id=self._integrity_event_id,
            message=message,
            metadata={"integrity_status": IntegrityStatus.MISSING.value},
        )
        reporter = self._reporter(self._reporting_field)
        reporter.report(message, level="error")

        result = RunResult(integrity_status=IntegrityStatus.MISSING)
        try:
            manifest = load_manifest(self._artifact_path)
        except ManifestLoadError as exc:
            logger.error("Manifest unreadable, nothing to observe: %s", exc)
            result.halted = True
            return result

        remediator = ServiceRemediator(self._services, sleep=self._sleep)
        for target in manifest.services:
            outcome = remediator.observe(target)
            result.service_outcomes.append(outcome)
            self._report_outcome(reporter, outcome)
        reporter.report(self._summary(result))
        return result

    @staticmethod
    def _report_outcome(reporter: ActivityReporter, outcome: ServiceOutcome) -> None:
        if outcome.start_mode_corrected and outcome.kind is not OutcomeKind.START_MODE_CORRECTED:
            reporter.report(f"{outcome.service}: start mode corrected to automatic")
        if outcome.significant:
            level = "error" if outcome.kind is OutcomeKind.FAILED_AFTER_RETRIES else "warning"
            reporter.report(outcome.describe(), level=level)

    @staticmethod
    def _summary(result: RunResult) -> str:
        counts: dict[str, int] = {}
        for outcome in result.service_outcomes:
            counts[outcome.kind.value] = counts.get(outcome.kind.value, 0) + 1
        breakdown = ", ".join(f"{kind}={count}" for kind, count in sorted(counts.items()))
        return (
            f"Watchdog run completed: {len(result.service_outcomes)} service(s) checked"
            + (f" ({breakdown})" if breakdown else "")
        )


__all__ = ["DEFAULT_INTEGRITY_EVENT_ID", "WatchdogRuntime"]
