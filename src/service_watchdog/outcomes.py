"""Ephemeral per-run result types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class IntegrityStatus(str, Enum):
    VERIFIED = "verified"
    MISSING = "missing"
    TAMPERED = "tampered"
    CHECK_FAILED = "check_failed"


class OutcomeKind(str, Enum):
    ALREADY_RUNNING = "already_running"
    RESTARTED = "restarted"
    FAILED_AFTER_RETRIES = "failed_after_retries"
    NOT_FOUND = "not_found"
    QUERY_ERROR = "query_error"
    START_MODE_CORRECTED = "start_mode_corrected"
    OBSERVED = "observed"


@dataclass(slots=True)
class ServiceOutcome:
    service: str
    kind: OutcomeKind
    attempts: int = 0
    start_mode_corrected: bool = False
    detail: str | None = None

    @property
    def significant(self) -> bool:
        return self.kind is not OutcomeKind.ALREADY_RUNNING

    def describe(self) -> str:
        if self.kind is OutcomeKind.RESTARTED:
            text = f"{self.service}: restarted after {self.attempts} attempt(s)"
        elif self.kind is OutcomeKind.FAILED_AFTER_RETRIES:
            text = f"{self.service}: still stopped after {self.attempts} start attempt(s)"
        elif self.kind is OutcomeKind.NOT_FOUND:
            text = f"{self.service}: service not found"
        elif self.kind is OutcomeKind.QUERY_ERROR:
            text = f"{self.service}: service state could not be queried"
        elif self.kind is OutcomeKind.START_MODE_CORRECTED:
            text = f"{self.service}: running, start mode corrected to automatic"
        elif self.kind is OutcomeKind.OBSERVED:
            text = f"{self.service}: observed without remediation"
        else:
            text = f"{self.service}: running"
        if self.detail:
            text = f"{text} ({self.detail})"
        return text


@dataclass(slots=True)
class RunResult:
    integrity_status: IntegrityStatus
    service_outcomes: list[ServiceOutcome] = field(default_factory=list)
    halted: bool = False

    @property
    def failed_services(self) -> list[ServiceOutcome]:
        return [
            outcome
            for outcome in self.service_outcomes
            if outcome.kind is OutcomeKind.FAILED_AFTER_RETRIES
        ]


@dataclass(slots=True)
class ActivityRecord:
    time: datetime
    hostname: str
    message: str
    level: str = "info"

    def render(self) -> str:
        return f"{self.time.isoformat(timespec='seconds')} [{self.hostname}] {self.message}"


__all__ = [
    "ActivityRecord",
    "IntegrityStatus",
    "OutcomeKind",
    "RunResult",
    "ServiceOutcome",
]
