"""Per-service health check and bounded remediation."""

from __future__ import annotations

import logging
import time
from typing import Callable

from .models import ServiceTarget, StartMode
from .outcomes import OutcomeKind, ServiceOutcome
from .system.runner import CommandResult
from .system.services import ServiceManager, ServiceStatus

logger = logging.getLogger(__name__)


class ServiceRemediator:
    """Correct start mode and restart a stopped service with bounded retries."""

    def __init__(
        self,
        services: ServiceManager,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._services = services
        self._sleep = sleep

    def _query(self, name: str) -> ServiceStatus:
        try:
            return self._services.query(name)
        except Exception as exc:
            return ServiceStatus.failed(name, str(exc))

    def _start(self, name: str) -> CommandResult:
        try:
            return self._services.start(name)
        except Exception as exc:
            return CommandResult.failure(("start", name), str(exc))

    def _correct_start_mode(self, target: ServiceTarget, status: ServiceStatus) -> bool:
        if target.desired_start_mode is not StartMode.AUTOMATIC:
            return False
        if status.start_mode is StartMode.AUTOMATIC:
            return False
        try:
            result = self._services.set_start_mode(target.name, StartMode.AUTOMATIC)
        except Exception as exc:
            result = CommandResult.failure(("set_start_mode", target.name), str(exc))
        if not result.ok:
            logger.warning(
                "Could not set start mode to automatic: %s",
                result.describe(),
                extra={"service": target.name, "start_mode": getattr(status.start_mode, "value", None)},
            )
            return False
        logger.info(
            "Start mode corrected to automatic",
            extra={"service": target.name, "previous": getattr(status.start_mode, "value", None)},
        )
        return True

    def remediate(self, target: ServiceTarget) -> ServiceOutcome:
        name = target.name
        starts = 0
        corrected = False
        start_mode_checked = False
        last_error: str | None = None

        for attempt in range(1, target.max_retries + 1):
            status = self._query(name)
            if not status.ok:
                last_error = status.error
                logger.warning(
                    "Service query failed on attempt %d/%d: %s",
                    attempt,
                    target.max_retries,
                    status.error,
                    extra={"service": name},
                )
                self._sleep(target.retry_delay)
                continue

            if not status.exists:
                logger.warning("Service not found", extra={"service": name})
                return ServiceOutcome(name, OutcomeKind.NOT_FOUND, start_mode_corrected=corrected)

            if not start_mode_checked:
                start_mode_checked = True
                corrected = self._correct_start_mode(target, status)

            if status.running:
                return self._running_outcome(name, starts, corrected)

            result = self._start(name)
            starts += 1
            if result.ok:
                logger.info(
                    "Start requested (attempt %d/%d)",
                    attempt,
                    target.max_retries,
                    extra={"service": name},
                )
            else:
                last_error = result.describe()
                logger.warning(
                    "Start request failed on attempt %d/%d: %s",
                    attempt,
                    target.max_retries,
                    last_error,
                    extra={"service": name},
                )
            self._sleep(target.retry_delay)

        final = self._query(name)
        if final.ok and final.exists and final.running:
            return self._running_outcome(name, starts, corrected)
        if not start_mode_checked:
            return ServiceOutcome(name, OutcomeKind.QUERY_ERROR, detail=last_error)
        if final.ok and not final.exists:
            return ServiceOutcome(name, OutcomeKind.NOT_FOUND, start_mode_corrected=corrected)

        logger.error(
            "Service still stopped after %d start attempt(s)",
            starts,
            extra={"service": name, "max_retries": target.max_retries},
        )
        return ServiceOutcome(
            name,
            OutcomeKind.FAILED_AFTER_RETRIES,
            attempts=starts,
            start_mode_corrected=corrected,
            detail=last_error,
        )

    def observe(self, target: ServiceTarget) -> ServiceOutcome:
        """Report a service's state without changing anything."""

        status = self._query(target.name)
        if not status.ok:
            return ServiceOutcome(target.name, OutcomeKind.QUERY_ERROR, detail=status.error)
        if not status.exists:
            return ServiceOutcome(target.name, OutcomeKind.NOT_FOUND)
        mode = status.start_mode.value if status.start_mode else "unknown"
        state = "running" if status.running else "stopped"
        return ServiceOutcome(
            target.name, OutcomeKind.OBSERVED, detail=f"{state}, start mode {mode}"
        )

    @staticmethod
    def _running_outcome(name: str, starts: int, corrected: bool) -> ServiceOutcome:
        if starts:
            return ServiceOutcome(
                name, OutcomeKind.RESTARTED, attempts=starts, start_mode_corrected=corrected
            )
        if corrected:
            return ServiceOutcome(name, OutcomeKind.START_MODE_CORRECTED, start_mode_corrected=True)
        return ServiceOutcome(name, OutcomeKind.ALREADY_RUNNING)


__all__ = ["ServiceRemediator"]
