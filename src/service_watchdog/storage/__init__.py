"""Durable escalation storage."""

from .event_log import ChromaEventLog, EventLog, EventLogUnavailableError
from .models import EventRecord, Severity

__all__ = [
    "ChromaEventLog",
    "EventLog",
    "EventLogUnavailableError",
    "EventRecord",
    "Severity",
]
