"""Data models for the durable event log."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(slots=True)
class EventRecord:
    id: str
    source: str
    event_id: int
    severity: str
    message: str
    hostname: str
    timestamp: datetime
    metadata: dict[str, Any]


__all__ = ["EventRecord", "Severity"]
