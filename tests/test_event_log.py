from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from service_watchdog.storage import ChromaEventLog, EventLogUnavailableError, Severity
from service_watchdog.storage.event_log import collection_name


@dataclass
class _Record:
    document: str
    metadata: dict[str, Any]
    id: str


def _matches(metadata: dict[str, Any], where: dict[str, Any] | None) -> bool:
    if not where:
        return True
    if "$and" in where:
        return all(_matches(metadata, clause) for clause in where["$and"])
    return all(metadata.get(key) == value for key, value in where.items())


class StubCollection:
    def __init__(self) -> None:
        self.records: list[_Record] = []

    def add(self, *, documents, metadatas, ids) -> None:  # type: ignore[override]
        for document, metadata, record_id in zip(documents, metadatas, ids):
            self.records.append(_Record(document=document, metadata=dict(metadata), id=record_id))

    def get(self, *, ids=None, where=None, limit=None):  # type: ignore[override]
        filtered = [record for record in self.records if _matches(record.metadata, where)]
        if limit is not None:
            filtered = filtered[:limit]
        return {
            "ids": [record.id for record in filtered],
            "documents": [record.document for record in filtered],
            "metadatas": [record.metadata for record in filtered],
        }


class StubClient:
    def __init__(self) -> None:
        self.collections = defaultdict(StubCollection)

    def get_or_create_collection(self, name: str) -> StubCollection:
        return self.collections[name]


class TickingClock:
    def __init__(self) -> None:
        self.now = datetime.fromisoformat("2025-01-01T00:00:00+00:00")

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


def _event_log(tmp_path: Path, client: StubClient | None = None) -> ChromaEventLog:
    client = client or StubClient()
    return ChromaEventLog(
        tmp_path,
        client_factory=lambda: client,
        clock=TickingClock(),
        hostname="host-01",
    )


def test_write_and_list_events(tmp_path: Path) -> None:
    event_log = _event_log(tmp_path)

    record = event_log.write_event(
        source="ServiceWatchdog",
        event_id=1002,
        severity=Severity.ERROR,
        message="Spooler: failed after 3 attempt(s)",
        metadata={"service": "Spooler", "attempts": 3, "detail": None},
    )

    assert record.hostname == "host-01"
    assert record.metadata["service"] == "Spooler"
    assert "detail" not in record.metadata

    events = event_log.list_events("ServiceWatchdog")
    assert len(events) == 1
    assert events[0].event_id == 1002
    assert events[0].severity == "error"
    assert events[0].message == "Spooler: failed after 3 attempt(s)"


def test_list_events_filters_and_limits(tmp_path: Path) -> None:
    event_log = _event_log(tmp_path)
    event_log.write_event(source="ServiceWatchdog", event_id=1001, severity="error", message="tampered")
    event_log.write_event(source="ServiceWatchdog", event_id=1002, severity="error", message="failed A")
    event_log.write_event(source="ServiceWatchdog", event_id=1002, severity="warning", message="slow B")
    event_log.write_event(source="ServiceWatchdog", event_id=1002, severity="error", message="failed C")

    errors = event_log.list_events("ServiceWatchdog", severity=Severity.ERROR)
    assert [event.message for event in errors] == ["tampered", "failed A", "failed C"]

    service_errors = event_log.list_events("ServiceWatchdog", severity="error", event_id=1002)
    assert [event.message for event in service_errors] == ["failed A", "failed C"]

    latest = event_log.list_events("ServiceWatchdog", limit=1)
    assert [event.message for event in latest] == ["failed C"]


def test_sources_are_kept_apart(tmp_path: Path) -> None:
    client = StubClient()
    event_log = _event_log(tmp_path, client)

    event_log.ensure_source("ServiceWatchdog")
    event_log.write_event(source="Other Source", event_id=1, severity="info", message="hello")

    assert set(client.collections) == {"watchdog-servicewatchdog", "watchdog-other-source"}
    assert event_log.list_events("ServiceWatchdog") == []


def test_unknown_severity_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        _event_log(tmp_path).write_event(source="s", event_id=1, severity="fatal", message="x")


@pytest.mark.parametrize(
    "source, expected",
    [("ServiceWatchdog", "watchdog-servicewatchdog"), ("  ", "watchdog-default"), ("a/b c", "watchdog-a-b-c")],
)
def test_collection_name(source: str, expected: str) -> None:
    assert collection_name(source) == expected


def test_collection_name_is_bounded() -> None:
    assert len(collection_name("x" * 200)) <= 63


def test_client_failure_surfaces(tmp_path: Path) -> None:
    def factory():
        raise EventLogUnavailableError("no chroma")

    event_log = ChromaEventLog(tmp_path, client_factory=factory)

    with pytest.raises(EventLogUnavailableError):
        event_log.ensure_source("ServiceWatchdog")
