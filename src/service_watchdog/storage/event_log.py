"""Chroma-backed durable event log for escalations."""

from __future__ import annotations

import re
import socket
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol

from .models import EventRecord, Severity


class EventLogUnavailableError(RuntimeError):
    """Raised when the Chroma client cannot be constructed."""


class CollectionProtocol(Protocol):
    """Protocol for the minimal Chroma collection API used by the event log."""

    def add(
        self,
        *,
        documents: Iterable[str],
        metadatas: Iterable[dict[str, Any]],
        ids: Iterable[str],
    ) -> None:
        ...

    def get(
        self,
        *,
        ids: Iterable[str] | None = None,
        where: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> dict[str, list[Any]]:
        ...


class ClientProtocol(Protocol):
    """Protocol for the minimal Chroma client API used by the event log."""

    def get_or_create_collection(self, name: str) -> CollectionProtocol:
        ...


class EventLog(Protocol):
    def ensure_source(self, source: str) -> None:
        ...

    def write_event(
        self,
        *,
        source: str,
        event_id: int,
        severity: Severity | str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> EventRecord:
        ...


def collection_name(source: str) -> str:
    """Map an event source onto a valid Chroma collection name."""

    slug = re.sub(r"[^a-z0-9]+", "-", source.lower()).strip("-") or "default"
    return f"watchdog-{slug}"[:63].rstrip("-")


class ChromaEventLog:
    """Persist escalation events, one collection per event source."""

    def __init__(
        self,
        path: Path,
        *,
        client_factory: Callable[[], ClientProtocol] | None = None,
        clock: Callable[[], datetime] | None = None,
        hostname: str | None = None,
    ) -> None:
        self._path = Path(path)
        self._client_factory = client_factory or self._default_client_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._hostname = hostname or socket.gethostname()
        self._client: ClientProtocol | None = None
        self._collections: dict[str, CollectionProtocol] = {}

    def _default_client_factory(self) -> ClientProtocol:
        try:
            import chromadb
        except ImportError as exc:  # pragma: no cover - depends on environment
            raise EventLogUnavailableError(
                "chromadb package is not installed; install service-watchdog[persistence]"
            ) from exc

        return chromadb.PersistentClient(path=str(self._path))

    def _collection(self, source: str) -> CollectionProtocol:
        name = collection_name(source)
        if name not in self._collections:
            client = self._client or self._client_factory()
            self._client = client
            self._collections[name] = client.get_or_create_collection(name)
        return self._collections[name]

    def _convert_result(self, source: str, result: dict[str, list[Any]]) -> list[EventRecord]:
        events: list[EventRecord] = []
        ids = result.get("ids", [])
        documents = result.get("documents", [])
        metadatas = result.get("metadatas", [])
        for record_id, document, metadata in zip(ids, documents, metadatas):
            timestamp_raw = metadata.get("timestamp")
            timestamp = (
                datetime.fromisoformat(timestamp_raw)
                if isinstance(timestamp_raw, str)
                else self._clock()
            )
            events.append(
                EventRecord(
                    id=record_id,
                    source=metadata.get("source", source),
                    event_id=int(metadata.get("event_id", 0)),
                    severity=metadata.get("severity", Severity.INFO.value),
                    message=document,
                    hostname=metadata.get("hostname", ""),
                    timestamp=timestamp,
                    metadata=metadata,
                )
            )
        events.sort(key=lambda event: event.timestamp)
        return events

    def ensure_source(self, source: str) -> None:
        """Create the source's collection if it does not exist yet."""

        self._collection(source)

    def write_event(
        self,
        *,
        source: str,
        event_id: int,
        severity: Severity | str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> EventRecord:
        collection = self._collection(source)
        record_id = f"{collection_name(source)}:{uuid.uuid4().hex}"
        timestamp = self._clock()
        severity_value = Severity(severity).value

        record_metadata: dict[str, Any] = {
            "source": source,
            "event_id": event_id,
            "severity": severity_value,
            "hostname": self._hostname,
            "timestamp": timestamp.isoformat(),
        }
        if metadata:
            # Chroma metadata values must be scalars; None is not accepted.
            record_metadata.update(
                {key: value for key, value in metadata.items() if value is not None}
            )

        collection.add(documents=[message], metadatas=[record_metadata], ids=[record_id])

        return EventRecord(
            id=record_id,
            source=source,
            event_id=event_id,
            severity=severity_value,
            message=message,
            hostname=self._hostname,
            timestamp=timestamp,
            metadata=record_metadata,
        )

    def list_events(
        self,
        source: str,
        *,
        severity: Severity | str | None = None,
        event_id: int | None = None,
        limit: int | None = None,
    ) -> list[EventRecord]:
        """Return events for ``source`` in chronological order, newest last."""

        conditions: list[dict[str, Any]] = []
        if severity is not None:
            conditions.append({"severity": Severity(severity).value})
        if event_id is not None:
            conditions.append({"event_id": event_id})

        if not conditions:
            where = None
        elif len(conditions) == 1:
            where = conditions[0]
        else:
            where = {"$and": conditions}

        result = self._collection(source).get(where=where)
        events = self._convert_result(source, result)
        if limit is not None and limit > 0:
            events = events[-limit:]
        return events


__all__ = [
    "ChromaEventLog",
    "EventLog",
    "EventLogUnavailableError",
    "collection_name",
]
