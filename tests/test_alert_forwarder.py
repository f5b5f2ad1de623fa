from __future__ import annotations

import argparse
import importlib.util
import json
from datetime import datetime, timezone
from pathlib import Path

from service_watchdog.storage import EventLogUnavailableError, EventRecord, Severity


def _load_module():
    module_path = Path(__file__).resolve().parents[1] / "scripts" / "watchdog_alert_forwarder.py"
    spec = importlib.util.spec_from_file_location("watchdog_alert_forwarder_test_module", module_path)
    assert spec and spec.loader
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _event(index: int, service: str | None = "Spooler") -> EventRecord:
    metadata = {"source": "ServiceWatchdog", "event_id": 1002}
    if service:
        metadata["service"] = service
    return EventRecord(
        id=f"event-{index}",
        source="ServiceWatchdog",
        event_id=1002,
        severity="error",
        message=f"{service}: still stopped after 3 start attempt(s)",
        hostname="host-01",
        timestamp=datetime(2025, 1, 1, minute=index, tzinfo=timezone.utc),
        metadata=metadata,
    )


class StubEventLog:
    def __init__(self, events: list[EventRecord]) -> None:
        self.events = events
        self.queries: list[tuple[str, object]] = []

    def list_events(self, source, *, severity=None):
        self.queries.append((source, severity))
        return list(self.events)


def _args(**overrides) -> argparse.Namespace:
    values = {"source": None, "service": None, "format": "json", "output": None, "limit": None}
    values.update(overrides)
    return argparse.Namespace(**values)


def test_forward_alerts_prints_json(monkeypatch, capsys):
    module = _load_module()
    event_log = StubEventLog([_event(0)])
    monkeypatch.setattr(module, "load_event_log", lambda _settings: event_log)

    exit_code = module.forward_alerts(_args(source="ServiceWatchdog"))

    assert exit_code == 0
    data = json.loads(capsys.readouterr().out)
    assert data[0]["service"] == "Spooler"
    assert data[0]["event_id"] == 1002
    assert event_log.queries == [("ServiceWatchdog", Severity.ERROR)]


def test_forward_alerts_writes_text(monkeypatch, tmp_path):
    module = _load_module()
    monkeypatch.setattr(module, "load_event_log", lambda _settings: StubEventLog([_event(0)]))

    output_file = tmp_path / "alerts.txt"
    exit_code = module.forward_alerts(_args(format="text", output=str(output_file)))

    assert exit_code == 0
    contents = output_file.read_text(encoding="utf-8")
    assert "host=host-01" in contents
    assert "service=Spooler" in contents


def test_forward_alerts_filters_service(monkeypatch, capsys):
    module = _load_module()
    events = [_event(0), _event(1, service="BITS"), _event(2, service=None)]
    monkeypatch.setattr(module, "load_event_log", lambda _settings: StubEventLog(events))

    module.forward_alerts(_args(service="BITS"))

    output = json.loads(capsys.readouterr().out)
    assert [item["record_id"] for item in output] == ["event-1"]


def test_forward_alerts_honors_limit(monkeypatch, capsys):
    module = _load_module()
    events = [_event(index) for index in range(5)]
    monkeypatch.setattr(module, "load_event_log", lambda _settings: StubEventLog(events))

    module.forward_alerts(_args(limit=2))

    data = json.loads(capsys.readouterr().out)
    assert [item["record_id"] for item in data] == ["event-3", "event-4"]


def test_forward_alerts_reports_unavailable_log(monkeypatch, capsys):
    module = _load_module()

    def unavailable(_settings):
        raise EventLogUnavailableError("chromadb package is not installed")

    monkeypatch.setattr(module, "load_event_log", unavailable)

    assert module.forward_alerts(_args()) == 1
    assert "Event log unavailable" in capsys.readouterr().err
