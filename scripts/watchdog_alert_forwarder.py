"""Forward persisted watchdog escalations to monitoring-friendly output."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Iterable

from service_watchdog.config import WatchdogSettings
from service_watchdog.storage import ChromaEventLog, EventLogUnavailableError, EventRecord, Severity


def load_event_log(settings: WatchdogSettings) -> ChromaEventLog:
    """Construct the event log using the provided settings."""

    return ChromaEventLog(settings.event_log_path)


def _normalize_events(
    events: Iterable[EventRecord],
    *,
    service: str | None = None,
) -> list[dict[str, object]]:
    filtered: list[dict[str, object]] = []
    for event in events:
        if service and event.metadata.get("service") != service:
            continue
        filtered.append(
            {
                "record_id": event.id,
                "source": event.source,
                "event_id": event.event_id,
                "severity": event.severity,
                "hostname": event.hostname,
                "service": event.metadata.get("service"),
                "integrity_status": event.metadata.get("integrity_status"),
                "message": event.message,
                "timestamp": event.timestamp.isoformat(),
            }
        )
    filtered.sort(key=lambda item: item["timestamp"])
    return filtered


def _default_event_formatter(item: dict[str, object]) -> str:
    return " | ".join(
        [
            f"host={item['hostname']}",
            f"event={item['event_id']}",
            f"service={item['service'] or '-'}",
            f"message={item['message']}",
            f"timestamp={item['timestamp']}",
        ]
    )


def forward_alerts(args: argparse.Namespace, *, formatter=_default_event_formatter) -> int:
    settings = WatchdogSettings()
    source = args.source or settings.event_source
    try:
        event_log = load_event_log(settings)
        events = event_log.list_events(source, severity=Severity.ERROR)
    except EventLogUnavailableError as exc:
        print(f"Event log unavailable: {exc}", file=sys.stderr)
        return 1

    payload = _normalize_events(events, service=args.service)
    if args.limit is not None and args.limit > 0:
        payload = payload[-args.limit :]
    if args.format == "json":
        output_text = json.dumps(payload, indent=2)
    else:
        output_text = "\n".join(formatter(item) for item in payload)

    if args.output:
        output_path = Path(args.output)
        output_path.write_text(output_text, encoding="utf-8")
    else:
        print(output_text)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Forward watchdog escalations to stdout or a file for monitoring integrations."
    )
    parser.add_argument("--source", help="Event source to read (default: configured source)")
    parser.add_argument("--service", help="Only escalations for this service", default=None)
    parser.add_argument(
        "--format",
        choices={"json", "text"},
        default="json",
        help="Output format (default: json)",
    )
    parser.add_argument("--output", help="Optional path to write the alert payload to")
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="If provided, emit only the latest N escalations after filtering",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    exit_code = forward_alerts(args)
    if exit_code:
        raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
