"""Command-line entry point: install, remove, run, verify and status."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, NoReturn

from pydantic import ValidationError

from . import __version__
from .config import ConfigurationError, WatchdogSettings, get_settings
from .deployment import DeploymentManager
from .integrity import verify
from .manifest import ManifestLoadError, default_service_targets, load_service_targets
from .models import (
    ARTIFACT_NAME,
    LOG_FILE_NAME,
    REFERENCE_HASH_NAME,
    DeploymentAction,
    DeploymentConfig,
    MissingReferencePolicy,
    ServiceTarget,
)
from .outcomes import IntegrityStatus
from .reporting import probe_sink
from .runtime import WatchdogRuntime
from .storage import ChromaEventLog
from .system import HostBackend, create_backend

EXIT_FAILED = 1
EXIT_CONFIG = 2


def configure_logging(level: str, log_file: Path | None = None) -> None:
    """Configure root logging; runs also append to a file beside the manifest."""

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        try:
            handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
        except OSError as exc:
            print(f"Log file unavailable: {exc}", file=sys.stderr)
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


def _config_error(message: object) -> NoReturn:
    print(f"Configuration error: {message}", file=sys.stderr)
    raise SystemExit(EXIT_CONFIG)


def _pick(value: Any, default: Any) -> Any:
    return default if value is None else value


def _backend(args: argparse.Namespace, settings: WatchdogSettings) -> HostBackend:
    try:
        return create_backend(getattr(args, "backend", None) or settings.backend)
    except ConfigurationError as exc:
        _config_error(exc)


def _services(
    args: argparse.Namespace, settings: WatchdogSettings, backend: HostBackend
) -> list[ServiceTarget]:
    services_file = getattr(args, "services_file", None) or settings.services_file
    if services_file is None:
        return default_service_targets(backend.name)
    try:
        return load_service_targets(Path(services_file))
    except ManifestLoadError as exc:
        _config_error(exc)


def _deployment_config(
    args: argparse.Namespace,
    settings: WatchdogSettings,
    backend: HostBackend,
    action: DeploymentAction,
) -> DeploymentConfig:
    try:
        return DeploymentConfig(
            action=action,
            root_directory=Path(args.root or settings.root_directory),
            trigger_name=args.trigger_name or settings.trigger_name,
            interval_minutes=_pick(getattr(args, "interval", None), settings.interval_minutes),
            legacy_trigger_name=getattr(args, "legacy_trigger", None) or settings.legacy_trigger_name,
            reporting_field=getattr(args, "reporting_field", None) or settings.reporting_field,
            event_source=settings.event_source,
            event_log_path=settings.event_log_path,
            services=_services(args, settings, backend) if action is DeploymentAction.INSTALL else [],
            missing_reference_policy=settings.missing_reference_policy,
        )
    except ValidationError as exc:
        _config_error(exc)


def _deploy(args: argparse.Namespace, action: DeploymentAction) -> None:
    settings = get_settings()
    backend = _backend(args, settings)
    config = _deployment_config(args, settings, backend, action)
    manager = DeploymentManager(backend, event_log=ChromaEventLog(settings.event_log_path))
    try:
        report = manager.apply(config)
    except ConfigurationError as exc:
        _config_error(exc)
    print(report.render())
    if not report.ok:
        raise SystemExit(EXIT_FAILED)


def cmd_install(args: argparse.Namespace) -> None:
    _deploy(args, DeploymentAction.INSTALL)


def cmd_remove(args: argparse.Namespace) -> None:
    _deploy(args, DeploymentAction.REMOVE)


def _artifact_paths(args: argparse.Namespace, settings: WatchdogSettings) -> tuple[Path, Path]:
    manifest = Path(args.manifest) if args.manifest else settings.root_directory / ARTIFACT_NAME
    reference = Path(args.reference) if args.reference else manifest.with_name(REFERENCE_HASH_NAME)
    return manifest, reference


def cmd_run(args: argparse.Namespace) -> None:
    settings = get_settings()
    backend = _backend(args, settings)
    manifest, reference = _artifact_paths(args, settings)
    event_log_path = Path(args.event_log) if args.event_log else settings.event_log_path

    runtime = WatchdogRuntime(
        manifest,
        reference,
        services=backend.services,
        sink=probe_sink(settings.sink_command),
        event_log=ChromaEventLog(event_log_path),
        event_source=args.event_source or settings.event_source,
        reporting_field=args.reporting_field or settings.reporting_field,
        missing_reference_policy=MissingReferencePolicy(
            args.missing_reference_policy or settings.missing_reference_policy
        ),
    )
    result = runtime.run()
    if result.halted:
        raise SystemExit(EXIT_CONFIG)
    if result.failed_services:
        raise SystemExit(EXIT_FAILED)


def cmd_verify(args: argparse.Namespace) -> None:
    settings = get_settings()
    manifest, reference = _artifact_paths(args, settings)
    status = verify(manifest, reference)
    print(status.value)
    if status is not IntegrityStatus.VERIFIED:
        raise SystemExit(EXIT_CONFIG)


def cmd_status(args: argparse.Namespace) -> None:
    settings = get_settings()
    backend = _backend(args, settings)
    root = Path(args.root or settings.root_directory)
    trigger_name = args.trigger_name or settings.trigger_name
    manifest = root / ARTIFACT_NAME
    reference = root / REFERENCE_HASH_NAME

    payload = {
        "version": __version__,
        "backend": backend.name,
        "root_directory": str(root),
        "trigger": {"name": trigger_name, "registered": backend.scheduler.exists(trigger_name)},
        "artifact": {"path": str(manifest), "exists": manifest.exists()},
        "reference_hash": {"path": str(reference), "exists": reference.exists()},
        "integrity": verify(manifest, reference).value if manifest.exists() else None,
    }
    print(json.dumps(payload, indent=2))


def _add_deployment_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--root", help="Deployment root directory")
    parser.add_argument("--trigger-name", help="Name of the recurring job")
    parser.add_argument(
        "--backend", choices=["auto", "windows", "systemd"], help="Host backend override"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="service-watchdog",
        description="Self-verifying supervisor for critical operating-system services",
    )
    parser.add_argument("--version", action="version", version=__version__)
    sub = parser.add_subparsers(dest="cmd", required=True, metavar="action")

    p_install = sub.add_parser("install", help="Install or update the watchdog deployment")
    _add_deployment_arguments(p_install)
    p_install.add_argument("--interval", type=int, help="Minutes between runs")
    p_install.add_argument("--legacy-trigger", help="Older trigger name to retire")
    p_install.add_argument("--reporting-field", help="Monitoring field for activity records")
    p_install.add_argument("--services-file", help="YAML list of services to supervise")
    p_install.set_defaults(func=cmd_install)

    p_remove = sub.add_parser("remove", help="Unregister the trigger and delete the deployment")
    _add_deployment_arguments(p_remove)
    p_remove.add_argument("--legacy-trigger", help="Older trigger name to retire")
    p_remove.set_defaults(func=cmd_remove)

    p_run = sub.add_parser("run", help="Execute one supervised run (invoked by the trigger)")
    p_run.add_argument("--manifest", help="Runtime manifest path")
    p_run.add_argument("--reference", help="Reference hash path")
    p_run.add_argument("--event-source", help="Event source for escalations")
    p_run.add_argument("--event-log", help="Durable event log directory")
    p_run.add_argument("--reporting-field", help="Monitoring field for activity records")
    p_run.add_argument(
        "--missing-reference-policy",
        choices=[policy.value for policy in MissingReferencePolicy],
        help="What to do when the reference hash is absent",
    )
    p_run.add_argument(
        "--backend", choices=["auto", "windows", "systemd"], help="Host backend override"
    )
    p_run.set_defaults(func=cmd_run)

    p_verify = sub.add_parser("verify", help="Check the artifact against its reference hash")
    p_verify.add_argument("--manifest", help="Runtime manifest path")
    p_verify.add_argument("--reference", help="Reference hash path")
    p_verify.set_defaults(func=cmd_verify)

    p_status = sub.add_parser("status", help="Show deployment state as JSON")
    _add_deployment_arguments(p_status)
    p_status.set_defaults(func=cmd_status)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = get_settings()
    except ValidationError as exc:
        _config_error(exc)

    log_file = None
    if args.cmd == "run" and settings.log_file:
        manifest, _ = _artifact_paths(args, settings)
        log_file = manifest.parent / LOG_FILE_NAME
    configure_logging(settings.log_level, log_file)

    args.func(args)


if __name__ == "__main__":
    main()
