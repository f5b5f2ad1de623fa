from pathlib import Path
import textwrap

import pytest

from service_watchdog.manifest import (
    ManifestLoadError,
    default_service_targets,
    dump_manifest,
    load_manifest,
    load_service_targets,
)
from service_watchdog.models import DeploymentAction, DeploymentConfig, ServiceTarget, StartMode


def write(path: Path, text: str) -> Path:
    path.write_text(textwrap.dedent(text).strip() + "\n", encoding="utf-8")
    return path


def test_service_list_accepts_names_and_mappings(tmp_path: Path) -> None:
    services = write(
        tmp_path / "services.yaml",
        """
        - Spooler
        - name: wuauserv
          max_retries: 5
          retry_delay: 2.5
        """,
    )

    targets = load_service_targets(services)

    assert [target.name for target in targets] == ["Spooler", "wuauserv"]
    assert targets[0].max_retries == 3
    assert targets[1].max_retries == 5
    assert targets[1].retry_delay == 2.5
    assert targets[1].desired_start_mode is StartMode.AUTOMATIC


def test_service_list_under_services_key(tmp_path: Path) -> None:
    services = write(tmp_path / "services.yaml", "services:\n  - cron\n  - ssh")

    assert [target.name for target in load_service_targets(services)] == ["cron", "ssh"]


def test_empty_service_list(tmp_path: Path) -> None:
    services = tmp_path / "services.yaml"
    services.write_text("", encoding="utf-8")

    assert load_service_targets(services) == []


def test_service_list_reports_every_bad_entry(tmp_path: Path) -> None:
    services = write(
        tmp_path / "services.yaml",
        """
        - "   "
        - name: BITS
          max_retries: 0
        """,
    )

    with pytest.raises(ManifestLoadError) as excinfo:
        load_service_targets(services)

    assert "entry 0" in str(excinfo.value)
    assert "entry 1" in str(excinfo.value)


@pytest.mark.parametrize("text", ["just a string", "key: [unterminated"])
def test_service_list_rejects_malformed_documents(tmp_path: Path, text: str) -> None:
    services = tmp_path / "services.yaml"
    services.write_text(text, encoding="utf-8")

    with pytest.raises(ManifestLoadError):
        load_service_targets(services)


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ManifestLoadError, match="Failed to read"):
        load_manifest(tmp_path / "absent.yaml")


def test_manifest_written_by_deployment_loads_back(tmp_path: Path) -> None:
    config = DeploymentConfig(
        action=DeploymentAction.INSTALL,
        root_directory=tmp_path,
        reporting_field="watchdogStatus",
        services=[ServiceTarget(name="Spooler", max_retries=2)],
    )
    path = tmp_path / "watchdog.yaml"
    path.write_text(dump_manifest(config.to_manifest()), encoding="utf-8")

    manifest = load_manifest(path)

    assert manifest.reference_hash_path == tmp_path / "watchdog.sha256"
    assert manifest.reporting_field == "watchdogStatus"
    assert manifest.services[0].max_retries == 2


def test_dump_is_stable(tmp_path: Path) -> None:
    config = DeploymentConfig(
        action=DeploymentAction.INSTALL,
        root_directory=tmp_path,
        services=[ServiceTarget(name="cron")],
    )

    assert dump_manifest(config.to_manifest()) == dump_manifest(config.to_manifest())


def test_manifest_must_be_mapping(tmp_path: Path) -> None:
    path = write(tmp_path / "watchdog.yaml", "- cron")

    with pytest.raises(ManifestLoadError, match="must be a mapping"):
        load_manifest(path)


def test_default_targets_per_backend() -> None:
    assert "WinDefend" in [target.name for target in default_service_targets("windows")]
    assert "cron" in [target.name for target in default_service_targets("systemd")]
