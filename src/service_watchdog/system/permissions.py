"""Restrictive access control for deployed artifacts."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Protocol

from .runner import CommandResult, CommandRunner

# LocalSystem and BUILTIN\Administrators get full control, BUILTIN\Users read/execute.
WINDOWS_GRANTS = ("*S-1-5-18:(F)", "*S-1-5-32-544:(F)", "*S-1-5-32-545:(RX)")


class FilePermissions(Protocol):
    def harden(self, path: Path, *, executable: bool = False) -> CommandResult:
        ...


class WindowsFilePermissions:
    """Replace inherited ACLs with an explicit SYSTEM/Administrators/Users grant set."""

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self._runner = runner or CommandRunner()

    def harden(self, path: Path, *, executable: bool = False) -> CommandResult:
        args = ["icacls", str(path), "/inheritance:r"]
        for grant in WINDOWS_GRANTS:
            args += ["/grant:r", grant]
        return self._runner.run(*args)


class PosixFilePermissions:
    """Root-owned files, writable by the owner only."""

    def harden(self, path: Path, *, executable: bool = False) -> CommandResult:
        mode = 0o755 if executable else 0o644
        args = ("chmod", format(mode, "o"), str(path))
        try:
            if hasattr(os, "geteuid") and os.geteuid() == 0:
                os.chown(path, 0, 0)
            os.chmod(path, mode)
        except OSError as exc:
            return CommandResult.failure(args, str(exc))
        return CommandResult.success(args)


__all__ = [
    "FilePermissions",
    "PosixFilePermissions",
    "WINDOWS_GRANTS",
    "WindowsFilePermissions",
]
