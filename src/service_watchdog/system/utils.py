"""Utility helpers for host command execution."""

from __future__ import annotations

import os
from typing import Mapping

_SANITIZED_VARS = {
    "PYTHONHOME",
    "PYTHONPATH",
    "VIRTUAL_ENV",
    "PAGER",
    "SYSTEMD_COLORS",
}

# Host tools are parsed by their English, uncoloured output.
_FIXED_VARS = {"LC_ALL": "C", "SYSTEMD_PAGER": "cat"}


def sanitize_environment(additional: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return a sanitized environment suitable for host tool execution."""

    env = dict(os.environ)
    for key in _SANITIZED_VARS:
        env.pop(key, None)
    env.update(_FIXED_VARS)
    if additional:
        env.update(additional)
    return env
