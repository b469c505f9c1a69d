"""Helpers for locating and inspecting an existing Go project."""

from __future__ import annotations

import re
from pathlib import Path

DEFAULT_MODULE_NAME = "myapp"
GO_MOD = "go.mod"

_MODULE_DIRECTIVE = re.compile(r"^\s*module\s+(\S+)")


def read_module_name(project_root: str | Path = ".") -> str:
    """Return the module path declared in ``go.mod``, or ``"myapp"``."""
    go_mod = Path(project_root) / GO_MOD
    try:
        text = go_mod.read_text(encoding="utf-8")
    except OSError:
        return DEFAULT_MODULE_NAME

    for line in text.splitlines():
        match = _MODULE_DIRECTIVE.match(line)
        if match:
            return match.group(1).strip('"')
    return DEFAULT_MODULE_NAME


def find_project_root(start: str | Path = ".") -> Path | None:
    """Walk upwards from ``start`` to the first directory holding ``go.mod``."""
    current = Path(start).resolve()
    for directory in (current, *current.parents):
        if (directory / GO_MOD).is_file():
            return directory
    return None
