"""Foundry registry configuration.

Typed configuration for the layout registry: remote registries, local scan
paths, cache location and TTL, and the security policy.  All settings use
Pydantic v2 models so they are validated when read from ``layouts.yaml``
and serialised back without boiler-plate.
"""

from __future__ import annotations

import os
import re
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_serializer, field_validator

from foundry.utils import write_text

CONFIG_ENV_VAR = "FOUNDRY_CONFIG"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(h|m|s)")
_DURATION_FULL = re.compile(r"^(?:\d+(?:\.\d+)?(?:h|m|s))+$")
_UNIT_SECONDS = {"h": 3600, "m": 60, "s": 1}


# ---------------------------------------------------------------------------
# Duration helpers
# ---------------------------------------------------------------------------


def parse_duration(value: str | int | float | timedelta) -> timedelta:
    """Parse a duration such as ``"24h"``, ``"1h30m"`` or ``"45s"``.

    Plain numbers (or numeric strings) are interpreted as seconds.

    Raises:
        ValueError: If the string is not a recognised duration.
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)

    text = value.strip().lower()
    if re.fullmatch(r"\d+(?:\.\d+)?", text):
        return timedelta(seconds=float(text))
    if not _DURATION_FULL.match(text):
        raise ValueError(f"invalid duration: {value!r}")

    seconds = sum(float(amount) * _UNIT_SECONDS[unit] for amount, unit in _DURATION_PART.findall(text))
    return timedelta(seconds=seconds)


def format_duration(delta: timedelta) -> str:
    """Format a ``timedelta`` the way ``parse_duration`` reads it back.

    Examples::

        format_duration(timedelta(hours=24))          -> "24h"
        format_duration(timedelta(hours=1, minutes=30)) -> "1h30m"
        format_duration(timedelta(0))                 -> "0s"
    """
    total = int(delta.total_seconds())
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)

    parts: list[str] = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if seconds or not parts:
        parts.append(f"{seconds}s")
    return "".join(parts)


def default_config_path() -> Path:
    """Return ``$FOUNDRY_CONFIG`` or ``~/.foundry/layouts.yaml``."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".foundry" / "layouts.yaml"


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class RemoteRegistry(BaseModel):
    """A remote layout registry."""

    url: str
    trusted: bool = False


class CacheConfig(BaseModel):
    """Where materialised layouts live and how long cache entries stay fresh."""

    directory: str = Field(default_factory=lambda: str(Path.home() / ".foundry" / "cache" / "layouts"))
    ttl: timedelta = Field(default=timedelta(hours=24))

    @field_validator("ttl", mode="before")
    @classmethod
    def _parse_ttl(cls, value: Any) -> timedelta:
        return parse_duration(value)

    @field_serializer("ttl")
    def _dump_ttl(self, value: timedelta) -> str:
        return format_duration(value)

    @property
    def path(self) -> Path:
        return Path(os.path.expandvars(self.directory)).expanduser()


class SecurityConfig(BaseModel):
    """Security policy for remote layouts."""

    verify_checksums: bool = True
    allow_untrusted: bool = False


def _default_registries() -> dict[str, RemoteRegistry]:
    return {
        "official": RemoteRegistry(url="https://registry.foundry.dev/layouts", trusted=True),
        "community": RemoteRegistry(url="https://community.foundry.dev/layouts", trusted=False),
    }


def _default_local_paths() -> list[str]:
    return [
        str(Path.home() / ".foundry" / "layouts"),
        "/usr/share/foundry/layouts",
        "./templates/layouts",
    ]


class RegistryConfig(BaseModel):
    """Persisted registry configuration (``layouts.yaml``).

    Created with defaults on first run and read on every registry
    construction.
    """

    version: str = Field(default="1.0")
    registries: dict[str, RemoteRegistry] = Field(default_factory=_default_registries)
    local_paths: list[str] = Field(default_factory=_default_local_paths)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Write the configuration as YAML, creating parent directories.

        Returns:
            The path that was written.
        """
        path = Path(path)
        write_text(path, yaml.safe_dump(self.model_dump(mode="json"), sort_keys=False))
        return path

    @classmethod
    def load(cls, path: Path) -> "RegistryConfig":
        """Load and validate a YAML configuration file.

        Raises:
            OSError: If the file cannot be read.
            yaml.YAMLError: If the file is not valid YAML.
            pydantic.ValidationError: If the content does not match the schema.
        """
        raw = Path(path).read_text(encoding="utf-8")
        data = yaml.safe_load(raw) or {}
        return cls.model_validate(data)

    @classmethod
    def from_env(cls) -> "RegistryConfig":
        """Build a default configuration with environment overrides.

        Recognised variables (all optional):
            FOUNDRY_CACHE_DIR, FOUNDRY_CACHE_TTL.
        """
        cache_kwargs: dict[str, Any] = {}
        if os.environ.get("FOUNDRY_CACHE_DIR"):
            cache_kwargs["directory"] = os.environ["FOUNDRY_CACHE_DIR"]
        if os.environ.get("FOUNDRY_CACHE_TTL"):
            cache_kwargs["ttl"] = os.environ["FOUNDRY_CACHE_TTL"]
        return cls(cache=CacheConfig(**cache_kwargs))
