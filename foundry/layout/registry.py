"""Layout registry: which layouts exist and where they come from.

Entries are assembled on every construction, in this order (later writes
win on name collisions):

1. embedded layouts shipped with the package,
2. local layouts found by scanning each configured ``local_paths`` entry for
   immediate subdirectories that contain ``layout.manifest.yaml``,
3. the persisted index of remote/github layouts (``<cache dir>/index.json``).

Only non-local entries are written back to the index; local and embedded
layouts are rediscovered on each run.
"""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path

import yaml
from pydantic import ValidationError

from foundry.config import RegistryConfig
from foundry.errors import (
    FoundryError,
    LayoutNotFoundError,
    NameValidationError,
    RegistryError,
)
from foundry.layout.cache import INDEX_FILENAME
from foundry.layout.embedded import EmbeddedLayouts
from foundry.layout.manifest import MANIFEST_FILENAME, load_manifest
from foundry.layout.models import LayoutListEntry, LayoutSource, SourceType
from foundry.layout.sources import expand_path
from foundry.naming import is_valid_layout_name
from foundry.utils import load_json, print_warning, write_json

# Entry types that are rediscovered instead of persisted.
_SCANNED_TYPES = (SourceType.LOCAL, SourceType.EMBEDDED)


class LayoutRegistry:
    """Tracks known layouts by name."""

    def __init__(
        self,
        config_path: str | Path,
        embedded: EmbeddedLayouts | None = None,
    ) -> None:
        """
        Args:
            config_path: YAML configuration file; written with defaults if
                it cannot be read.
            embedded: Provider for built-in layouts, or ``None`` for none.

        Raises:
            RegistryError: If a default configuration cannot be written.
        """
        self.config_path = Path(config_path)
        self.embedded = embedded
        self._lock = threading.RLock()
        self._layouts: dict[str, LayoutListEntry] = {}

        try:
            self.config = RegistryConfig.load(self.config_path)
        except (OSError, ValueError, yaml.YAMLError) as exc:
            if self.config_path.exists():
                print_warning(f"failed to read registry config, using defaults: {exc}")
            self.config = RegistryConfig.from_env()
            self._save_config()

        try:
            self._load_layouts()
        except RegistryError as exc:
            print_warning(f"failed to load layout index: {exc}")

    @property
    def index_path(self) -> Path:
        return self.config.cache.path / INDEX_FILENAME

    # -- Loading -------------------------------------------------------------

    def _save_config(self) -> None:
        try:
            self.config.save(self.config_path)
        except OSError as exc:
            raise RegistryError(f"failed to save default config: {exc}") from exc

    def _load_layouts(self) -> None:
        if self.embedded is not None:
            for entry in self.embedded.list_entries():
                self._layouts[entry.name] = entry

        for path in self.config.local_paths:
            self._scan_local_path(path)

        index_path = self.index_path
        if not index_path.exists():
            return
        try:
            raw = load_json(index_path)
            remote = {
                name: LayoutListEntry.model_validate(entry) for name, entry in raw.items()
            }
        except (OSError, json.JSONDecodeError, AttributeError, ValidationError) as exc:
            raise RegistryError(f"failed to parse layout index {index_path}: {exc}") from exc

        with self._lock:
            self._layouts.update(remote)

    def _scan_local_path(self, base_path: str) -> None:
        """Register every ``<base_path>/<name>/layout.manifest.yaml`` as a local layout."""
        base = expand_path(base_path)
        if not base.is_dir():
            return

        try:
            children = sorted(base.iterdir())
        except OSError as exc:
            print_warning(f"failed to read directory {base}: {exc}")
            return

        for child in children:
            if not child.is_dir() or not (child / MANIFEST_FILENAME).is_file():
                continue
            try:
                manifest = load_manifest(child / MANIFEST_FILENAME)
            except FoundryError as exc:
                print_warning(f"skipping layout {child.name}: {exc}")
                continue

            with self._lock:
                self._layouts[child.name] = LayoutListEntry(
                    name=child.name,
                    version=manifest.version,
                    description=manifest.description,
                    source=LayoutSource(type=SourceType.LOCAL, location=str(child)),
                    installed=True,
                    updated_at=datetime.now(timezone.utc),
                )

    # -- Queries -------------------------------------------------------------

    def get_layout_source(self, name: str) -> LayoutSource:
        """Raises ``LayoutNotFoundError`` for unknown names."""
        return self.get_layout(name).source

    def get_layout(self, name: str) -> LayoutListEntry:
        with self._lock:
            entry = self._layouts.get(name)
        if entry is None:
            raise LayoutNotFoundError(f"layout '{name}' not found", name=name)
        return entry.model_copy()

    def has_layout(self, name: str) -> bool:
        with self._lock:
            return name in self._layouts

    def list_layouts(self) -> list[LayoutListEntry]:
        """All known layouts sorted by name."""
        with self._lock:
            return [self._layouts[name].model_copy() for name in sorted(self._layouts)]

    def get_config(self) -> RegistryConfig:
        return self.config

    # -- Mutations -----------------------------------------------------------

    def add_layout(self, entry: LayoutListEntry) -> None:
        """Register ``entry`` and persist the index.

        Raises:
            NameValidationError: If the layout name is not acceptable.
            RegistryError: If the index cannot be written.
        """
        if not is_valid_layout_name(entry.name):
            raise NameValidationError(f"invalid layout name: {entry.name!r}", name=entry.name)
        with self._lock:
            self._layouts[entry.name] = entry
            self._save_index()

    def update_layout(self, name: str, entry: LayoutListEntry) -> None:
        with self._lock:
            self._layouts[name] = entry
            self._save_index()

    def remove_layout(self, name: str) -> None:
        with self._lock:
            self._layouts.pop(name, None)
            self._save_index()

    def refresh_remote_registries(self) -> None:
        """Extension point for fetching layout lists from remote registries.

        Fetching is not implemented; the configured registries are only
        recorded in the configuration.
        """

    def _save_index(self) -> None:
        remote = {
            name: entry.model_dump(mode="json")
            for name, entry in sorted(self._layouts.items())
            if entry.source.type not in _SCANNED_TYPES
        }
        try:
            write_json(remote, self.index_path)
        except OSError as exc:
            raise RegistryError(f"failed to write index: {exc}") from exc
