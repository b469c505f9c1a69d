"""Layout cache: in-memory layouts plus on-disk metadata and layout trees.

On-disk structure under the cache directory::

    metadata.json                 # {name: CacheMetadata}
    layouts/<name>/manifest.json  # save_layout / load_layout
    layouts/<name>/source.json
    layouts/<name>/templates/...  # mirrors Layout.templates
    remote/<name>/<ref>/          # materialised remote archives (loader)
    github/<owner_repo>/<ref>/    # materialised clones (loader)
    index.json                    # registry index, not owned by the cache

Expiry is lazy: ``get`` reports a miss once ``expires_at`` has passed but
the entry stays in memory until ``refresh`` or the next process start,
where ``_load_metadata`` prunes expired rows.
"""

from __future__ import annotations

import json
import shutil
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from foundry.errors import CacheError, LayoutNotFoundError
from foundry.layout.models import CacheMetadata, Layout, LayoutManifest, LayoutSource
from foundry.utils import ensure_dir, load_json, print_warning, write_json, write_text

METADATA_FILENAME = "metadata.json"
INDEX_FILENAME = "index.json"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LayoutCache:
    """Thread-safe cache of materialised layouts keyed by name.

    All reads and writes go through one lock; metadata is persisted
    synchronously inside ``set``, ``remove`` and ``clear``.
    """

    def __init__(
        self,
        directory: str | Path,
        ttl: timedelta,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """
        Args:
            directory: Cache root, created if missing.
            ttl: How long a ``set`` entry stays fresh.
            clock: Returns the current aware ``datetime``.

        Raises:
            CacheError: If the cache directory cannot be created.
        """
        self.directory = Path(directory)
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.RLock()
        self._layouts: dict[str, Layout] = {}
        self._metadata: dict[str, CacheMetadata] = {}

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CacheError(f"failed to create cache directory: {exc}") from exc

        try:
            self._load_metadata()
        except CacheError as exc:
            print_warning(f"failed to load cache metadata: {exc}")

    @property
    def metadata_path(self) -> Path:
        return self.directory / METADATA_FILENAME

    def layout_dir(self, name: str) -> Path:
        return self.directory / "layouts" / name

    # -- In-memory entries ---------------------------------------------------

    def get(self, name: str) -> Layout | None:
        """Return a copy of the cached layout, or ``None`` if absent or expired."""
        with self._lock:
            layout = self._layouts.get(name)
            if layout is None:
                return None

            meta = self._metadata.get(name)
            if meta is not None and meta.is_expired(self._clock()):
                return None

            return layout.model_copy(deep=True)

    def set(self, name: str, layout: Layout) -> None:
        """Store ``layout`` under ``name`` and persist fresh metadata."""
        with self._lock:
            self._layouts[name] = layout.model_copy(deep=True)
            now = self._clock()
            self._metadata[name] = CacheMetadata(
                name=name,
                version=layout.version,
                cached_at=now,
                expires_at=now + self.ttl,
                source=layout.source.type.value,
            )
            self._save_metadata()

    def remove(self, name: str) -> None:
        """Drop ``name`` from memory, metadata, and the on-disk layout tree."""
        with self._lock:
            self._layouts.pop(name, None)
            self._metadata.pop(name, None)

            layout_dir = self.layout_dir(name)
            if layout_dir.exists():
                try:
                    shutil.rmtree(layout_dir)
                except OSError as exc:
                    raise CacheError(f"failed to remove cached layout: {exc}") from exc

            self._save_metadata()

    def clear(self) -> None:
        """Remove every cached layout and materialised source.

        The registry index stored alongside the cache is preserved.
        """
        with self._lock:
            self._layouts.clear()
            self._metadata.clear()

            try:
                for child in self.directory.iterdir():
                    if child.name == INDEX_FILENAME:
                        continue
                    if child.is_dir() and not child.is_symlink():
                        shutil.rmtree(child)
                    else:
                        child.unlink()
            except OSError as exc:
                raise CacheError(f"failed to clear cache: {exc}") from exc

            self._save_metadata()

    def list(self) -> list[CacheMetadata]:
        """Metadata rows sorted by name."""
        with self._lock:
            return [self._metadata[name].model_copy() for name in sorted(self._metadata)]

    def refresh(self) -> None:
        """Forget in-memory layouts and reload metadata from disk."""
        with self._lock:
            self._layouts.clear()
            self._load_metadata()

    # -- Metadata persistence ------------------------------------------------

    def _load_metadata(self) -> None:
        path = self.metadata_path
        if not path.exists():
            self._metadata = {}
            return

        try:
            raw = load_json(path)
            metadata = {
                name: CacheMetadata.model_validate(entry) for name, entry in raw.items()
            }
        except (OSError, json.JSONDecodeError, AttributeError, ValidationError) as exc:
            raise CacheError(f"failed to parse cache metadata: {exc}") from exc

        now = self._clock()
        self._metadata = {
            name: meta for name, meta in metadata.items() if not meta.is_expired(now)
        }

    def _save_metadata(self) -> None:
        data = {
            name: meta.model_dump(mode="json") for name, meta in sorted(self._metadata.items())
        }
        try:
            write_json(data, self.metadata_path)
        except OSError as exc:
            raise CacheError(f"failed to write cache metadata: {exc}") from exc

    # -- Full layout trees ---------------------------------------------------

    def save_layout(self, layout: Layout) -> Path:
        """Write manifest, source and templates under ``layouts/<name>/``.

        Returns:
            The layout's cache directory.

        Raises:
            CacheError: If any part cannot be written.
        """
        layout_dir = self.layout_dir(layout.name)
        templates_dir = layout_dir / "templates"
        try:
            if templates_dir.exists():
                shutil.rmtree(templates_dir)
            root = ensure_dir(templates_dir).resolve()

            write_text(layout_dir / "manifest.json", layout.manifest.model_dump_json(indent=2))
            write_text(layout_dir / "source.json", layout.source.model_dump_json(indent=2))

            for rel_path, content in layout.templates.items():
                target = (templates_dir / rel_path).resolve()
                if not target.is_relative_to(root):
                    raise CacheError(f"template path escapes cache directory: {rel_path}")
                write_text(target, content)
        except OSError as exc:
            raise CacheError(f"failed to save layout {layout.name}: {exc}") from exc

        return layout_dir

    def load_layout(self, name: str) -> Layout:
        """Rebuild a ``Layout`` from ``layouts/<name>/``.

        Raises:
            LayoutNotFoundError: If the layout was never saved.
            CacheError: If the saved files are unreadable or malformed.
        """
        layout_dir = self.layout_dir(name)
        if not layout_dir.is_dir():
            raise LayoutNotFoundError(f"layout '{name}' not found in cache", name=name)

        try:
            manifest = LayoutManifest.model_validate_json(
                (layout_dir / "manifest.json").read_text(encoding="utf-8")
            )
            source = LayoutSource.model_validate_json(
                (layout_dir / "source.json").read_text(encoding="utf-8")
            )

            templates: dict[str, str] = {}
            templates_dir = layout_dir / "templates"
            if templates_dir.is_dir():
                for path in sorted(templates_dir.rglob("*")):
                    if path.is_file():
                        key = path.relative_to(templates_dir).as_posix()
                        templates[key] = path.read_text(encoding="utf-8")
        except (OSError, ValidationError) as exc:
            raise CacheError(f"failed to load cached layout {name}: {exc}") from exc

        return Layout(
            name=name,
            version=manifest.version,
            source=source,
            manifest=manifest,
            templates=templates,
            loaded_at=self._clock(),
        )
