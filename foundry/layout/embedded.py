"""Layouts bundled with the package.

The built-in layouts live under ``foundry/templates/<name>/`` as package
data.  ``EmbeddedLayouts`` is handed to the registry and the loader by the
top-level wiring (see ``LayoutManager.from_config``); nothing here is global.
"""

from __future__ import annotations

from pathlib import Path

from foundry.errors import FoundryError, LayoutNotFoundError
from foundry.layout.manifest import MANIFEST_FILENAME, has_manifest, load_manifest
from foundry.layout.models import LayoutListEntry, LayoutManifest, LayoutSource, SourceType

_DEFAULT_EMBEDDED_DIR = Path(__file__).resolve().parent.parent / "templates"

EMBEDDED_LOCATION = "built-in"


class EmbeddedLayouts:
    """Read-only provider for layouts shipped inside the package."""

    def __init__(self, root: str | Path | None = None) -> None:
        self.root = Path(root) if root is not None else _DEFAULT_EMBEDDED_DIR

    @classmethod
    def default(cls) -> "EmbeddedLayouts":
        return cls(_DEFAULT_EMBEDDED_DIR)

    def names(self) -> list[str]:
        """Return the sorted names of embedded layouts that carry a manifest."""
        if not self.root.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self.root.iterdir()
            if entry.is_dir() and has_manifest(entry)
        )

    def has(self, name: str) -> bool:
        return name in self.names()

    def path(self, name: str) -> Path:
        """Directory holding the embedded layout ``name``.

        Raises:
            LayoutNotFoundError: If there is no such embedded layout.
        """
        layout_dir = self.root / name
        if not (layout_dir / MANIFEST_FILENAME).is_file():
            raise LayoutNotFoundError(f"embedded layout '{name}' not found", name=name)
        return layout_dir

    def manifest(self, name: str) -> LayoutManifest:
        return load_manifest(self.path(name) / MANIFEST_FILENAME)

    def list_entries(self) -> list[LayoutListEntry]:
        """Registry rows for every embedded layout; unreadable manifests are skipped."""
        entries: list[LayoutListEntry] = []
        for name in self.names():
            try:
                manifest = self.manifest(name)
            except FoundryError:
                continue
            entries.append(
                LayoutListEntry(
                    name=name,
                    version=manifest.version,
                    description=manifest.description,
                    source=LayoutSource(type=SourceType.EMBEDDED, location=EMBEDDED_LOCATION),
                    installed=True,
                )
            )
        return entries
