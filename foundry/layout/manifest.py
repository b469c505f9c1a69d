"""Layout manifest parsing and template collection.

A layout directory looks like::

    my-layout/
    ├── layout.manifest.yaml
    ├── project/          # templates referenced by structure.files
    │   └── ...*.tmpl
    └── components/       # optional, templates referenced by components
        └── ...*.tmpl

Templates are keyed by their slash-separated path relative to the layout
root, e.g. ``project/cmd/server/main.go.tmpl``.
"""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import ValidationError

from foundry.errors import ManifestError, ManifestNotFoundError
from foundry.layout.models import LayoutManifest

MANIFEST_FILENAME = "layout.manifest.yaml"
TEMPLATE_SUFFIX = ".tmpl"
PROJECT_SUBTREE = "project"
COMPONENTS_SUBTREE = "components"


def parse_manifest(text: str, origin: str = "<string>") -> LayoutManifest:
    """Parse manifest YAML.

    Args:
        text: Raw YAML content.
        origin: Where the text came from, used in error messages.

    Raises:
        ManifestError: If the YAML is invalid, ``name``/``version`` are
            missing, or the document does not match the schema.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ManifestError(f"failed to parse manifest {origin}: {exc}", origin=origin) from exc

    if not isinstance(data, dict):
        raise ManifestError(f"manifest {origin} must be a mapping", origin=origin)

    for field in ("name", "version"):
        value = data.get(field)
        if value is None or str(value).strip() == "":
            raise ManifestError(f"manifest missing required field: {field}", origin=origin)
        # YAML reads ``version: 1.0`` as a float.
        data[field] = str(value)

    try:
        return LayoutManifest.model_validate(data)
    except ValidationError as exc:
        raise ManifestError(f"invalid manifest {origin}: {exc}", origin=origin) from exc


def load_manifest(path: Path) -> LayoutManifest:
    """Read and parse a manifest file.

    Raises:
        ManifestNotFoundError: If the file does not exist.
        ManifestError: See :func:`parse_manifest`.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ManifestNotFoundError(f"manifest not found: {path}", path=str(path)) from exc
    except OSError as exc:
        raise ManifestError(f"failed to read manifest {path}: {exc}", path=str(path)) from exc
    return parse_manifest(text, origin=str(path))


def collect_templates(base: Path, subtree: str, templates: dict[str, str]) -> int:
    """Add every ``*.tmpl`` file under ``base/subtree`` to ``templates``.

    Keys are ``subtree/<relative path>`` with forward slashes.  Files are
    visited in sorted order.

    Returns:
        The number of templates collected.

    Raises:
        FileNotFoundError: If ``base/subtree`` is not a directory.
    """
    root = Path(base) / subtree
    if not root.is_dir():
        raise FileNotFoundError(f"template directory not found: {root}")

    count = 0
    for path in sorted(root.rglob(f"*{TEMPLATE_SUFFIX}")):
        if not path.is_file():
            continue
        key = f"{subtree}/{path.relative_to(root).as_posix()}"
        templates[key] = path.read_text(encoding="utf-8")
        count += 1
    return count


def has_manifest(directory: Path) -> bool:
    return (Path(directory) / MANIFEST_FILENAME).is_file()
