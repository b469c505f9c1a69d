"""Shared pytest fixtures for the Foundry test suite.

Provides reusable fixtures for:
- Isolated registry configuration and cache directories
- On-disk layout directories with manifest and templates
- A generated-project routes file for the route updater
- In-memory ``.tar.gz`` archives, including malicious ones
- Mock subprocess helpers
"""

from __future__ import annotations

import io
import tarfile
import textwrap
from datetime import timedelta
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from foundry.config import CacheConfig, RegistryConfig
from foundry.layout.models import Layout, LayoutManifest, LayoutSource, SourceType


# ---------------------------------------------------------------------------
# Environment isolation
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolated_home(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch):
    """Point ``$HOME`` and the Foundry env vars away from the real user."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("FOUNDRY_CONFIG", raising=False)
    monkeypatch.delenv("FOUNDRY_CACHE_DIR", raising=False)
    monkeypatch.delenv("FOUNDRY_CACHE_TTL", raising=False)
    yield home


@pytest.fixture
def layouts_dir(tmp_path: Path) -> Path:
    """Directory scanned for local layouts."""
    path = tmp_path / "layouts"
    path.mkdir()
    return path


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture
def config_path(tmp_path: Path, layouts_dir: Path, cache_dir: Path) -> Path:
    """Registry config that scans only ``layouts_dir`` and caches under ``cache_dir``."""
    config = RegistryConfig(
        local_paths=[str(layouts_dir)],
        cache=CacheConfig(directory=str(cache_dir), ttl=timedelta(hours=24)),
    )
    return config.save(tmp_path / "layouts.yaml")


# ---------------------------------------------------------------------------
# Layout directories
# ---------------------------------------------------------------------------

SAMPLE_MANIFEST = textwrap.dedent("""\
    name: {name}
    version: 1.2.0
    author: Test Author
    description: Sample layout for tests
    structure:
      directories:
        - path: cmd/{{{{.ProjectName}}}}
        - path: internal/handlers
      files:
        - template: project/main.go.tmpl
          target: cmd/{{{{.ProjectName}}}}/main.go
        - template: project/README.md.tmpl
          target: README.md
        - template: project/scripts/run.sh.tmpl
          target: scripts/run.sh
    variables:
      - name: Port
        default: "8080"
    components:
      handler:
        template: components/handler.go.tmpl
        target_dir: internal/handlers
""")

SAMPLE_TEMPLATES = {
    "project/main.go.tmpl": (
        "package main\n\n// {{ ProjectName }} ({{ ModuleName }}) on port {{ Port }}\n"
        "func main() {}\n"
    ),
    "project/README.md.tmpl": "# {{.ProjectName | pascal}}\n\n{{ Description | default(\"none\") }}\n",
    "project/scripts/run.sh.tmpl": "#!/bin/sh\necho {{ ProjectName | upper }}\n",
    "components/handler.go.tmpl": (
        "package handlers\n\n// {{ Name | capitalize }}Handler in {{ ModuleName }}\n"
        "type {{ Name | capitalize }}Handler struct{}\n"
    ),
}


def write_layout(
    base: Path,
    name: str = "sample",
    manifest: str | None = None,
    templates: dict[str, str] | None = None,
) -> Path:
    """Create ``base/name`` with a manifest and ``*.tmpl`` files."""
    layout_dir = base / name
    layout_dir.mkdir(parents=True, exist_ok=True)
    text = manifest if manifest is not None else SAMPLE_MANIFEST.format(name=name)
    (layout_dir / "layout.manifest.yaml").write_text(text, encoding="utf-8")
    for rel_path, content in (templates if templates is not None else SAMPLE_TEMPLATES).items():
        target = layout_dir / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    return layout_dir


@pytest.fixture
def sample_layout_dir(layouts_dir: Path) -> Path:
    """A valid local layout named ``sample`` inside ``layouts_dir``."""
    return write_layout(layouts_dir)


@pytest.fixture
def sample_layout() -> Layout:
    """An in-memory ``Layout`` that never touched the filesystem."""
    manifest = LayoutManifest(name="sample", version="1.2.0", description="Sample")
    return Layout(
        name="sample",
        version="1.2.0",
        source=LayoutSource(type=SourceType.LOCAL, location="/layouts/sample"),
        manifest=manifest,
        templates={
            "project/main.go.tmpl": "package main\n",
            "components/handler.go.tmpl": "package handlers\n",
        },
    )


# ---------------------------------------------------------------------------
# Archives
# ---------------------------------------------------------------------------

def make_tar_gz(entries: dict[str, str], wrap: str | None = None) -> bytes:
    """Build a gzip-compressed tarball from ``{path: content}``.

    If ``wrap`` is given every entry is placed under that top-level folder,
    the way source hosts package repository archives.
    """
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for rel_path, content in entries.items():
            name = f"{wrap}/{rel_path}" if wrap else rel_path
            data = content.encode("utf-8")
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def make_symlink_tar_gz(name: str, target: str) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        info = tarfile.TarInfo(name)
        info.type = tarfile.SYMTYPE
        info.linkname = target
        tar.addfile(info)
    return buffer.getvalue()


def layout_archive_entries(name: str = "sample") -> dict[str, str]:
    """Archive contents for a complete sample layout."""
    return {"layout.manifest.yaml": SAMPLE_MANIFEST.format(name=name), **SAMPLE_TEMPLATES}


# ---------------------------------------------------------------------------
# Routes files
# ---------------------------------------------------------------------------

SAMPLE_ROUTES = textwrap.dedent("""\
    package routes

    import (
    \t"net/http"

    \t"github.com/go-chi/chi/v5"
    )

    func RegisterAPIRoutes() *chi.Mux {
    \tr := chi.NewRouter()

    \tr.Route("/api/v1", func(r chi.Router) {
    \t\tr.Get("/health", HealthHandler)

    \t\t// Handler routes will be auto-generated here
    \t})

    \treturn r
    }

    func HealthHandler(w http.ResponseWriter, r *http.Request) {}
""")


@pytest.fixture
def routes_project(tmp_path: Path) -> Path:
    """A project root holding ``go.mod`` and ``internal/routes/routes.go``."""
    root = tmp_path / "goproject"
    routes_dir = root / "internal" / "routes"
    routes_dir.mkdir(parents=True)
    (routes_dir / "routes.go").write_text(SAMPLE_ROUTES, encoding="utf-8")
    (root / "go.mod").write_text("module myapp\n\ngo 1.22\n", encoding="utf-8")
    return root


# ---------------------------------------------------------------------------
# Mock subprocess
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_subprocess():
    """Mock asyncio subprocess for testing command execution.

    Returns a factory that creates mock subprocess instances with configurable
    stdout, stderr, and return codes.

    Usage:
        def test_command(mock_subprocess):
            proc = mock_subprocess(stdout="output", returncode=0)
            with patch("asyncio.create_subprocess_exec", return_value=proc):
                ...
    """
    def factory(
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
    ) -> AsyncMock:
        mock_proc = AsyncMock()
        mock_proc.communicate = AsyncMock(
            return_value=(stdout.encode("utf-8"), stderr.encode("utf-8"))
        )
        mock_proc.returncode = returncode
        mock_proc.pid = 99999
        mock_proc.kill = MagicMock()
        mock_proc.wait = AsyncMock(return_value=returncode)
        return mock_proc

    return factory


# ---------------------------------------------------------------------------
# Factories exposed as fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def layout_factory():
    """``write_layout(base, name="sample", manifest=None, templates=None)``."""
    return write_layout


@pytest.fixture
def tar_gz_factory():
    """``make_tar_gz(entries, wrap=None) -> bytes``."""
    return make_tar_gz


@pytest.fixture
def layout_archive() -> bytes:
    """A ``.tar.gz`` holding the sample layout at its root."""
    return make_tar_gz(layout_archive_entries())


@pytest.fixture
def sample_templates() -> dict[str, str]:
    return dict(SAMPLE_TEMPLATES)


@pytest.fixture
def symlink_tar_gz_factory():
    """``make_symlink_tar_gz(name, target) -> bytes``."""
    return make_symlink_tar_gz


@pytest.fixture
def layout_archive_factory():
    """``(name="sample", wrap=None) -> bytes`` for a complete layout archive."""
    def factory(name: str = "sample", wrap: str | None = None) -> bytes:
        return make_tar_gz(layout_archive_entries(name), wrap=wrap)

    return factory
