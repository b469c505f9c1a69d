"""Project and component generation from layouts.

``LayoutManager`` is the entry point used by the CLI.  It owns the
registry, cache, loader and renderer, and exposes the two generation
operations:

- ``generate_project`` renders a layout's directories and files into a
  target directory, in manifest declaration order.  The first error aborts
  the run; files already written stay on disk.
- ``generate_component`` renders a single component template into
  ``<project>/<target_dir>/<lowercase name>.go``.
"""

from __future__ import annotations

import asyncio
import os
from datetime import datetime
from pathlib import Path
from typing import Any

import httpx
from rich.markup import escape

from foundry.config import default_config_path
from foundry.errors import (
    ComponentNotFoundError,
    GenerationError,
    TemplateNotFoundError,
    VariableError,
)
from foundry.layout.cache import LayoutCache
from foundry.layout.embedded import EmbeddedLayouts
from foundry.layout.loader import LayoutLoader
from foundry.layout.models import (
    Layout,
    LayoutListEntry,
    LayoutSource,
    ProjectData,
    SourceType,
)
from foundry.layout.registry import LayoutRegistry
from foundry.layout.rendering import TemplateRenderer
from foundry.naming import lower
from foundry.utils import console, write_text

DEFAULT_COMPONENT_MODULE = "example.com/project"

_EXECUTABLE_NAMES = ("main.go",)
_EXECUTABLE_SUFFIXES = (".sh",)


def file_mode_for(path: Path) -> int:
    """Return 0o755 for ``main.go`` and shell scripts, 0o644 otherwise."""
    if path.name in _EXECUTABLE_NAMES or path.suffix in _EXECUTABLE_SUFFIXES:
        return 0o755
    return 0o644


def _write_file(path: Path, content: str, mode: int | None = None) -> None:
    write_text(path, content)
    if mode is not None:
        os.chmod(path, mode)


def _remote_layout_name(url: str) -> str:
    """``https://x/layouts/api-v2.tar.gz`` -> ``api-v2``."""
    base = url.rstrip("/").rsplit("/", 1)[-1]
    if base.endswith(".tar.gz"):
        return base[: -len(".tar.gz")]
    stem, dot, _ = base.rpartition(".")
    return stem if dot and stem else base


class LayoutManager:
    """High-level layout operations: listing, loading and generation."""

    def __init__(
        self,
        registry: LayoutRegistry,
        cache: LayoutCache,
        loader: LayoutLoader,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.registry = registry
        self.cache = cache
        self.loader = loader
        self.renderer = renderer or TemplateRenderer()

    @classmethod
    def from_config(
        cls,
        config_path: str | Path | None = None,
        embedded: EmbeddedLayouts | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "LayoutManager":
        """Wire a registry, cache and loader from a registry config file.

        Args:
            config_path: Defaults to :func:`foundry.config.default_config_path`.
            embedded: Built-in layout provider; defaults to the packaged layouts.
            transport: Optional httpx transport for remote downloads.
        """
        path = Path(config_path) if config_path is not None else default_config_path()
        if embedded is None:
            embedded = EmbeddedLayouts.default()

        registry = LayoutRegistry(path, embedded=embedded)
        config = registry.get_config()
        cache = LayoutCache(config.cache.path, config.cache.ttl)
        loader = LayoutLoader(
            registry,
            cache,
            embedded=embedded,
            security=config.security,
            transport=transport,
        )
        return cls(registry, cache, loader)

    # -- Registry passthroughs -----------------------------------------------

    def list_layouts(self) -> list[LayoutListEntry]:
        return self.registry.list_layouts()

    async def get_layout(self, name: str) -> Layout:
        return await self.loader.load(name)

    def add_remote_layout(self, url: str, name: str | None = None) -> LayoutListEntry:
        """Register a remote ``.tar.gz`` layout by URL.

        The layout name defaults to the URL's last path segment without its
        extension.
        """
        entry = LayoutListEntry(
            name=name or _remote_layout_name(url),
            description="Remote layout",
            source=LayoutSource(type=SourceType.REMOTE, location=url),
            installed=False,
            updated_at=datetime.now().astimezone(),
        )
        self.registry.add_layout(entry)
        return entry

    def refresh_layouts(self) -> None:
        self.registry.refresh_remote_registries()

    # -- Project generation --------------------------------------------------

    async def generate_project(
        self,
        layout_name: str,
        target_path: str | Path,
        data: ProjectData,
    ) -> Path:
        """Render ``layout_name`` into ``target_path``.

        Args:
            layout_name: Registered layout name.
            target_path: Project root; created if missing.
            data: Project variables.  Not modified; defaults are applied to
                a copy.

        Returns:
            The project root.

        Raises:
            LayoutNotFoundError: If the layout is unknown.
            VariableError: If a required layout variable is missing.
            TemplateNotFoundError: If a file spec names a template the
                layout does not ship.
            TemplateRenderError: If a path or template fails to render.
            GenerationError: If a directory or file cannot be written.
        """
        layout = await self.get_layout(layout_name)
        data = self._apply_defaults(layout, data)
        context = data.template_context()
        root = Path(target_path)

        await self._create_directories(layout, root, context)
        await self._generate_files(layout, root, context)
        return root

    @staticmethod
    def _apply_defaults(layout: Layout, data: ProjectData) -> ProjectData:
        data = data.model_copy(deep=True)
        if data.year == 0:
            data.year = datetime.now().year

        for variable in layout.manifest.variables:
            if variable.name not in data.custom_variables and variable.default != "":
                data.custom_variables[variable.name] = variable.default
            if variable.required and variable.name not in data.custom_variables:
                raise VariableError(
                    f"required variable '{variable.name}' not provided",
                    variable=variable.name,
                )
        return data

    async def _create_directories(
        self, layout: Layout, root: Path, context: dict[str, Any]
    ) -> None:
        try:
            await asyncio.to_thread(root.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            raise GenerationError(f"failed to create project directory: {exc}") from exc

        for directory in layout.manifest.structure.directories:
            rel_path = self.renderer.render_path(directory.path, context)
            try:
                await asyncio.to_thread((root / rel_path).mkdir, parents=True, exist_ok=True)
            except OSError as exc:
                raise GenerationError(
                    f"failed to create directory {rel_path}: {exc}", path=rel_path
                ) from exc

    async def _generate_files(
        self, layout: Layout, root: Path, context: dict[str, Any]
    ) -> None:
        for spec in layout.manifest.structure.files:
            source = layout.templates.get(spec.template)
            if source is None:
                raise TemplateNotFoundError(
                    f"template not found: {spec.template}", template=spec.template
                )

            rel_target = self.renderer.render_path(spec.target, context)
            content = self.renderer.render_string(source, context, name=spec.template)
            target = root / rel_target
            try:
                await asyncio.to_thread(_write_file, target, content, file_mode_for(target))
            except OSError as exc:
                raise GenerationError(
                    f"failed to write {rel_target}: {exc}", path=rel_target
                ) from exc

    # -- Component generation ------------------------------------------------

    async def generate_component(
        self,
        layout_name: str,
        component_type: str,
        component_name: str,
        project_path: str | Path,
        module_name: str | None = None,
    ) -> Path:
        """Render one component into ``<project>/<target_dir>/<name>.go``.

        Raises:
            ComponentNotFoundError: If the layout does not declare
                ``component_type``.  No file is created.
        """
        layout = await self.get_layout(layout_name)

        component = layout.manifest.components.get(component_type)
        if component is None:
            raise ComponentNotFoundError(
                f"component type '{component_type}' not found in layout",
                layout=layout_name,
                component_type=component_type,
            )

        source = layout.templates.get(component.template)
        if source is None:
            raise TemplateNotFoundError(
                f"template not found: {component.template}", template=component.template
            )

        context = {
            "ComponentName": component_name,
            "ModuleName": module_name or DEFAULT_COMPONENT_MODULE,
            "Name": component_name,
            "PackageName": lower(component_name),
            "Type": component_type,
        }
        content = self.renderer.render_string(source, context, name=component.template)

        target = Path(project_path) / component.target_dir / f"{lower(component_name)}.go"
        try:
            await asyncio.to_thread(_write_file, target, content)
        except OSError as exc:
            raise GenerationError(f"failed to write {target}: {exc}", path=str(target)) from exc

        console.print(f"[green]Generated {component_type}:[/green] {escape(str(target))}")
        return target
