"""Foundry layout engine.

Resolves named layouts from local directories, the bundled templates,
remote archives or GitHub repositories, caches them, and renders projects
and single components from them.

Key classes:
    LayoutManager   - Project and component generation (entry point)
    LayoutLoader    - Source dispatch and materialisation
    LayoutRegistry  - Known layouts and where they come from
    LayoutCache     - In-memory layouts plus on-disk metadata
    EmbeddedLayouts - Layouts shipped with the package
    TemplateRenderer - Shared path and content rendering

Quick usage::

    from foundry.layout import LayoutManager, ProjectData

    manager = LayoutManager.from_config()
    await manager.generate_project(
        "standard", "./myapp", ProjectData(project_name="myapp", module_name="github.com/me/myapp")
    )
"""

from .cache import LayoutCache
from .embedded import EmbeddedLayouts
from .loader import LayoutLoader
from .manager import LayoutManager
from .models import (
    CacheMetadata,
    ComponentTemplate,
    DirectorySpec,
    FileSpec,
    Layout,
    LayoutListEntry,
    LayoutManifest,
    LayoutSource,
    LayoutStructure,
    LayoutVariable,
    ProjectData,
    SourceType,
)
from .registry import LayoutRegistry
from .rendering import TemplateRenderer

__all__ = [
    # Engine
    "LayoutManager",
    "LayoutLoader",
    "LayoutRegistry",
    "LayoutCache",
    "EmbeddedLayouts",
    "TemplateRenderer",
    # Models
    "CacheMetadata",
    "ComponentTemplate",
    "DirectorySpec",
    "FileSpec",
    "Layout",
    "LayoutListEntry",
    "LayoutManifest",
    "LayoutSource",
    "LayoutStructure",
    "LayoutVariable",
    "ProjectData",
    "SourceType",
]
