"""Pydantic v2 models for layouts.

Defines the manifest schema read from ``layout.manifest.yaml``, the tagged
source descriptor, the materialised ``Layout`` held by the cache, registry
listing rows, cache metadata, and the render-time ``ProjectData`` bag.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _scalar_to_str(value: Any) -> Any:
    """Turn YAML numbers and booleans into strings (``8080`` -> ``"8080"``)."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return value


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class SourceType(str, Enum):
    """Where a layout comes from."""
    LOCAL = "local"
    REMOTE = "remote"
    GITHUB = "github"
    EMBEDDED = "embedded"


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------

class DirectorySpec(BaseModel):
    """A directory to create; ``path`` may contain template variables."""
    path: str
    description: str = ""


class FileSpec(BaseModel):
    """A file rendered from ``template`` (a key of ``Layout.templates``) to ``target``."""
    template: str
    target: str


class LayoutStructure(BaseModel):
    """Ordered directory and file declarations."""
    directories: list[DirectorySpec] = Field(default_factory=list)
    files: list[FileSpec] = Field(default_factory=list)

    @field_validator("directories", "files", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class LayoutVariable(BaseModel):
    """A variable a layout accepts, with an optional default."""
    name: str
    default: str = ""
    description: str = ""
    required: bool = False

    @field_validator("default", mode="before")
    @classmethod
    def _default_as_str(cls, value: Any) -> Any:
        return "" if value is None else _scalar_to_str(value)


class ComponentTemplate(BaseModel):
    """A single-file component: one template rendered into ``target_dir``."""
    template: str
    target_dir: str


class LayoutManifest(BaseModel):
    """The declarative description of a layout."""
    name: str
    version: str
    author: str = ""
    description: str = ""
    min_foundry_version: str = ""
    structure: LayoutStructure = Field(default_factory=LayoutStructure)
    dependencies: list[str] = Field(default_factory=list)
    features: list[str] = Field(default_factory=list)
    variables: list[LayoutVariable] = Field(default_factory=list)
    components: dict[str, ComponentTemplate] = Field(default_factory=dict)

    @field_validator("version", "min_foundry_version", mode="before")
    @classmethod
    def _version_as_str(cls, value: Any) -> Any:
        return _scalar_to_str(value)

    @field_validator("structure", "dependencies", "features", "variables", "components", mode="before")
    @classmethod
    def _empty_section(cls, value: Any, info: ValidationInfo) -> Any:
        """An empty YAML section (``variables:``) parses as None."""
        if value is not None:
            return value
        return {} if info.field_name in ("structure", "components") else []


# ---------------------------------------------------------------------------
# Sources and materialised layouts
# ---------------------------------------------------------------------------

class LayoutSource(BaseModel):
    """Tagged source descriptor.

    ``location`` is a filesystem path (local), a URL (remote), ``owner/repo``
    (github), or ``built-in`` (embedded).  Immutable once created.
    """
    model_config = ConfigDict(frozen=True)

    type: SourceType
    location: str
    ref: str = ""
    checksum: str = ""


class Layout(BaseModel):
    """A materialised layout: manifest plus raw template text keyed by path."""
    name: str
    version: str
    source: LayoutSource
    manifest: LayoutManifest
    templates: dict[str, str] = Field(default_factory=dict)
    loaded_at: datetime = Field(default_factory=_utcnow)


class LayoutListEntry(BaseModel):
    """Registry row used for listing and source lookup."""
    name: str
    version: str = ""
    description: str = ""
    source: LayoutSource
    installed: bool = False
    updated_at: Optional[datetime] = None


class CacheMetadata(BaseModel):
    """Per-layout cache bookkeeping persisted in ``metadata.json``."""
    name: str
    version: str = ""
    cached_at: datetime
    expires_at: datetime
    source: str = ""

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


# ---------------------------------------------------------------------------
# Render context
# ---------------------------------------------------------------------------

class ProjectData(BaseModel):
    """Variables available to project templates.

    ``custom_variables`` is filled from the layout's declared defaults before
    required-variable validation runs.
    """
    project_name: str = ""
    module_name: str = ""
    author: str = ""
    license: str = ""
    description: str = ""
    github_username: str = ""
    year: int = 0
    go_version: str = ""
    custom_variables: dict[str, str] = Field(default_factory=dict)

    def template_context(self) -> dict[str, Any]:
        """Return the template context, keyed the way layout templates spell it.

        Custom variables are exposed under ``CustomVariables`` and also at the
        top level, where they never shadow a built-in key.
        """
        context: dict[str, Any] = {
            "ProjectName": self.project_name,
            "ModuleName": self.module_name,
            "Author": self.author,
            "License": self.license,
            "Description": self.description,
            "GitHubUsername": self.github_username,
            "Year": self.year,
            "GoVersion": self.go_version,
            "CustomVariables": dict(self.custom_variables),
        }
        for key, value in self.custom_variables.items():
            context.setdefault(key, value)
        return context
