"""Resolve a layout name to a materialised ``Layout``.

The loader consults the cache first, then asks the registry for the
layout's source and dispatches on its type:

- ``local``: read the manifest and templates straight from disk.
- ``embedded``: same, from the package's bundled layouts.
- ``remote``: download a ``.tar.gz`` into ``<cache>/remote/<name>/<ref>``,
  verify its checksum, extract it, then read it like a local layout.
- ``github``: shallow-clone into ``<cache>/github/<owner_repo>/<ref>``; if
  the clone fails, fall back to the repository's branch archive.

A successful load is stored in the cache.  Nothing is retried.
"""

from __future__ import annotations

from pathlib import Path

import httpx

from foundry.config import SecurityConfig
from foundry.errors import (
    CacheError,
    ChecksumMismatchError,
    GitError,
    TemplateNotFoundError,
    UnsupportedSourceError,
)
from foundry.layout.cache import LayoutCache
from foundry.layout.embedded import EmbeddedLayouts
from foundry.layout.manifest import (
    COMPONENTS_SUBTREE,
    MANIFEST_FILENAME,
    PROJECT_SUBTREE,
    collect_templates,
    has_manifest,
    load_manifest,
)
from foundry.layout.models import Layout, LayoutSource, SourceType
from foundry.layout.registry import LayoutRegistry
from foundry.layout.sources import (
    HTTP_TIMEOUT,
    USER_AGENT,
    clone_git_repository,
    download_file,
    expand_path,
    extract_tar_gz,
    locate_layout_root,
    materialize_atomically,
    verify_sha256,
)
from foundry.naming import sanitize_name
from foundry.utils import print_warning

ARCHIVE_FILENAME = "layout.tar.gz"
DEFAULT_REMOTE_REF = "latest"
DEFAULT_GITHUB_REF = "main"


class LayoutLoader:
    """Loads layouts by name from the registry's sources, through the cache."""

    def __init__(
        self,
        registry: LayoutRegistry,
        cache: LayoutCache,
        embedded: EmbeddedLayouts | None = None,
        security: SecurityConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Args:
            registry: Source of ``LayoutSource`` descriptors.
            cache: Cache consulted before and populated after a load.
            embedded: Provider for ``embedded`` sources.
            security: Checksum policy; defaults to verifying checksums.
            transport: Optional httpx transport, used in tests.
        """
        self.registry = registry
        self.cache = cache
        self.embedded = embedded
        self.security = security or SecurityConfig()
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=HTTP_TIMEOUT,
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
            transport=self._transport,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def load(self, name: str) -> Layout:
        """Return the layout called ``name``.

        Raises:
            LayoutNotFoundError: If the registry does not know ``name``.
            UnsupportedSourceError: If the source type cannot be loaded.
            ManifestError: If the manifest is malformed.
            DownloadError, ChecksumMismatchError, UnsafeArchiveError:
                If a remote archive cannot be materialised.
        """
        cached = self.cache.get(name)
        if cached is not None:
            return cached

        source = self.registry.get_layout_source(name)

        if source.type == SourceType.LOCAL:
            layout = self._load_local(name, source)
        elif source.type == SourceType.EMBEDDED:
            layout = self._load_embedded(name, source)
        elif source.type == SourceType.REMOTE:
            layout = await self._load_remote(name, source)
        elif source.type == SourceType.GITHUB:
            layout = await self._load_github(name, source)
        else:
            raise UnsupportedSourceError(
                f"unsupported source type: {source.type}", name=name
            )

        try:
            self.cache.set(name, layout)
        except CacheError as exc:
            print_warning(f"failed to cache layout {name}: {exc}")
        return layout

    # ------------------------------------------------------------------
    # Source backends
    # ------------------------------------------------------------------

    def _load_local(self, name: str, source: LayoutSource) -> Layout:
        return self._load_directory(name, expand_path(source.location), source)

    def _load_embedded(self, name: str, source: LayoutSource) -> Layout:
        if self.embedded is None:
            raise UnsupportedSourceError(
                f"embedded layouts are not available for '{name}'", name=name
            )
        return self._load_directory(name, self.embedded.path(name), source)

    def _load_directory(self, name: str, base: Path, source: LayoutSource) -> Layout:
        manifest = load_manifest(base / MANIFEST_FILENAME)

        templates: dict[str, str] = {}
        try:
            collect_templates(base, PROJECT_SUBTREE, templates)
        except FileNotFoundError as exc:
            raise TemplateNotFoundError(
                f"layout '{name}' has no {PROJECT_SUBTREE}/ templates", name=name
            ) from exc
        except OSError as exc:
            raise TemplateNotFoundError(
                f"failed to load project templates for '{name}': {exc}", name=name
            ) from exc

        # Component templates are optional.
        try:
            collect_templates(base, COMPONENTS_SUBTREE, templates)
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise TemplateNotFoundError(
                f"failed to load component templates for '{name}': {exc}", name=name
            ) from exc

        return Layout(
            name=name,
            version=manifest.version,
            source=source,
            manifest=manifest,
            templates=templates,
        )

    async def _load_remote(self, name: str, source: LayoutSource) -> Layout:
        cache_dir = (
            self.cache.directory
            / "remote"
            / sanitize_name(name)
            / sanitize_name(source.ref or DEFAULT_REMOTE_REF)
        )

        if cache_dir.is_dir() and has_manifest(locate_layout_root(cache_dir)):
            return self._load_materialized(name, source, cache_dir)

        with materialize_atomically(cache_dir) as scratch:
            archive = scratch / ARCHIVE_FILENAME
            async with self._client() as client:
                await download_file(client, source.location, archive)

            if source.checksum and self.security.verify_checksums:
                try:
                    verify_sha256(archive, source.checksum)
                except ChecksumMismatchError:
                    archive.unlink(missing_ok=True)
                    raise

            extract_tar_gz(archive, scratch)
            archive.unlink(missing_ok=True)

        return self._load_materialized(name, source, cache_dir)

    async def _load_github(self, name: str, source: LayoutSource) -> Layout:
        ref = source.ref or DEFAULT_GITHUB_REF
        cache_dir = (
            self.cache.directory / "github" / sanitize_name(source.location) / sanitize_name(ref)
        )

        if cache_dir.is_dir() and has_manifest(locate_layout_root(cache_dir)):
            return self._load_materialized(name, source, cache_dir)

        repo_url = f"https://github.com/{source.location}.git"
        try:
            with materialize_atomically(cache_dir) as scratch:
                await clone_git_repository(repo_url, ref, scratch)
        except GitError as exc:
            print_warning(f"git clone of {source.location} failed, downloading archive: {exc.message}")
            archive_url = (
                f"https://github.com/{source.location}/archive/refs/heads/{ref}.tar.gz"
            )
            fallback = LayoutSource(
                type=SourceType.REMOTE,
                location=archive_url,
                ref=ref,
                checksum=source.checksum,
            )
            return await self._load_remote(name, fallback)

        return self._load_materialized(name, source, cache_dir)

    def _load_materialized(self, name: str, source: LayoutSource, cache_dir: Path) -> Layout:
        root = locate_layout_root(cache_dir)
        return self._load_directory(
            name, root, source.model_copy(update={"location": str(root)})
        )
