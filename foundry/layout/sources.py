"""Primitives for materialising layout sources on disk.

HTTP download, SHA-256 verification, safe ``.tar.gz`` extraction, shallow
git clones, and the atomic "build in a scratch directory, then rename"
helper used by the loader so that a failed download or clone never leaves
a half-populated cache directory behind.
"""

from __future__ import annotations

import asyncio
import hashlib
import os
import re
import shutil
import tarfile
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import httpx

from foundry.errors import ChecksumMismatchError, DownloadError, GitError, UnsafeArchiveError
from foundry.layout.manifest import has_manifest
from foundry.utils import print_warning, which

USER_AGENT = "Foundry-CLI/1.0"
HTTP_TIMEOUT = 30.0
GIT_TIMEOUT = 300.0

_COMMIT_HASH = re.compile(r"^[0-9a-fA-F]{40}$")


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


def expand_path(path: str) -> Path:
    """Expand ``~`` and ``$VARS`` in ``path``."""
    return Path(os.path.expandvars(os.path.expanduser(path)))


@contextmanager
def materialize_atomically(final_dir: Path) -> Iterator[Path]:
    """Yield a scratch directory that replaces ``final_dir`` on success.

    The scratch directory is a ``.partial-*`` sibling of ``final_dir``.  If
    the block raises, the scratch directory is deleted and ``final_dir`` is
    left untouched.
    """
    final_dir = Path(final_dir)
    final_dir.parent.mkdir(parents=True, exist_ok=True)
    scratch = Path(tempfile.mkdtemp(prefix=".partial-", dir=final_dir.parent))
    try:
        yield scratch
    except BaseException:
        shutil.rmtree(scratch, ignore_errors=True)
        raise

    if final_dir.exists():
        shutil.rmtree(final_dir)
    os.replace(scratch, final_dir)


def locate_layout_root(directory: Path) -> Path:
    """Return the directory that holds the layout manifest.

    Archives produced by source hosts usually wrap everything in a single
    top-level folder (``repo-main/``); that folder is returned when the
    manifest is not at ``directory`` itself.
    """
    if has_manifest(directory):
        return directory
    children = [child for child in directory.iterdir() if not child.name.startswith(".")]
    if len(children) == 1 and children[0].is_dir() and has_manifest(children[0]):
        return children[0]
    return directory


# ---------------------------------------------------------------------------
# Download and checksums
# ---------------------------------------------------------------------------


async def download_file(client: httpx.AsyncClient, url: str, dest: Path) -> Path:
    """Stream ``url`` into ``dest``.

    Raises:
        DownloadError: On connection errors, timeouts or a non-200 status.
    """
    dest = Path(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)

    try:
        async with client.stream("GET", url) as response:
            if response.status_code != 200:
                raise DownloadError(
                    f"unexpected status code: {response.status_code}",
                    url=url,
                    status=response.status_code,
                )
            with open(dest, "wb") as out:
                async for chunk in response.aiter_bytes():
                    out.write(chunk)
    except httpx.TimeoutException as exc:
        raise DownloadError(f"request to {url} timed out", url=url) from exc
    except httpx.HTTPError as exc:
        raise DownloadError(f"failed to download {url}: {exc}", url=url) from exc

    return dest


def calculate_sha256(path: Path) -> str:
    """Hex SHA-256 digest of the file at ``path``."""
    hasher = hashlib.sha256()
    with open(path, "rb") as handle:
        for block in iter(lambda: handle.read(65536), b""):
            hasher.update(block)
    return hasher.hexdigest()


def verify_sha256(path: Path, expected: str) -> None:
    """Raise ``ChecksumMismatchError`` unless ``path`` hashes to ``expected``."""
    actual = calculate_sha256(path)
    if actual.lower() != expected.strip().lower():
        raise ChecksumMismatchError(expected=expected, actual=actual)


# ---------------------------------------------------------------------------
# Archive extraction
# ---------------------------------------------------------------------------


def _safe_target(dest_root: str, member_name: str) -> str:
    """Resolve ``member_name`` under ``dest_root`` or raise ``UnsafeArchiveError``."""
    target = os.path.normpath(os.path.join(dest_root, member_name))
    if os.path.isabs(member_name) or os.path.commonpath([dest_root, target]) != dest_root:
        raise UnsafeArchiveError(
            f"invalid file path in archive: {member_name}", entry=member_name
        )
    return target


def _passes_through_link(path: str, links: set[str]) -> bool:
    """Report whether a proper prefix of relative ``path`` is a symlink entry."""
    parts = path.split(os.sep)
    return any(
        os.path.normpath(os.sep.join(parts[:index])) in links for index in range(1, len(parts))
    )


def _check_resolved(real_root: str, path: str, member_name: str) -> None:
    resolved = os.path.realpath(path)
    if os.path.commonpath([real_root, resolved]) != real_root:
        raise UnsafeArchiveError(
            f"archive entry resolves outside destination: {member_name}", entry=member_name
        )


def extract_tar_gz(archive_path: Path, dest_dir: Path) -> list[Path]:
    """Extract a gzip-compressed tarball into ``dest_dir``.

    Every entry is checked before anything is written: an entry whose cleaned
    path (or, for links, whose link target) falls outside ``dest_dir`` aborts
    the extraction with ``UnsafeArchiveError``, and so does any entry or link
    target that runs through a symlink defined earlier in the archive.  Each
    write is checked again against the resolved destination.  Device files
    and FIFOs are skipped.

    Returns:
        The regular files that were written.
    """
    dest_root = os.path.normpath(os.path.abspath(dest_dir))
    written: list[Path] = []

    try:
        with tarfile.open(archive_path, "r:gz") as tar:
            members = tar.getmembers()

            targets: dict[str, str] = {}
            links: set[str] = set()
            for member in members:
                target = _safe_target(dest_root, member.name)
                relative = os.path.relpath(target, dest_root)
                if _passes_through_link(relative, links):
                    raise UnsafeArchiveError(
                        f"archive entry passes through a link: {member.name}", entry=member.name
                    )
                if member.issym():
                    raw_target = os.path.join(os.path.dirname(relative), member.linkname)
                    _safe_target(dest_root, os.path.normpath(raw_target))
                    if _passes_through_link(raw_target, links):
                        raise UnsafeArchiveError(
                            f"link target passes through a link: {member.name}",
                            entry=member.name,
                        )
                    links.add(relative)
                elif member.islnk():
                    _safe_target(dest_root, member.linkname)
                    if _passes_through_link(os.path.normpath(member.linkname), links):
                        raise UnsafeArchiveError(
                            f"link target passes through a link: {member.name}",
                            entry=member.name,
                        )
                targets[member.name] = target

            os.makedirs(dest_root, exist_ok=True)
            real_root = os.path.realpath(dest_root)
            for member in members:
                target = targets[member.name]
                if member.isdir():
                    os.makedirs(target, exist_ok=True)
                    _check_resolved(real_root, target, member.name)
                elif member.isfile():
                    os.makedirs(os.path.dirname(target), exist_ok=True)
                    _check_resolved(real_root, target, member.name)
                    source = tar.extractfile(member)
                    if source is None:
                        continue
                    with source, open(target, "wb") as out:
                        shutil.copyfileobj(source, out)
                    os.chmod(target, (member.mode & 0o777) or 0o644)
                    written.append(Path(target))
                elif member.issym():
                    os.makedirs(os.path.dirname(target), exist_ok=True)
                    _check_resolved(real_root, os.path.dirname(target), member.name)
                    os.symlink(member.linkname, target)
                elif member.islnk():
                    os.makedirs(os.path.dirname(target), exist_ok=True)
                    _check_resolved(real_root, os.path.dirname(target), member.name)
                    source_path = _safe_target(dest_root, member.linkname)
                    _check_resolved(real_root, source_path, member.name)
                    os.link(source_path, target)
    except (tarfile.TarError, EOFError) as exc:
        raise DownloadError(f"failed to read archive {archive_path}: {exc}") from exc

    return written


# ---------------------------------------------------------------------------
# Git
# ---------------------------------------------------------------------------


async def _run_git(
    *args: str,
    cwd: str | Path | None = None,
    timeout: float = GIT_TIMEOUT,
) -> tuple[str, str]:
    """Run a git command asynchronously and return (stdout, stderr).

    Raises GitError if the command exits with a non-zero code or times out.
    """
    cmd = ["git"] + list(args)
    cmd_str = " ".join(cmd)

    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=str(cwd) if cwd else None,
    )
    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(), timeout=timeout
        )
    except asyncio.TimeoutError:
        process.kill()
        raise GitError(
            f"Git command timed out after {timeout}s: {cmd_str}",
            command=cmd_str,
        )

    stdout = stdout_bytes.decode("utf-8", errors="replace").strip()
    stderr = stderr_bytes.decode("utf-8", errors="replace").strip()

    if process.returncode != 0:
        raise GitError(
            f"Git command failed (exit {process.returncode}): {cmd_str}\n{stderr}",
            command=cmd_str,
            stderr=stderr,
        )

    return stdout, stderr


def is_commit_hash(ref: str) -> bool:
    return bool(_COMMIT_HASH.match(ref))


async def clone_git_repository(url: str, ref: str, dest_dir: Path) -> Path:
    """Shallow-clone ``url`` at ``ref`` into ``dest_dir`` and drop ``.git``.

    Branches and tags other than ``main``/``master`` are cloned with
    ``--branch``; a 40-character commit hash is fetched and checked out
    explicitly after the clone.

    Raises:
        GitError: If git is missing or any git command fails.
    """
    if which("git") is None:
        raise GitError("git is not installed or not in PATH")

    dest_dir = Path(dest_dir)
    pinned_commit = bool(ref) and is_commit_hash(ref)

    args = ["clone"]
    if ref and ref not in ("main", "master") and not pinned_commit:
        args += ["--branch", ref]
    args += ["--depth", "1", url, str(dest_dir)]
    await _run_git(*args)

    if pinned_commit:
        await _run_git("-C", str(dest_dir), "fetch", "--depth", "1", "origin", ref)
        await _run_git("-C", str(dest_dir), "checkout", ref)

    git_dir = dest_dir / ".git"
    if git_dir.exists():
        try:
            shutil.rmtree(git_dir)
        except OSError as exc:
            print_warning(f"failed to remove .git directory: {exc}")

    return dest_dir
