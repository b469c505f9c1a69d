"""Route auto-wiring for generated Go services.

Edits ``internal/routes/routes.go`` textually to register a handler:

1. add ``"<module>/internal/handlers"`` to the import block (or create one
   after ``package routes``),
2. append the registration snippet after the anchor comment
   ``// Handler routes will be auto-generated here`` inside the
   ``r.Route("/api/v1", ...)`` block, falling back to just before the
   block's closing brace.

Middleware generated into ``internal/middleware`` is wired the same way: the
package is imported under the ``appmiddleware`` alias and an
``r.Use(appmiddleware.<Name>)`` line joins the router's middleware stack.

The anchor comment is the contract with the layout's routes template; the
brace fallback is a heuristic, not a parser.  Edits are returned as a
``RouteUpdate`` and written by :func:`apply_update`, which keeps a
``.backup`` copy and restores it if the write or the syntax check fails.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from foundry.errors import (
    ExternalToolError,
    InsertionPointError,
    RouteUpdateError,
    SyntaxValidationError,
)
from foundry.naming import capitalize, lower, pascal_case
from foundry.utils import run_command

ROUTES_FILE = Path("internal") / "routes" / "routes.go"
ANCHOR_COMMENT = "// Handler routes will be auto-generated here"
API_ROUTE_MARKER = 'r.Route("/api/v1"'
BACKUP_SUFFIX = ".backup"
GOFMT_TIMEOUT = 30

ROUTER_CONSTRUCTOR = "chi.NewRouter()"
MIDDLEWARE_ALIAS = "appmiddleware"
# Wired directly after the router is created, ahead of existing middleware.
EARLY_MIDDLEWARE = frozenset({"recovery", "cors"})

_PACKAGE_CLAUSE = re.compile(r"^package\s+\w+[^\n]*$", re.MULTILINE)


@dataclass
class RouteUpdate:
    """A pending edit of one source file."""

    path: Path
    original: bytes
    modified: bytes
    changes: list[str] = field(default_factory=list)


class GoFileValidator(Protocol):
    async def validate_go_file(self, path: Path) -> None: ...


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def handler_import_line(module_name: str) -> str:
    return f'"{module_name}/internal/handlers"'


def handler_snippet(handler_name: str) -> str:
    """Registration block appended after the anchor, one tab deeper than the block."""
    var = f"{lower(handler_name)}Handler"
    title = capitalize(handler_name)
    return (
        f"\n\t\t// {title} routes"
        f"\n\t\t{var} := handlers.New{title}Handler()"
        f'\n\t\tr.Mount("/{lower(handler_name)}s", {var}.Routes())'
    )


def middleware_import_line(module_name: str) -> str:
    # Aliased: routes.go already imports chi's middleware package.
    return f'{MIDDLEWARE_ALIAS} "{module_name}/internal/middleware"'


def middleware_call(middleware_name: str) -> str:
    return f"r.Use({MIDDLEWARE_ALIAS}.{pascal_case(middleware_name)})"


def _is_comment(line: str) -> bool:
    return line.lstrip().startswith("//")


def _add_import(content: str, import_line: str) -> str:
    """Add ``import_line`` to the import block, creating one after the package clause.

    Returns the content unchanged when there is neither an import block nor a
    ``package`` clause to anchor on.
    """
    if "import (" in content:
        return content.replace("import (", f"import (\n\t{import_line}", 1)
    return _PACKAGE_CLAUSE.sub(
        lambda match: f"{match.group(0)}\n\nimport (\n\t{import_line}\n)", content, count=1
    )


def _insert_after_anchor(lines: list[str], snippet: str) -> bool:
    for index, line in enumerate(lines):
        if API_ROUTE_MARKER not in line:
            continue
        for anchor in range(index, len(lines)):
            if ANCHOR_COMMENT in lines[anchor]:
                lines[anchor] += snippet
                return True
        return False
    return False


def _insert_before_block_close(lines: list[str], snippet: str) -> bool:
    for index, line in enumerate(lines):
        if API_ROUTE_MARKER not in line:
            continue
        depth = 0
        for close in range(index, len(lines)):
            for char in lines[close]:
                if char == "{":
                    depth += 1
                elif char == "}":
                    depth -= 1
                    if depth == 0:
                        lines[close] = f"{snippet}\n{lines[close]}"
                        return True
        return False
    return False


def _indent(line: str) -> str:
    return line[: len(line) - len(line.lstrip())]


def _insert_middleware(lines: list[str], call: str, early: bool) -> bool:
    """Insert ``call`` among the router's top-level ``Use`` lines.

    Early middleware goes before the first existing ``Use``; everything else
    after the last one.  Without any ``Use`` lines the call follows the
    router constructor.  Only lines before the API route block count.
    """
    end = next((i for i, line in enumerate(lines) if API_ROUTE_MARKER in line), len(lines))
    router = next((i for i in range(end) if ROUTER_CONSTRUCTOR in lines[i]), None)
    if router is None:
        return False

    uses = [
        i for i in range(router + 1, end) if ".Use(" in lines[i] and not _is_comment(lines[i])
    ]
    if uses:
        position = uses[0] if early else uses[-1] + 1
        indent = _indent(lines[uses[0]])
    else:
        position = router + 1
        indent = _indent(lines[router])
    lines.insert(position, f"{indent}{call}")
    return True


# ---------------------------------------------------------------------------
# RouteUpdater
# ---------------------------------------------------------------------------


class RouteUpdater:
    """Computes route-file edits for a Go project rooted at ``project_root``."""

    def __init__(self, project_root: str | Path = ".") -> None:
        self.project_root = Path(project_root)

    @property
    def routes_path(self) -> Path:
        return self.project_root / ROUTES_FILE

    def _read_routes(self) -> bytes:
        try:
            return self.routes_path.read_bytes()
        except OSError as exc:
            raise RouteUpdateError(
                f"reading {ROUTES_FILE.as_posix()}: {exc}", path=str(self.routes_path)
            ) from exc

    def update_routes(self, handler_name: str, module_name: str) -> RouteUpdate:
        """Compute the edit that registers ``handler_name``.

        Returns:
            A ``RouteUpdate`` whose ``changes`` lists the import addition (if
            any) followed by the registration.

        Raises:
            RouteUpdateError: If the routes file cannot be read or the
                handler is already registered.
            InsertionPointError: If neither the anchor comment nor the API
                route block can be found.
        """
        original = self._read_routes()
        content = original.decode("utf-8")
        changes: list[str] = []

        var = f"{lower(handler_name)}Handler"
        if any(
            f"{var} := handlers." in line and not _is_comment(line)
            for line in content.splitlines()
        ):
            raise RouteUpdateError(
                f"handler '{handler_name}' is already registered", handler=handler_name
            )

        import_line = handler_import_line(module_name)
        if import_line not in content:
            imported = _add_import(content, import_line)
            if imported != content:
                content = imported
                changes.append(f"Add import: {import_line}")

        snippet = handler_snippet(handler_name)
        lines = content.split("\n")
        if not (_insert_after_anchor(lines, snippet) or _insert_before_block_close(lines, snippet)):
            raise InsertionPointError(
                "could not find appropriate location to insert handler",
                path=str(self.routes_path),
            )
        changes.append(f"Add {handler_name} handler registration")

        return RouteUpdate(
            path=self.routes_path,
            original=original,
            modified="\n".join(lines).encode("utf-8"),
            changes=changes,
        )

    def update_middleware(self, middleware_name: str, module_name: str) -> RouteUpdate:
        """Compute the edit that applies the project's ``middleware_name`` to the router.

        The generated middleware function ``<Pascal>`` from
        ``internal/middleware`` is registered with ``r.Use``.  ``recovery`` and
        ``cors`` are placed ahead of the existing middleware, anything else
        after it.

        Raises:
            RouteUpdateError: If the routes file cannot be read or the
                middleware is already wired.
            InsertionPointError: If no ``chi.NewRouter()`` call precedes the
                API route block.
        """
        original = self._read_routes()
        content = original.decode("utf-8")
        changes: list[str] = []

        call = middleware_call(middleware_name)
        if any(call in line and not _is_comment(line) for line in content.splitlines()):
            raise RouteUpdateError(
                f"middleware '{middleware_name}' is already wired", middleware=middleware_name
            )

        import_line = middleware_import_line(module_name)
        if import_line not in content:
            imported = _add_import(content, import_line)
            if imported != content:
                content = imported
                changes.append(f"Add import: {import_line}")

        lines = content.split("\n")
        if not _insert_middleware(lines, call, lower(middleware_name) in EARLY_MIDDLEWARE):
            raise InsertionPointError(
                "could not find router setup to wire middleware",
                path=str(self.routes_path),
            )
        changes.append(f"Add {middleware_name} middleware: {call}")

        return RouteUpdate(
            path=self.routes_path,
            original=original,
            modified="\n".join(lines).encode("utf-8"),
            changes=changes,
        )

    def remove_handler(self, handler_name: str) -> RouteUpdate:
        """Compute the edit that drops ``handler_name``'s registration lines.

        Commented-out examples are left alone; the ``// <Name> routes``
        heading is removed with the code.

        Raises:
            RouteUpdateError: If nothing references the handler.
        """
        original = self._read_routes()
        var = f"{lower(handler_name)}Handler"
        heading = f"// {capitalize(handler_name)} routes"

        kept: list[str] = []
        removed = 0
        for line in original.decode("utf-8").split("\n"):
            if line.strip() == heading or (var in line and not _is_comment(line)):
                removed += 1
                continue
            kept.append(line)

        if removed == 0:
            raise RouteUpdateError(
                f"handler '{handler_name}' is not registered", handler=handler_name
            )

        return RouteUpdate(
            path=self.routes_path,
            original=original,
            modified="\n".join(kept).encode("utf-8"),
            changes=[f"Remove {handler_name} handler registration ({removed} lines)"],
        )

    async def validate_go_file(self, path: Path) -> None:
        """Check Go syntax with ``gofmt -e``.

        Raises:
            ExternalToolError: If gofmt is not installed.
            SyntaxValidationError: If gofmt reports errors.
        """
        try:
            returncode, stdout, stderr = await run_command(
                ["gofmt", "-e", str(path)], timeout=GOFMT_TIMEOUT
            )
        except FileNotFoundError as exc:
            raise ExternalToolError("gofmt is not installed or not in PATH") from exc

        if returncode != 0:
            output = stderr or stdout
            raise SyntaxValidationError(f"invalid Go syntax: {output}", output=output)


async def apply_update(update: RouteUpdate, validator: GoFileValidator) -> None:
    """Write ``update`` to disk, validate it, and roll back on failure.

    A ``.backup`` copy of the original is written first.  If writing the
    modified content or validating it fails, the original bytes are restored.
    The backup is removed unless restoring the original failed, in which case
    it is the only intact copy and stays on disk.

    Raises:
        RouteUpdateError: If the backup or the modified file cannot be written,
            or the original cannot be restored after a failure.
        FoundryError: Whatever the validator raises; the original is restored first.
    """
    path = Path(update.path)
    backup = path.with_name(path.name + BACKUP_SUFFIX)

    try:
        backup.write_bytes(update.original)
    except OSError as exc:
        raise RouteUpdateError(f"creating backup: {exc}", path=str(backup)) from exc

    restored = True
    try:
        try:
            path.write_bytes(update.modified)
        except OSError as exc:
            raise RouteUpdateError(f"writing {path}: {exc}", path=str(path)) from exc
        await validator.validate_go_file(path)
    except BaseException:
        try:
            path.write_bytes(update.original)
        except OSError as exc:
            restored = False
            raise RouteUpdateError(
                f"restoring {path} failed, original kept at {backup}: {exc}",
                path=str(path),
                backup=str(backup),
            ) from exc
        raise
    finally:
        if restored:
            backup.unlink(missing_ok=True)
