"""Exception hierarchy for Foundry.

Every failure raised by the layout engine and the route rewriter derives from
``FoundryError`` so that callers (the CLI in particular) can catch a single
type.  The subclasses follow the error taxonomy used throughout the package:

- not-found: unknown layout, component type, template identifier, manifest
- validation: manifest shape, required variables, names, source types
- I/O: filesystem and network failures, wrapped with operation context
- integrity: checksum mismatches and unsafe archive entries
- external tools: ``git`` and ``gofmt`` failures
- route surgery: anchor not found, nothing to change
"""

from __future__ import annotations

from typing import Any


class FoundryError(Exception):
    """Base class for all Foundry errors."""

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context = context
        super().__init__(message)


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class LayoutNotFoundError(FoundryError):
    """Raised when a layout name is not known to the registry or cache."""


class ComponentNotFoundError(FoundryError):
    """Raised when a layout does not declare the requested component type."""


class TemplateNotFoundError(FoundryError):
    """Raised when a manifest references a template the layout does not ship."""


class ManifestNotFoundError(FoundryError):
    """Raised when a layout directory has no ``layout.manifest.yaml``."""


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ManifestError(FoundryError):
    """Raised when a manifest cannot be parsed or misses required fields."""


class VariableError(FoundryError):
    """Raised when a required layout variable was not provided."""


class NameValidationError(FoundryError):
    """Raised when a component, layout or handler name is not acceptable."""


class UnsupportedSourceError(FoundryError):
    """Raised when a layout source has a type the loader cannot handle."""


# ---------------------------------------------------------------------------
# I/O
# ---------------------------------------------------------------------------


class GenerationError(FoundryError):
    """Raised when writing generated directories or files fails."""


class CacheError(FoundryError):
    """Raised when the layout cache cannot be read or written."""


class RegistryError(FoundryError):
    """Raised when the registry configuration or index cannot be persisted."""


class DownloadError(FoundryError):
    """Raised when fetching a remote layout archive fails."""


class TemplateRenderError(FoundryError):
    """Raised when a template fails to compile or render."""


# ---------------------------------------------------------------------------
# Integrity
# ---------------------------------------------------------------------------


class IntegrityError(FoundryError):
    """Base class for integrity failures on downloaded content."""


class ChecksumMismatchError(IntegrityError):
    """Raised when a downloaded archive does not match its expected SHA-256."""

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"checksum mismatch: expected {expected}, got {actual}",
            expected=expected,
            actual=actual,
        )


class UnsafeArchiveError(IntegrityError):
    """Raised when an archive entry would be written outside its destination."""


# ---------------------------------------------------------------------------
# External tools
# ---------------------------------------------------------------------------


class ExternalToolError(FoundryError):
    """Base class for failures of shelled-out tools."""


class GitError(ExternalToolError):
    """Raised when a git command fails or git is not installed."""

    def __init__(self, message: str, command: str = "", stderr: str = "") -> None:
        self.command = command
        self.stderr = stderr
        super().__init__(message, command=command, stderr=stderr)


class SyntaxValidationError(ExternalToolError):
    """Raised when a rewritten Go source file does not pass the syntax check."""

    def __init__(self, message: str, output: str = "") -> None:
        self.output = output
        super().__init__(message, output=output)


# ---------------------------------------------------------------------------
# Route surgery
# ---------------------------------------------------------------------------


class InsertionPointError(FoundryError):
    """Raised when no anchor for a handler registration can be located."""


class RouteUpdateError(FoundryError):
    """Raised when a routes file cannot be read or the edit is not applicable."""
