"""Name transformations used by templates and validators.

Case conversions (snake/camel/pascal/kebab), English pluralisation, and the
checks that decide whether a user-supplied name can become a Go identifier,
a layout name, or a component name.  Everything here is pure string work.
"""

from __future__ import annotations

import re

from foundry.errors import NameValidationError


# ---------------------------------------------------------------------------
# Case conversion
# ---------------------------------------------------------------------------


def lower(value: str) -> str:
    return value.lower()


def upper(value: str) -> str:
    return value.upper()


def capitalize(value: str) -> str:
    """Upper-case the first character and leave the rest untouched."""
    if not value:
        return value
    return value[0].upper() + value[1:]


def split_words(value: str) -> list[str]:
    """Split ``value`` into lowercase words.

    Hyphens, underscores and whitespace separate words, and so does a
    lower-to-upper transition (``userProfile`` -> ``["user", "profile"]``).
    Runs of capitals stay together (``HTTPServer`` -> ``["httpserver"]``).
    """
    spaced = re.sub(r"[-_\s]+", " ", value)
    spaced = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", " ", spaced)
    return [part.lower() for part in spaced.split()]


def snake_case(value: str) -> str:
    """Convert ``SomeThing`` or ``some-thing`` to ``some_thing``."""
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", value)
    s2 = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1)
    s3 = re.sub(r"[-\s]+", "_", s2).lower()
    return re.sub(r"_+", "_", s3)


def camel_case(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``someThing``."""
    words = split_words(value)
    if not words:
        return ""
    return words[0] + "".join(capitalize(word) for word in words[1:])


def pascal_case(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``SomeThing``."""
    return "".join(capitalize(word) for word in split_words(value))


def kebab_case(value: str) -> str:
    """Convert ``SomeThing`` or ``some_thing`` to ``some-thing``."""
    return "-".join(split_words(value))


def pluralize(value: str) -> str:
    """Return a naive English plural of ``value``.

    Examples::

        pluralize("category") -> "categories"
        pluralize("day")      -> "days"
        pluralize("box")      -> "boxes"
        pluralize("user")     -> "users"
    """
    if not value:
        return value

    lowered = value.lower()
    if len(value) > 1 and lowered.endswith("y") and lowered[-2] not in "aeiou":
        return value[:-1] + "ies"
    if lowered.endswith(("s", "x", "z", "ch", "sh")):
        return value + "es"
    return value + "s"


def sanitize_name(name: str) -> str:
    """Convert an arbitrary string to a single safe path segment.

    ``owner/repo`` becomes ``owner_repo``; anything outside letters, digits,
    dots, hyphens and underscores becomes an underscore.  Leading dots are
    replaced too, so ``..`` and ``.git`` cannot name a parent or hidden
    directory, and an empty name becomes ``_``.
    """
    cleaned = re.sub(r"[^A-Za-z0-9._-]", "_", name.strip())
    cleaned = re.sub(r"^\.+", lambda match: "_" * len(match.group(0)), cleaned)
    return cleaned or "_"


# ---------------------------------------------------------------------------
# Go identifiers
# ---------------------------------------------------------------------------

GO_KEYWORDS = frozenset({
    "break", "case", "chan", "const", "continue", "default", "defer", "else",
    "fallthrough", "for", "func", "go", "goto", "if", "import", "interface",
    "map", "package", "range", "return", "select", "struct", "switch", "type",
    "var",
})

# Names that compile but shadow something every Go program relies on.
PROBLEMATIC_NAMES: dict[str, str] = {
    "test": "conflicts with Go testing",
    "main": "conflicts with main package",
    "init": "conflicts with init function",
    "new": "conflicts with built-in new function",
    "make": "conflicts with built-in make function",
    "len": "conflicts with built-in len function",
    "cap": "conflicts with built-in cap function",
    "append": "conflicts with built-in append function",
    "copy": "conflicts with built-in copy function",
    "delete": "conflicts with built-in delete function",
    "close": "conflicts with built-in close function",
    "panic": "conflicts with built-in panic function",
    "recover": "conflicts with built-in recover function",
    "print": "conflicts with built-in print function",
    "println": "conflicts with built-in println function",
    "error": "conflicts with built-in error type",
    "string": "conflicts with built-in string type",
    "int": "conflicts with built-in int type",
    "float64": "conflicts with built-in float64 type",
    "bool": "conflicts with built-in bool type",
    "byte": "conflicts with built-in byte type",
    "rune": "conflicts with built-in rune type",
}

COMPONENT_TYPES = ("handler", "model", "middleware", "database")

_GO_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# (pattern, message) pairs checked in order.
_INVALID_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"^\d"), "cannot start with a number"),
    (re.compile(r"[^a-zA-Z0-9_-]"), "can only contain letters, numbers, underscores, and hyphens"),
    (re.compile(r"--+"), "cannot contain consecutive hyphens"),
    (re.compile(r"__+"), "cannot contain consecutive underscores"),
    (re.compile(r"^-"), "cannot start with a hyphen"),
    (re.compile(r"-$"), "cannot end with a hyphen"),
    (re.compile(r"^_"), "cannot start with an underscore"),
    (re.compile(r"_$"), "cannot end with an underscore"),
]


def to_go_identifier(name: str) -> str:
    """Turn a component name into an exported Go identifier.

    Hyphens become underscores and the first letter is upper-cased:
    ``user-profile`` -> ``User_profile``.
    """
    return capitalize(name.replace("-", "_"))


def is_go_identifier(name: str) -> bool:
    return bool(_GO_IDENTIFIER.match(name)) and name not in GO_KEYWORDS


def validate_component_name(name: str) -> None:
    """Check that ``name`` can be used for a generated Go component.

    Raises:
        NameValidationError: With a message describing the first rule broken.
    """
    if not name:
        raise NameValidationError("component name cannot be empty")
    if len(name) > 50:
        raise NameValidationError("component name too long (max 50 characters)")
    if len(name) < 2:
        raise NameValidationError("component name too short (min 2 characters)")
    if any(ch.isspace() for ch in name):
        raise NameValidationError("component name cannot contain whitespace characters")
    if name.lower() in GO_KEYWORDS:
        raise NameValidationError(f"component name cannot be a Go reserved keyword: {name}")

    for pattern, message in _INVALID_PATTERNS:
        if pattern.search(name):
            raise NameValidationError(f"component name {message}", name=name)

    if not is_go_identifier(to_go_identifier(name)):
        raise NameValidationError(
            f"component name {name!r} would not generate a valid Go identifier"
        )

    reason = PROBLEMATIC_NAMES.get(name.lower())
    if reason:
        raise NameValidationError(f"component name {name!r} is not recommended: {reason}")


def validate_component_type(component_type: str) -> None:
    if component_type not in COMPONENT_TYPES:
        raise NameValidationError(
            f"unsupported component type: {component_type} "
            f"(valid types: {', '.join(COMPONENT_TYPES)})"
        )


def is_valid_layout_name(name: str) -> bool:
    """Layout names are non-empty and made of letters, digits, ``-`` and ``_``."""
    if not name:
        return False
    return all(ch.isalnum() or ch in "-_" for ch in name)
