"""Jinja2 rendering shared by path and content substitution.

Provides the ``TemplateRenderer`` used for both directory/target paths and
file contents, so the two always agree on variable names and filters.
Layout templates may use Go-template style dotted references
(``{{.ProjectName}}``, ``{{ .Name | pascal }}``); they are normalised to
plain Jinja names before compilation.
"""

from __future__ import annotations

import re
from typing import Any, Callable

from jinja2 import Environment, StrictUndefined, TemplateError, Undefined

from foundry import naming
from foundry.errors import TemplateRenderError


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

def _default_filter(value: Any, fallback: Any = "") -> Any:
    """Return ``fallback`` when ``value`` is undefined or empty."""
    if isinstance(value, Undefined) or value is None or value == "":
        return fallback
    return value


def _string_filter(func: Callable[[str], str]) -> Callable[[Any], str]:
    def apply(value: Any) -> str:
        return func(str(value))

    apply.__name__ = func.__name__
    apply.__doc__ = func.__doc__
    return apply


FILTERS: dict[str, Callable[..., Any]] = {
    "lower": _string_filter(naming.lower),
    "upper": _string_filter(naming.upper),
    "capitalize": _string_filter(naming.capitalize),
    "snake": _string_filter(naming.snake_case),
    "snake_case": _string_filter(naming.snake_case),
    "camel": _string_filter(naming.camel_case),
    "pascal": _string_filter(naming.pascal_case),
    "title": _string_filter(naming.pascal_case),
    "kebab": _string_filter(naming.kebab_case),
    "plural": _string_filter(naming.pluralize),
    "default": _default_filter,
}

# ``{{.Name`` / ``{{- .Name`` -> ``{{Name`` / ``{{- Name``
_DOTTED_REFERENCE = re.compile(r"(\{\{-?\s*)\.(?=[A-Za-z_])")
# ``| .Name`` inside a pipeline argument list
_DOTTED_ARGUMENT = re.compile(r"([|(,]\s*)\.(?=[A-Za-z_])")


def normalize_template(source: str) -> str:
    """Rewrite Go-template style dotted references into Jinja names."""

    def _inside_tags(match: re.Match[str]) -> str:
        body = match.group(0)
        body = _DOTTED_REFERENCE.sub(r"\1", body)
        return _DOTTED_ARGUMENT.sub(r"\1", body)

    return re.sub(r"\{\{.*?\}\}", _inside_tags, source, flags=re.DOTALL)


# ---------------------------------------------------------------------------
# TemplateRenderer
# ---------------------------------------------------------------------------

class TemplateRenderer:
    """Renders layout templates and template-bearing paths.

    One Jinja2 environment with ``StrictUndefined`` is used for everything:
    referencing a variable that is not in the context is an error rather
    than an empty string.
    """

    def __init__(self, extra_filters: dict[str, Callable[..., Any]] | None = None) -> None:
        self.env = Environment(
            autoescape=False,
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )
        self.env.filters.update(FILTERS)
        if extra_filters:
            self.env.filters.update(extra_filters)

    def render_string(
        self,
        source: str,
        context: dict[str, Any],
        name: str = "<template>",
    ) -> str:
        """Render template ``source`` against ``context``.

        Args:
            source: Raw template text.
            context: Variables available to the template.
            name: Template identifier used in error messages.

        Raises:
            TemplateRenderError: On syntax errors or undefined variables.
        """
        try:
            template = self.env.from_string(normalize_template(source))
            return template.render(**context)
        except TemplateError as exc:
            raise TemplateRenderError(
                f"failed to render template {name}: {exc}", template=name
            ) from exc

    def render_path(self, path: str, context: dict[str, Any]) -> str:
        """Render a manifest path such as ``cmd/{{.ProjectName}}/main.go``."""
        if "{{" not in path and "{%" not in path:
            return path
        return self.render_string(path, context, name=f"path {path!r}")
