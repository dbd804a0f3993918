"""Group key templates rendered against a single build.

Only a small, safe subset of Go template syntax is supported: literal text
mixed with field references such as ``{{.Pipeline.Name}}`` or ``{{ .Branch }}``.
Field names may be written in Go style (``CreatedAt``) or Python style
(``created_at``); both resolve to the same ``Build`` attribute.
"""

from __future__ import annotations

import dataclasses
import re
import typing
from datetime import datetime
from typing import Any, List, Tuple, Union

from .errors import ConfigurationError, TemplateRenderError
from .models import Build, format_datetime

_ACTION_RE = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_FIELD_PATH_RE = re.compile(r"^(\.[A-Za-z_][A-Za-z0-9_]*)+$")
_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")

FieldPath = Tuple[str, ...]


def _attribute_name(go_name: str) -> str:
    """Translate ``CreatedAt`` / ``ID`` style names into ``created_at`` / ``id``."""
    return _CAMEL_BOUNDARY_RE.sub("_", go_name).lower()


def _unwrap_optional(hint: Any) -> Any:
    args = [arg for arg in typing.get_args(hint) if arg is not type(None)]
    if typing.get_origin(hint) is Union and len(args) == 1:
        return args[0]
    return hint


def _resolve_path(expression: str) -> FieldPath:
    """Validate a ``.A.B`` expression against the ``Build`` schema.

    Raises:
        ConfigurationError: If the expression is malformed or names a field
            that does not exist.
    """
    if not _FIELD_PATH_RE.match(expression):
        raise ConfigurationError(
            f"unsupported template action '{{{{{expression}}}}}': only field references like "
            "'{{.Pipeline.Name}}' are allowed"
        )

    path: List[str] = []
    current: Any = Build
    for segment in expression.lstrip(".").split("."):
        if not dataclasses.is_dataclass(current):
            raise ConfigurationError(
                f"cannot access '{segment}' in '{expression}': '{'.'.join(path)}' has no fields"
            )
        attribute = _attribute_name(segment)
        hints = typing.get_type_hints(current)
        if attribute not in hints:
            raise ConfigurationError(
                f"unknown field '{segment}' in '{expression}' on {current.__name__}"
            )
        path.append(attribute)
        current = _unwrap_optional(hints[attribute])

    return tuple(path)


class GroupTemplate:
    """A compiled group template: ``render(build) -> str``."""

    def __init__(self, source: str, parts: List[Union[str, FieldPath]]) -> None:
        self.source = source
        self._parts = parts

    def __repr__(self) -> str:
        return f"GroupTemplate({self.source!r})"

    @classmethod
    def compile(cls, source: str) -> "GroupTemplate":
        """Parse and validate a template string.

        Raises:
            ConfigurationError: If the template is syntactically invalid or
                references unknown build fields.
        """
        parts: List[Union[str, FieldPath]] = []
        position = 0

        for match in _ACTION_RE.finditer(source):
            literal = source[position:match.start()]
            cls._check_literal(literal)
            if literal:
                parts.append(literal)
            parts.append(_resolve_path(match.group(1).strip()))
            position = match.end()

        tail = source[position:]
        cls._check_literal(tail)
        if tail:
            parts.append(tail)

        return cls(source, parts)

    @staticmethod
    def _check_literal(literal: str) -> None:
        if "{{" in literal:
            raise ConfigurationError("unclosed template action: missing '}}'")
        if "}}" in literal:
            raise ConfigurationError("unexpected '}}' without a matching '{{'")

    def render(self, build: Build) -> str:
        """Render the template for ``build``.

        Raises:
            TemplateRenderError: If a referenced value is absent on the build.
        """
        rendered: List[str] = []
        for part in self._parts:
            if isinstance(part, str):
                rendered.append(part)
                continue

            value: Any = build
            for attribute in part:
                value = getattr(value, attribute)
                if value is None:
                    raise TemplateRenderError(
                        f"template {self.source!r}: '{'.'.join(part)}' is not set "
                        f"on build {build.id}"
                    )

            if isinstance(value, datetime):
                rendered.append(format_datetime(value) or "")
            else:
                rendered.append(str(value))

        return "".join(rendered)
