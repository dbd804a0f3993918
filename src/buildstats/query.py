"""Report definitions and their compiled, evaluable queries.

A report definition is operator-supplied JSON such as::

    {"name": "Slow main builds", "from": "started", "to": "finished",
     "pipelines": ".*", "branches": "^main$", "group": "{{.Pipeline.Name}}"}

Compilation validates every field up front so that a misconfigured report is
rejected before any build is evaluated.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, List, Optional

from .errors import ConfigurationError, InvalidTimestampName, QueryCompileError
from .models import Build
from .template import GroupTemplate
from .timestamps import TimestampSelector

_DEFINITION_FIELDS = ("name", "from", "to", "pipelines", "branches", "group")


@dataclass(frozen=True)
class ReportDefinition:
    """Raw, uncompiled report definition fields."""

    name: str
    from_: str
    to: str
    pipelines: str
    branches: str
    group: str


@dataclass(frozen=True)
class Query:
    """A compiled report definition."""

    name: str
    from_timestamp: TimestampSelector
    to_timestamp: TimestampSelector
    pipelines: re.Pattern[str]
    branches: re.Pattern[str]
    group_template: GroupTemplate

    def predicate(self, build: Build) -> bool:
        """Return whether both the pipeline and branch patterns match ``build``."""
        return bool(
            self.pipelines.search(build.pipeline.name) and self.branches.search(build.branch)
        )

    def duration(self, build: Build) -> Optional[timedelta]:
        """Return ``to - from`` for ``build``, or ``None`` if either timestamp is absent.

        The result is not clamped: a ``to`` endpoint preceding ``from`` yields a
        negative duration which callers are expected to flag.
        """
        start = self.from_timestamp.extract(build)
        end = self.to_timestamp.extract(build)
        if start is None or end is None:
            return None
        return end - start

    def group(self, build: Build) -> str:
        """Render the group key for ``build``.

        Raises:
            TemplateRenderError: If the template cannot be rendered for ``build``.
        """
        return self.group_template.render(build)


def parse_report_definition(text: str) -> ReportDefinition:
    """Decode a JSON report definition.

    Raises:
        ConfigurationError: If ``text`` is not a JSON object with the six
            required string fields.
    """
    try:
        raw = json.loads(text)
    except ValueError as exc:
        raise ConfigurationError(f"Unable to parse report definition {text!r}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Report definition must be a JSON object: {text!r}")

    report = str(raw.get("name") or "<unnamed>")
    for field_name in _DEFINITION_FIELDS:
        if field_name not in raw:
            raise QueryCompileError(report, field_name, "missing required field")
        if not isinstance(raw[field_name], str):
            raise QueryCompileError(report, field_name, "expected a string value")

    return ReportDefinition(
        name=raw["name"],
        from_=raw["from"],
        to=raw["to"],
        pipelines=raw["pipelines"],
        branches=raw["branches"],
        group=raw["group"],
    )


def _compile_pattern(definition: ReportDefinition, field_name: str, pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise QueryCompileError(definition.name, field_name, f"invalid regular expression: {exc}") from exc


def _parse_timestamp(definition: ReportDefinition, field_name: str, value: str) -> TimestampSelector:
    try:
        return TimestampSelector.parse(value)
    except InvalidTimestampName as exc:
        raise QueryCompileError(definition.name, field_name, str(exc)) from exc


def compile_query(definition: ReportDefinition) -> Query:
    """Compile a report definition into a ``Query``.

    Raises:
        QueryCompileError: Naming the report and field that failed validation.
    """
    from_timestamp = _parse_timestamp(definition, "from", definition.from_)
    to_timestamp = _parse_timestamp(definition, "to", definition.to)
    pipelines = _compile_pattern(definition, "pipelines", definition.pipelines)
    branches = _compile_pattern(definition, "branches", definition.branches)

    try:
        group_template = GroupTemplate.compile(definition.group)
    except ConfigurationError as exc:
        raise QueryCompileError(definition.name, "group", str(exc)) from exc

    return Query(
        name=definition.name,
        from_timestamp=from_timestamp,
        to_timestamp=to_timestamp,
        pipelines=pipelines,
        branches=branches,
        group_template=group_template,
    )


def compile_queries(texts: Iterable[str]) -> List[Query]:
    """Compile every JSON report definition, failing on the first invalid one."""
    return [compile_query(parse_report_definition(text)) for text in texts]
