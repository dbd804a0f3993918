"""Tests for report definition parsing and query compilation."""

import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from buildstats.errors import ConfigurationError, QueryCompileError
from buildstats.models import Build, Pipeline
from buildstats.query import compile_queries, compile_query, parse_report_definition
from buildstats.timestamps import TimestampSelector

T0 = datetime(2026, 1, 1, 10, 0, tzinfo=timezone.utc)

EXAMPLE_REPORT = (
    '{"name":"X","from":"started","to":"finished","pipelines":".*",'
    '"branches":"^main$","group":"{{.Pipeline.Name}}"}'
)


def _definition(**overrides) -> str:
    raw = json.loads(EXAMPLE_REPORT)
    raw.update(overrides)
    return json.dumps(raw)


def _build(pipeline: str = "svc-a", branch: str = "main", started=T0, finished=T0 + timedelta(minutes=5)) -> Build:
    return Build(
        id=f"{pipeline}-{branch}",
        number=1,
        pipeline=Pipeline(slug=pipeline, name=pipeline),
        branch=branch,
        state="passed",
        created_at=T0 - timedelta(minutes=2),
        scheduled_at=T0 - timedelta(minutes=1),
        started_at=started,
        finished_at=finished,
    )


def test_compile_example_definition():
    """Verify the example report compiles with the expected selectors and name."""
    query = compile_query(parse_report_definition(EXAMPLE_REPORT))

    assert query.name == "X"
    assert query.from_timestamp is TimestampSelector.STARTED
    assert query.to_timestamp is TimestampSelector.FINISHED
    assert query.group(_build()) == "svc-a"
    assert query.duration(_build()) == timedelta(minutes=5)


def test_predicate_requires_both_pipeline_and_branch_to_match():
    """Verify the predicate is a logical AND of pipeline and branch patterns."""
    query = compile_query(parse_report_definition(_definition(pipelines="^svc-")))

    assert query.predicate(_build("svc-a", "main")) is True
    assert query.predicate(_build("svc-a", "feature")) is False
    assert query.predicate(_build("web", "main")) is False
    assert query.predicate(_build("web", "feature")) is False


def test_predicate_uses_unanchored_search_semantics():
    """Verify patterns match anywhere in the name unless explicitly anchored."""
    query = compile_query(parse_report_definition(_definition(branches="main")))

    assert query.predicate(_build(branch="release/main-2")) is True


def test_predicate_pattern_matching_no_pipeline_selects_nothing():
    """Verify a pipeline pattern disjoint from all pipeline names matches no builds."""
    query = compile_query(parse_report_definition(_definition(pipelines="^does-not-exist$")))
    builds = [_build("svc-a"), _build("svc-b"), _build("web")]

    assert [build for build in builds if query.predicate(build)] == []


def test_duration_is_none_when_an_endpoint_is_missing():
    """Verify duration is undefined for builds that have not started or finished."""
    query = compile_query(parse_report_definition(EXAMPLE_REPORT))

    assert query.duration(_build(finished=None)) is None
    assert query.duration(_build(started=None, finished=None)) is None


def test_duration_is_negative_when_endpoints_are_reversed():
    """Verify reversed endpoints produce a negative duration instead of being clamped."""
    query = compile_query(parse_report_definition(_definition(**{"from": "finished", "to": "created"})))

    assert query.duration(_build()) == -timedelta(minutes=7)


def test_compile_unknown_timestamp_names_field():
    """Verify an unknown 'from' value fails compilation and names the field."""
    with pytest.raises(QueryCompileError) as excinfo:
        compile_query(parse_report_definition(_definition(**{"from": "unknown"})))

    assert excinfo.value.field == "from"
    assert excinfo.value.report == "X"
    assert "unknown" in str(excinfo.value)


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"to": "done"}, "to"),
        ({"pipelines": "("}, "pipelines"),
        ({"branches": "[main"}, "branches"),
        ({"group": "{{.Pipeline.Missing}}"}, "group"),
        ({"group": 5}, "group"),
    ],
)
def test_compile_invalid_fields_raise_query_compile_error(overrides, field):
    """Verify each invalid field is reported with its field name."""
    with pytest.raises(QueryCompileError) as excinfo:
        compile_query(parse_report_definition(_definition(**overrides)))

    assert excinfo.value.field == field


def test_parse_report_definition_missing_field():
    """Verify a definition missing a required field is rejected."""
    raw = json.loads(EXAMPLE_REPORT)
    del raw["branches"]

    with pytest.raises(QueryCompileError) as excinfo:
        parse_report_definition(json.dumps(raw))

    assert excinfo.value.field == "branches"


@pytest.mark.parametrize("text", ["not json", "[1, 2]", '"name"'])
def test_parse_report_definition_rejects_non_objects(text):
    """Verify invalid JSON and non-object JSON are configuration errors."""
    with pytest.raises(ConfigurationError):
        parse_report_definition(text)


def test_compile_queries_fails_on_first_invalid_definition():
    """Verify a single bad definition fails the whole set."""
    with pytest.raises(QueryCompileError):
        compile_queries([EXAMPLE_REPORT, _definition(name="bad", to="unknown")])


def test_compile_queries_preserves_order():
    """Verify compiled queries keep the order of their definitions."""
    queries = compile_queries([_definition(name="first"), _definition(name="second")])

    assert [query.name for query in queries] == ["first", "second"]
