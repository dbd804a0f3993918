"""Domain models for Buildkite build statistics.

These dataclasses intentionally model only the subset of API payload fields that
are required for filtering, grouping and timing builds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .errors import DataValidationError


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse Buildkite ISO8601 timestamps into timezone-aware datetimes."""
    if not value:
        return None

    normalized = value[:-1] + "+00:00" if value.endswith("Z") else value
    parsed = datetime.fromisoformat(normalized)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    """Format a datetime as UTC ISO8601 with a ``Z`` suffix."""
    if value is None:
        return None

    utc_value = value.astimezone(timezone.utc)
    return utc_value.isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Pipeline:
    """Represents the pipeline a build belongs to."""

    slug: str
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Build:
    """Represents one recorded execution of a Buildkite pipeline.

    A missing lifecycle timestamp means that stage has not occurred yet.
    """

    id: str
    number: int
    pipeline: Pipeline
    branch: str
    state: str
    created_at: Optional[datetime]
    scheduled_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def to_payload(self) -> Dict[str, Any]:
        """Serialize the build into the Buildkite REST payload shape."""
        return {
            "id": self.id,
            "number": self.number,
            "pipeline": {"slug": self.pipeline.slug, "name": self.pipeline.name},
            "branch": self.branch,
            "state": self.state,
            "created_at": format_datetime(self.created_at),
            "scheduled_at": format_datetime(self.scheduled_at),
            "started_at": format_datetime(self.started_at),
            "finished_at": format_datetime(self.finished_at),
        }

    @classmethod
    def from_payload(cls, item: Dict[str, Any]) -> "Build":
        """Build a ``Build`` from a Buildkite REST payload.

        Raises:
            DataValidationError: If required fields are missing or malformed.
        """
        if not isinstance(item, dict):
            raise DataValidationError(f"Buildkite build payload is not an object: {item!r}")

        build_id = item.get("id")
        pipeline = item.get("pipeline") or {}
        if not isinstance(pipeline, dict):
            raise DataValidationError(
                f"Buildkite build payload has a non-object pipeline: id={build_id}"
            )
        pipeline_name = pipeline.get("name")

        if not build_id or not pipeline_name:
            raise DataValidationError(
                f"Buildkite build payload is missing required fields: payload={item}"
            )

        try:
            return cls(
                id=str(build_id),
                number=int(item.get("number") or 0),
                pipeline=Pipeline(
                    slug=str(pipeline.get("slug") or ""),
                    name=str(pipeline_name),
                ),
                branch=str(item.get("branch") or ""),
                state=str(item.get("state") or ""),
                created_at=parse_datetime(item.get("created_at")),
                scheduled_at=parse_datetime(item.get("scheduled_at")),
                started_at=parse_datetime(item.get("started_at")),
                finished_at=parse_datetime(item.get("finished_at")),
            )
        except (TypeError, ValueError) as exc:
            raise DataValidationError(
                f"Buildkite build payload has malformed values: id={build_id}"
            ) from exc


@dataclass(frozen=True)
class GroupStats:
    """Represents aggregated duration statistics for one group, in seconds."""

    count: int
    p50: Optional[float]
    p75: Optional[float]
    p90: Optional[float]
    mean: Optional[float]
    min: Optional[float]
    max: Optional[float]


@dataclass
class ReportResult:
    """Represents the evaluation of one report query over a build population."""

    name: str
    groups: Dict[str, GroupStats] = field(default_factory=dict)
    matched: int = 0
    missing_timestamps: int = 0
    negative_durations: int = 0
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None
