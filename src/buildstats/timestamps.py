"""Selection of build lifecycle timestamps used as interval endpoints."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from .errors import InvalidTimestampName
from .models import Build


class TimestampSelector(enum.Enum):
    """One of the four lifecycle timestamps recorded on every build."""

    CREATED = "created"
    SCHEDULED = "scheduled"
    STARTED = "started"
    FINISHED = "finished"

    @classmethod
    def parse(cls, value: str) -> "TimestampSelector":
        """Parse a case-sensitive timestamp name.

        Raises:
            InvalidTimestampName: If ``value`` is not one of ``created``,
                ``scheduled``, ``started`` or ``finished``.
        """
        for selector in cls:
            if selector.value == value:
                return selector

        names = ", ".join(selector.value for selector in cls)
        raise InvalidTimestampName(f"unknown timestamp '{value}' (expected one of: {names})")

    def extract(self, build: Build) -> Optional[datetime]:
        """Return the selected timestamp of ``build`` or ``None`` if that stage has not occurred."""
        return getattr(build, f"{self.value}_at")
