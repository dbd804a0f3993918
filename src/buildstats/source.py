"""Upstream build source interface."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol

from .models import Build


class BuildSource(Protocol):
    """Supplies immutable, re-fetchable builds of one organization."""

    def list_builds(
        self,
        created_from: datetime,
        created_to: Optional[datetime] = None,
    ) -> List[Build]:
        ...
