from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class CacheEntry(BaseModel):
    """Published hash recorded for a package version."""

    name: str
    version: str
    hash: str
    built_at: datetime
