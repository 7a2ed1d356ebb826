"""
Data models for storage layer.

Defines database entities and data structures.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class UsagePeriod:
    """Call count for one user in one billing period.

    Rows are keyed by (user_id, period_start) and never deleted, so the
    table doubles as a billing history.
    """
    user_id: str
    period_start: str
    calls: int


@dataclass(frozen=True)
class Child:
    """A child whose memories are collected."""
    id: int
    name: str
    user_id: str


@dataclass(frozen=True)
class Memory:
    """A single journal entry: free-text note and/or an image reference."""
    id: int
    child_id: int
    note: Optional[str] = None
    image_path: Optional[str] = None
    taken_at: Optional[str] = None
