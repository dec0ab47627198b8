"""
Shared enums and result wrappers used across models and routes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import StrEnum
from typing import Generic, List, Optional, TypeVar

T = TypeVar("T")


class ContentType(StrEnum):
    VIDEO = "video"
    POST = "post"
    MANUAL = "manual"
    TUTORIAL = "tutorial"


class ItemType(StrEnum):
    VIDEO = "video"
    CARD = "card"


class SyncDirection(StrEnum):
    INBOUND = "inbound"  # GitHub -> 10xDev
    OUTBOUND = "outbound"  # 10xDev -> GitHub


class SyncStatus(StrEnum):
    SUCCESS = "success"
    ERROR = "error"
    CONFLICT = "conflict"


class PullRequestState(StrEnum):
    OPEN = "open"
    CLOSED = "closed"
    MERGED = "merged"


@dataclass
class ModelResult(Generic[T]):
    """Outcome of a single-record model operation."""

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    status_code: int = 200

    @classmethod
    def ok(cls, data: Optional[T] = None, status_code: int = 200) -> "ModelResult[T]":
        return cls(success=True, data=data, status_code=status_code)

    @classmethod
    def fail(cls, error: str, status_code: int = 400) -> "ModelResult[T]":
        return cls(success=False, error=error, status_code=status_code)


@dataclass
class ModelListResult(Generic[T]):
    """Outcome of a model operation returning many records."""

    success: bool
    data: Optional[List[T]] = None
    count: int = 0
    error: Optional[str] = None
    status_code: int = 200

    @classmethod
    def ok(cls, data: List[T], count: Optional[int] = None) -> "ModelListResult[T]":
        return cls(
            success=True,
            data=data,
            count=len(data) if count is None else count,
        )

    @classmethod
    def fail(cls, error: str, status_code: int = 400) -> "ModelListResult[T]":
        return cls(success=False, data=None, error=error, status_code=status_code)


def utc_now() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()
