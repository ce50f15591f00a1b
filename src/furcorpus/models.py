from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class FetchStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"


@dataclass(frozen=True)
class FetchResult:
    """Outcome of a single fetch: a payload, a gap, or a recoverable failure."""

    status: FetchStatus
    payload: Any = None

    @classmethod
    def found(cls, payload: Any) -> FetchResult:
        return cls(FetchStatus.FOUND, payload)

    @classmethod
    def not_found(cls) -> FetchResult:
        return cls(FetchStatus.NOT_FOUND)

    @classmethod
    def transient(cls) -> FetchResult:
        return cls(FetchStatus.TRANSIENT)

    @property
    def is_found(self) -> bool:
        return self.status is FetchStatus.FOUND

    @property
    def is_not_found(self) -> bool:
        return self.status is FetchStatus.NOT_FOUND

    @property
    def is_transient(self) -> bool:
        return self.status is FetchStatus.TRANSIENT


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_minute(value: datetime) -> datetime:
    """Normalize to a UTC instant at whole-minute resolution."""
    return ensure_utc(value).replace(second=0, microsecond=0)


def format_timestamp(value: datetime) -> str:
    return to_minute(value).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp_iso(text: str) -> datetime:
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def period_bounds(period_key: int) -> tuple[datetime, datetime]:
    """Return the first and last whole minute of a calendar year, in UTC."""
    start = datetime(period_key, 1, 1, 0, 0, tzinfo=timezone.utc)
    end = datetime(period_key, 12, 31, 23, 59, tzinfo=timezone.utc)
    return start, end


@dataclass(frozen=True)
class IdentifierRange:
    """Inclusive identifier bounds for the entries of one reporting period."""

    period_key: int
    first_id: int
    last_id: int
    first_exact: bool = True
    last_exact: bool = True

    def __post_init__(self) -> None:
        if self.first_id > self.last_id:
            raise ValueError(
                f"Range for {self.period_key} is inverted: first_id={self.first_id} > last_id={self.last_id}"
            )

    @property
    def width(self) -> int:
        return self.last_id - self.first_id

    @property
    def exact(self) -> bool:
        return self.first_exact and self.last_exact

    def target_count(self, fraction: float) -> int:
        return math.floor(self.width * fraction)

    def __contains__(self, identifier: int) -> bool:
        return self.first_id <= identifier <= self.last_id


@dataclass(frozen=True)
class BoundaryResult:
    """Resolved boundary identifier; ``exact`` is False for a best-effort fallback."""

    identifier: int
    exact: bool


@dataclass(frozen=True)
class CatalogEntry:
    """One valid catalog submission, as parsed from its view page."""

    id: int
    timestamp: datetime
    title: Optional[str] = None
    author: Optional[str] = None
    description: Optional[str] = None
    kind: Optional[str] = None
    rating: Optional[str] = None
    tags: tuple[str, ...] = field(default_factory=tuple)
    category: Optional[str] = None
    theme: Optional[str] = None
    species: Optional[str] = None
    gender: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", to_minute(self.timestamp))
        object.__setattr__(self, "tags", tuple(self.tags))

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": format_timestamp(self.timestamp),
            "title": self.title,
            "author": self.author,
            "description": self.description,
            "kind": self.kind,
            "rating": self.rating,
            "tags": list(self.tags),
            "category": self.category,
            "theme": self.theme,
            "species": self.species,
            "gender": self.gender,
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> CatalogEntry:
        return cls(
            id=int(data["id"]),
            timestamp=parse_timestamp_iso(data["timestamp"]),
            title=data.get("title"),
            author=data.get("author"),
            description=data.get("description"),
            kind=data.get("kind"),
            rating=data.get("rating"),
            tags=tuple(data.get("tags") or ()),
            category=data.get("category"),
            theme=data.get("theme"),
            species=data.get("species"),
            gender=data.get("gender"),
        )
