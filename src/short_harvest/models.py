"""Domain models representing short position disclosures."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator, List, Optional
from uuid import UUID

from .errors import CorruptRecordError


@dataclass(slots=True)
class ShortPosition:
    """A single disclosed short position against a company.

    ``weight`` is the percentage of the company's capital held short and
    ``open_date`` is the disclosure instant in UTC. Two positions compare equal
    only when all four fields match; use :meth:`same_holding` to check whether
    two records describe the same owner/ticker pair.
    """

    owner: str
    weight: float
    open_date: datetime
    ticker: str

    def same_holding(self, other: "ShortPosition") -> bool:
        return self.owner == other.owner and self.ticker == other.ticker

    def __str__(self) -> str:
        return f"{self.owner} - {self.weight} ({self.open_date.isoformat()})"


@dataclass(slots=True)
class AliveShortPositions:
    """Snapshot of the active short positions of one company."""

    positions: List[ShortPosition] = field(default_factory=list)
    total: float = 0.0
    date: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_positions(cls, positions: List[ShortPosition]) -> "AliveShortPositions":
        total = sum(position.weight for position in positions)
        return cls(positions=list(positions), total=total)

    def __len__(self) -> int:
        return len(self.positions)

    def __iter__(self) -> Iterator[ShortPosition]:
        return iter(self.positions)


@dataclass(slots=True)
class StoredPosition:
    """Mirror of an active position as read back from storage.

    Every field may be missing because rows come straight from the database.
    """

    id: Optional[UUID] = None
    owner: Optional[str] = None
    ticker: Optional[str] = None
    weight: Optional[float] = None
    open_date: Optional[datetime] = None

    def to_position(self) -> ShortPosition:
        """Convert into a :class:`ShortPosition`, refusing incomplete rows."""

        for name in ("owner", "weight", "open_date", "ticker"):
            if getattr(self, name) is None:
                raise CorruptRecordError(f"Missing {name.replace('_', ' ')}: {self!r}")

        open_date = self.open_date
        # Timestamps are kept in UTC within the database.
        if open_date.tzinfo is None:
            open_date = open_date.replace(tzinfo=timezone.utc)
        else:
            open_date = open_date.astimezone(timezone.utc)

        return ShortPosition(
            owner=self.owner,
            weight=float(self.weight),
            open_date=open_date,
            ticker=self.ticker,
        )


@dataclass(frozen=True, slots=True)
class Company:
    """A listed company as known by the company directory."""

    name: str
    ticker: str
    extra_id: Optional[str] = None  # national registry id (NIF for the CNMV)
    isin: Optional[str] = None
    full_name: Optional[str] = None

    @property
    def has_source_id(self) -> bool:
        return bool(self.extra_id and self.extra_id.strip())


@dataclass(frozen=True, slots=True)
class TimeFrame:
    """Window of positions requested from a provider.

    ``since`` is ``None`` for the currently active positions.
    """

    since: Optional[datetime] = None

    @classmethod
    def current(cls) -> "TimeFrame":
        return cls()

    @classmethod
    def historical(cls, since: datetime) -> "TimeFrame":
        return cls(since=since)

    @property
    def is_current(self) -> bool:
        return self.since is None


__all__ = [
    "ShortPosition",
    "AliveShortPositions",
    "StoredPosition",
    "Company",
    "TimeFrame",
]
