from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional
from uuid import UUID, uuid4

import pytest

from short_harvest.db import SqlStoreGateway, create_db_engine, ensure_schema
from short_harvest.models import ShortPosition, StoredPosition

FIXTURES = Path(__file__).resolve().parent / "fixtures"


def load_fixture(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


def make_position(
    owner: str = "FundA",
    weight: float = 1.5,
    ticker: str = "GRF",
    open_date: datetime | None = None,
) -> ShortPosition:
    return ShortPosition(
        owner=owner,
        weight=weight,
        open_date=open_date or datetime(2025, 1, 14, 14, 30, tzinfo=timezone.utc),
        ticker=ticker,
    )


class FakeGateway:
    """In-memory stand-in for the SQL gateway that records every write."""

    def __init__(self) -> None:
        self.active: List[UUID] = []
        self.records: Dict[UUID, ShortPosition] = {}
        self.calls: List[tuple] = []

    def seed(self, position: ShortPosition) -> UUID:
        position_id = uuid4()
        self.active.append(position_id)
        self.records[position_id] = position
        return position_id

    def _stored(self, position_id: UUID) -> StoredPosition:
        position = self.records[position_id]
        return StoredPosition(
            id=position_id,
            owner=position.owner,
            ticker=position.ticker,
            weight=position.weight,
            open_date=position.open_date,
        )

    def list_active(self, ticker: str) -> List[StoredPosition]:
        return [
            self._stored(pid)
            for pid in self.active
            if pid in self.records and self.records[pid].ticker == ticker
        ]

    def find_active(self, ticker: str, owner: str) -> Optional[StoredPosition]:
        for stored in self.list_active(ticker):
            if stored.owner == owner:
                return stored
        return None

    def insert_new(self, position: ShortPosition) -> UUID:
        self.calls.append(("insert", position))
        return self.seed(position)

    def rekey(self, old_id: UUID, position: ShortPosition) -> UUID:
        self.calls.append(("rekey", old_id, position))
        new_id = uuid4()
        self.active[self.active.index(old_id)] = new_id
        self.records[new_id] = position
        return new_id

    def retire(self, position_id: UUID) -> None:
        self.calls.append(("retire", position_id))
        self.active[self.active.index(position_id)] = UUID(int=0)

    def active_positions(self, ticker: str) -> List[ShortPosition]:
        return [stored.to_position() for stored in self.list_active(ticker)]


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def sql_engine(tmp_path: Path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'short_harvest.db'}")
    ensure_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sql_gateway(sql_engine) -> SqlStoreGateway:
    return SqlStoreGateway(sql_engine)
