"""Database integration utilities.

Active positions live in two tables: ``alive_positions`` holds one row per
active position carrying only an identity token, and
``short_positions_historic`` holds the immutable record each token points to.
The storage engine this was designed for cannot delete rows from tables that
are not partitioned by date, so rows are never deleted or updated in place:
an update points the active row at a fresh token and a retirement points it
at :data:`NULL_POSITION_ID`.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Uuid,
    create_engine,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from .errors import CorruptRecordError, StorageError
from .models import Company, ShortPosition, StoredPosition


metadata = MetaData()

LOGGER = logging.getLogger(__name__)

NULL_POSITION_ID = UUID(int=0)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


companies = Table(
    "companies",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=True),
    Column("full_name", String(255), nullable=True),
    Column("ticker", String(32), nullable=True, unique=True),
    Column("isin", String(12), nullable=True),
    Column("extra_id", String(32), nullable=True),
)

alive_positions = Table(
    "alive_positions",
    metadata,
    Column("id", Uuid, nullable=False, index=True),
)

short_positions_historic = Table(
    "short_positions_historic",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("owner", String(255), nullable=True),
    Column("weight", Float, nullable=True),
    Column("open_date", DateTime, nullable=True),
    Column("ticker", String(32), nullable=True, index=True),
    Column("recorded_at", DateTime, nullable=False, default=_utcnow),
)


def create_db_engine(database_url: str) -> Engine:
    """Create a SQLAlchemy engine."""

    LOGGER.debug("Creating database engine")
    return create_engine(database_url, pool_pre_ping=True)


@contextmanager
def session(engine: Engine) -> Iterator[Connection]:
    """Provide a transactional scope around a series of operations."""

    with engine.begin() as conn:
        yield conn


def ensure_schema(engine: Engine) -> None:
    """Create tables if they do not exist."""

    LOGGER.debug("Ensuring database schema is present")
    metadata.create_all(engine)


def _active_view():
    return select(
        alive_positions.c.id,
        short_positions_historic.c.owner,
        short_positions_historic.c.ticker,
        short_positions_historic.c.weight,
        short_positions_historic.c.open_date,
    ).select_from(
        alive_positions.join(
            short_positions_historic,
            alive_positions.c.id == short_positions_historic.c.id,
        )
    )


def _stored(row) -> StoredPosition:
    data = row._mapping
    return StoredPosition(
        id=data["id"],
        owner=data["owner"],
        ticker=data["ticker"],
        weight=data["weight"],
        open_date=data["open_date"],
    )


def _company(row) -> Company:
    data = row._mapping
    if not data["name"]:
        raise CorruptRecordError(f"Missing name: {dict(data)!r}")
    if not data["ticker"]:
        raise CorruptRecordError(f"Missing ticker: {dict(data)!r}")
    return Company(
        name=data["name"],
        ticker=data["ticker"],
        extra_id=data["extra_id"],
        isin=data["isin"],
        full_name=data["full_name"],
    )


class SqlStoreGateway:
    """Storage operations the harvester needs, one transaction per call."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @contextmanager
    def _transaction(self) -> Iterator[Connection]:
        try:
            with session(self.engine) as conn:
                yield conn
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc

    def list_companies(self) -> List[Company]:
        """Return the company directory ordered by ticker."""

        with self._transaction() as conn:
            rows = conn.execute(select(companies).order_by(companies.c.ticker)).all()
        return [_company(row) for row in rows]

    def add_company(self, company: Company) -> None:
        """Register ``company`` in the directory, refreshing it if it exists."""

        values = {
            "name": company.name,
            "full_name": company.full_name,
            "isin": company.isin,
            "extra_id": company.extra_id,
        }
        with self._transaction() as conn:
            existing = conn.execute(
                select(companies.c.id).where(companies.c.ticker == company.ticker)
            ).scalar_one_or_none()
            if existing is None:
                conn.execute(insert(companies).values(ticker=company.ticker, **values))
            else:
                conn.execute(update(companies).where(companies.c.id == existing).values(**values))
        LOGGER.info("Registered company %s (%s)", company.ticker, company.name)

    def list_active(self, ticker: str) -> List[StoredPosition]:
        """Return every active position stored against ``ticker``."""

        with self._transaction() as conn:
            rows = conn.execute(
                _active_view().where(short_positions_historic.c.ticker == ticker)
            ).all()
        positions = [_stored(row) for row in rows]
        LOGGER.debug("Stored active short positions for %s: %s", ticker, positions)
        return positions

    def find_active(self, ticker: str, owner: str) -> Optional[StoredPosition]:
        """Return the active position of ``owner`` against ``ticker``, if any."""

        with self._transaction() as conn:
            row = conn.execute(
                _active_view().where(
                    short_positions_historic.c.ticker == ticker,
                    short_positions_historic.c.owner == owner,
                )
            ).first()
        return _stored(row) if row is not None else None

    def _append_history(self, conn: Connection, position_id: UUID, position: ShortPosition) -> None:
        conn.execute(
            insert(short_positions_historic).values(
                id=position_id,
                owner=position.owner,
                weight=position.weight,
                open_date=_naive_utc(position.open_date),
                ticker=position.ticker,
            )
        )

    def insert_new(self, position: ShortPosition) -> UUID:
        """Record a position that had no previous active row."""

        position_id = uuid4()
        with self._transaction() as conn:
            conn.execute(insert(alive_positions).values(id=position_id))
            self._append_history(conn, position_id, position)
        LOGGER.info("New position registered in the record (%s)", position_id)
        return position_id

    def rekey(self, old_id: UUID, position: ShortPosition) -> UUID:
        """Point the active row ``old_id`` at a new record holding ``position``.

        The record previously referenced by ``old_id`` is kept untouched.
        """

        if old_id == NULL_POSITION_ID:
            raise StorageError("Refusing to re-key a retired position")
        position_id = uuid4()
        with self._transaction() as conn:
            result = conn.execute(
                update(alive_positions)
                .where(alive_positions.c.id == old_id)
                .values(id=position_id)
            )
            if result.rowcount != 1:
                raise StorageError(f"Expected one active row for {old_id}, found {result.rowcount}")
            self._append_history(conn, position_id, position)
        LOGGER.info("Active position %s re-keyed to %s", old_id, position_id)
        return position_id

    def retire(self, position_id: UUID) -> None:
        """Take ``position_id`` out of the active set without deleting anything."""

        if position_id == NULL_POSITION_ID:
            raise StorageError("Position is already retired")
        with self._transaction() as conn:
            result = conn.execute(
                update(alive_positions)
                .where(alive_positions.c.id == position_id)
                .values(id=NULL_POSITION_ID)
            )
            if result.rowcount != 1:
                raise StorageError(
                    f"Expected one active row for {position_id}, found {result.rowcount}"
                )
        LOGGER.info("Active position %s wiped", position_id)

    def history(self, ticker: str) -> List[StoredPosition]:
        """Return every record ever written for ``ticker``, oldest first."""

        with self._transaction() as conn:
            rows = conn.execute(
                select(
                    short_positions_historic.c.id,
                    short_positions_historic.c.owner,
                    short_positions_historic.c.ticker,
                    short_positions_historic.c.weight,
                    short_positions_historic.c.open_date,
                )
                .where(short_positions_historic.c.ticker == ticker)
                .order_by(short_positions_historic.c.recorded_at, short_positions_historic.c.open_date)
            ).all()
        return [_stored(row) for row in rows]


__all__ = [
    "create_db_engine",
    "ensure_schema",
    "session",
    "metadata",
    "companies",
    "alive_positions",
    "short_positions_historic",
    "NULL_POSITION_ID",
    "SqlStoreGateway",
]
