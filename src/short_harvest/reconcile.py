"""Reconciliation of freshly scraped positions against the stored active set."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence
from uuid import UUID

from .models import Company, ShortPosition, StoredPosition

LOGGER = logging.getLogger(__name__)


class StoreGateway(Protocol):
    """Storage operations the engine relies on. Each call is one transaction."""

    def list_active(self, ticker: str) -> List[StoredPosition]: ...

    def find_active(self, ticker: str, owner: str) -> Optional[StoredPosition]: ...

    def insert_new(self, position: ShortPosition) -> UUID: ...

    def rekey(self, old_id: UUID, position: ShortPosition) -> UUID: ...

    def retire(self, position_id: UUID) -> None: ...


class MutationKind(enum.Enum):
    INSERT = "insert"
    UPDATE = "update"
    RETIRE = "retire"


@dataclass(frozen=True, slots=True)
class Mutation:
    """One storage write emitted by :meth:`ReconciliationEngine.plan`.

    ``position`` is set for inserts and updates, ``target`` for updates and
    retirements.
    """

    kind: MutationKind
    position: Optional[ShortPosition] = None
    target: Optional[UUID] = None

    @classmethod
    def insert(cls, position: ShortPosition) -> "Mutation":
        return cls(MutationKind.INSERT, position=position)

    @classmethod
    def update(cls, target: UUID, position: ShortPosition) -> "Mutation":
        return cls(MutationKind.UPDATE, position=position, target=target)

    @classmethod
    def retire(cls, target: UUID) -> "Mutation":
        return cls(MutationKind.RETIRE, target=target)


class ReconciliationEngine:
    """Bring the stored active set of a company in line with a new snapshot."""

    def __init__(self, gateway: StoreGateway) -> None:
        self.gateway = gateway

    def plan(
        self,
        current: Sequence[ShortPosition],
        stored: Sequence[StoredPosition],
    ) -> List[Mutation]:
        """Compute the writes that turn ``stored`` into ``current``.

        Positions identical to a stored one need no write. A changed position of
        an owner that already has an active row becomes an update of that row;
        otherwise it is inserted. Stored positions whose owner is absent from
        ``current`` are retired. Raises :class:`CorruptRecordError` when a stored
        row cannot be turned into a position.
        """

        if not stored and not current:
            return []

        if not stored:
            return [Mutation.insert(position) for position in current]

        if not current:
            mutations = []
            for row in stored:
                if row.id is None:
                    LOGGER.error("Corrupt data in the DB, cannot retire %r", row)
                    continue
                mutations.append(Mutation.retire(row.id))
            return mutations

        known = [(row, row.to_position()) for row in stored]
        mutations: List[Mutation] = []

        for position in current:
            if any(position == old for _, old in known):
                LOGGER.debug(
                    "The position owned by %s against %s was already in the record",
                    position.owner,
                    position.ticker,
                )
                continue

            previous = self.gateway.find_active(position.ticker, position.owner)
            if previous is not None and previous.id is not None:
                LOGGER.info(
                    "The position owned by %s against %s got updated",
                    position.owner,
                    position.ticker,
                )
                mutations.append(Mutation.update(previous.id, position))
            else:
                if previous is not None:
                    LOGGER.error("Corrupt data in the DB, active row without id: %r", previous)
                LOGGER.warning(
                    "A new short position against %s owned by %s got registered",
                    position.ticker,
                    position.owner,
                )
                mutations.append(Mutation.insert(position))

        for row, old in known:
            if any(position.same_holding(old) for position in current):
                continue
            if row.id is None:
                LOGGER.error("Corrupt data in the DB, cannot retire %r", row)
                continue
            LOGGER.warning(
                "A previous position owned by %s against %s got reduced below the threshold",
                old.owner,
                old.ticker,
            )
            mutations.append(Mutation.retire(row.id))

        return mutations

    def apply(self, mutations: Sequence[Mutation]) -> int:
        """Run ``mutations`` through the gateway, one transaction each.

        The first storage failure is re-raised and the remaining writes are not
        attempted. Every write that did complete leaves the store consistent, so
        the next run picks up where this one stopped.
        """

        applied = 0
        for mutation in mutations:
            if mutation.kind is MutationKind.INSERT:
                self.gateway.insert_new(mutation.position)
            elif mutation.kind is MutationKind.UPDATE:
                self.gateway.rekey(mutation.target, mutation.position)
            else:
                self.gateway.retire(mutation.target)
            applied += 1
        return applied

    def reconcile(self, company: Company, current: Sequence[ShortPosition]) -> bool:
        """Reconcile ``company`` and report whether its active set changed."""

        stored = self.gateway.list_active(company.ticker)
        mutations = self.plan(current, stored)

        if not mutations:
            if not stored and not current:
                LOGGER.debug("The company %s has no open short positions", company.ticker)
            return False

        if not stored:
            LOGGER.warning("The company %s got new short positions against it", company.ticker)
        elif not current:
            LOGGER.warning("The company %s got free of significant short positions", company.ticker)

        self.apply(mutations)
        LOGGER.info("Applied %d changes for %s", len(mutations), company.ticker)
        return True


__all__ = [
    "StoreGateway",
    "Mutation",
    "MutationKind",
    "ReconciliationEngine",
]
