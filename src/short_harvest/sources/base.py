"""Base classes for short position data providers."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from ..models import Company, ShortPosition, TimeFrame


class ShortDataProvider(ABC):
    """Abstract source of short positions for the stocks of one regulator.

    Each market regulator publishes short positions in its own way, so every
    regulator gets its own implementation. Implementations are shared across
    worker threads and must not keep per-company state.
    """

    regulator: str = ""

    @abstractmethod
    def get_positions(self, company: Company, time_frame: TimeFrame) -> List[ShortPosition]:
        """Return the positions of ``company`` within ``time_frame``.

        An empty list means the company had no positions in that window.
        """


__all__ = ["ShortDataProvider"]
