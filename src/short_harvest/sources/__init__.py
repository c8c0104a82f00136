"""Provider registry for short position sources."""
from __future__ import annotations

import logging
from typing import Callable, Dict

from ..config import Settings
from .base import ShortDataProvider
from .cnmv import CnmvProvider

LOGGER = logging.getLogger(__name__)


def _cnmv(settings: Settings) -> ShortDataProvider:
    return CnmvProvider(
        settings.base_url,
        settings.short_path,
        timeout=settings.request_timeout,
        source_timezone=settings.source_timezone,
    )


PROVIDERS: Dict[str, Callable[[Settings], ShortDataProvider]] = {
    "cnmv": _cnmv,
}


def create_provider(regulator: str, settings: Settings) -> ShortDataProvider:
    """Instantiate the provider registered for ``regulator``."""

    try:
        factory = PROVIDERS[regulator.lower()]
    except KeyError:
        raise ValueError(f"Unsupported regulator: {regulator}") from None
    LOGGER.debug("Selected %s provider", regulator)
    return factory(settings)


__all__ = ["create_provider", "PROVIDERS", "ShortDataProvider", "CnmvProvider"]
