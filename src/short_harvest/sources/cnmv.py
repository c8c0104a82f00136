"""CNMV (Spanish securities regulator) short position source.

The CNMV publishes the active short positions against a listed company at
``Portal/Consultas/EE/PosicionesCortas.aspx?nif=<NIF>``. The endpoint only
accepts the company's NIF, so tickers or names cannot be used to query it.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List
from zoneinfo import ZoneInfo

import requests
from bs4 import BeautifulSoup

from ..errors import (
    ExternalServiceError,
    MissingIdentifierError,
    UnknownCompanyError,
    UnsupportedTimeFrameError,
)
from ..models import AliveShortPositions, Company, ShortPosition, TimeFrame
from .base import ShortDataProvider
from .utils import disclosure_timestamp, parse_position_date, parse_weight

LOGGER = logging.getLogger(__name__)

EXTERNAL_FAILURE_MARKER = "No ha sido posible completar su consulta"
NO_DATA_MARKER = "No se han encontrado datos disponibles"
HISTORICAL_SERIES_MARKER = "Serie histórica"
SECURITY_ID_PATTERN = re.compile(r"[A-Z]{2}\d{10}")

OWNER_CLASS = "Izquierda"
WEIGHT_HEADER = "% sobre el capital"
DATE_HEADER = "Fecha de la posición"

DEFAULT_HEADERS = {
    "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "accept-language": "es-ES,es;q=0.9,en;q=0.8",
    "cache-control": "max-age=0",
    "upgrade-insecure-requests": "1",
    "user-agent": "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/141.0.0.0 Safari/537.36",
}


@dataclass(frozen=True, slots=True)
class ClassifiedPage:
    """A response body the CNMV served for a recognised company."""

    body: str
    has_data: bool = True


def classify_response(body: str) -> ClassifiedPage:
    """Decide whether ``body`` is a usable short positions page.

    The CNMV renders the same empty page for companies without disclosures and
    for identifiers it does not know. The historical series link and an
    ISIN-shaped code only show up on pages of real companies.
    """

    if EXTERNAL_FAILURE_MARKER in body:
        raise ExternalServiceError("The request could not be processed by the external server")

    if NO_DATA_MARKER not in body:
        return ClassifiedPage(body)

    if HISTORICAL_SERIES_MARKER in body:
        return ClassifiedPage(body, has_data=False)
    # Companies without any history yet (e.g. recent listings) land here.
    if SECURITY_ID_PATTERN.search(body):
        return ClassifiedPage(body, has_data=False)
    raise UnknownCompanyError()


def extract_positions(body: str, ticker: str, tz: ZoneInfo | str) -> AliveShortPositions:
    """Parse the positions table of a classified page.

    Rows without an owner cell are headers or spacers and are skipped. Any row
    with an unreadable weight or date rejects the whole page.
    """

    soup = BeautifulSoup(body, "html.parser")
    positions: List[ShortPosition] = []
    for row in soup.find_all("tr"):
        owner = None
        weight_text = None
        date_text = None
        for cell in row.find_all("td"):
            header = (cell.get("data-th") or "").strip()
            if OWNER_CLASS in (cell.get("class") or []):
                owner = cell.get_text(strip=True)
            elif header == WEIGHT_HEADER:
                weight_text = cell.get_text(strip=True)
            elif header == DATE_HEADER:
                date_text = cell.get_text(strip=True)

        if not owner:
            continue

        weight = parse_weight(weight_text)
        open_date = disclosure_timestamp(parse_position_date(date_text), tz)
        positions.append(ShortPosition(owner=owner, weight=weight, open_date=open_date, ticker=ticker))

    LOGGER.debug("Extracted %d short positions for %s", len(positions), ticker)
    return AliveShortPositions.from_positions(positions)


class CnmvProvider(ShortDataProvider):
    """Scraper for the CNMV short positions register."""

    regulator = "cnmv"

    def __init__(
        self,
        base_url: str = "https://www.cnmv.es",
        short_path: str = "Portal/Consultas/EE/PosicionesCortas.aspx?nif=",
        *,
        timeout: float = 30.0,
        source_timezone: str = "Europe/Madrid",
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.short_path = short_path.lstrip("/")
        self.timeout = timeout
        self.tz = ZoneInfo(source_timezone)
        self.session = session or requests.Session()
        self.session.headers.update(DEFAULT_HEADERS)

    def short_url(self, identifier: str) -> str:
        return f"{self.base_url}/{self.short_path}{identifier}"

    def collect_data(self, company: Company) -> ClassifiedPage:
        """Download and classify the short positions page of ``company``."""

        if not company.has_source_id:
            LOGGER.error("The given company (%s) has no NIF", company.name)
            raise MissingIdentifierError(f"{company.ticker} has no registry identifier")

        url = self.short_url(company.extra_id.strip())
        LOGGER.debug("Requesting CNMV page for %s", company.ticker)
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.Timeout as exc:
            raise ExternalServiceError(f"Timed out after {self.timeout}s requesting {url}") from exc
        except requests.RequestException as exc:
            raise ExternalServiceError(str(exc)) from exc

        if response.status_code != 200:
            status_text = f"{response.status_code} {response.reason or ''}".strip()
            LOGGER.error("Error found during the request for %s: %s", company.ticker, status_text)
            raise ExternalServiceError(status_text, status=response.status_code)

        try:
            return classify_response(response.text)
        except UnknownCompanyError as exc:
            raise UnknownCompanyError(company.extra_id) from exc

    def short_positions(self, company: Company) -> AliveShortPositions:
        """Return the alive short positions against ``company``.

        The result is empty, not an error, when the company has no open position.
        """

        page = self.collect_data(company)
        if not page.has_data:
            LOGGER.debug("The CNMV reports no data for %s", company.ticker)
            return AliveShortPositions()
        return extract_positions(page.body, company.ticker, self.tz)

    def get_positions(self, company: Company, time_frame: TimeFrame) -> List[ShortPosition]:
        if not time_frame.is_current:
            raise UnsupportedTimeFrameError("The CNMV provider only serves alive positions")
        return self.short_positions(company).positions


__all__ = [
    "CnmvProvider",
    "ClassifiedPage",
    "classify_response",
    "extract_positions",
]
