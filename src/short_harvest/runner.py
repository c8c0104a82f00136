"""Command line entry point for the short position harvesting job."""
from __future__ import annotations

import argparse
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from sqlalchemy.engine import Engine

from .config import Settings
from .db import SqlStoreGateway, create_db_engine, ensure_schema
from .errors import (
    CorruptRecordError,
    DataProviderError,
    ExternalServiceError,
    StorageError,
    UnknownCompanyError,
)
from .logging_utils import configure_logging
from .models import Company, TimeFrame
from .reconcile import ReconciliationEngine
from .sources import ShortDataProvider, create_provider

LOGGER = logging.getLogger(__name__)


@dataclass
class HarvestReport:
    """Outcome of a harvesting run."""

    changed: List[str] = field(default_factory=list)
    failures: Dict[str, Exception] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)


def harvest_company(company: Company, provider: ShortDataProvider, engine: ReconciliationEngine) -> bool:
    """Fetch, extract and reconcile the positions of one company."""

    positions = provider.get_positions(company, TimeFrame.current())
    return engine.reconcile(company, positions)


def _report_failure(company: Company, exc: Exception) -> None:
    if isinstance(exc, CorruptRecordError):
        LOGGER.error("Corrupt stored data for %s, skipping its update: %s", company.ticker, exc)
    elif isinstance(exc, StorageError):
        LOGGER.error("Storage failure while updating %s", company.ticker, exc_info=exc)
    elif isinstance(exc, ExternalServiceError):
        LOGGER.warning("The source failed for %s (retryable): %s", company.ticker, exc)
    elif isinstance(exc, UnknownCompanyError):
        LOGGER.warning("The source does not know %s: %s", company.ticker, exc)
    elif isinstance(exc, DataProviderError):
        LOGGER.warning("Could not read the positions of %s: %s", company.ticker, exc)
    else:
        LOGGER.error("Unexpected failure while harvesting %s", company.ticker, exc_info=exc)


def run_harvest(
    settings: Settings,
    engine: Engine | None = None,
    provider: ShortDataProvider | None = None,
) -> HarvestReport:
    """Run the harvesting process over the whole company directory.

    Only a failure to read the directory aborts the run; every other failure
    is scoped to its company and collected in the report.
    """

    engine = engine or create_db_engine(settings.database_url)
    ensure_schema(engine)
    gateway = SqlStoreGateway(engine)
    provider = provider or create_provider(settings.regulator, settings)
    reconciler = ReconciliationEngine(gateway)

    companies = gateway.list_companies()
    LOGGER.debug("%d companies listed in the directory", len(companies))

    report = HarvestReport()
    eligible: List[Company] = []
    for company in companies:
        if company.has_source_id:
            eligible.append(company)
        else:
            LOGGER.debug("Skipping %s: no registry identifier", company.ticker)
            report.skipped.append(company.ticker)

    with ThreadPoolExecutor(max_workers=settings.max_workers, thread_name_prefix="harvest") as pool:
        futures = {
            pool.submit(harvest_company, company, provider, reconciler): company
            for company in eligible
        }
        for future, company in futures.items():
            try:
                changed = future.result()
            except Exception as exc:  # failures are scoped to one company
                _report_failure(company, exc)
                report.failures[company.ticker] = exc
                continue
            if changed:
                report.changed.append(company.ticker)

    report.changed.sort()
    LOGGER.info(
        "Harvest finished: %d changed, %d failed, %d skipped",
        len(report.changed),
        len(report.failures),
        len(report.skipped),
    )
    return report


def show_history(settings: Settings, ticker: str) -> None:
    engine = create_db_engine(settings.database_url)
    ensure_schema(engine)
    for record in SqlStoreGateway(engine).history(ticker):
        print(f"{record.id}  {record.open_date:%Y-%m-%d %H:%M}  {record.weight:>6.2f}%  {record.owner}")


def add_company(settings: Settings, options: argparse.Namespace) -> None:
    engine = create_db_engine(settings.database_url)
    ensure_schema(engine)
    SqlStoreGateway(engine).add_company(
        Company(
            name=options.name,
            ticker=options.ticker,
            extra_id=options.nif,
            isin=options.isin,
            full_name=options.full_name,
        )
    )


def parse_args(args: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging output",
    )
    commands = parser.add_subparsers(dest="command")
    commands.add_parser("run", help="Harvest the active short positions (default)")

    history = commands.add_parser("history", help="Print the recorded positions of a ticker")
    history.add_argument("ticker")

    company = commands.add_parser("add-company", help="Register a company in the directory")
    company.add_argument("ticker")
    company.add_argument("name")
    company.add_argument("--nif", help="Registry identifier the regulator is queried with")
    company.add_argument("--isin")
    company.add_argument("--full-name")
    return parser.parse_args(args=args)


def main(argv: Iterable[str] | None = None) -> int:
    options = parse_args(argv)
    configure_logging(logging.DEBUG if options.verbose else None)
    settings = Settings.load()

    if options.command == "history":
        show_history(settings, options.ticker)
        return 0
    if options.command == "add-company":
        add_company(settings, options)
        return 0

    report = run_harvest(settings)
    for ticker in report.changed:
        print(ticker)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
