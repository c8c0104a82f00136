"""Harvester settings read from ``SHORT_HARVEST_*`` variables and profile files."""
from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Iterator, Mapping
from urllib.parse import quote_plus


ENV_PREFIX = "SHORT_HARVEST_"

DEFAULT_BASE_URL = "https://www.cnmv.es"
DEFAULT_SHORT_PATH = "Portal/Consultas/EE/PosicionesCortas.aspx?nif="
DEFAULT_REGULATOR = "cnmv"
DEFAULT_SOURCE_TIMEZONE = "Europe/Madrid"
DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_WORKERS = 4
# Disclosures are published no later than 15:30 Madrid time.
DEFAULT_SCHEDULE = "16:00"
DEFAULT_DB_PORT = "5432"
DEFAULT_DB_NAME = "short_positions"
DEFAULT_DB_DRIVER = "postgresql+psycopg"


def _var(name: str) -> str:
    return f"{ENV_PREFIX}{name}"


def _profile_file_locations(name: str) -> Iterator[Path]:
    """Yield where a profile file called ``name`` may live.

    An absolute name is used as is. A relative one is looked up in the working
    directory first, then in the package directory and each of its parents, so
    ``.env.local`` next to a source checkout is found from any directory.
    """

    given = Path(name)
    if given.is_absolute():
        yield given
        return
    package_dir = Path(__file__).resolve().parent
    visited: set[Path] = set()
    for directory in (Path.cwd().resolve(), package_dir, *package_dir.parents):
        if directory not in visited:
            visited.add(directory)
            yield directory / name


def _assignment(line: str) -> tuple[str, str] | None:
    line = line.strip()
    if not line or line.startswith("#"):
        return None
    line = line.removeprefix("export ").strip()
    key, sep, value = line.partition("=")
    if not sep:
        return None
    return key.strip(), value.strip().strip('"').strip("'")


def read_profile_file(path: Path) -> dict[str, str]:
    """``KEY=value`` pairs of a dotenv-style profile; malformed lines are ignored."""

    pairs = (_assignment(line) for line in path.read_text().splitlines())
    return dict(pair for pair in pairs if pair is not None)


def _profile_env(env: Mapping[str, str]) -> dict[str, str]:
    # SHORT_HARVEST_ENV_FILE names the file outright, otherwise the
    # SHORT_HARVEST_ENV profile (default "local") selects ``.env.<profile>``.
    name = env.get(_var("ENV_FILE")) or f".env.{env.get(_var('ENV'), 'local')}"
    for location in _profile_file_locations(name):
        if location.is_file():
            return read_profile_file(location)
    return {}


def _discrete_database_url(env: Mapping[str, str]) -> str | None:
    """Assemble the store URL from ``SHORT_HARVEST_DB_*`` parts, if a host is set."""

    host = env.get(_var("DB_HOST"))
    if not host:
        return None
    username = env.get(_var("DB_USERNAME"))
    password = env.get(_var("DB_PASSWORD"))
    if not username:
        raise RuntimeError(f"{_var('DB_USERNAME')} is required alongside {_var('DB_HOST')}")
    # An empty password is allowed, an absent one is not.
    if password is None:
        raise RuntimeError(f"{_var('DB_PASSWORD')} is required alongside {_var('DB_HOST')}")

    port = env.get(_var("DB_PORT"), DEFAULT_DB_PORT)
    database = env.get(_var("DB_NAME"), DEFAULT_DB_NAME)
    driver = env.get(_var("DB_DRIVER"), DEFAULT_DB_DRIVER)
    netloc = f"{quote_plus(username)}:{quote_plus(password)}@{host}"
    if port:
        netloc = f"{netloc}:{port}"
    return f"{driver}://{netloc}/{database}"


def _parse_schedule(value: str) -> tuple[int, int]:
    hour_text, sep, minute_text = value.strip().partition(":")
    try:
        if not sep:
            raise ValueError(value)
        hour, minute = int(hour_text), int(minute_text)
    except ValueError as exc:
        raise RuntimeError(f"{_var('SCHEDULE')} must be HH:MM, got {value!r}") from exc
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise RuntimeError(f"{_var('SCHEDULE')} is not a time of day: {value!r}")
    return hour, minute


def _number(env: Mapping[str, str], key: str, default: float, cast=float):
    raw = (env.get(_var(key)) or "").strip()
    if not raw:
        return cast(default)
    try:
        return cast(raw)
    except ValueError as exc:
        raise RuntimeError(f"{_var(key)} must be numeric, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    """Where to scrape, where to store, and how hard and when to run.

    ``database_url`` is the only setting without a default. The scraper knobs
    point at the CNMV register, and the schedule fires once a day after the
    15:30 publication cut-off in ``schedule_timezone``.
    """

    database_url: str
    base_url: str = DEFAULT_BASE_URL
    short_path: str = DEFAULT_SHORT_PATH
    regulator: str = DEFAULT_REGULATOR
    source_timezone: str = DEFAULT_SOURCE_TIMEZONE
    request_timeout: float = DEFAULT_TIMEOUT
    max_workers: int = DEFAULT_MAX_WORKERS
    schedule_hour: int = 16
    schedule_minute: int = 0
    schedule_timezone: str = DEFAULT_SOURCE_TIMEZONE

    @staticmethod
    def load(env: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from ``env`` (the process environment by default).

        Values from the profile file fill in whatever ``env`` leaves unset.
        Invalid numbers and schedules raise :class:`RuntimeError`.
        """

        shell = dict(os.environ if env is None else env)
        merged = {**_profile_env(shell), **shell}

        database_url = merged.get(_var("DATABASE_URL")) or _discrete_database_url(merged)
        if not database_url:
            raise RuntimeError(
                f"Set {_var('DATABASE_URL')} or {_var('DB_HOST')} and friends to locate the store"
            )

        max_workers = _number(merged, "MAX_WORKERS", DEFAULT_MAX_WORKERS, int)
        if max_workers < 1:
            raise RuntimeError(f"{_var('MAX_WORKERS')} must be at least 1")
        timeout = _number(merged, "TIMEOUT", DEFAULT_TIMEOUT)
        if timeout <= 0:
            raise RuntimeError(f"{_var('TIMEOUT')} must be positive")

        hour, minute = _parse_schedule(merged.get(_var("SCHEDULE"), DEFAULT_SCHEDULE))
        source_timezone = merged.get(_var("SOURCE_TIMEZONE"), DEFAULT_SOURCE_TIMEZONE)

        return Settings(
            database_url=database_url,
            base_url=merged.get(_var("BASE_URL"), DEFAULT_BASE_URL).rstrip("/"),
            short_path=merged.get(_var("SHORT_PATH"), DEFAULT_SHORT_PATH).lstrip("/"),
            regulator=merged.get(_var("REGULATOR"), DEFAULT_REGULATOR).lower(),
            source_timezone=source_timezone,
            request_timeout=timeout,
            max_workers=max_workers,
            schedule_hour=hour,
            schedule_minute=minute,
            schedule_timezone=merged.get(_var("SCHEDULE_TIMEZONE"), source_timezone),
        )


__all__ = ["Settings", "ENV_PREFIX", "read_profile_file"]
