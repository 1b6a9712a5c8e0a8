"""Application configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Iterator, Mapping
from urllib.parse import quote_plus


PREFIX = "CLUB_LEDGER_"

DEFAULT_PRICE_SOURCES: tuple[str, ...] = ("finnhub", "yahoo", "screener")
DEFAULT_BATCH_SOURCE = "yahoo"
DEFAULT_STALE_AFTER_SECONDS = 300
DEFAULT_SYNC_INTERVAL_SECONDS = 60
MIN_SYNC_INTERVAL_SECONDS = 60


class _Env:
    """Prefixed view over a merged environment mapping."""

    def __init__(self, values: Mapping[str, str]) -> None:
        self.values = values

    def name(self, key: str) -> str:
        return PREFIX + key

    def get(self, key: str, default: str | None = None) -> str | None:
        return self.values.get(self.name(key), default)

    def has(self, key: str) -> bool:
        return self.name(key) in self.values

    def text(self, key: str, default: str = "") -> str:
        return self.get(key, default).strip()

    def number(self, key: str, default: float) -> float:
        raw = self.text(key)
        if not raw:
            return default
        try:
            value = float(raw)
        except ValueError as exc:
            raise RuntimeError(f"{self.name(key)} must be a number, got {raw!r}") from exc
        if value < 0:
            raise RuntimeError(f"{self.name(key)} must not be negative")
        return value

    def names(self, key: str, default: tuple[str, ...]) -> tuple[str, ...]:
        raw = self.get(key)
        if raw is None:
            return default
        return tuple(chunk.strip().lower() for chunk in raw.split(",") if chunk.strip())

    def database_url(self) -> str | None:
        """The explicit URL, else one assembled from the ``DB_*`` keys."""

        explicit = self.text("DATABASE_URL")
        if explicit:
            return explicit
        host = self.text("DB_HOST")
        if not host:
            return None
        # An empty password is allowed, an empty user is not.
        required = {"DB_USERNAME": bool(self.text("DB_USERNAME")), "DB_PASSWORD": self.has("DB_PASSWORD")}
        for key, present in required.items():
            if not present:
                raise RuntimeError(f"{self.name(key)} must be set when using discrete database settings")

        credentials = ":".join(quote_plus(self.get(key) or "") for key in ("DB_USERNAME", "DB_PASSWORD"))
        port = self.text("DB_PORT", "5432")
        address = f"{host}:{port}" if port else host
        driver = self.text("DB_DRIVER", "postgresql+psycopg")
        return f"{driver}://{credentials}@{address}/{self.text('DB_NAME', 'club_ledger')}"


def _env_file_candidates(name: str) -> Iterator[Path]:
    path = Path(name)
    if path.is_absolute():
        yield path
        return
    roots = dict.fromkeys(root.resolve() for root in (Path.cwd(), *Path(__file__).resolve().parents))
    for root in roots:
        yield root / name


def _read_env_file(path: Path) -> dict[str, str]:
    """``KEY=value`` lines; blanks, comments and an ``export`` prefix are ignored."""

    variables: dict[str, str] = {}
    for line in path.read_text().splitlines():
        line = line.strip().removeprefix("export ").strip()
        key, sep, value = line.partition("=")
        if line.startswith("#") or not sep:
            continue
        variables[key.strip()] = value.strip().strip("\"'")
    return variables


def _load_profile_env(env: _Env) -> dict[str, str]:
    name = env.get("ENV_FILE") or f".env.{env.get('ENV', 'local')}"
    for path in _env_file_candidates(name):
        if path.is_file():
            return _read_env_file(path)
    return {}


@dataclass(frozen=True)
class Settings:
    """Runtime configuration."""

    database_url: str
    finnhub_api_key: str | None = None
    price_sources: tuple[str, ...] = DEFAULT_PRICE_SOURCES
    batch_source: str | None = DEFAULT_BATCH_SOURCE
    stale_after_seconds: float = DEFAULT_STALE_AFTER_SECONDS
    sync_interval_seconds: float = DEFAULT_SYNC_INTERVAL_SECONDS
    refresh_interval_seconds: float = 60
    request_timeout_seconds: float = 8
    fallback_delay_seconds: float = 0.2
    default_exchange_suffix: str = ".NS"

    @staticmethod
    def load(env: Mapping[str, str] | None = None) -> "Settings":
        """Load settings from the profile env file and environment variables."""

        shell = dict(os.environ if env is None else env)
        # Variables set in the shell win over the profile file.
        config = _Env({**_load_profile_env(_Env(shell)), **shell})

        database_url = config.database_url()
        if not database_url:
            raise RuntimeError(
                f"{config.name('DATABASE_URL')} must be set or provide discrete database settings via the env file"
            )

        sync_interval = config.number("SYNC_INTERVAL_SECONDS", DEFAULT_SYNC_INTERVAL_SECONDS)
        if sync_interval < MIN_SYNC_INTERVAL_SECONDS:
            raise RuntimeError(
                f"{config.name('SYNC_INTERVAL_SECONDS')} must be at least {MIN_SYNC_INTERVAL_SECONDS}"
            )

        return Settings(
            database_url=database_url,
            finnhub_api_key=config.text("FINNHUB_API_KEY") or None,
            price_sources=config.names("PRICE_SOURCES", DEFAULT_PRICE_SOURCES),
            batch_source=config.text("BATCH_SOURCE", DEFAULT_BATCH_SOURCE).lower() or None,
            stale_after_seconds=config.number("STALE_AFTER_SECONDS", DEFAULT_STALE_AFTER_SECONDS),
            sync_interval_seconds=sync_interval,
            refresh_interval_seconds=config.number("REFRESH_INTERVAL_SECONDS", 60),
            request_timeout_seconds=config.number("REQUEST_TIMEOUT_SECONDS", 8),
            fallback_delay_seconds=config.number("FALLBACK_DELAY_SECONDS", 0.2),
            default_exchange_suffix=config.text("DEFAULT_EXCHANGE_SUFFIX", ".NS"),
        )


__all__ = ["Settings", "DEFAULT_PRICE_SOURCES", "DEFAULT_STALE_AFTER_SECONDS"]
