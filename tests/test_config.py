import pytest

from club_ledger.config import DEFAULT_PRICE_SOURCES, Settings

NO_FILE = {"CLUB_LEDGER_ENV_FILE": "/nonexistent/.env.test"}


def test_defaults():
    settings = Settings.load({**NO_FILE, "CLUB_LEDGER_DATABASE_URL": "sqlite://"})

    assert settings.database_url == "sqlite://"
    assert settings.finnhub_api_key is None
    assert settings.price_sources == DEFAULT_PRICE_SOURCES
    assert settings.batch_source == "yahoo"
    assert settings.stale_after_seconds == 300
    assert settings.sync_interval_seconds == 60


def test_discrete_database_settings():
    settings = Settings.load(
        {
            **NO_FILE,
            "CLUB_LEDGER_DB_HOST": "db",
            "CLUB_LEDGER_DB_USERNAME": "club",
            "CLUB_LEDGER_DB_PASSWORD": "p@ss",
        }
    )

    assert settings.database_url == "postgresql+psycopg://club:p%40ss@db:5432/club_ledger"


def test_missing_database_url():
    with pytest.raises(RuntimeError):
        Settings.load(dict(NO_FILE))


def test_env_file_is_overridden_by_environment(tmp_path):
    env_file = tmp_path / ".env.test"
    env_file.write_text(
        "# comment\n"
        "export CLUB_LEDGER_DATABASE_URL=sqlite:///from-file.db\n"
        "CLUB_LEDGER_FINNHUB_API_KEY='abc'\n"
        "CLUB_LEDGER_PRICE_SOURCES=Yahoo, screener\n"
        "CLUB_LEDGER_BATCH_SOURCE=\n"
    )

    settings = Settings.load(
        {"CLUB_LEDGER_ENV_FILE": str(env_file), "CLUB_LEDGER_STALE_AFTER_SECONDS": "120"}
    )

    assert settings.database_url == "sqlite:///from-file.db"
    assert settings.finnhub_api_key == "abc"
    assert settings.price_sources == ("yahoo", "screener")
    assert settings.batch_source is None
    assert settings.stale_after_seconds == 120


@pytest.mark.parametrize(
    "key, value",
    [("CLUB_LEDGER_STALE_AFTER_SECONDS", "soon"), ("CLUB_LEDGER_SYNC_INTERVAL_SECONDS", "10")],
)
def test_invalid_numbers(key, value):
    with pytest.raises(RuntimeError, match=key):
        Settings.load({**NO_FILE, "CLUB_LEDGER_DATABASE_URL": "sqlite://", key: value})


def test_discrete_settings_require_password_key():
    env = {**NO_FILE, "CLUB_LEDGER_DB_HOST": "db", "CLUB_LEDGER_DB_USERNAME": "club"}

    with pytest.raises(RuntimeError, match="CLUB_LEDGER_DB_PASSWORD"):
        Settings.load(env)

    settings = Settings.load({**env, "CLUB_LEDGER_DB_PASSWORD": "", "CLUB_LEDGER_DB_NAME": "books"})
    assert settings.database_url == "postgresql+psycopg://club:@db:5432/books"
