import pytest

from config import load_config

ENV_VARS = (
    "ATLAS_DB_PATH",
    "FETCH_TIMEOUT_SECONDS",
    "FETCH_MAX_RETRIES",
    "NOTIFY_TRADE_CLOSED",
    "DEFAULT_CURRENCY",
    "LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestLoadConfig:

    def test_defaults(self, clean_env):
        cfg = load_config()

        assert cfg.db_path == "atlas.db"
        assert cfg.fetch_timeout_seconds == 30.0
        assert cfg.fetch_max_retries == 3
        assert cfg.notify_trade_closed is True
        assert cfg.default_currency == "USD"
        assert cfg.log_level == "INFO"

    def test_environment_overrides(self, clean_env):
        clean_env.setenv("ATLAS_DB_PATH", "/tmp/other.db")
        clean_env.setenv("FETCH_TIMEOUT_SECONDS", "2.5")
        clean_env.setenv("NOTIFY_TRADE_CLOSED", "False")
        clean_env.setenv("DEFAULT_CURRENCY", "eur")
        clean_env.setenv("LOG_LEVEL", "debug")

        cfg = load_config()

        assert cfg.db_path == "/tmp/other.db"
        assert cfg.fetch_timeout_seconds == 2.5
        assert cfg.notify_trade_closed is False
        assert cfg.default_currency == "EUR"
        assert cfg.log_level == "DEBUG"

    @pytest.mark.parametrize("name,value", [
        ("FETCH_TIMEOUT_SECONDS", "0"),
        ("FETCH_TIMEOUT_SECONDS", "soon"),
        ("FETCH_MAX_RETRIES", "0"),
        ("DEFAULT_CURRENCY", "GBP"),
        ("LOG_LEVEL", "LOUD"),
    ])
    def test_invalid_values(self, clean_env, name, value):
        clean_env.setenv(name, value)
        with pytest.raises(ValueError):
            load_config()
