import json

from pulsetrade.app_config import AppConfig


def test_defaults():
    config = AppConfig()

    assert config.get("price_feed.cache_ttl") == 60
    assert config.get("bank_accounts.max_per_user") == 2
    assert config.get("missing.key", "fallback") == "fallback"


def test_file_then_environment_then_overrides(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"server": {"port": 8080}, "database": {"url": "sqlite:///file.db"}}))
    monkeypatch.setenv("DATABASE_URL", "sqlite:///env.db")
    monkeypatch.setenv("PORT", "not-a-number")

    config = AppConfig(str(path), overrides={"trading": {"settlement_interval": 1}})

    assert config.get("server.port") == 8080
    assert config.get("server.host") == "127.0.0.1"
    assert config.db_url == "sqlite:///env.db"
    assert config.get("trading.settlement_interval") == 1
    assert config.get("trading.default_profit_percentage") == 30


def test_unreadable_file_keeps_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("PORT", raising=False)
    path = tmp_path / "config.json"
    path.write_text("{broken")

    assert AppConfig(str(path)).get("server.port") == 5000
    assert AppConfig(str(tmp_path / "absent.json")).get("server.port") == 5000


def test_set_creates_sections():
    config = AppConfig()

    config.set("feature.flags.beta", True)
    config.set("database.url", "sqlite:///other.db")

    assert config.get("feature.flags.beta") is True
    assert config.db_url == "sqlite:///other.db"
