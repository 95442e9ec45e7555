from flowbot.config import Settings


def test_db_url_is_composed_from_mysql_variables(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("MYSQL_DB_HOST", "db")
    monkeypatch.setenv("MYSQL_DB_USER", "bot")
    monkeypatch.setenv("MYSQL_DB_PASSWORD", "secret")
    monkeypatch.setenv("MYSQL_DB_NAME", "chat")

    settings = Settings(_env_file=None)

    assert settings.db_url == "mysql+pymysql://bot:secret@db:3306/chat?charset=utf8mb4"


def test_database_url_wins(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")

    assert Settings(_env_file=None).db_url == "sqlite:///:memory:"


def test_defaults(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    settings = Settings(_env_file=None)

    assert settings.db_pool_size == 10
    assert settings.db_health_interval_seconds == 60.0
    assert settings.flow_max_fallbacks == 0
