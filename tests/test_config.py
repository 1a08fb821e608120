from config import config
from config.settings import Config


def test_test_environment_layer_is_loaded():
    assert config.IS_TEST
    assert config.CHAT_DB_NAME == "rental_chat_test"
    assert config.LOG_LEVEL == "WARNING"


def test_realtime_defaults():
    assert config.CHAT_NAMESPACE == "/chat"
    assert config.NOTIFICATION_NAMESPACE == "/"
    assert config.SOCKETIO_ASYNC_MODE == "threading"
    assert config.SOCKET_REQUIRE_AUTH is False
    assert config.MESSAGE_PAGE_LIMIT == 50
    assert config.MESSAGE_PAGE_MAX == 100


def test_environment_variables_override_yaml(monkeypatch):
    monkeypatch.setenv("MESSAGE_PAGE_MAX", "10")
    monkeypatch.setenv("SOCKET_REQUIRE_AUTH", "true")
    monkeypatch.setenv("CHAT_DB_NAME", "other_db")

    assert config.MESSAGE_PAGE_MAX == 10
    assert config.SOCKET_REQUIRE_AUTH is True
    assert config.CHAT_DB_NAME == "other_db"


def test_jwt_secret_falls_back_outside_production(monkeypatch):
    monkeypatch.delenv("JWT_SECRET", raising=False)
    assert config.JWT_SECRET == "dev-secret"


def test_production_layer_requires_secrets(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.delenv("JWT_SECRET", raising=False)
    try:
        prod = Config.reload()
        assert prod.IS_PROD
        assert prod.SOCKET_REQUIRE_AUTH is True
        assert prod.JWT_SECRET is None
    finally:
        monkeypatch.setenv("APP_ENV", "test")
        Config.reload()
