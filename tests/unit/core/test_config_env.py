"""
Tests for EnvManager and OrderSagaConfig.
"""

import pytest

from ordersaga.core.config import OrderSagaConfig, configure, get_config, reset_config
from ordersaga.core.env import EnvManager


@pytest.fixture
def env(tmp_path):
    return EnvManager(project_root=tmp_path, auto_load=False)


class TestEnvManager:
    """Environment variable reading and substitution."""

    def test_load_missing_file(self, env):
        assert env.load() is False
        assert not env.loaded

    def test_load_env_file(self, tmp_path, monkeypatch):
        # Registered with monkeypatch so the value load_dotenv sets is undone
        monkeypatch.setenv("ORDERSAGA_TEST_VALUE", "placeholder")
        monkeypatch.delenv("ORDERSAGA_TEST_VALUE")
        (tmp_path / ".env").write_text("ORDERSAGA_TEST_VALUE=from-file\n")

        env = EnvManager(project_root=tmp_path)

        assert env.loaded
        assert env.get("ORDERSAGA_TEST_VALUE") == "from-file"

    def test_get_required(self, env, monkeypatch):
        monkeypatch.delenv("ORDERSAGA_MISSING", raising=False)
        with pytest.raises(ValueError, match="ORDERSAGA_MISSING"):
            env.get("ORDERSAGA_MISSING", required=True)

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("true", True), ("1", True), ("ON", True), ("false", False), ("no", False)],
    )
    def test_get_bool(self, env, monkeypatch, raw, expected):
        monkeypatch.setenv("ORDERSAGA_FLAG", raw)
        assert env.get_bool("ORDERSAGA_FLAG", default=not expected) is expected

    def test_get_bool_garbage_uses_default(self, env, monkeypatch):
        monkeypatch.setenv("ORDERSAGA_FLAG", "maybe")
        assert env.get_bool("ORDERSAGA_FLAG", default=True) is True

    def test_get_int_and_float_fallback(self, env, monkeypatch):
        monkeypatch.setenv("ORDERSAGA_N", "not-a-number")
        assert env.get_int("ORDERSAGA_N", 7) == 7
        assert env.get_float("ORDERSAGA_N", 1.5) == 1.5

    def test_strict_getters_name_the_variable(self, env, monkeypatch):
        monkeypatch.setenv("ORDERSAGA_N", "not-a-number")
        monkeypatch.setenv("ORDERSAGA_FLAG", "maybe")
        with pytest.raises(ValueError, match="ORDERSAGA_N must be an integer"):
            env.get_int("ORDERSAGA_N", 7, strict=True)
        with pytest.raises(ValueError, match="ORDERSAGA_N must be a number"):
            env.get_float("ORDERSAGA_N", 1.5, strict=True)
        with pytest.raises(ValueError, match="ORDERSAGA_FLAG must be a boolean"):
            env.get_bool("ORDERSAGA_FLAG", strict=True)

    def test_strict_getters_default_when_unset(self, env, monkeypatch):
        monkeypatch.delenv("ORDERSAGA_N", raising=False)
        monkeypatch.setenv("ORDERSAGA_FLAG", "")
        assert env.get_int("ORDERSAGA_N", 7, strict=True) == 7
        assert env.get_bool("ORDERSAGA_FLAG", True, strict=True) is True

    def test_substitute(self, env, monkeypatch):
        monkeypatch.setenv("PAYMENT_HOST", "payments.internal")
        monkeypatch.delenv("PAYMENT_PORT", raising=False)
        assert (
            env.substitute("https://${PAYMENT_HOST}:${PAYMENT_PORT:-8443}/v1")
            == "https://payments.internal:8443/v1"
        )

    def test_substitute_required_missing(self, env, monkeypatch):
        monkeypatch.delenv("PAYMENT_TOKEN", raising=False)
        with pytest.raises(ValueError, match="token needed"):
            env.substitute("${PAYMENT_TOKEN:?token needed}")

    def test_substitute_dict_recurses(self, env, monkeypatch):
        monkeypatch.setenv("DB_FILE", "orders.db")
        data = {"storage": {"url": "sqlite:///$DB_FILE"}, "list": ["${DB_FILE}", 3]}
        assert env.substitute_dict(data) == {
            "storage": {"url": "sqlite:///orders.db"},
            "list": ["orders.db", 3],
        }


class TestOrderSagaConfig:
    """Config defaults, validation and loading."""

    def test_defaults(self):
        config = OrderSagaConfig()
        assert config.currency == "USD"
        assert config.payment_provider == "mock"
        assert config.max_workers == 10
        assert config.storage_url == "memory://"

    def test_normalizes_case(self):
        config = OrderSagaConfig(currency="eur", payment_provider="MOCK", log_level="debug")
        assert (config.currency, config.payment_provider, config.log_level) == (
            "EUR",
            "mock",
            "DEBUG",
        )

    @pytest.mark.parametrize(
        ("kwargs", "message"),
        [
            ({"currency": "EURO"}, "3-letter"),
            ({"payment_provider": "stripe"}, "Unknown payment_provider"),
            ({"payment_provider": "http"}, "payment_base_url is required"),
            ({"payment_timeout": 0}, "payment_timeout"),
            ({"max_workers": 0}, "max_workers"),
            ({"storage_url": "postgres://db"}, "Unsupported storage_url"),
            ({"log_level": "LOUD"}, "Unknown log_level"),
        ],
    )
    def test_validation(self, kwargs, message):
        with pytest.raises(ValueError, match=message):
            OrderSagaConfig(**kwargs)

    def test_from_env(self, env, monkeypatch):
        monkeypatch.setenv("ORDERSAGA_CURRENCY", "gbp")
        monkeypatch.setenv("ORDERSAGA_PAYMENT_PROVIDER", "http")
        monkeypatch.setenv("ORDERSAGA_PAYMENT_BASE_URL", "https://pay.local")
        monkeypatch.setenv("ORDERSAGA_PAYMENT_TIMEOUT", "2.5")
        monkeypatch.setenv("ORDERSAGA_MAX_WORKERS", "32")
        monkeypatch.setenv("ORDERSAGA_STORAGE_URL", "sqlite://:memory:")
        monkeypatch.setenv("ORDERSAGA_JSON_LOGS", "true")

        config = OrderSagaConfig.from_env(env)

        assert config.currency == "GBP"
        assert config.payment_provider == "http"
        assert config.payment_base_url == "https://pay.local"
        assert config.payment_timeout == 2.5
        assert config.max_workers == 32
        assert config.storage_url == "sqlite://:memory:"
        assert config.json_logs is True

    def test_from_env_defaults(self, env, monkeypatch):
        for name in ("CURRENCY", "PAYMENT_PROVIDER", "MAX_WORKERS", "STORAGE_URL"):
            monkeypatch.delenv(f"ORDERSAGA_{name}", raising=False)
        assert OrderSagaConfig.from_env(env).max_workers == 10

    @pytest.mark.parametrize(
        ("name", "raw"),
        [
            ("MAX_WORKERS", "abc"),
            ("MAX_WORKERS", "2.5"),
            ("PAYMENT_TIMEOUT", "soon"),
            ("JSON_LOGS", "maybe"),
        ],
    )
    def test_from_env_rejects_malformed_values(self, env, monkeypatch, name, raw):
        monkeypatch.setenv(f"ORDERSAGA_{name}", raw)
        with pytest.raises(ValueError, match=f"ORDERSAGA_{name}"):
            OrderSagaConfig.from_env(env)

    @pytest.mark.parametrize(
        ("line", "message"),
        [
            ("max_workers: lots\n", "max_workers .* must be a number"),
            ("payment_timeout: soon\n", "payment_timeout .* must be a number"),
            ("json_logs: 'maybe'\n", "json_logs must be a boolean"),
        ],
    )
    def test_from_yaml_rejects_malformed_values(self, tmp_path, line, message):
        path = tmp_path / "ordersaga.yaml"
        path.write_text(line)
        with pytest.raises(ValueError, match=message):
            OrderSagaConfig.from_yaml(path)

    def test_from_yaml(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ORDERSAGA_TEST_DB", "orders.db")
        path = tmp_path / "ordersaga.yaml"
        path.write_text(
            "currency: eur\n"
            "max_workers: '8'\n"
            "storage_url: sqlite:///${ORDERSAGA_TEST_DB}\n"
            "json_logs: 'yes'\n"
        )

        config = OrderSagaConfig.from_yaml(path)

        assert config.currency == "EUR"
        assert config.max_workers == 8
        assert config.storage_url == "sqlite:///orders.db"
        assert config.json_logs is True

    def test_from_yaml_rejects_unknown_keys(self, tmp_path):
        path = tmp_path / "ordersaga.yaml"
        path.write_text("max_wrokers: 4\n")
        with pytest.raises(ValueError, match="max_wrokers"):
            OrderSagaConfig.from_yaml(path)

    def test_from_yaml_rejects_non_mapping(self, tmp_path):
        path = tmp_path / "ordersaga.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="must contain a mapping"):
            OrderSagaConfig.from_yaml(path)

    def test_empty_yaml_gives_defaults(self, tmp_path):
        path = tmp_path / "ordersaga.yaml"
        path.write_text("")
        assert OrderSagaConfig.from_yaml(path) == OrderSagaConfig()

    def test_to_dict(self):
        assert OrderSagaConfig().to_dict()["payment_provider"] == "mock"


class TestGlobalConfig:
    def test_get_config_creates_default(self):
        reset_config()
        assert get_config() == OrderSagaConfig()
        assert get_config() is get_config()

    def test_configure_replaces_global(self):
        config = OrderSagaConfig(max_workers=3)
        configure(config)
        assert get_config() is config
