"""
Tests for reading relay settings from the environment and YAML.
"""
import pytest

from relay_core import RotationMode, TimeoutConfig
from relay_app.config import (
    DEFAULT_MODELS,
    RelaySettings,
    load_models_config,
    parse_credentials,
)
from relay_app.config_exceptions import ConfigLoadError, ConfigValidationError


class TestParseCredentials:
    def test_multi_key_list_is_trimmed_in_order(self):
        env = {"OPENROUTER_API_KEYS": " keyA , keyB,keyC "}
        assert parse_credentials(env) == ["keyA", "keyB", "keyC"]

    def test_multi_key_list_wins_over_single_key(self):
        env = {"OPENROUTER_API_KEYS": "keyA,keyB", "OPENROUTER_API_KEY": "single"}
        assert parse_credentials(env) == ["keyA", "keyB"]

    def test_single_key_fallback(self):
        assert parse_credentials({"OPENROUTER_API_KEY": "  single  "}) == ["single"]

    def test_blanks_and_duplicates_are_kept(self):
        env = {"OPENROUTER_API_KEYS": "keyA,,keyA, "}
        assert parse_credentials(env) == ["keyA", "", "keyA", ""]

    def test_nothing_configured(self):
        assert parse_credentials({}) == []
        assert parse_credentials({"OPENROUTER_API_KEYS": "", "OPENROUTER_API_KEY": ""}) == []


class TestModelsConfig:
    def test_loads_ids_and_names(self, tmp_path):
        path = tmp_path / "models.yaml"
        path.write_text(
            "models:\n"
            "  - id: qwen/qwen3-coder:free\n"
            "    name: Qwen3 Coder\n"
            "  - deepseek/deepseek-chat-v3-0324:free\n",
            encoding="utf-8",
        )
        models = load_models_config(str(path))
        assert [(m.id, m.name) for m in models] == [
            ("qwen/qwen3-coder:free", "Qwen3 Coder"),
            ("deepseek/deepseek-chat-v3-0324:free", "deepseek/deepseek-chat-v3-0324:free"),
        ]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigLoadError):
            load_models_config(str(tmp_path / "absent.yaml"))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "models.yaml"
        path.write_text("models: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigLoadError):
            load_models_config(str(path))

    @pytest.mark.parametrize(
        "content",
        ["other: 1\n", "models: {}\n", "models: []\n", "models:\n  - id: ''\n", "- a\n"],
    )
    def test_invalid_shapes(self, tmp_path, content):
        path = tmp_path / "models.yaml"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(ConfigValidationError):
            load_models_config(str(path))


class TestRelaySettings:
    def test_defaults(self):
        settings = RelaySettings.from_env({})
        assert settings.credentials == []
        assert settings.models == DEFAULT_MODELS
        assert settings.api_url == "https://openrouter.ai/api/v1/chat/completions"
        assert settings.referer == "http://localhost:5173"
        assert settings.title == "Chatbot App"
        assert settings.attempt_timeout == 30.0
        assert settings.rotation_mode is RotationMode.SHARED
        assert settings.cors_origins == ["http://localhost:5173"]
        assert settings.metrics_enabled is True

    def test_overrides(self):
        settings = RelaySettings.from_env(
            {
                "OPENROUTER_API_KEYS": "keyA,keyB",
                "UPSTREAM_API_URL": "https://upstream.test/v1/chat",
                "UPSTREAM_TITLE": "Relay",
                "TIMEOUT_ATTEMPT": "12.5",
                "CREDENTIAL_ROTATION_MODE": " Guarded ",
                "CORS_ORIGINS": "http://a.test, http://b.test",
                "METRICS_ENABLED": "false",
            }
        )
        assert settings.credentials == ["keyA", "keyB"]
        assert settings.api_url == "https://upstream.test/v1/chat"
        assert settings.title == "Relay"
        assert settings.attempt_timeout == 12.5
        assert settings.rotation_mode is RotationMode.GUARDED
        assert settings.cors_origins == ["http://a.test", "http://b.test"]
        assert settings.metrics_enabled is False

    def test_allowed_models_csv(self):
        settings = RelaySettings.from_env({"ALLOWED_MODELS": "a/one, b/two"})
        assert settings.allowed_models == ["a/one", "b/two"]

    def test_models_config_wins_over_csv(self, tmp_path):
        path = tmp_path / "models.yaml"
        path.write_text("models:\n  - only/model\n", encoding="utf-8")
        settings = RelaySettings.from_env(
            {"MODELS_CONFIG": str(path), "ALLOWED_MODELS": "a/one"}
        )
        assert settings.allowed_models == ["only/model"]

    def test_bad_rotation_mode(self):
        with pytest.raises(ConfigValidationError):
            RelaySettings.from_env({"CREDENTIAL_ROTATION_MODE": "random"})

    @pytest.mark.parametrize("value", ["soon", "0", "-5"])
    def test_bad_attempt_timeout_falls_back(self, value, caplog):
        with caplog.at_level("WARNING", logger="relay_core"):
            settings = RelaySettings.from_env({"TIMEOUT_ATTEMPT": value})
        assert settings.attempt_timeout == 30.0
        assert "TIMEOUT_ATTEMPT" in caplog.text


def test_streaming_timeouts_from_env():
    timeout = TimeoutConfig.streaming({"TIMEOUT_READ_STREAMING": "90"})
    assert timeout.read == 90.0
    assert timeout.connect == 30.0
    assert timeout.pool == 60.0


def test_configure_logging_writes_relay_debug_only(tmp_path):
    import logging

    from relay_app.logging_config import configure_logging

    root_logger = logging.getLogger()
    before = list(root_logger.handlers)
    level = root_logger.level
    try:
        log_dir = configure_logging(tmp_path)
        logging.getLogger("relay_core").debug("rotated to index 1")
        logging.getLogger("elsewhere").debug("not for the debug file")
        for handler in root_logger.handlers:
            handler.flush()
    finally:
        for handler in root_logger.handlers[:]:
            if handler not in before:
                root_logger.removeHandler(handler)
                handler.close()
        root_logger.setLevel(level)

    assert log_dir == tmp_path / "logs"
    debug_log = (log_dir / "relay_debug.log").read_text(encoding="utf-8")
    assert "rotated to index 1" in debug_log
    assert "not for the debug file" not in debug_log
    assert (log_dir / "relay.log").exists()
