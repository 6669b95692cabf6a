import logging

import pytest

from shapewire import config
from shapewire.logging.setup import get_log_level_from_config


class TestEnvironmentHelpers:
    @pytest.mark.parametrize(
        "value,expected", [("1", True), ("true", True), ("0", False), ("False", False), ("", None)]
    )
    def test_parse_boolean_env(self, monkeypatch, value, expected):
        monkeypatch.setenv("SHAPEWIRE_TEST_FLAG", value)
        assert config.parse_boolean_env("SHAPEWIRE_TEST_FLAG") is expected

    def test_is_env_true(self, monkeypatch):
        monkeypatch.delenv("SHAPEWIRE_TEST_FLAG", raising=False)
        assert not config.is_env_true("SHAPEWIRE_TEST_FLAG")
        assert config.is_env_not_false("SHAPEWIRE_TEST_FLAG")

        monkeypatch.setenv("SHAPEWIRE_TEST_FLAG", "0")
        assert not config.is_env_true("SHAPEWIRE_TEST_FLAG")
        assert not config.is_env_not_false("SHAPEWIRE_TEST_FLAG")

        monkeypatch.setenv("SHAPEWIRE_TEST_FLAG", " True ")
        assert config.is_env_true("SHAPEWIRE_TEST_FLAG")

    @pytest.mark.parametrize(
        "value,expected", [("trace", "trace"), ("DEBUG", "debug"), ("verbose", False), ("", False)]
    )
    def test_eval_log_type(self, monkeypatch, value, expected):
        monkeypatch.setenv("SHAPEWIRE_TEST_LOG", value)
        assert config.eval_log_type("SHAPEWIRE_TEST_LOG") == expected


class TestLogConfig:
    def test_trace_logging(self, monkeypatch):
        monkeypatch.setattr(config, "SHAPEWIRE_LOG", "trace")
        assert config.is_trace_logging_enabled()
        assert get_log_level_from_config() == logging.DEBUG

    def test_log_level(self, monkeypatch):
        monkeypatch.setattr(config, "SHAPEWIRE_LOG", "warn")
        assert not config.is_trace_logging_enabled()
        assert get_log_level_from_config() == logging.WARNING

    def test_debug(self, monkeypatch):
        monkeypatch.setattr(config, "SHAPEWIRE_LOG", False)
        monkeypatch.setattr(config, "DEBUG", True)
        assert not config.is_trace_logging_enabled()
        assert get_log_level_from_config() == logging.DEBUG

        monkeypatch.setattr(config, "DEBUG", False)
        assert get_log_level_from_config() == logging.INFO
