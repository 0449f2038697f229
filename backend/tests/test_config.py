"""Tests for environment-driven editor configuration."""

import httpx

from service.config.editor_config import EditorConfig
from service.gateway.client import PersistenceGateway


class TestEditorConfig:
    def test_defaults(self, monkeypatch):
        for env_name in EditorConfig._ENV_MAP.values():
            monkeypatch.delenv(env_name, raising=False)
        config = EditorConfig.get_default_instance()
        assert config.api_url == "http://localhost:8000"
        assert config.poll_interval == 1.5
        assert config.dirty_on_position is False

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("FLOW_EDITOR_API_URL", "https://flows.example.com")
        monkeypatch.setenv("FLOW_EDITOR_POLL_INTERVAL", "0.25")
        monkeypatch.setenv("FLOW_EDITOR_CONTRACT_VERSION", "2")
        monkeypatch.setenv("FLOW_EDITOR_DIRTY_ON_POSITION", "yes")

        config = EditorConfig.get_default_instance()

        assert config.api_url == "https://flows.example.com"
        assert config.poll_interval == 0.25
        assert config.contract_version == 2
        assert config.dirty_on_position is True

    def test_bad_number_keeps_default(self, monkeypatch):
        monkeypatch.setenv("FLOW_EDITOR_REQUEST_TIMEOUT", "soon")
        assert EditorConfig.get_default_instance().request_timeout == 30.0

    def test_token_is_masked(self):
        assert EditorConfig(api_token="secret").to_dict()["api_token"] == "***"
        assert EditorConfig().to_dict()["api_token"] == ""

    def test_gateway_from_config(self):
        config = EditorConfig(api_url="http://backend.test/", api_token="", project_id="p1")
        gateway = PersistenceGateway.from_config(config, transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        assert gateway.base_url == "http://backend.test"
        assert gateway.token is None
        assert gateway.project_id == "p1"


class TestSetupLogging:
    def test_handler_installed_once(self):
        from service.logging import setup_logging

        logger = setup_logging("debug", logger_name="service.test_setup")
        setup_logging("WARNING", logger_name="service.test_setup")

        assert len(logger.handlers) == 1
        assert logger.level == 30
