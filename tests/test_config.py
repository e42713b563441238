"""Tests for configuration loading, saving and legacy migration."""

import json

import httpx
from starlette.testclient import TestClient

from tvfetch.main import create_app
from tvfetch.models.config import AppConfig, ProviderConfig
from tvfetch.services.config_service import ConfigService
from tvfetch.services.http_client import HttpClientService


class TestConfigService:

    def test_defaults_without_file(self, tmp_path):
        cfg = ConfigService(str(tmp_path))
        config = cfg.load()
        assert config.options.max_retries == 3
        assert config.options.rate_limit_delay == 0.5
        assert not cfg.provider.is_configured

    def test_save_then_load(self, tmp_path):
        cfg = ConfigService(str(tmp_path))
        cfg.save(AppConfig(provider=ProviderConfig(base_url="http://panel.test", username="u", password="p")))
        again = ConfigService(str(tmp_path))
        again.load()
        assert again.provider.base_url == "http://panel.test"
        assert again.provider.provider_type.value == "xtream"
        assert again.get_cache_ttl() == 3600

    def test_legacy_flat_layout(self, tmp_path):
        (tmp_path / "config.json").write_text(json.dumps(
            {"base_url": "http://panel.test", "username": "u", "password": "p", "options": {"cache_ttl": 60}}
        ))
        cfg = ConfigService(str(tmp_path))
        cfg.load()
        assert cfg.provider.username == "u"
        assert cfg.get_cache_ttl() == 60

    def test_corrupt_file_falls_back_to_defaults(self, tmp_path):
        (tmp_path / "config.json").write_text("{not json")
        assert ConfigService(str(tmp_path)).load() == AppConfig()

    def test_reload_picks_up_changes(self, tmp_path):
        cfg = ConfigService(str(tmp_path))
        cfg.load()
        (tmp_path / "config.json").write_text(json.dumps({"options": {"max_retries": 1}}))
        assert cfg.reload().options.max_retries == 1


class TestProviderValidation:

    def test_playlist_only_provider_is_configured(self):
        provider = ProviderConfig(provider_type="m3u_url", playlist_url="http://lists.test/a.m3u")
        assert provider.is_configured

    def test_malformed_server_url_leaves_services_unset(self, tmp_path):
        (tmp_path / "config.json").write_text(json.dumps(
            {"provider": {"base_url": "not a url", "username": "u", "password": "p"}}
        ))
        http = HttpClientService(transport=httpx.MockTransport(lambda request: httpx.Response(404)))
        with TestClient(create_app(str(tmp_path), http_client=http)) as c:
            assert c.get("/health").json()["provider_configured"] is False
            assert c.get("/api/streams/live").status_code == 503
