"""Unit tests for settings loading."""

from __future__ import annotations

import pytest

from minecharts.config import KubernetesConfig, Settings, _load_config_file, get_settings


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestDefaults:
    def test_kubernetes_defaults(self):
        cfg = KubernetesConfig()

        assert cfg.namespace == "minecharts"
        assert cfg.storage_size == "10Gi"
        assert cfg.storage_class == "rook-ceph-block"
        assert cfg.image == "itzg/minecraft-server"
        assert cfg.workload_name("lobby") == "minecraft-server-lobby"

    def test_security_defaults(self):
        settings = Settings()

        assert settings.security.jwt_algorithm == "HS256"
        assert settings.security.jwt_expiry_hours == 24
        assert settings.oauth.enabled is False


class TestConfigFile:
    def test_yaml_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("kubernetes:\n  namespace: games\nexecutor:\n  timeout_seconds: 5\n")
        monkeypatch.setenv("MINECHARTS_CONFIG_FILE", str(path))

        settings = get_settings()

        assert settings.kubernetes.namespace == "games"
        assert settings.executor.timeout_seconds == 5

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("kubernetes:\n  namespace: from-file\n")
        monkeypatch.setenv("MINECHARTS_CONFIG_FILE", str(path))
        monkeypatch.setenv("MINECHARTS_KUBERNETES__NAMESPACE", "from-env")

        assert get_settings().kubernetes.namespace == "from-env"

    def test_missing_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("MINECHARTS_CONFIG_FILE", str(tmp_path / "absent.yaml"))

        assert _load_config_file() == {}
