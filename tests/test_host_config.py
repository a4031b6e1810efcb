"""Tests for HostConfig loading."""

from core.host_config import HostConfig


def test_defaults_without_file(tmp_path, monkeypatch):
    monkeypatch.setattr(HostConfig, "config_path", tmp_path / "missing.yaml")
    settings = HostConfig.get().settings

    assert (settings.server_host, settings.server_port) == ("localhost", 8765)
    assert settings.browser_enabled is False
    assert settings.default_browser == "chromium"
    assert settings.start_url == "about:blank"


def test_sections_merge_over_defaults(tmp_path, monkeypatch):
    path = tmp_path / "host.yaml"
    path.write_text(
        "server:\n"
        "  port: 9000\n"
        "browser:\n"
        "  enabled: true\n"
        "  default_browser: firefox\n"
        "  headless: true\n",
        encoding="utf-8",
    )
    monkeypatch.setattr(HostConfig, "config_path", path)
    settings = HostConfig.get().settings

    assert (settings.server_host, settings.server_port) == ("localhost", 9000)
    assert settings.browser_enabled and settings.headless
    assert settings.default_browser == "firefox"
    assert settings.timeout_ms == 10000


def test_unknown_browser_falls_back(tmp_path, monkeypatch):
    path = tmp_path / "host.yaml"
    path.write_text("browser:\n  default_browser: netscape\n", encoding="utf-8")
    monkeypatch.setattr(HostConfig, "config_path", path)

    assert HostConfig.get().settings.default_browser == "chromium"


def test_invalid_yaml_uses_defaults(tmp_path, monkeypatch):
    path = tmp_path / "host.yaml"
    path.write_text("server: [unclosed\n", encoding="utf-8")
    monkeypatch.setattr(HostConfig, "config_path", path)

    assert HostConfig.get().settings.server_port == 8765


def test_shipped_config_loads():
    settings = HostConfig.get().settings
    assert settings.server_port == 8765
    assert settings.user_data_dir == "auto"
