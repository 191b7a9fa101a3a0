"""Configuration loading tests."""

from pathlib import Path

import pytest

from reality_interfaces.config import (
    DEFAULT_SOCKET_PORT,
    HostConfig,
    ScreenConfig,
    default_objects_path,
    load_config,
)


class TestLoadConfig:

    def test_no_path_gives_defaults(self):
        config = load_config(None)
        assert config.server.socket_port == DEFAULT_SOCKET_PORT
        assert config.registry.developer is True
        assert config.registry.debug is False

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "server.yaml"
        path.write_text(
            "server:\n"
            "  socket_port: 9100\n"
            "registry:\n"
            "  developer: false\n"
            "  debug: true\n"
            "objects_path: /srv/objects\n"
            "screen:\n"
            "  object_name: stage\n"
            "  screen_width: 1920\n"
        )

        config = load_config(str(path))

        assert config.server.socket_port == 9100
        assert config.server.socket_host == "0.0.0.0"
        assert config.registry.developer is False
        assert config.registry.debug is True
        assert config.objects_path == Path("/srv/objects")
        assert config.screen.object_name == "stage"
        assert config.screen.screen_width == 1920
        assert config.screen.triple_tap_window == 0.5

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(str(path)) == HostConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            load_config(str(path))


class TestConfigObjects:

    def test_objects_path_follows_xdg(self, monkeypatch, tmp_path):
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))
        assert default_objects_path() == tmp_path / "reality_interfaces" / "objects"

    def test_screen_config_dict(self):
        config = ScreenConfig(object_name="stage", scale_ratio=2.0)
        assert ScreenConfig.from_dict(config.to_dict()) == config

    def test_host_config_dict(self, tmp_path):
        config = HostConfig(objects_path=tmp_path)
        data = config.to_dict()
        assert data["objects_path"] == str(tmp_path)
        assert HostConfig.from_dict(data) == config
