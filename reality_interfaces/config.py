"""
Configuration for the reality interface server and screen client.

Configuration is YAML:

    server:
      socket_host: 0.0.0.0
      socket_port: 8081
    registry:
      developer: true
      debug: false
    objects_path: ~/.local/share/reality_interfaces/objects
    screen:
      object_name: stage
      server_ip: 127.0.0.1
      server_port: 8080
      scale_ratio: 1.0
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_SOCKET_HOST = "0.0.0.0"
DEFAULT_SOCKET_PORT = 8081
DEFAULT_HTTP_PORT = 8080
DEFAULT_POST_TIMEOUT = 2.0  # seconds
DEFAULT_TRIPLE_TAP_WINDOW = 0.5  # seconds


def default_objects_path() -> Path:
    """XDG data directory for object folders."""
    xdg_data_home = os.environ.get('XDG_DATA_HOME')
    if xdg_data_home:
        base_dir = Path(xdg_data_home)
    else:
        base_dir = Path.home() / '.local' / 'share'
    return base_dir / 'reality_interfaces' / 'objects'


@dataclass
class RegistryConfig:
    """Global flags shared with every hardware interface."""
    developer: bool = True
    debug: bool = False

    def to_dict(self) -> dict:
        return {"developer": self.developer, "debug": self.debug}

    @classmethod
    def from_dict(cls, data: dict) -> "RegistryConfig":
        return cls(
            developer=data.get("developer", True),
            debug=data.get("debug", False),
        )


@dataclass
class ServerConfig:
    socket_host: str = DEFAULT_SOCKET_HOST
    socket_port: int = DEFAULT_SOCKET_PORT

    def to_dict(self) -> dict:
        return {"socket_host": self.socket_host, "socket_port": self.socket_port}

    @classmethod
    def from_dict(cls, data: dict) -> "ServerConfig":
        return cls(
            socket_host=data.get("socket_host", DEFAULT_SOCKET_HOST),
            socket_port=data.get("socket_port", DEFAULT_SOCKET_PORT),
        )


@dataclass
class ScreenConfig:
    """Settings of one touch screen client."""
    object_name: str = ""
    server_ip: str = "127.0.0.1"
    server_port: int = DEFAULT_HTTP_PORT
    # Screen scale relative to AR scale
    scale_ratio: float = 1.0
    # Screen width in pixels, used to derive scale_ratio from the marker size
    screen_width: Optional[float] = None
    post_timeout: float = DEFAULT_POST_TIMEOUT
    triple_tap_window: float = DEFAULT_TRIPLE_TAP_WINDOW

    def to_dict(self) -> dict:
        return {
            "object_name": self.object_name,
            "server_ip": self.server_ip,
            "server_port": self.server_port,
            "scale_ratio": self.scale_ratio,
            "screen_width": self.screen_width,
            "post_timeout": self.post_timeout,
            "triple_tap_window": self.triple_tap_window,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ScreenConfig":
        return cls(
            object_name=data.get("object_name", ""),
            server_ip=data.get("server_ip", "127.0.0.1"),
            server_port=data.get("server_port", DEFAULT_HTTP_PORT),
            scale_ratio=data.get("scale_ratio", 1.0),
            screen_width=data.get("screen_width"),
            post_timeout=data.get("post_timeout", DEFAULT_POST_TIMEOUT),
            triple_tap_window=data.get("triple_tap_window", DEFAULT_TRIPLE_TAP_WINDOW),
        )


@dataclass
class HostConfig:
    """Top-level configuration of a hosting process."""
    server: ServerConfig = field(default_factory=ServerConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    screen: ScreenConfig = field(default_factory=ScreenConfig)
    objects_path: Path = field(default_factory=default_objects_path)

    def to_dict(self) -> dict:
        return {
            "server": self.server.to_dict(),
            "registry": self.registry.to_dict(),
            "screen": self.screen.to_dict(),
            "objects_path": str(self.objects_path),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HostConfig":
        objects_path = data.get("objects_path")
        return cls(
            server=ServerConfig.from_dict(data.get("server") or {}),
            registry=RegistryConfig.from_dict(data.get("registry") or {}),
            screen=ScreenConfig.from_dict(data.get("screen") or {}),
            objects_path=Path(objects_path).expanduser() if objects_path else default_objects_path(),
        )


def load_config(config_path: Optional[str]) -> HostConfig:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to the YAML file, or None for defaults

    Returns:
        HostConfig

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not a YAML mapping
    """
    if not config_path:
        logger.info("No config file specified, using defaults")
        return HostConfig()

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_file, 'r') as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {config_path}")

    config = HostConfig.from_dict(data)
    logger.info(f"Config loaded: socket={config.server.socket_host}:{config.server.socket_port}, "
                f"developer={config.registry.developer}, debug={config.registry.debug}")
    return config
