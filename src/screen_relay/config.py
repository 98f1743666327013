"""
ScreenRelay Configuration
=========================

This module handles configuration loading for the relay hub and its clients.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    SCREEN_RELAY_HOST              -> server.host
    SCREEN_RELAY_PORT / PORT       -> server.port
    SCREEN_RELAY_PRESENTER_POLICY  -> hub.presenter_policy
    SCREEN_RELAY_TARGET_FPS        -> capture.target_fps
    SCREEN_RELAY_QUALITY           -> capture.initial_quality
    SCREEN_RELAY_MAX_FRAME_SIZE    -> capture.max_frame_size
    SCREEN_RELAY_RESOLUTION        -> capture.resolution
    SCREEN_RELAY_HUB_URL           -> client.url
    SCREEN_RELAY_DISPLAY_NAME      -> client.display_name
    SCREEN_RELAY_MAX_ATTEMPTS      -> reconnect.max_attempts
    SCREEN_RELAY_LOG_LEVEL         -> logging.level

Example:
    from screen_relay.config import settings

    print(settings.server.port)
    print(settings.capture.max_frame_size)
"""

import os
import logging
from enum import Enum
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class AppConfig(BaseModel):
    """Service identification."""

    name: str = Field(default="screen-relay", description="Service name")
    version: str = Field(default="v0.1.0", description="Protocol version")


class ServerConfig(BaseModel):
    """Relay hub server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=3000, ge=1, le=65535, description="Bind port")
    max_message_size: int = Field(
        default=100 * 1024 * 1024,
        ge=1024,
        description="Largest accepted WebSocket message in bytes",
    )
    outbox_size: int = Field(
        default=32,
        ge=1,
        description="Per-connection outbound queue length (drops oldest when full)",
    )
    ws_ping_interval_sec: float = Field(
        default=25.0,
        gt=0,
        description="Transport-level ping interval",
    )
    ws_ping_timeout_sec: float = Field(
        default=60.0,
        gt=0,
        description="Transport-level ping timeout",
    )


class PresenterPolicy(str, Enum):
    """What the hub does when a second connection identifies as presenter."""

    ALLOW = "allow"
    REJECT = "reject"


class HubConfig(BaseModel):
    """Relay routing configuration."""

    presenter_policy: PresenterPolicy = Field(
        default=PresenterPolicy.ALLOW,
        description="Duplicate presenter handling: 'allow' or 'reject'",
    )


class CaptureConfig(BaseModel):
    """Presenter-side capture and adaptive quality configuration."""

    target_fps: int = Field(default=10, ge=1, le=30, description="Target frame rate")
    initial_quality: float = Field(
        default=0.7,
        ge=0.1,
        le=0.9,
        description="Starting JPEG quality in [0.1, 0.9]",
    )
    min_quality: float = Field(default=0.1, gt=0, le=1.0, description="Quality floor")
    max_quality: float = Field(default=0.9, gt=0, le=1.0, description="Quality cap")
    max_frame_size: int = Field(
        default=int(1.5 * 1024 * 1024),
        ge=1024,
        description="Byte ceiling for a single encoded frame",
    )
    hysteresis: float = Field(
        default=0.05,
        ge=0,
        description="Minimum quality change that is applied",
    )
    auto_adjust: bool = Field(default=True, description="Adapt quality to frame size")
    resolution: str = Field(
        default="720p",
        description="Resolution preset: '480p', '720p' or '1080p'",
    )
    monitor: int = Field(default=1, ge=0, description="mss monitor index (0 = all)")
    tick_interval_ms: float = Field(
        default=1000.0 / 60.0,
        gt=0,
        description="Scheduler tick hint (display refresh interval)",
    )
    perf_log_interval_sec: float = Field(
        default=10.0,
        gt=0,
        description="Seconds between capture performance summaries",
    )


class ViewerConfig(BaseModel):
    """Viewer-side quality estimation configuration."""

    fps_window: int = Field(default=30, ge=1, description="Inter-frame intervals averaged")
    latency_fair_ms: float = Field(default=200.0, ge=0, description="Latency above this is FAIR")
    latency_poor_ms: float = Field(default=500.0, ge=0, description="Latency above this is POOR")
    fps_fair: float = Field(default=10.0, ge=0, description="Frame rate below this is FAIR")
    fps_poor: float = Field(default=5.0, ge=0, description="Frame rate below this is POOR")
    stall_timeout_sec: float = Field(
        default=5.0,
        gt=0,
        description="No frames for this long marks the stream unstable",
    )
    monitor_interval_sec: float = Field(
        default=10.0,
        gt=0,
        description="Seconds between stall checks",
    )


class ReconnectConfig(BaseModel):
    """Client reconnection backoff configuration."""

    max_attempts: int = Field(default=5, ge=1, description="Attempts before giving up")
    base_delay_ms: int = Field(default=1000, ge=1, description="Backoff base in milliseconds")
    max_delay_ms: int = Field(default=30000, ge=1, description="Backoff cap in milliseconds")


class ClientConfig(BaseModel):
    """Presenter / viewer client configuration."""

    url: str = Field(default="ws://localhost:3000/ws", description="Hub WebSocket URL")
    display_name: Optional[str] = Field(default=None, description="Name shown to peers")
    ping_interval_sec: float = Field(
        default=25.0,
        gt=0,
        description="Liveness ping interval",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for ScreenRelay.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    app: AppConfig = Field(default_factory=AppConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    hub: HubConfig = Field(default_factory=HubConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    viewer: ViewerConfig = Field(default_factory=ViewerConfig)
    reconnect: ReconnectConfig = Field(default_factory=ReconnectConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.debug("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Server settings
    if env_host := os.environ.get("SCREEN_RELAY_HOST"):
        config_data.setdefault("server", {})["host"] = env_host
    if env_port := os.environ.get("SCREEN_RELAY_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    if env_policy := os.environ.get("SCREEN_RELAY_PRESENTER_POLICY"):
        config_data.setdefault("hub", {})["presenter_policy"] = env_policy.lower()

    # Capture settings
    if env_fps := os.environ.get("SCREEN_RELAY_TARGET_FPS"):
        config_data.setdefault("capture", {})["target_fps"] = int(env_fps)
    if env_quality := os.environ.get("SCREEN_RELAY_QUALITY"):
        config_data.setdefault("capture", {})["initial_quality"] = float(env_quality)
    if env_ceiling := os.environ.get("SCREEN_RELAY_MAX_FRAME_SIZE"):
        config_data.setdefault("capture", {})["max_frame_size"] = int(env_ceiling)
    if env_res := os.environ.get("SCREEN_RELAY_RESOLUTION"):
        config_data.setdefault("capture", {})["resolution"] = env_res

    # Client settings
    if env_url := os.environ.get("SCREEN_RELAY_HUB_URL"):
        config_data.setdefault("client", {})["url"] = env_url
    if env_name := os.environ.get("SCREEN_RELAY_DISPLAY_NAME"):
        config_data.setdefault("client", {})["display_name"] = env_name
    if env_attempts := os.environ.get("SCREEN_RELAY_MAX_ATTEMPTS"):
        config_data.setdefault("reconnect", {})["max_attempts"] = int(env_attempts)

    # Logging settings
    if env_log := os.environ.get("SCREEN_RELAY_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Default settings - loaded on import
settings = load_config()
