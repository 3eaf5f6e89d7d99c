# config_manager/__init__.py
from .general import (
    ConfigModel,
    GeneralConfig,
    GracefulExitConfig,
    TimingConfig,
    CooldownsConfig,
    SpamConfig,
    DisplayQueueConfig,
)
from .obs import ObsConfig, GoalsConfig, GoalPlatformConfig, HandcamConfig
from .platforms import PlatformConfig, TikTokConfig, TwitchConfig, YouTubeConfig, VfxConfig
from .main import Config
from .utils import read_yaml, validate_config, load_config, resolve_config_path
from .config_service import ConfigService

__all__ = [
    "ConfigModel",
    "GeneralConfig",
    "GracefulExitConfig",
    "TimingConfig",
    "CooldownsConfig",
    "SpamConfig",
    "DisplayQueueConfig",
    "ObsConfig",
    "GoalsConfig",
    "GoalPlatformConfig",
    "HandcamConfig",
    "PlatformConfig",
    "TikTokConfig",
    "TwitchConfig",
    "YouTubeConfig",
    "VfxConfig",
    "Config",
    "ConfigService",
    "read_yaml",
    "validate_config",
    "load_config",
    "resolve_config_path",
]
