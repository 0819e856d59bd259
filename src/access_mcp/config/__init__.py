from .loader import AppConfig, ConfigError, load_config, save_config

__all__ = ["AppConfig", "ConfigError", "load_config", "save_config"]
