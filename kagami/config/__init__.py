from kagami.config.loader import ConfigError, load_config
from kagami.config.schema import Config, ProviderConfig

__all__ = ["Config", "ConfigError", "ProviderConfig", "load_config"]
