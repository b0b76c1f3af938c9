from nasa_gateway.config.loader import YamlConfigLoader
from nasa_gateway.config.models import AppConfig, ConfigLoadRequest

__all__ = ["AppConfig", "ConfigLoadRequest", "YamlConfigLoader"]
