"""Configuration helpers."""

from .settings import DEFAULT_CONFIG_PATH, ServiceConfig, load_service_config

__all__ = ["DEFAULT_CONFIG_PATH", "ServiceConfig", "load_service_config"]
