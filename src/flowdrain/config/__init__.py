"""Configuration module for FlowDrain."""

from flowdrain.config.logging import configure_logging, get_logger
from flowdrain.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings", "configure_logging", "get_logger"]
