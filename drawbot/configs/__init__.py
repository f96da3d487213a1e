"""
Configuration module.

Loads and validates ``drawbot.yaml``: device connection, work envelope,
streaming thresholds, pipeline parameters and logging.
"""

from drawbot.configs.loader import (
    ConfigError,
    ConnectionConfig,
    DrawbotConfig,
    EnvelopeConfig,
    LoggingConfig,
    StreamingConfig,
    load_config,
)

__all__ = [
    "ConfigError",
    "ConnectionConfig",
    "DrawbotConfig",
    "EnvelopeConfig",
    "LoggingConfig",
    "StreamingConfig",
    "load_config",
]
