"""Configuration layer — settings, config discovery and logging setup."""

from writepipe.config.logging import configure_logging, log_context
from writepipe.config.settings import CommandDefaults, WritepipeSettings

__all__ = ["CommandDefaults", "WritepipeSettings", "configure_logging", "log_context"]
