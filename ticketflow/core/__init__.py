"""Core business logic modules."""

from ticketflow.core.claude import ClaudeRunner
from ticketflow.core.config import Config, ConfigError, ProviderSettings
from ticketflow.core.logging_config import configure_logging
from ticketflow.core.prompts import PromptBuilder

__all__ = [
    "ClaudeRunner",
    "Config",
    "ConfigError",
    "PromptBuilder",
    "ProviderSettings",
    "configure_logging",
]
