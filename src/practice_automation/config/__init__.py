"""Configuration module for the practice automation engine."""

from practice_automation.config.defaults_loader import load_default_due_dates, load_default_rules
from practice_automation.config.logging import configure_logging, get_logger
from practice_automation.config.settings import FlatSettings, get_settings

__all__ = [
    "FlatSettings",
    "get_settings",
    "configure_logging",
    "get_logger",
    "load_default_rules",
    "load_default_due_dates",
]
