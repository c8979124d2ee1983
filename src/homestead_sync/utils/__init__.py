"""Utility modules for the Homestead sync core."""

from .logging_config import configure_third_party_loggers, setup_logging
from .time_utils import now_ms

__all__ = ["setup_logging", "configure_third_party_loggers", "now_ms"]
