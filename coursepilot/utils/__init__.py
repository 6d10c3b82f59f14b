"""CoursePilot utilities."""

from .log import setup_logging, LOG_FORMAT

__all__ = [
    "setup_logging",
    "LOG_FORMAT",
]
