# Structured logging
# utils/logging.py
"""Structured logging configuration shared by every pipeline component"""

import logging
import sys
import structlog
from utils.config import settings


class StructuredLogger:
    """
    Structured logger configuration for the application.
    Ensures consistent logging format across all components.
    """

    @staticmethod
    def configure(level: str = None):
        """Configure structured logging"""

        logging.basicConfig(
            format="%(message)s",
            stream=sys.stdout,
            level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        )

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                add_app_context,
                structlog.processors.JSONRenderer()
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )


def add_app_context(logger, method_name, event_dict):
    """Add application context to all log entries"""

    event_dict["app"] = "nl2sql-orchestrator"
    event_dict["environment"] = settings.environment

    return event_dict
