"""
Structured logging configuration
"""
import logging
import sys
from pythonjsonlogger import jsonlogger

from .correlation import CorrelationIdFilter


def setup_logging(level: str = "INFO"):
    """
    Configure structured JSON logging

    Features:
    - JSON-formatted logs for easy parsing
    - Includes timestamp, level, message, correlation_id
    - correlation_id filled from the request context when not passed explicitly
    - Outputs to stdout for container environments
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s %(correlation_id)s",
        datefmt="%Y-%m-%dT%H:%M:%S"
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter())
    root_logger.addHandler(handler)

    # Silence noisy libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("alembic").setLevel(logging.WARNING)

    return root_logger
