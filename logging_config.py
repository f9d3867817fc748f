"""
Centralized logging configuration for the API and the ingestion script.
"""
import logging
import sys
from typing import Optional

from config import settings


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the root logger once; safe to call from every entry point."""
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, settings.log_level.upper()))
    return logger
