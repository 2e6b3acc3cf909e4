"""Logging configuration for concept_tracker.

Usage in other modules:
    import logging
    log = logging.getLogger(__name__)

The log level can be configured via the CONCEPT_TRACKER_LOG_LEVEL environment
variable (DEBUG, INFO, WARNING, ERROR). INFO is the default.
"""

import logging
import os
import sys

PACKAGE_LOGGER = "concept_tracker"


def configure_logging() -> None:
    """Configure logging for the concept_tracker package.

    Call this once at application startup (e.g., in cli.main).
    Subsequent calls are no-ops.
    """
    root_logger = logging.getLogger(PACKAGE_LOGGER)

    # Skip if already configured (has handlers)
    if root_logger.handlers:
        return

    level_name = os.environ.get("CONCEPT_TRACKER_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(
            fmt="[%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    # Prevent propagation to root logger (avoids duplicate messages)
    root_logger.propagate = False


def set_quiet_mode(quiet: bool) -> None:
    """Suppress everything below ERROR on the package logger (and its handlers)."""
    root_logger = logging.getLogger(PACKAGE_LOGGER)
    if quiet:
        root_logger.setLevel(logging.ERROR)
        for handler in root_logger.handlers:
            handler.setLevel(logging.ERROR)
