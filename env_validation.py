"""Environment variable validation and management."""

import logging
import os

logger = logging.getLogger(__name__)

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class EnvironmentError(Exception):
    """Raised when required environment variables are missing or invalid."""
    pass


def validate_environment() -> None:
    """Validate environment variables and apply defaults.

    Raises EnvironmentError if validation fails.
    """
    defaults = {
        "DB_PATH": os.getenv("DB_PATH") or "risk.db",
        "RISK_LOG_LEVEL": os.getenv("RISK_LOG_LEVEL") or "INFO",
    }

    # Apply defaults before validation so dependent modules see consistent values.
    for var, value in defaults.items():
        if not os.getenv(var):
            os.environ[var] = value
            logger.info("Environment variable %s not set; using default '%s'", var, value)

    level = os.environ["RISK_LOG_LEVEL"].upper()
    if level not in _LOG_LEVELS:
        raise EnvironmentError(
            f"Invalid RISK_LOG_LEVEL: {os.environ['RISK_LOG_LEVEL']} "
            f"(expected one of {', '.join(sorted(_LOG_LEVELS))})"
        )

    db_dir = os.path.dirname(os.path.abspath(os.environ["DB_PATH"]))
    if not os.path.isdir(db_dir):
        raise EnvironmentError(f"Directory for DB_PATH does not exist: {db_dir}")


def configure_logging() -> None:
    """Apply ``RISK_LOG_LEVEL`` to the root logger."""
    level = (os.getenv("RISK_LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
