import os
import logging
from logging.handlers import RotatingFileHandler


__version__ = '0.3.0'

logger = logging.getLogger(__name__)


def configure_logging(config, level=None):
    """
    Configure package logging.

    Installs a console handler on stderr and, if the configuration names a
    LOG_FILE, a rotating file handler. Calling it again replaces the handlers
    installed by the previous call.

    Args:
        config: Configuration class (see localbak.config)
        level: Optional level name overriding config.LOG_LEVEL
    """
    log_level = getattr(logging, (level or config.LOG_LEVEL).upper(), logging.WARNING)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    # File handler
    if config.LOG_FILE:
        log_dir = os.path.dirname(os.path.abspath(config.LOG_FILE))
        os.makedirs(log_dir, exist_ok=True)

        file_handler = RotatingFileHandler(
            config.LOG_FILE,
            maxBytes=config.LOG_MAX_BYTES,
            backupCount=config.LOG_BACKUP_COUNT
        )
        file_handler.setLevel(log_level)
        file_formatter = logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    logger.setLevel(log_level)
    logger.debug(f"Logging configured (level: {logging.getLevelName(log_level)})")
