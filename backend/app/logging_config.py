# app/logging_config.py
import logging
import logging.config
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

from app.config import settings


def setup_logging(log_dir: Optional[str] = None, level: Optional[str] = None) -> logging.Logger:
    # Disable SQLAlchemy logging
    logging.config.dictConfig({
        'version': 1,
        'disable_existing_loggers': False,
        'loggers': {
            'sqlalchemy.engine': {'level': 'ERROR', 'handlers': [], 'propagate': False},
            'sqlalchemy.pool': {'level': 'ERROR', 'handlers': [], 'propagate': False},
            'sqlalchemy.dialects': {'level': 'ERROR', 'handlers': [], 'propagate': False},
        }
    })

    # === CREATE LOGS DIRECTORY ===
    path = Path(log_dir or settings.LOG_DIR)
    path.mkdir(parents=True, exist_ok=True)
    log_file = path / "app.log"
    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)

    # === CONFIGURE ROOT LOGGER (captures EVERYTHING) ===
    logger = logging.getLogger()
    logger.setLevel(log_level)

    # Avoid duplicate handlers if reloaded
    if logger.handlers:
        logger.handlers.clear()

    # === 1. CONSOLE HANDLER ===
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))

    # === 2. FILE HANDLER WITH DAILY ROTATION + KEEP 30 DAYS ===
    file_handler = TimedRotatingFileHandler(
        filename=log_file,
        when="midnight",
        interval=1,
        backupCount=30,
        encoding="utf-8"
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(funcName)s:%(lineno)d - %(levelname)s - %(message)s'
    ))

    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

    # === Also log ALL uncaught exceptions ===
    def handle_exception(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        logger.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback))

    sys.excepthook = handle_exception
    return logger
