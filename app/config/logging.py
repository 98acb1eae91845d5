"""Logging configuration for the application."""
import logging
import logging.config
import sys
from pathlib import Path
from app.config.settings import settings


def setup_logging():
    """Setup logging configuration."""

    # Define log format
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    detailed_format = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
    console_formatter = "json" if settings.LOG_FORMAT.lower() == "json" else "simple"

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": "INFO",
            "formatter": console_formatter,
            "stream": sys.stdout
        },
    }
    app_handlers = ["console"]

    if settings.LOG_TO_FILE:
        # Create logs directory if it doesn't exist
        logs_dir = Path(settings.LOG_DIR)
        logs_dir.mkdir(exist_ok=True)

        handlers.update({
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "level": "DEBUG",
                "formatter": "detailed",
                "filename": str(logs_dir / "app.log"),
                "maxBytes": 10485760,  # 10MB
                "backupCount": 5
            },
            "error_file": {
                "class": "logging.handlers.RotatingFileHandler",
                "level": "ERROR",
                "formatter": "detailed",
                "filename": str(logs_dir / "error.log"),
                "maxBytes": 10485760,  # 10MB
                "backupCount": 5
            },
        })
        app_handlers = ["console", "file", "error_file"]

    # Configure logging
    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "simple": {
                "format": log_format,
                "datefmt": "%Y-%m-%d %H:%M:%S"
            },
            "detailed": {
                "format": detailed_format,
                "datefmt": "%Y-%m-%d %H:%M:%S"
            },
            "json": {
                "()": "app.core.logging.JSONFormatter",
            }
        },
        "handlers": handlers,
        "loggers": {
            # Root logger
            "": {
                "level": settings.LOG_LEVEL.upper(),
                "handlers": ["console"],
                "propagate": False
            },
            # Application logger
            "app": {
                "level": "DEBUG" if settings.DEBUG else settings.LOG_LEVEL.upper(),
                "handlers": app_handlers,
                "propagate": False
            },
            "uvicorn": {
                "level": "INFO",
                "handlers": ["console"],
                "propagate": False
            },
            # Database logger
            "sqlalchemy": {
                "level": "WARNING",
                "handlers": ["console"],
                "propagate": False
            },
            "celery": {
                "level": "INFO",
                "handlers": ["console"],
                "propagate": False
            },
        }
    }

    # Apply configuration
    logging.config.dictConfig(logging_config)

    logger = logging.getLogger("app")
    logger.info(f"Logging configured with level: {settings.LOG_LEVEL}")

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name."""
    return logging.getLogger(name)
