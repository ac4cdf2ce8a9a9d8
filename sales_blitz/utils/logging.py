"""Structured logging configuration"""

import logging
import json
import os
from datetime import datetime
from typing import Any, Dict, Optional


class StructuredLogger:
    """
    Structured JSON logger for the blitz engine.

    Keyword arguments become top-level fields of the emitted JSON line.
    bind() returns a logger that adds fixed fields (run id, organization)
    to every line.
    """

    def __init__(self, name: str, level: str = "INFO", context: Optional[Dict[str, Any]] = None):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper(), logging.INFO))
        self.context = dict(context or {})

        # get_logger runs at import time in every module; attach the handler once
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(JSONFormatter())
            self.logger.addHandler(handler)
            self.logger.propagate = False

    def bind(self, **context) -> "StructuredLogger":
        return StructuredLogger(self.logger.name, logging.getLevelName(self.logger.level),
                                {**self.context, **context})

    def log(self, level: str, message: str, **kwargs):
        """Log structured message"""
        fields: Dict[str, Any] = {**self.context, **kwargs}
        getattr(self.logger, level.lower())(message, extra={"structured": fields})

    def info(self, message: str, **kwargs):
        self.log("info", message, **kwargs)

    def warning(self, message: str, **kwargs):
        self.log("warning", message, **kwargs)

    def error(self, message: str, **kwargs):
        self.log("error", message, **kwargs)

    def debug(self, message: str, **kwargs):
        self.log("debug", message, **kwargs)


class JSONFormatter(logging.Formatter):
    """One JSON object per record, structured fields merged in"""

    def format(self, record):
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_data.update(getattr(record, "structured", {}))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def get_logger(name: str) -> StructuredLogger:
    """Get or create structured logger"""
    return StructuredLogger(name, os.getenv("LOG_LEVEL", "INFO"))
