#!/usr/bin/env python3
"""
Service Logger Setup

Configures stdlib logging once per process from LoggingConfig.

Usage:
    from core.logger import setup_service_logger
    logger = setup_service_logger("secrets_service")
"""

import logging
import sys
from typing import Optional

from core.config import LoggingConfig

_configured_services = set()
# Loggers that already carry handlers; "microservices" and "core" are shared by every service
_configured_loggers = set()

SHARED_LOGGERS = ("microservices", "core")


def setup_service_logger(
    service_name: str,
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    config: Optional[LoggingConfig] = None,
) -> logging.Logger:
    """
    Configure and return the logger for a service.

    Args:
        service_name: Logger name (also used as the service identity)
        level: Log level override (defaults to LoggingConfig.log_level)
        log_file: Optional file path for an additional file handler
        config: Logging configuration (defaults to LoggingConfig.from_env())

    Returns:
        Configured logger
    """
    config = config or LoggingConfig.from_env()
    logger = logging.getLogger(service_name)

    if service_name in _configured_services:
        return logger

    log_level = getattr(logging, (level or config.log_level).upper(), logging.INFO)
    formatter = logging.Formatter(config.log_format)

    handlers = []
    if config.enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_path = log_file or config.log_file
    if file_path:
        file_handler = logging.FileHandler(file_path)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    # Module loggers live under microservices.* and core.*
    for name in dict.fromkeys([service_name, *SHARED_LOGGERS]):
        if name in _configured_loggers:
            continue
        target = logging.getLogger(name)
        target.setLevel(log_level)
        target.propagate = False
        for handler in handlers:
            target.addHandler(handler)
        _configured_loggers.add(name)

    _configured_services.add(service_name)
    logger.debug(f"Logger configured for {service_name} (level={logging.getLevelName(log_level)})")
    return logger


__all__ = ["setup_service_logger"]
