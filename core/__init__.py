#!/usr/bin/env python3
"""
Core Module for the Secrets Platform

Shared infrastructure used by the microservices in this repository.

COMPONENTS:
    - config/: dataclass configuration loaded from the environment (python-dotenv)
    - logger.py: service logger setup
    - postgres_client.py: async PostgreSQL client on an asyncpg pool

USAGE:
    from core.config import get_settings
    from core.logger import setup_service_logger
    from core.postgres_client import get_postgres_client

    settings = get_settings()
    logger = setup_service_logger("secrets_service")
    db = get_postgres_client("secrets_service", settings.database)
"""

__version__ = "1.0.0"
