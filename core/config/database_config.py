#!/usr/bin/env python3
"""Metadata database configuration

PostgreSQL connection settings for the secrets metadata store
(secrets, secret versions, secret audit logs).
"""
import os
from dataclasses import dataclass

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default

def _float(val: str, default: float) -> float:
    try:
        return float(val) if val else default
    except ValueError:
        return default


@dataclass
class DatabaseConfig:
    """PostgreSQL (native asyncpg) settings"""

    host: str = "localhost"
    port: int = 5432
    database: str = "postgres"
    user: str = "postgres"
    password: str = "postgres"
    schema: str = "secrets"

    # Pool
    min_pool_size: int = 1
    max_pool_size: int = 10
    command_timeout: float = 30.0

    @property
    def dsn(self) -> str:
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"

    @classmethod
    def from_env(cls) -> 'DatabaseConfig':
        """Load database config from environment"""
        return cls(
            host=os.getenv("POSTGRES_HOST", "localhost"),
            port=_int(os.getenv("POSTGRES_PORT", "5432"), 5432),
            database=os.getenv("POSTGRES_DB", "postgres"),
            user=os.getenv("POSTGRES_USER", "postgres"),
            password=os.getenv("POSTGRES_PASSWORD", "postgres"),
            schema=os.getenv("SECRETS_DB_SCHEMA", "secrets"),
            min_pool_size=_int(os.getenv("POSTGRES_MIN_POOL", "1"), 1),
            max_pool_size=_int(os.getenv("POSTGRES_MAX_POOL", "10"), 10),
            command_timeout=_float(os.getenv("POSTGRES_COMMAND_TIMEOUT", "30"), 30.0),
        )
