#!/usr/bin/env python3
"""Secrets platform main configuration

Combines all sub-configs for the secret-lifecycle service.
"""
import os
from dataclasses import dataclass, field

from .database_config import DatabaseConfig
from .logging_config import LoggingConfig
from .secret_store_config import SecretStoreConfig
from .service_config import SecretsServiceConfig


def _bool(val: str) -> bool:
    return val.lower() == "true"


@dataclass
class SecretsConfig:
    """Main configuration with all sub-configs"""

    # Environment
    environment: str = "development"
    debug: bool = False

    # Sub-configurations
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    secret_store: SecretStoreConfig = field(default_factory=SecretStoreConfig)
    service: SecretsServiceConfig = field(default_factory=SecretsServiceConfig)

    @classmethod
    def from_env(cls) -> 'SecretsConfig':
        """Load complete configuration from environment"""
        env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
        return cls(
            environment=env,
            debug=_bool(os.getenv("DEBUG", "true" if env == "development" else "false")),
            logging=LoggingConfig.from_env(),
            database=DatabaseConfig.from_env(),
            secret_store=SecretStoreConfig.from_env(),
            service=SecretsServiceConfig.from_env(),
        )
