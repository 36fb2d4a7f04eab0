#!/usr/bin/env python3
"""Modular configuration system for the secrets service

Configuration hierarchy:
- database_config: PostgreSQL metadata store
- secret_store_config: Vault session (endpoint, auth, TLS, retry)
- service_config: operation timeouts, path prefix, rotation switches
- logging_config: Logging configuration
"""
import os
from dotenv import load_dotenv
from .logging_config import LoggingConfig
from .database_config import DatabaseConfig
from .secret_store_config import SecretStoreConfig, TLSConfig, RetryConfig
from .service_config import SecretsServiceConfig
from .secrets_config import SecretsConfig

# Load environment file based on ENV
env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
env_files = {
    "development": "deployment/environments/dev.env",
    "dev": "deployment/environments/dev.env",
    "testing": "deployment/environments/test.env",
    "test": "deployment/environments/test.env",
    "staging": "deployment/environments/staging.env",
    "production": "deployment/environments/production.env",
}
env_file = env_files.get(env, "deployment/environments/dev.env")
load_dotenv(env_file, override=False)

# Create global settings instance
settings = SecretsConfig.from_env()

def get_settings() -> SecretsConfig:
    """Get global settings instance"""
    return settings

def reload_settings() -> SecretsConfig:
    """Reload settings from environment"""
    global settings
    settings = SecretsConfig.from_env()
    return settings

__all__ = [
    # Main config
    'SecretsConfig',
    'get_settings',
    'reload_settings',
    'settings',
    # Sub-configs
    'LoggingConfig',
    'DatabaseConfig',
    'SecretStoreConfig',
    'TLSConfig',
    'RetryConfig',
    'SecretsServiceConfig',
]
