"""
Shared Test Fixtures

Centralized factories used across all test layers.

Structure:
    - common.py: Base ID generators, timestamps
    - secrets_fixtures.py: Secrets service model factories
"""

# Common utilities
from .common import (
    make_user_id,
    make_environment_id,
    make_secret_id,
    make_timestamp,
)

# Secrets service fixtures
from .secrets_fixtures import (
    make_secret_name,
    make_rotation_config,
    make_create_request,
    make_secret,
    make_secret_version,
)

__all__ = [
    "make_user_id",
    "make_environment_id",
    "make_secret_id",
    "make_timestamp",
    "make_secret_name",
    "make_rotation_config",
    "make_create_request",
    "make_secret",
    "make_secret_version",
]
