"""
Component Test Mocks

Shared mock implementations for component testing.
These mocks replace real I/O dependencies (database, secret store).
"""

from .db_mock import MockAsyncPostgresClient

# Service-specific mocks live in tests/component/{service}/mocks.py

__all__ = [
    'MockAsyncPostgresClient',
]
