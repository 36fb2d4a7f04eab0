"""
Secrets Service - Versioned secret lifecycle management

Stores secret values in a Vault KV v2 backend and their metadata, version
history and audit trail in PostgreSQL, with scheduled rotation and rollback.
"""

__version__ = "1.0.0"
