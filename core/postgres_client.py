"""
PostgreSQL Client for the Secrets Platform

Async PostgreSQL client on an asyncpg connection pool. Repositories use it the
same way everywhere:

Usage:
    from core.postgres_client import get_postgres_client

    db = get_postgres_client("secrets_service")

    async with db:
        rows = await db.query("SELECT * FROM secrets.secrets WHERE id = $1", [secret_id])
"""

import logging
from typing import Any, Dict, List, Optional

import asyncpg

from core.config import DatabaseConfig

logger = logging.getLogger(__name__)


class AsyncPostgresClient:
    """
    Thin asyncpg pool wrapper.

    The pool is created lazily on first use (``async with client`` or any
    query method) and shared by every caller of this instance.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 5432,
        database: str = "postgres",
        username: str = "postgres",
        password: str = "",
        min_pool_size: int = 1,
        max_pool_size: int = 10,
        command_timeout: Optional[float] = 30.0,
        user_id: Optional[str] = None,
    ):
        self.host = host
        self.port = port
        self.database = database
        self.username = username
        self._password = password
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.command_timeout = command_timeout
        self.user_id = user_id
        self._pool: Optional[asyncpg.Pool] = None

    @classmethod
    def from_config(cls, config: DatabaseConfig, user_id: Optional[str] = None) -> "AsyncPostgresClient":
        return cls(
            host=config.host,
            port=config.port,
            database=config.database,
            username=config.user,
            password=config.password,
            min_pool_size=config.min_pool_size,
            max_pool_size=config.max_pool_size,
            command_timeout=config.command_timeout,
            user_id=user_id,
        )

    async def _ensure_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                host=self.host,
                port=self.port,
                database=self.database,
                user=self.username,
                password=self._password,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=self.command_timeout,
            )
            logger.info(
                f"PostgreSQL pool created for {self.user_id or 'default'}: "
                f"{self.host}:{self.port}/{self.database}"
            )
        return self._pool

    async def __aenter__(self):
        """Async context manager entry"""
        await self._ensure_pool()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Pool stays open across blocks; close() releases it"""
        return None

    async def query(self, sql: str, params: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
        """Execute query and return all rows as dicts"""
        pool = await self._ensure_pool()
        rows = await pool.fetch(sql, *(params or []))
        return [dict(row) for row in rows]

    async def query_row(self, sql: str, params: Optional[List[Any]] = None) -> Optional[Dict[str, Any]]:
        """Execute query and return a single row"""
        pool = await self._ensure_pool()
        row = await pool.fetchrow(sql, *(params or []))
        return dict(row) if row is not None else None

    async def execute(self, sql: str, params: Optional[List[Any]] = None) -> str:
        """Execute a statement and return the command status (e.g. 'UPDATE 1')"""
        pool = await self._ensure_pool()
        return await pool.execute(sql, *(params or []))

    async def execute_script(self, sql: str) -> None:
        """Execute a multi-statement script (DDL)"""
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            await conn.execute(sql)

    async def close(self):
        """Close the pool"""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("PostgreSQL pool closed")


# One client per service name
_postgres_clients: Dict[str, AsyncPostgresClient] = {}


def get_postgres_client(
    service_name: str,
    config: Optional[DatabaseConfig] = None,
) -> AsyncPostgresClient:
    """
    Get or create the PostgreSQL client for a service.

    Args:
        service_name: Service name
        config: Database configuration (defaults to DatabaseConfig.from_env())

    Returns:
        AsyncPostgresClient instance
    """
    if service_name not in _postgres_clients:
        _postgres_clients[service_name] = AsyncPostgresClient.from_config(
            config or DatabaseConfig.from_env(), user_id=service_name
        )
    return _postgres_clients[service_name]


def command_row_count(status: str) -> int:
    """Row count from an asyncpg command status such as 'UPDATE 3'"""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError, IndexError):
        return 0
