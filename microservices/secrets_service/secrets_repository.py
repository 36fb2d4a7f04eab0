"""
Secrets Repository

Data access layer for secret metadata, version records and audit logs
- PostgreSQL (Async). Secret values are never stored here.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import asyncpg

from core.config import DatabaseConfig
from core.postgres_client import AsyncPostgresClient, command_row_count, get_postgres_client

from .models import (
    PrincipalType,
    Secret,
    SecretAction,
    SecretAuditLog,
    SecretFilter,
    SecretMetadata,
    SecretRotationConfig,
    SecretType,
    SecretVersion,
)
from .protocols import SecretNotFoundError, SecretValidationError, SecretVersionConflictError

logger = logging.getLogger(__name__)


def schema_ddl(schema: str) -> str:
    """DDL for the metadata store; idempotent"""
    return f'''
        CREATE SCHEMA IF NOT EXISTS {schema};

        CREATE TABLE IF NOT EXISTS {schema}.secrets (
            id UUID PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            path VARCHAR(1024) NOT NULL,
            type VARCHAR(64) NOT NULL,
            description TEXT,
            environment_id VARCHAR(255) NOT NULL,
            version INTEGER NOT NULL DEFAULT 1,
            rotation_config JSONB,
            access_policies JSONB NOT NULL DEFAULT '[]',
            tags JSONB NOT NULL DEFAULT '{{}}',
            metadata JSONB NOT NULL DEFAULT '{{}}',
            created_by VARCHAR(255) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            last_accessed_at TIMESTAMPTZ,
            last_rotated_at TIMESTAMPTZ,
            deleted_at TIMESTAMPTZ
        );
        CREATE UNIQUE INDEX IF NOT EXISTS idx_secrets_live_path
            ON {schema}.secrets (path) WHERE deleted_at IS NULL;
        CREATE INDEX IF NOT EXISTS idx_secrets_environment_id ON {schema}.secrets (environment_id);
        CREATE INDEX IF NOT EXISTS idx_secrets_name ON {schema}.secrets (name);
        CREATE INDEX IF NOT EXISTS idx_secrets_type ON {schema}.secrets (type);
        CREATE INDEX IF NOT EXISTS idx_secrets_created_by ON {schema}.secrets (created_by);
        CREATE INDEX IF NOT EXISTS idx_secrets_last_accessed_at ON {schema}.secrets (last_accessed_at);
        CREATE INDEX IF NOT EXISTS idx_secrets_last_rotated_at ON {schema}.secrets (last_rotated_at);
        CREATE INDEX IF NOT EXISTS idx_secrets_deleted_at ON {schema}.secrets (deleted_at);

        CREATE TABLE IF NOT EXISTS {schema}.secret_versions (
            id UUID PRIMARY KEY,
            secret_id UUID NOT NULL REFERENCES {schema}.secrets (id) ON DELETE CASCADE,
            version INTEGER NOT NULL,
            value_hash VARCHAR(64) NOT NULL,
            metadata JSONB NOT NULL DEFAULT '{{}}',
            created_by VARCHAR(255) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            expires_at TIMESTAMPTZ,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            UNIQUE (secret_id, version)
        );
        CREATE INDEX IF NOT EXISTS idx_secret_versions_secret_id ON {schema}.secret_versions (secret_id);
        CREATE INDEX IF NOT EXISTS idx_secret_versions_expires_at ON {schema}.secret_versions (expires_at);

        CREATE TABLE IF NOT EXISTS {schema}.secret_audit_logs (
            id UUID PRIMARY KEY,
            secret_id UUID NOT NULL REFERENCES {schema}.secrets (id) ON DELETE CASCADE,
            action VARCHAR(32) NOT NULL,
            principal_id VARCHAR(255) NOT NULL,
            principal_type VARCHAR(32) NOT NULL,
            success BOOLEAN NOT NULL,
            error_message TEXT,
            ip_address VARCHAR(64),
            user_agent TEXT,
            metadata JSONB,
            timestamp TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        CREATE INDEX IF NOT EXISTS idx_secret_audit_logs_secret_id ON {schema}.secret_audit_logs (secret_id);
        CREATE INDEX IF NOT EXISTS idx_secret_audit_logs_action ON {schema}.secret_audit_logs (action);
        CREATE INDEX IF NOT EXISTS idx_secret_audit_logs_principal_id ON {schema}.secret_audit_logs (principal_id);
        CREATE INDEX IF NOT EXISTS idx_secret_audit_logs_timestamp ON {schema}.secret_audit_logs (timestamp);
    '''


# Columns SecretUpdate / service bookkeeping may change
_JSON_COLUMNS = {"rotation_config", "access_policies", "tags", "metadata"}
_UPDATABLE_COLUMNS = {
    "name", "description", "version", "rotation_config", "access_policies",
    "tags", "metadata", "last_accessed_at", "last_rotated_at",
}


def _to_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    if hasattr(value, "model_dump"):
        value = value.model_dump(mode="json")
    return json.dumps(value, default=str)


def _from_json(value: Any, default: Any = None) -> Any:
    if value is None:
        return default
    if isinstance(value, (dict, list)):
        return value
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return default


def _set_clauses(updates: Dict[str, Any], params: List[Any]) -> List[str]:
    """SET assignments for a partial update plus updated_at; appends to params"""
    clauses = []
    for column, value in updates.items():
        if column not in _UPDATABLE_COLUMNS:
            raise ValueError(f"Column {column} is not updatable")
        params.append(_to_json(value) if column in _JSON_COLUMNS else value)
        clauses.append(f"{column} = ${len(params)}")
    params.append(datetime.now(timezone.utc))
    clauses.append(f"updated_at = ${len(params)}")
    return clauses


class SecretsRepository:
    """Secrets service data repository - PostgreSQL (Async)"""

    def __init__(
        self,
        db: Optional[AsyncPostgresClient] = None,
        config: Optional[DatabaseConfig] = None,
    ):
        config = config or DatabaseConfig.from_env()
        if db is None:
            logger.info(f"Connecting to PostgreSQL at {config.host}:{config.port}")
            db = get_postgres_client("secrets_service", config)
        self.db = db
        self.schema = config.schema
        self.secrets_table = "secrets"
        self.versions_table = "secret_versions"
        self.audit_table = "secret_audit_logs"

    async def initialize(self, apply_schema: bool = True) -> None:
        """Open the pool and, optionally, create the schema"""
        async with self.db:
            if apply_schema:
                await self.db.execute_script(schema_ddl(self.schema))
                logger.info(f"Secrets schema '{self.schema}' ready")

    async def close(self) -> None:
        await self.db.close()

    # ============ Secret Operations ============

    async def create(self, secret: Secret, initial_version: Optional[SecretVersion] = None) -> Secret:
        """
        Insert a secret record, and its first version in the same statement when given.

        Raises:
            SecretValidationError: A live secret already uses the path
        """
        try:
            now = datetime.now(timezone.utc)

            insert = f'''
                INSERT INTO {self.schema}.{self.secrets_table} (
                    id, name, path, type, description, environment_id, version,
                    rotation_config, access_policies, tags, metadata, created_by,
                    created_at, updated_at, last_accessed_at, last_rotated_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16)
                RETURNING *
            '''

            params = [
                secret.id,
                secret.name,
                secret.path,
                secret.type.value,
                secret.description,
                secret.environment_id,
                secret.version,
                _to_json(secret.rotation_config),
                _to_json(secret.access_policies),
                _to_json(secret.tags),
                _to_json(secret.metadata),
                secret.created_by,
                secret.created_at or now,
                secret.updated_at or now,
                secret.last_accessed_at,
                secret.last_rotated_at,
            ]

            if initial_version is None:
                query = insert
            else:
                query = f'''
                    WITH created AS ({insert}),
                    first_version AS (
                        INSERT INTO {self.schema}.{self.versions_table} (
                            id, secret_id, version, value_hash, metadata,
                            created_by, created_at, expires_at, is_active
                        )
                        SELECT $17::uuid, id, version, $18::varchar, $19::jsonb,
                               created_by, created_at, $20::timestamptz, TRUE
                        FROM created
                    )
                    SELECT * FROM created
                '''
                params += [
                    initial_version.id or str(uuid.uuid4()),
                    initial_version.value_hash,
                    _to_json(initial_version.metadata),
                    initial_version.expires_at,
                ]

            async with self.db:
                results = await self.db.query(query, params=params)

            if results:
                return self._row_to_secret(results[0])
            raise RuntimeError(f"Failed to create secret {secret.name}")

        except asyncpg.UniqueViolationError as e:
            logger.warning(f"Secret path {secret.path} is already taken")
            raise SecretValidationError(f"Secret already exists at path {secret.path}") from e
        except Exception as e:
            logger.error(f"Error creating secret {secret.name}: {e}", exc_info=True)
            raise

    async def find_by_id(self, secret_id: str) -> Optional[Secret]:
        """Find a non-deleted secret by id"""
        try:
            query = f'''
                SELECT * FROM {self.schema}.{self.secrets_table}
                WHERE id = $1 AND deleted_at IS NULL
            '''

            async with self.db:
                result = await self.db.query_row(query, params=[secret_id])

            return self._row_to_secret(result) if result else None

        except Exception as e:
            logger.error(f"Error getting secret {secret_id}: {e}")
            raise

    async def find_by_path(self, path: str) -> Optional[Secret]:
        """Find a non-deleted secret by storage path"""
        try:
            query = f'''
                SELECT * FROM {self.schema}.{self.secrets_table}
                WHERE path = $1 AND deleted_at IS NULL
            '''

            async with self.db:
                result = await self.db.query_row(query, params=[path])

            return self._row_to_secret(result) if result else None

        except Exception as e:
            logger.error(f"Error getting secret at path {path}: {e}")
            raise

    async def update(self, secret_id: str, updates: Dict[str, Any]) -> Secret:
        """Partial update of a non-deleted secret; raises SecretNotFoundError otherwise"""
        try:
            params: List[Any] = []
            set_clauses = _set_clauses(updates, params)
            params.append(secret_id)

            query = f'''
                UPDATE {self.schema}.{self.secrets_table}
                SET {", ".join(set_clauses)}
                WHERE id = ${len(params)} AND deleted_at IS NULL
                RETURNING *
            '''

            async with self.db:
                results = await self.db.query(query, params=params)

            if not results:
                raise SecretNotFoundError(f"Secret not found: {secret_id}")
            return self._row_to_secret(results[0])

        except SecretNotFoundError:
            raise
        except Exception as e:
            logger.error(f"Error updating secret {secret_id}: {e}")
            raise

    async def delete(self, secret_id: str) -> None:
        """Soft delete; the row stays for audit and version history"""
        try:
            now = datetime.now(timezone.utc)
            query = f'''
                UPDATE {self.schema}.{self.secrets_table}
                SET deleted_at = $1, updated_at = $1
                WHERE id = $2 AND deleted_at IS NULL
            '''

            async with self.db:
                status = await self.db.execute(query, params=[now, secret_id])

            if command_row_count(status) == 0:
                raise SecretNotFoundError(f"Secret not found: {secret_id}")

        except SecretNotFoundError:
            raise
        except Exception as e:
            logger.error(f"Error deleting secret {secret_id}: {e}")
            raise

    def _build_filter(self, filter: Optional[SecretFilter], params: List[Any]) -> List[str]:
        """WHERE conditions for a SecretFilter; appends to params"""
        conditions = ["deleted_at IS NULL"]
        if filter is None:
            return conditions

        def add(condition: str, value: Any) -> None:
            params.append(value)
            conditions.append(condition.format(p=f"${len(params)}"))

        if filter.environment_id:
            add("environment_id = {p}", filter.environment_id)
        if filter.name:
            add("name ILIKE {p}", f"%{filter.name}%")
        if filter.path:
            add("path ILIKE {p}", f"%{filter.path}%")
        if filter.type:
            add("type = {p}", filter.type.value)
        if filter.created_by:
            add("created_by = {p}", filter.created_by)
        if filter.tags:
            add("tags @> {p}::jsonb", json.dumps(filter.tags))
        if filter.last_accessed_after:
            add("last_accessed_at >= {p}", filter.last_accessed_after)
        if filter.last_accessed_before:
            add("last_accessed_at <= {p}", filter.last_accessed_before)
        if filter.expiring_before:
            # Next rotation = last rotation (or creation) + interval days
            add(
                "(rotation_config->>'enabled')::boolean IS TRUE AND "
                "COALESCE(last_rotated_at, created_at) + "
                "make_interval(days => (rotation_config->>'interval')::int) <= {p}",
                filter.expiring_before,
            )
        return conditions

    def _pagination(self, filter: Optional[SecretFilter], params: List[Any]) -> str:
        if filter is None:
            return ""
        clause = ""
        if filter.limit:
            params.append(filter.limit)
            clause += f" LIMIT ${len(params)}"
        if filter.offset:
            params.append(filter.offset)
            clause += f" OFFSET ${len(params)}"
        return clause

    async def find_many(self, filter: Optional[SecretFilter] = None) -> List[Secret]:
        """List non-deleted secrets matching filter, newest first"""
        try:
            params: List[Any] = []
            conditions = self._build_filter(filter, params)

            query = f'''
                SELECT * FROM {self.schema}.{self.secrets_table}
                WHERE {" AND ".join(conditions)}
                ORDER BY created_at DESC
            ''' + self._pagination(filter, params)

            async with self.db:
                results = await self.db.query(query, params=params)

            return [self._row_to_secret(row) for row in results] if results else []

        except Exception as e:
            logger.error(f"Error listing secrets: {e}")
            raise

    async def search(self, query: str, filter: Optional[SecretFilter] = None) -> List[Secret]:
        """Case-insensitive substring search across name, description and path"""
        try:
            params: List[Any] = []
            conditions = self._build_filter(filter, params)

            params.append(f"%{query}%")
            p = f"${len(params)}"
            conditions.append(f"(name ILIKE {p} OR description ILIKE {p} OR path ILIKE {p})")

            sql = f'''
                SELECT * FROM {self.schema}.{self.secrets_table}
                WHERE {" AND ".join(conditions)}
                ORDER BY name ASC
            ''' + self._pagination(filter, params)

            async with self.db:
                results = await self.db.query(sql, params=params)

            return [self._row_to_secret(row) for row in results] if results else []

        except Exception as e:
            logger.error(f"Error searching secrets for '{query}': {e}")
            raise

    # ============ Version Operations ============

    async def create_version(
        self, version: SecretVersion, secret_updates: Optional[Dict[str, Any]] = None
    ) -> SecretVersion:
        """
        Record the next version and move the secret to it in one statement.

        The previously active version is deactivated, the new one inserted as
        active and secrets.version advanced (with any secret_updates) only if
        the secret is still at version.version - 1.

        Raises:
            SecretNotFoundError: Secret missing or deleted
            SecretVersionConflictError: Secret is no longer at version.version - 1
        """
        try:
            version_id = version.id or str(uuid.uuid4())
            now = datetime.now(timezone.utc)

            params: List[Any] = [
                version_id,
                version.secret_id,
                version.version,
                version.value_hash,
                _to_json(version.metadata),
                version.created_by,
                version.created_at or now,
                version.expires_at,
            ]
            set_clauses = _set_clauses({**(secret_updates or {}), "version": version.version}, params)
            params.append(version.version - 1)

            query = f'''
                WITH advanced AS (
                    UPDATE {self.schema}.{self.secrets_table}
                    SET {", ".join(set_clauses)}
                    WHERE id = $2 AND deleted_at IS NULL AND version = ${len(params)}
                    RETURNING id
                ),
                deactivated AS (
                    UPDATE {self.schema}.{self.versions_table}
                    SET is_active = FALSE
                    WHERE secret_id IN (SELECT id FROM advanced) AND is_active
                )
                INSERT INTO {self.schema}.{self.versions_table} (
                    id, secret_id, version, value_hash, metadata,
                    created_by, created_at, expires_at, is_active
                )
                SELECT $1::uuid, id, $3::integer, $4::varchar, $5::jsonb,
                       $6::varchar, $7::timestamptz, $8::timestamptz, TRUE
                FROM advanced
                RETURNING *
            '''

            async with self.db:
                results = await self.db.query(query, params=params)
                if results:
                    return self._row_to_version(results[0])

                current = await self.db.query_row(
                    f"SELECT version FROM {self.schema}.{self.secrets_table} "
                    f"WHERE id = $1 AND deleted_at IS NULL",
                    params=[version.secret_id],
                )

            if current is None:
                raise SecretNotFoundError(f"Secret not found: {version.secret_id}")
            raise SecretVersionConflictError(version.secret_id, version.version - 1, current["version"])

        except (SecretNotFoundError, SecretVersionConflictError) as e:
            logger.warning(f"Version {version.version} not recorded for secret {version.secret_id}: {e}")
            raise
        except Exception as e:
            logger.error(
                f"Error creating version {version.version} for secret {version.secret_id}: {e}",
                exc_info=True,
            )
            raise

    async def find_versions(self, secret_id: str) -> List[SecretVersion]:
        """All versions of a secret, newest first"""
        try:
            query = f'''
                SELECT * FROM {self.schema}.{self.versions_table}
                WHERE secret_id = $1
                ORDER BY version DESC
            '''

            async with self.db:
                results = await self.db.query(query, params=[secret_id])

            return [self._row_to_version(row) for row in results] if results else []

        except Exception as e:
            logger.error(f"Error getting versions for secret {secret_id}: {e}")
            raise

    async def find_version(self, secret_id: str, version: int) -> Optional[SecretVersion]:
        try:
            query = f'''
                SELECT * FROM {self.schema}.{self.versions_table}
                WHERE secret_id = $1 AND version = $2
            '''

            async with self.db:
                result = await self.db.query_row(query, params=[secret_id, version])

            return self._row_to_version(result) if result else None

        except Exception as e:
            logger.error(f"Error getting version {version} for secret {secret_id}: {e}")
            raise

    # ============ Audit Operations ============

    async def create_audit_log(self, log: SecretAuditLog) -> SecretAuditLog:
        """Append an audit entry"""
        try:
            query = f'''
                INSERT INTO {self.schema}.{self.audit_table} (
                    id, secret_id, action, principal_id, principal_type, success,
                    error_message, ip_address, user_agent, metadata, timestamp
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                RETURNING *
            '''

            params = [
                log.id or str(uuid.uuid4()),
                log.secret_id,
                log.action.value,
                log.principal_id,
                log.principal_type.value,
                log.success,
                log.error_message,
                log.ip_address,
                log.user_agent,
                _to_json(log.metadata),
                log.timestamp or datetime.now(timezone.utc),
            ]

            async with self.db:
                results = await self.db.query(query, params=params)

            if results:
                return self._row_to_audit_log(results[0])
            raise RuntimeError(f"Failed to write audit log for secret {log.secret_id}")

        except Exception as e:
            logger.error(f"Error writing audit log for secret {log.secret_id}: {e}")
            raise

    async def find_audit_logs(self, secret_id: str, limit: Optional[int] = None) -> List[SecretAuditLog]:
        """Audit entries for a secret, newest first"""
        try:
            params: List[Any] = [secret_id]
            query = f'''
                SELECT * FROM {self.schema}.{self.audit_table}
                WHERE secret_id = $1
                ORDER BY timestamp DESC
            '''
            if limit:
                params.append(limit)
                query += " LIMIT $2"

            async with self.db:
                results = await self.db.query(query, params=params)

            return [self._row_to_audit_log(row) for row in results] if results else []

        except Exception as e:
            logger.error(f"Error getting audit logs for secret {secret_id}: {e}")
            raise

    # ============ Row Mapping ============

    def _row_to_secret(self, row: Dict[str, Any]) -> Secret:
        """Convert database row to Secret model"""
        rotation_config = _from_json(row.get("rotation_config"))
        return Secret(
            id=str(row["id"]),
            name=row["name"],
            path=row["path"],
            type=SecretType(row["type"]),
            description=row.get("description"),
            environment_id=str(row["environment_id"]),
            version=int(row.get("version") or 1),
            rotation_config=SecretRotationConfig(**rotation_config) if rotation_config else None,
            access_policies=_from_json(row.get("access_policies"), []),
            tags=_from_json(row.get("tags"), {}),
            metadata=SecretMetadata(**_from_json(row.get("metadata"), {})),
            created_by=row["created_by"],
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            last_accessed_at=row.get("last_accessed_at"),
            last_rotated_at=row.get("last_rotated_at"),
            deleted_at=row.get("deleted_at"),
        )

    def _row_to_version(self, row: Dict[str, Any]) -> SecretVersion:
        """Convert database row to SecretVersion model"""
        return SecretVersion(
            id=str(row["id"]),
            secret_id=str(row["secret_id"]),
            version=int(row["version"]),
            value_hash=row["value_hash"],
            metadata=SecretMetadata(**_from_json(row.get("metadata"), {})),
            created_by=row["created_by"],
            created_at=row.get("created_at"),
            expires_at=row.get("expires_at"),
            is_active=bool(row.get("is_active", True)),
        )

    def _row_to_audit_log(self, row: Dict[str, Any]) -> SecretAuditLog:
        """Convert database row to SecretAuditLog model"""
        return SecretAuditLog(
            id=str(row["id"]),
            secret_id=str(row["secret_id"]),
            action=SecretAction(row["action"]),
            principal_id=row["principal_id"],
            principal_type=PrincipalType(row.get("principal_type") or "system"),
            success=bool(row["success"]),
            error_message=row.get("error_message"),
            ip_address=row.get("ip_address"),
            user_agent=row.get("user_agent"),
            metadata=_from_json(row.get("metadata"), {}),
            timestamp=row.get("timestamp"),
        )
