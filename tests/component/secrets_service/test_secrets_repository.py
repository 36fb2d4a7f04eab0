"""
Secrets Repository Component Tests

SQL issued by SecretsRepository and row mapping, against MockAsyncPostgresClient.
"""
import json
from datetime import datetime, timezone

import asyncpg
import pytest

from core.config import DatabaseConfig
from microservices.secrets_service.models import (
    PrincipalType,
    SecretAction,
    SecretAuditLog,
    SecretFilter,
    SecretMetadata,
    SecretType,
)
from microservices.secrets_service.protocols import (
    SecretNotFoundError,
    SecretValidationError,
    SecretVersionConflictError,
)
from microservices.secrets_service.secrets_repository import SecretsRepository, schema_ddl
from tests.fixtures import make_rotation_config, make_secret, make_secret_version

pytestmark = [pytest.mark.component, pytest.mark.asyncio]

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def secret_row(**overrides):
    row = {
        "id": "5c7f3a8e-1111-4c4c-9a9a-000000000001",
        "name": "db-pass",
        "path": "environments/env-1/secrets/db-pass",
        "type": "password",
        "description": None,
        "environment_id": "env-1",
        "version": 3,
        "rotation_config": json.dumps({"enabled": True, "interval": 30, "type": "password"}),
        "access_policies": json.dumps(["pol-1"]),
        "tags": json.dumps({"team": "core"}),
        "metadata": json.dumps({"size": 6, "encoding": "utf8", "checksum": "abc"}),
        "created_by": "user-1",
        "created_at": NOW,
        "updated_at": NOW,
        "last_accessed_at": None,
        "last_rotated_at": None,
        "deleted_at": None,
    }
    row.update(overrides)
    return row


def version_row(**overrides):
    row = {
        "id": "5c7f3a8e-2222-4c4c-9a9a-000000000002",
        "secret_id": "5c7f3a8e-1111-4c4c-9a9a-000000000001",
        "version": 2,
        "value_hash": "f" * 64,
        "metadata": {"size": 4, "custom_fields": {"store_version": 7}},
        "created_by": "user-1",
        "created_at": NOW,
        "expires_at": None,
        "is_active": True,
    }
    row.update(overrides)
    return row


@pytest.fixture
def repository(mock_db) -> SecretsRepository:
    return SecretsRepository(db=mock_db, config=DatabaseConfig(schema="vault_meta"))


class TestSchema:
    """schema_ddl() / initialize()"""

    async def test_initialize_applies_schema(self, repository, mock_db):
        await repository.initialize()

        assert len(mock_db.scripts) == 1
        script = mock_db.scripts[0]
        assert "CREATE SCHEMA IF NOT EXISTS vault_meta" in script
        assert "vault_meta.secret_versions" in script
        assert "UNIQUE (secret_id, version)" in script

    async def test_initialize_can_skip_schema(self, repository, mock_db):
        await repository.initialize(apply_schema=False)

        assert mock_db.scripts == []

    async def test_ddl_is_idempotent(self):
        ddl = schema_ddl("secrets")

        assert "CREATE TABLE IF NOT EXISTS secrets.secrets" in ddl
        assert "CREATE TABLE IF NOT EXISTS secrets.secret_audit_logs" in ddl
        assert "CREATE TABLE secrets" not in ddl

    async def test_path_unique_only_among_live_secrets(self):
        ddl = schema_ddl("secrets")

        assert "path VARCHAR(1024) NOT NULL," in ddl
        assert "UNIQUE," not in ddl
        assert "CREATE UNIQUE INDEX IF NOT EXISTS idx_secrets_live_path" in ddl
        assert "ON secrets.secrets (path) WHERE deleted_at IS NULL" in ddl


class TestSecretQueries:
    """Secret CRUD"""

    async def test_create_serializes_json_columns(self, repository, mock_db):
        secret = make_secret(rotation_config=make_rotation_config(), tags={"team": "core"})
        mock_db.set_rows_response([secret_row(id=secret.id)])

        await repository.create(secret)

        method, query, params = mock_db.get_last_query()
        assert method == "query"
        assert "INSERT INTO vault_meta.secrets" in query
        assert params[0] == secret.id
        assert params[3] == "password"
        assert json.loads(params[7])["interval"] == 30
        assert json.loads(params[9]) == {"team": "core"}

    async def test_create_with_first_version_in_same_statement(self, repository, mock_db):
        secret = make_secret()
        first = make_secret_version(secret.id, version=1, store_version=1)
        mock_db.set_rows_response([secret_row(id=secret.id, version=1)])

        created = await repository.create(secret, first)

        method, query, params = mock_db.get_last_query()
        assert method == "query"
        assert "WITH created AS" in query
        assert "INSERT INTO vault_meta.secret_versions" in query
        assert "FROM created" in query
        assert params[16] == first.id
        assert params[17] == first.value_hash
        assert json.loads(params[18])["custom_fields"]["store_version"] == 1
        assert created.version == 1

    async def test_create_taken_path_raises_validation_error(self, repository, mock_db):
        mock_db.set_error(asyncpg.UniqueViolationError("duplicate key value violates unique constraint"))

        with pytest.raises(SecretValidationError, match="already exists"):
            await repository.create(make_secret())

    async def test_find_by_id_excludes_deleted(self, repository, mock_db):
        mock_db.set_row_response(secret_row())

        secret = await repository.find_by_id("some-id")

        mock_db.assert_query_executed("deleted_at IS NULL", method="query_row")
        assert secret.version == 3
        assert secret.type == SecretType.PASSWORD
        assert secret.rotation_config.enabled is True
        assert secret.access_policies == ["pol-1"]
        assert secret.metadata.checksum == "abc"

    async def test_find_by_path_missing_returns_none(self, repository, mock_db):
        mock_db.set_row_response(None)

        assert await repository.find_by_path("nowhere") is None

    async def test_update_builds_set_clause(self, repository, mock_db):
        mock_db.set_rows_response([secret_row(name="renamed")])

        updated = await repository.update(
            "some-id", {"name": "renamed", "metadata": SecretMetadata(size=1)}
        )

        _, query, params = mock_db.get_last_query()
        assert "name = $1" in query
        assert "metadata = $2" in query
        assert "updated_at = $3" in query
        assert "WHERE id = $4 AND deleted_at IS NULL" in query
        assert json.loads(params[1])["size"] == 1
        assert params[3] == "some-id"
        assert updated.name == "renamed"

    async def test_update_missing_row_raises_not_found(self, repository, mock_db):
        mock_db.set_rows_response([])

        with pytest.raises(SecretNotFoundError):
            await repository.update("gone", {"description": "x"})

    async def test_update_rejects_unknown_column(self, repository, mock_db):
        with pytest.raises(ValueError, match="path"):
            await repository.update("some-id", {"path": "elsewhere"})

        mock_db.assert_no_queries()

    async def test_delete_is_soft(self, repository, mock_db):
        await repository.delete("some-id")

        method, query, params = mock_db.get_last_query()
        assert method == "execute"
        assert "SET deleted_at = $1" in query
        assert "DELETE FROM" not in query
        assert params[1] == "some-id"

    async def test_delete_missing_raises_not_found(self, repository, mock_db):
        mock_db.set_execute_response("UPDATE 0")

        with pytest.raises(SecretNotFoundError):
            await repository.delete("gone")

    async def test_database_errors_propagate(self, repository, mock_db):
        mock_db.set_error(ConnectionError("pool exhausted"))

        with pytest.raises(ConnectionError):
            await repository.find_by_id("some-id")


class TestFilters:
    """find_many / search condition building"""

    async def test_find_many_without_filter(self, repository, mock_db):
        mock_db.set_rows_response([secret_row()])

        secrets = await repository.find_many()

        _, query, params = mock_db.get_last_query()
        assert "WHERE deleted_at IS NULL" in query
        assert "ORDER BY created_at DESC" in query
        assert params == []
        assert len(secrets) == 1

    async def test_find_many_with_full_filter(self, repository, mock_db):
        cutoff = datetime(2025, 6, 1, tzinfo=timezone.utc)

        await repository.find_many(SecretFilter(
            environment_id="env-1",
            name="db",
            type=SecretType.API_KEY,
            tags={"team": "core"},
            expiring_before=cutoff,
            limit=10,
            offset=20,
        ))

        _, query, params = mock_db.get_last_query()
        assert "environment_id = $1" in query
        assert "name ILIKE $2" in query
        assert "type = $3" in query
        assert "tags @> $4::jsonb" in query
        assert "make_interval(days => (rotation_config->>'interval')::int) <= $5" in query
        assert "LIMIT $6" in query and "OFFSET $7" in query
        assert params == ["env-1", "%db%", "api_key", json.dumps({"team": "core"}), cutoff, 10, 20]

    async def test_search_matches_three_columns(self, repository, mock_db):
        await repository.search("stripe", SecretFilter(environment_id="env-1"))

        _, query, params = mock_db.get_last_query()
        assert "(name ILIKE $2 OR description ILIKE $2 OR path ILIKE $2)" in query
        assert "ORDER BY name ASC" in query
        assert params == ["env-1", "%stripe%"]


class TestVersionAndAuditQueries:
    """Version and audit sub-repositories"""

    async def test_create_version_advances_secret_in_same_statement(self, repository, mock_db):
        version = make_secret_version("5c7f3a8e-1111-4c4c-9a9a-000000000001", version=2, store_version=7)
        mock_db.set_rows_response([version_row()])

        created = await repository.create_version(version, {"metadata": SecretMetadata(size=4)})

        method, query, params = mock_db.get_last_query()
        assert method == "query"
        assert "WITH advanced AS" in query
        assert "SET is_active = FALSE" in query
        assert "metadata = $9" in query
        assert "version = $10" in query
        assert "updated_at = $11" in query
        assert "WHERE id = $2 AND deleted_at IS NULL AND version = $12" in query
        assert "FROM advanced" in query
        assert params[2] == 2
        assert json.loads(params[8])["size"] == 4
        assert params[9] == 2
        assert params[11] == 1
        assert created.is_active is True
        assert created.store_version == 7

    async def test_create_version_behind_raises_conflict(self, repository, mock_db):
        version = make_secret_version("5c7f3a8e-1111-4c4c-9a9a-000000000001", version=2)
        mock_db.set_rows_response([])
        mock_db.set_row_response({"version": 5})

        with pytest.raises(SecretVersionConflictError, match="at version 5, expected 1"):
            await repository.create_version(version)

        method, query, params = mock_db.get_last_query()
        assert method == "query_row"
        assert params == ["5c7f3a8e-1111-4c4c-9a9a-000000000001"]

    async def test_create_version_for_deleted_secret_raises_not_found(self, repository, mock_db):
        version = make_secret_version("5c7f3a8e-1111-4c4c-9a9a-000000000001", version=2)
        mock_db.set_rows_response([])
        mock_db.set_row_response(None)

        with pytest.raises(SecretNotFoundError):
            await repository.create_version(version)

    async def test_create_version_rejects_unknown_secret_column(self, repository, mock_db):
        version = make_secret_version("5c7f3a8e-1111-4c4c-9a9a-000000000001", version=2)

        with pytest.raises(ValueError, match="path"):
            await repository.create_version(version, {"path": "elsewhere"})

        mock_db.assert_no_queries()

    async def test_find_versions_newest_first(self, repository, mock_db):
        mock_db.set_rows_response([version_row(version=2), version_row(version=1, is_active=False)])

        versions = await repository.find_versions("5c7f3a8e-1111-4c4c-9a9a-000000000001")

        mock_db.assert_query_executed("ORDER BY version DESC")
        assert [v.version for v in versions] == [2, 1]

    async def test_create_audit_log(self, repository, mock_db):
        log = SecretAuditLog(
            secret_id="5c7f3a8e-1111-4c4c-9a9a-000000000001",
            action=SecretAction.READ,
            principal_id="user-1",
            principal_type=PrincipalType.USER,
            success=False,
            error_message="backend unavailable",
            metadata={"version": 3},
            timestamp=NOW,
        )
        mock_db.set_rows_response([{
            "id": "5c7f3a8e-3333-4c4c-9a9a-000000000003",
            "secret_id": log.secret_id,
            "action": "read",
            "principal_id": "user-1",
            "principal_type": "user",
            "success": False,
            "error_message": "backend unavailable",
            "ip_address": None,
            "user_agent": None,
            "metadata": json.dumps({"version": 3}),
            "timestamp": NOW,
        }])

        stored = await repository.create_audit_log(log)

        _, query, params = mock_db.get_last_query()
        assert "INSERT INTO vault_meta.secret_audit_logs" in query
        assert params[2] == "read"
        assert params[5] is False
        assert stored.error_message == "backend unavailable"
        assert stored.metadata == {"version": 3}

    async def test_find_audit_logs_with_limit(self, repository, mock_db):
        await repository.find_audit_logs("5c7f3a8e-1111-4c4c-9a9a-000000000001", limit=5)

        _, query, params = mock_db.get_last_query()
        assert "ORDER BY timestamp DESC" in query
        assert "LIMIT $2" in query
        assert params[1] == 5
