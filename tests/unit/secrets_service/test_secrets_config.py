"""
Secrets Configuration Unit Tests

Environment-variable loading for the config dataclasses.
"""
import pytest

from core.config import (
    DatabaseConfig,
    LoggingConfig,
    SecretStoreConfig,
    SecretsConfig,
    SecretsServiceConfig,
)

pytestmark = pytest.mark.unit


class TestSecretStoreConfig:

    def test_token_auth_from_env(self, monkeypatch):
        monkeypatch.setenv("VAULT_ADDR", "https://vault.internal:8200")
        monkeypatch.setenv("VAULT_TOKEN", "s.token")
        monkeypatch.setenv("VAULT_NAMESPACE", "team-a")
        monkeypatch.setenv("VAULT_MAX_RETRIES", "5")
        monkeypatch.setenv("VAULT_SKIP_VERIFY", "true")

        config = SecretStoreConfig.from_env()

        assert config.endpoint == "https://vault.internal:8200"
        assert config.token == "s.token"
        assert config.namespace == "team-a"
        assert config.retry.max_retries == 5
        assert config.tls.insecure is True
        assert config.uses_approle is False

    def test_approle_when_no_token(self, monkeypatch):
        monkeypatch.delenv("VAULT_TOKEN", raising=False)
        monkeypatch.setenv("VAULT_ROLE_ID", "role")
        monkeypatch.setenv("VAULT_SECRET_ID", "secret")

        assert SecretStoreConfig.from_env().uses_approle is True

    def test_bad_numbers_fall_back_to_defaults(self, monkeypatch):
        monkeypatch.setenv("VAULT_TIMEOUT", "soon")
        monkeypatch.setenv("VAULT_RETRY_DELAY", "")

        config = SecretStoreConfig.from_env()

        assert config.timeout == 30.0
        assert config.retry.retry_delay == 1.0


class TestServiceConfig:

    def test_defaults(self):
        config = SecretsServiceConfig()

        assert config.operation_timeout == 30.0
        assert config.path_prefix == "environments"
        assert config.max_value_bytes == 1024 * 1024

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("SECRETS_OPERATION_TIMEOUT", "2.5")
        monkeypatch.setenv("SECRETS_ROTATION_ENABLED", "false")

        config = SecretsServiceConfig.from_env()

        assert config.operation_timeout == 2.5
        assert config.rotation_enabled is False


class TestSecretsConfig:

    def test_combines_sub_configs(self, monkeypatch):
        monkeypatch.setenv("ENV", "staging")
        monkeypatch.setenv("SECRETS_DB_SCHEMA", "vault_meta")

        config = SecretsConfig.from_env()

        assert config.environment == "staging"
        assert config.debug is False
        assert isinstance(config.logging, LoggingConfig)
        assert isinstance(config.database, DatabaseConfig)
        assert config.database.schema == "vault_meta"

    def test_database_dsn(self):
        config = DatabaseConfig(user="svc", password="pw", host="db", port=5433, database="secrets")

        assert config.dsn == "postgresql://svc:pw@db:5433/secrets"
