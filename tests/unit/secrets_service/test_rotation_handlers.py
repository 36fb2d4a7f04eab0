"""
Rotation Handlers Unit Tests

Built-in value generators registered on every RotationService.
"""
import string

import pytest

from microservices.secrets_service.models import Secret, SecretRotationConfig, SecretType
from microservices.secrets_service.rotation_handlers import (
    DATABASE_PASSWORD_CHARSET,
    DEFAULT_PASSWORD_LENGTH,
    default_rotation_handlers,
    generate_api_key,
    generate_database_password,
    generate_password,
)

pytestmark = pytest.mark.unit


def secret_with(settings=None, rotation_type="password") -> Secret:
    return Secret(
        id="sec_1",
        name="svc-credential",
        path="environments/env-1/secrets/svc-credential",
        type=SecretType.PASSWORD,
        environment_id="env-1",
        created_by="user-1",
        rotation_config=SecretRotationConfig(enabled=True, type=rotation_type, settings=settings or {}),
    )


class TestGeneratePassword:

    def test_default_length(self):
        assert len(generate_password(secret_with())) == DEFAULT_PASSWORD_LENGTH

    def test_settings_control_length_and_charset(self):
        value = generate_password(secret_with({"length": 12, "charset": "xyz"}))

        assert len(value) == 12
        assert set(value) <= set("xyz")

    def test_values_differ_between_calls(self):
        secret = secret_with()

        assert generate_password(secret) != generate_password(secret)

    def test_non_positive_length_rejected(self):
        with pytest.raises(ValueError, match="positive"):
            generate_password(secret_with({"length": 0}))

    def test_works_without_rotation_config(self):
        secret = secret_with().model_copy(update={"rotation_config": None})

        assert len(generate_password(secret)) == DEFAULT_PASSWORD_LENGTH


class TestGenerateDatabasePassword:

    def test_uses_connection_string_safe_charset(self):
        value = generate_database_password(secret_with({"length": 200}))

        assert len(value) == 200
        assert set(value) <= set(DATABASE_PASSWORD_CHARSET)
        assert not set(value) & set("'\"\\ @:/")


class TestGenerateApiKey:

    def test_default_prefix_and_hex_body(self):
        value = generate_api_key(secret_with(rotation_type="api_key"))

        assert value.startswith("ak_")
        body = value[len("ak_"):]
        assert len(body) == 64
        assert set(body) <= set(string.hexdigits.lower())

    def test_custom_prefix(self):
        assert generate_api_key(secret_with({"prefix": "sk_live_"})).startswith("sk_live_")


def test_default_registry_keys():
    handlers = default_rotation_handlers()

    assert set(handlers) == {"password", "database_password", "api_key"}
    assert handlers["api_key"] is generate_api_key
