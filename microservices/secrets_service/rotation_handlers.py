"""
Built-in rotation handlers

Each handler takes the Secret being rotated and returns the new raw value.
Settings come from secret.rotation_config.settings.
"""

import secrets
import string
from typing import Dict

from .models import RotationType, Secret
from .protocols import RotationHandler

DEFAULT_PASSWORD_LENGTH = 32
DEFAULT_PASSWORD_CHARSET = string.ascii_letters + string.digits + "!@#$%^&*"
# No quotes, backslashes or whitespace: safe inside connection strings and shells
DATABASE_PASSWORD_CHARSET = string.ascii_letters + string.digits + "-_.~"
DEFAULT_API_KEY_PREFIX = "ak_"
API_KEY_BYTES = 32


def _settings(secret: Secret) -> Dict:
    return secret.rotation_config.settings if secret.rotation_config else {}


def _random_string(length: int, charset: str) -> str:
    if length < 1:
        raise ValueError("Password length must be positive")
    if not charset:
        raise ValueError("Password charset must not be empty")
    return "".join(secrets.choice(charset) for _ in range(length))


def generate_password(secret: Secret) -> str:
    settings = _settings(secret)
    length = int(settings.get("length", DEFAULT_PASSWORD_LENGTH))
    charset = settings.get("charset") or DEFAULT_PASSWORD_CHARSET
    return _random_string(length, charset)


def generate_database_password(secret: Secret) -> str:
    settings = _settings(secret)
    length = int(settings.get("length", DEFAULT_PASSWORD_LENGTH))
    charset = settings.get("charset") or DATABASE_PASSWORD_CHARSET
    return _random_string(length, charset)


def generate_api_key(secret: Secret) -> str:
    prefix = _settings(secret).get("prefix", DEFAULT_API_KEY_PREFIX)
    return f"{prefix}{secrets.token_hex(API_KEY_BYTES)}"


def default_rotation_handlers() -> Dict[str, RotationHandler]:
    """Handlers registered on every RotationService"""
    return {
        RotationType.PASSWORD.value: generate_password,
        RotationType.DATABASE_PASSWORD.value: generate_database_password,
        RotationType.API_KEY.value: generate_api_key,
    }
