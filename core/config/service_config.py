#!/usr/bin/env python3
"""Secrets service behaviour configuration

Operation timeouts, path derivation and rotation scheduler switches.
"""
import os
from dataclasses import dataclass

def _bool(val: str) -> bool:
    return val.lower() == "true"

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default

def _float(val: str, default: float) -> float:
    try:
        return float(val) if val else default
    except ValueError:
        return default


@dataclass
class SecretsServiceConfig:
    """Secrets service settings"""

    # Default bound (seconds) for every secret-store and repository call
    operation_timeout: float = 30.0

    # Secret paths look like {path_prefix}/{environment_id}/secrets/{name}
    path_prefix: str = "environments"

    # Largest raw value accepted by set_secret_value
    max_value_bytes: int = 1024 * 1024

    # ===========================================
    # Rotation scheduler
    # ===========================================
    rotation_enabled: bool = True
    resume_schedules_on_start: bool = True

    @classmethod
    def from_env(cls) -> 'SecretsServiceConfig':
        """Load service configuration from environment variables"""
        return cls(
            operation_timeout=_float(os.getenv("SECRETS_OPERATION_TIMEOUT", "30"), 30.0),
            path_prefix=os.getenv("SECRETS_PATH_PREFIX", "environments"),
            max_value_bytes=_int(os.getenv("SECRETS_MAX_VALUE_BYTES", str(1024 * 1024)), 1024 * 1024),
            rotation_enabled=_bool(os.getenv("SECRETS_ROTATION_ENABLED", "true")),
            resume_schedules_on_start=_bool(os.getenv("SECRETS_RESUME_SCHEDULES", "true")),
        )
