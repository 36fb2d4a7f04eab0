#!/usr/bin/env python3
"""Secret-store session configuration

Settings consumed by the Vault connector at connect() time: endpoint,
authentication (token or AppRole role_id/secret_id), namespace, KV mount,
TLS and retry policy.
"""
import os
from dataclasses import dataclass, field
from typing import Optional

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
class TLSConfig:
    """TLS options for the secret-store HTTP client"""
    ca_cert: Optional[str] = None
    client_cert: Optional[str] = None
    client_key: Optional[str] = None
    insecure: bool = False

    @classmethod
    def from_env(cls) -> 'TLSConfig':
        return cls(
            ca_cert=os.getenv("VAULT_CACERT"),
            client_cert=os.getenv("VAULT_CLIENT_CERT"),
            client_key=os.getenv("VAULT_CLIENT_KEY"),
            insecure=_bool(os.getenv("VAULT_SKIP_VERIFY", "false")),
        )


@dataclass
class RetryConfig:
    """Retry policy for transient secret-store failures"""
    max_retries: int = 3
    retry_delay: float = 1.0  # seconds, multiplied by the attempt number

    @classmethod
    def from_env(cls) -> 'RetryConfig':
        return cls(
            max_retries=_int(os.getenv("VAULT_MAX_RETRIES", "3"), 3),
            retry_delay=_float(os.getenv("VAULT_RETRY_DELAY", "1.0"), 1.0),
        )


@dataclass
class SecretStoreConfig:
    """HashiCorp Vault (KV v2) session configuration"""

    endpoint: str = "http://localhost:8200"
    token: Optional[str] = None
    role_id: Optional[str] = None
    secret_id: Optional[str] = None
    namespace: Optional[str] = None
    mount_path: str = "secret"
    timeout: float = 30.0
    tls: TLSConfig = field(default_factory=TLSConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)

    @property
    def uses_approle(self) -> bool:
        return not self.token and bool(self.role_id and self.secret_id)

    @classmethod
    def from_env(cls) -> 'SecretStoreConfig':
        """Load secret-store config from environment"""
        return cls(
            endpoint=os.getenv("VAULT_ADDR", "http://localhost:8200"),
            token=os.getenv("VAULT_TOKEN"),
            role_id=os.getenv("VAULT_ROLE_ID"),
            secret_id=os.getenv("VAULT_SECRET_ID"),
            namespace=os.getenv("VAULT_NAMESPACE"),
            mount_path=os.getenv("VAULT_MOUNT_PATH", "secret"),
            timeout=_float(os.getenv("VAULT_TIMEOUT", "30"), 30.0),
            tls=TLSConfig.from_env(),
            retry=RetryConfig.from_env(),
        )
