"""
Secrets Service Protocols (Interfaces)

These interfaces define contracts for dependency injection.
NO import-time I/O dependencies - safe to import anywhere.
"""
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union, runtime_checkable

# Import only models (no I/O dependencies)
from .models import (
    Secret,
    SecretAccessPolicy,
    SecretAuditLog,
    SecretFilter,
    SecretVersion,
)


# ============ Errors ============

class SecretsServiceError(Exception):
    """Base exception for secrets service"""
    pass


class SecretValidationError(SecretsServiceError):
    """Raised when input is missing required fields or is malformed"""
    pass


class SecretNotFoundError(SecretsServiceError):
    """Raised when a secret (or its value) does not exist"""
    pass


class SecretVersionNotFoundError(SecretNotFoundError):
    """Raised when a version is not found for a secret"""

    def __init__(self, secret_id: str, version: int, detail: Optional[str] = None):
        self.secret_id = secret_id
        self.version = version
        super().__init__(detail or f"Version {version} not found for secret {secret_id}")


class SecretVersionConflictError(SecretsServiceError):
    """Raised when a secret moved past the version a writer started from"""

    def __init__(self, secret_id: str, expected: int, actual: int):
        self.secret_id = secret_id
        self.expected = expected
        self.actual = actual
        super().__init__(f"Secret {secret_id} is at version {actual}, expected {expected}")


class SecretOperationTimeoutError(SecretsServiceError, TimeoutError):
    """Raised when a secret-store or repository call exceeds its timeout"""
    pass


class AccessControlNotConfiguredError(SecretsServiceError):
    """Raised when an access operation is requested without a collaborator"""
    pass


class SecretStoreError(SecretsServiceError):
    """Base exception for backing secret-store failures"""

    def __init__(self, message: str, path: Optional[str] = None, cause: Optional[BaseException] = None):
        self.path = path
        self.cause = cause
        super().__init__(message)


class SecretStoreConnectionError(SecretStoreError):
    """Backend unreachable, authentication failed or liveness check failed"""
    pass


class SecretStoreNotInitializedError(SecretStoreError):
    """Connector used before connect() succeeded"""
    pass


class SecretReadError(SecretStoreError):
    """Backend read failed"""
    pass


class SecretWriteError(SecretStoreError):
    """Backend write failed"""
    pass


class SecretDeleteError(SecretStoreError):
    """Backend delete failed"""
    pass


class RotationError(SecretsServiceError):
    """Base exception for rotation failures"""
    pass


class RotationDisabledError(RotationError):
    """Raised when rotating a secret whose rotation config is disabled"""
    pass


class NoRotationHandlerError(RotationError):
    """Raised when no handler is registered for a rotation type"""
    pass


class RotationFailedError(RotationError):
    """Raised when the handler or the value write fails during rotation"""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


# A rotation handler synthesizes a new raw value for a secret.
# Plain functions and coroutine functions are both accepted.
RotationHandler = Callable[[Secret], Union[str, Awaitable[str]]]


# ============ Protocols ============

@runtime_checkable
class SecretStoreConnectorProtocol(Protocol):
    """
    Interface for the backing secret store.

    Moves raw secret bytes only; no metadata bookkeeping, no audit.
    """

    async def connect(self) -> None:
        """Authenticate and verify liveness"""
        ...

    async def disconnect(self) -> None:
        """Release the session"""
        ...

    def is_connected(self) -> bool:
        """Whether connect() succeeded"""
        ...

    async def write_secret(
        self,
        path: str,
        data: Dict[str, Any],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Write the live value at path; returns backend write metadata (incl. version)"""
        ...

    async def read_secret(
        self, path: str, version: Optional[int] = None
    ) -> Optional[Dict[str, Any]]:
        """Return {"data": ..., "metadata": ...} or None when absent"""
        ...

    async def delete_secret(self, path: str) -> None:
        """Delete the live value at path"""
        ...


@runtime_checkable
class SecretsRepositoryProtocol(Protocol):
    """
    Interface for Secrets Repository.

    Persists metadata, version records and audit logs; never values.
    """

    # ============ Secret Operations ============

    async def create(self, secret: Secret, initial_version: Optional[SecretVersion] = None) -> Secret:
        """Insert a secret record, with its first version when given; a taken path is a SecretValidationError"""
        ...

    async def find_by_id(self, secret_id: str) -> Optional[Secret]:
        """Find a non-deleted secret by id"""
        ...

    async def find_by_path(self, path: str) -> Optional[Secret]:
        """Find a non-deleted secret by storage path"""
        ...

    async def update(self, secret_id: str, updates: Dict[str, Any]) -> Secret:
        """Partial update of a non-deleted secret"""
        ...

    async def delete(self, secret_id: str) -> None:
        """Soft delete"""
        ...

    async def find_many(self, filter: Optional[SecretFilter] = None) -> List[Secret]:
        """List non-deleted secrets matching filter"""
        ...

    async def search(self, query: str, filter: Optional[SecretFilter] = None) -> List[Secret]:
        """Substring search across name/description/path"""
        ...

    # ============ Version Operations ============

    async def create_version(
        self, version: SecretVersion, secret_updates: Optional[Dict[str, Any]] = None
    ) -> SecretVersion:
        """Insert the next version, make it the only active one and advance Secret.version, atomically"""
        ...

    async def find_versions(self, secret_id: str) -> List[SecretVersion]:
        """All versions, newest first"""
        ...

    async def find_version(self, secret_id: str, version: int) -> Optional[SecretVersion]:
        """One version"""
        ...

    # ============ Audit Operations ============

    async def create_audit_log(self, log: SecretAuditLog) -> SecretAuditLog:
        """Append an audit entry"""
        ...

    async def find_audit_logs(self, secret_id: str, limit: Optional[int] = None) -> List[SecretAuditLog]:
        """Audit entries, newest first"""
        ...


@runtime_checkable
class AccessControlProtocol(Protocol):
    """Access-control collaborator - consumed, not implemented here"""

    async def create_policy(self, policy: SecretAccessPolicy) -> None:
        ...

    async def revoke_access(self, secret_id: str, principal_id: str) -> None:
        ...

    async def check_permission(self, secret_id: str, principal_id: str, permission: str) -> bool:
        ...


__all__ = [
    "SecretsServiceError",
    "SecretValidationError",
    "SecretNotFoundError",
    "SecretVersionNotFoundError",
    "SecretOperationTimeoutError",
    "AccessControlNotConfiguredError",
    "SecretStoreError",
    "SecretStoreConnectionError",
    "SecretStoreNotInitializedError",
    "SecretReadError",
    "SecretWriteError",
    "SecretDeleteError",
    "RotationError",
    "RotationDisabledError",
    "NoRotationHandlerError",
    "RotationFailedError",
    "RotationHandler",
    "SecretStoreConnectorProtocol",
    "SecretsRepositoryProtocol",
    "AccessControlProtocol",
]
