"""
Secrets Service Business Logic

Orchestrates the secret lifecycle: metadata lives in the repository, values
live in the secret store, and every operation on an existing secret leaves
exactly one audit-log entry, failed attempts included.
"""

import asyncio
import base64
import binascii
import hashlib
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, List, Optional, Tuple, TypeVar, Union

from core.config import SecretsServiceConfig

from . import transfer
from .locks import KeyedLock
from .models import (
    AuditContext,
    PrincipalType,
    Secret,
    SecretAccessPolicy,
    SecretAction,
    SecretAuditLog,
    SecretCreateRequest,
    SecretEncoding,
    SecretExportOptions,
    SecretFilter,
    SecretImportOptions,
    SecretImportResult,
    SecretMetadata,
    SecretTransferEntry,
    SecretUpdate,
    SecretVersion,
)
from .protocols import (
    AccessControlNotConfiguredError,
    AccessControlProtocol,
    SecretNotFoundError,
    SecretOperationTimeoutError,
    SecretsRepositoryProtocol,
    SecretStoreConnectorProtocol,
    SecretValidationError,
    SecretVersionNotFoundError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PATH_UNSAFE = re.compile(r"[^a-zA-Z0-9\-_]")

# Key under which the raw value is stored at a secret's path
VALUE_KEY = "value"


def compute_checksum(raw: bytes) -> str:
    """SHA-256 hex digest of the raw value"""
    return hashlib.sha256(raw).hexdigest()


def encode_value(value: Union[str, bytes]) -> Tuple[bytes, str, SecretEncoding]:
    """
    Normalize a caller value.

    Returns:
        (raw bytes, text stored in the secret store, encoding of that text)
    """
    if isinstance(value, str):
        return value.encode("utf-8"), value, SecretEncoding.UTF8
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
        try:
            return raw, raw.decode("utf-8"), SecretEncoding.UTF8
        except UnicodeDecodeError:
            return raw, base64.b64encode(raw).decode("ascii"), SecretEncoding.BASE64
    raise SecretValidationError(f"Secret value must be str or bytes, not {type(value).__name__}")


def decode_stored_value(stored: str, encoding: SecretEncoding) -> Union[str, bytes]:
    """Inverse of encode_value for a stored text value"""
    if encoding == SecretEncoding.BASE64:
        try:
            return base64.b64decode(stored, validate=True)
        except (binascii.Error, ValueError) as e:
            raise SecretValidationError(f"Stored value is not valid base64: {e}") from e
    return stored


class SecretsService:
    """Secrets service core business logic"""

    def __init__(
        self,
        repository: SecretsRepositoryProtocol,
        connector: SecretStoreConnectorProtocol,
        access_control: Optional[AccessControlProtocol] = None,
        config: Optional[SecretsServiceConfig] = None,
    ):
        """
        Initialize secrets service with injected dependencies

        Args:
            repository: Metadata, version and audit-log persistence
            connector: Backing secret store for the values themselves
            access_control: Optional access-control collaborator
            config: Service settings (timeouts, path prefix, size limit)
        """
        self.repository = repository
        self.connector = connector
        self.access_control = access_control
        self.config = config or SecretsServiceConfig()
        self._write_locks = KeyedLock()

        logger.info("SecretsService initialized with dependency injection")

    # ====================
    # Helpers
    # ====================

    async def _bounded(self, awaitable: Awaitable[T], timeout: Optional[float], operation: str) -> T:
        """Await a connector/repository call under the operation timeout"""
        limit = timeout if timeout is not None else self.config.operation_timeout
        try:
            return await asyncio.wait_for(awaitable, timeout=limit)
        except SecretOperationTimeoutError:
            raise
        except asyncio.TimeoutError as e:
            raise SecretOperationTimeoutError(f"{operation} timed out after {limit}s") from e

    async def record_audit(
        self,
        secret_id: str,
        action: SecretAction,
        context: AuditContext,
        success: bool = True,
        error: Optional[BaseException] = None,
        metadata: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> SecretAuditLog:
        """Append one audit entry; a failed audit write is logged and re-raised"""
        entry = SecretAuditLog(
            id=str(uuid.uuid4()),
            secret_id=secret_id,
            action=action,
            principal_id=context.principal_id,
            principal_type=context.principal_type,
            success=success,
            error_message=(str(error) or type(error).__name__) if error is not None else None,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            metadata=metadata or {},
            timestamp=datetime.now(timezone.utc),
        )
        try:
            return await self._bounded(
                self.repository.create_audit_log(entry), timeout, f"audit {action.value}"
            )
        except Exception as e:
            logger.error(
                f"Failed to write {action.value} audit entry for secret {secret_id}: {e}",
                exc_info=True,
            )
            raise

    async def _load_for(
        self,
        secret_id: str,
        action: SecretAction,
        context: AuditContext,
        timeout: Optional[float],
        audit_metadata: Optional[Dict[str, Any]] = None,
    ) -> Secret:
        """
        get_secret for an audited operation.

        A failed lookup (timeout, backend error) is audited as a failed
        `action`; a missing secret is not, there is no record to attach it to.
        """
        try:
            return await self.get_secret(secret_id, timeout)
        except SecretNotFoundError:
            raise
        except Exception as e:
            logger.error(f"Failed to load secret {secret_id} for {action.value}: {e}", exc_info=True)
            await self.record_audit(
                secret_id, action, context, success=False, error=e, metadata=audit_metadata, timeout=timeout
            )
            raise

    def generate_secret_path(self, environment_id: str, name: str) -> str:
        """Deterministic storage path for a secret"""
        sanitized = _PATH_UNSAFE.sub("_", name)
        return f"{self.config.path_prefix}/{environment_id}/secrets/{sanitized}"

    def _build_metadata(
        self,
        raw: bytes,
        encoding: SecretEncoding,
        content_type: Optional[str],
        custom_fields: Optional[Dict[str, Any]] = None,
    ) -> SecretMetadata:
        return SecretMetadata(
            size=len(raw),
            encoding=encoding,
            checksum=compute_checksum(raw),
            content_type=content_type,
            custom_fields=dict(custom_fields or {}),
        )

    def _check_size(self, raw: bytes) -> None:
        if len(raw) > self.config.max_value_bytes:
            raise SecretValidationError(
                f"Secret value is {len(raw)} bytes, limit is {self.config.max_value_bytes}"
            )

    async def _write_value(
        self,
        secret: Secret,
        value: Union[str, bytes],
        created_by: str,
        timeout: Optional[float],
        version_fields: Optional[Dict[str, Any]] = None,
        secret_updates: Optional[Dict[str, Any]] = None,
    ) -> SecretVersion:
        """
        Write a new live value and record it as version secret.version + 1.

        Caller must hold the secret's write lock.
        """
        raw, stored, encoding = encode_value(value)
        self._check_size(raw)
        new_version = secret.version + 1
        checksum = compute_checksum(raw)

        write_metadata = await self._bounded(
            self.connector.write_secret(
                secret.path,
                {VALUE_KEY: stored},
                {"checksum": checksum, "version": new_version, "encoding": encoding.value},
            ),
            timeout,
            f"write secret {secret.id}",
        )

        custom_fields = dict(version_fields or {})
        store_version = (write_metadata or {}).get("version")
        if store_version is not None:
            custom_fields["store_version"] = int(store_version)

        now = datetime.now(timezone.utc)
        version = SecretVersion(
            id=str(uuid.uuid4()),
            secret_id=secret.id,
            version=new_version,
            value_hash=checksum,
            metadata=self._build_metadata(raw, encoding, secret.metadata.content_type, custom_fields),
            created_by=created_by,
            created_at=now,
            is_active=True,
        )
        secret_fields: Dict[str, Any] = {
            "metadata": self._build_metadata(
                raw, encoding, secret.metadata.content_type, secret.metadata.custom_fields
            ),
        }
        secret_fields.update(secret_updates or {})
        # Version record, active flag and Secret.version move together or not at all
        created = await self._bounded(
            self.repository.create_version(version, secret_fields),
            timeout,
            f"create version for {secret.id}",
        )

        logger.info(f"Secret {secret.id} now at version {new_version} (hash {checksum[:12]})")
        return created

    # ====================
    # Secret Lifecycle
    # ====================

    async def create_secret(
        self,
        request: SecretCreateRequest,
        context: Optional[AuditContext] = None,
        timeout: Optional[float] = None,
    ) -> Secret:
        """
        Create a secret at version 1.

        The initial value, when supplied, is written to the secret store
        before any metadata exists so a failed write leaves nothing behind.

        Raises:
            SecretValidationError: Required fields missing, bad name, or path taken
        """
        missing = request.missing_fields()
        if missing:
            raise SecretValidationError(f"Missing required fields: {', '.join(missing)}")
        if not request.has_valid_name:
            raise SecretValidationError(f"Invalid secret name: {request.name!r}")

        context = context or AuditContext(
            principal_id=request.created_by, principal_type=PrincipalType.USER
        )
        path = self.generate_secret_path(request.environment_id, request.name)

        # Creators of the same path are serialized; the live-path unique index covers other processes
        async with self._write_locks.hold(path):
            created = await self._insert_secret(request, path, timeout)

        await self.record_audit(
            created.id,
            SecretAction.CREATE,
            context,
            metadata={"path": path, "has_initial_value": request.value is not None},
            timeout=timeout,
        )
        logger.info(f"Created secret {created.id} ({request.type.value}) at {path}")
        return created

    async def _insert_secret(
        self, request: SecretCreateRequest, path: str, timeout: Optional[float]
    ) -> Secret:
        """Write the initial value, then the secret and its version 1 in one repository call"""
        existing = await self._bounded(self.repository.find_by_path(path), timeout, "find secret by path")
        if existing:
            raise SecretValidationError(f"Secret already exists at path {path}")

        secret_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)

        if request.value is not None:
            raw, stored, encoding = encode_value(request.value)
            self._check_size(raw)
            write_metadata = await self._bounded(
                self.connector.write_secret(
                    path,
                    {VALUE_KEY: stored},
                    {"checksum": compute_checksum(raw), "version": 1, "encoding": encoding.value},
                ),
                timeout,
                f"write initial value for {path}",
            )
            store_version = (write_metadata or {}).get("version")
        else:
            raw, encoding, store_version = b"", SecretEncoding.UTF8, None

        secret = Secret(
            id=secret_id,
            name=request.name,
            path=path,
            type=request.type,
            description=request.description,
            environment_id=request.environment_id,
            version=1,
            rotation_config=request.rotation_config,
            access_policies=list(request.access_policies),
            tags=dict(request.tags),
            metadata=(
                self._build_metadata(raw, encoding, request.content_type)
                if request.value is not None
                else SecretMetadata(content_type=request.content_type)
            ),
            created_by=request.created_by,
            created_at=now,
            updated_at=now,
        )

        version_fields = {"store_version": int(store_version)} if store_version is not None else {}
        initial_version = SecretVersion(
            id=str(uuid.uuid4()),
            secret_id=secret_id,
            version=1,
            value_hash=compute_checksum(raw),
            metadata=self._build_metadata(raw, encoding, request.content_type, version_fields),
            created_by=request.created_by,
            created_at=now,
            is_active=True,
        )
        try:
            return await self._bounded(
                self.repository.create(secret, initial_version), timeout, "create secret"
            )
        except SecretValidationError:
            # Path taken by a concurrent creator; the value at the path is theirs now
            raise
        except Exception:
            if request.value is not None:
                await self._discard_value(path)
            raise

    async def _discard_value(self, path: str) -> None:
        """Best-effort removal of a value whose metadata could not be created"""
        try:
            await self._bounded(self.connector.delete_secret(path), None, f"discard value at {path}")
        except Exception as e:
            logger.warning(f"Could not remove orphaned value at {path}: {e}")

    async def get_secret(self, secret_id: str, timeout: Optional[float] = None) -> Secret:
        """Metadata for a non-deleted secret"""
        secret = await self._bounded(self.repository.find_by_id(secret_id), timeout, "find secret")
        if secret is None:
            raise SecretNotFoundError(f"Secret not found: {secret_id}")
        return secret

    async def get_secret_by_path(self, path: str, timeout: Optional[float] = None) -> Secret:
        secret = await self._bounded(self.repository.find_by_path(path), timeout, "find secret by path")
        if secret is None:
            raise SecretNotFoundError(f"Secret not found at path: {path}")
        return secret

    async def update_secret(
        self,
        secret_id: str,
        update: SecretUpdate,
        context: Optional[AuditContext] = None,
        timeout: Optional[float] = None,
    ) -> Secret:
        """Metadata-only update; the path and version are left alone"""
        context = context or AuditContext()
        secret = await self._load_for(secret_id, SecretAction.UPDATE, context, timeout)

        updates: Dict[str, Any] = {}
        if update.name is not None:
            updates["name"] = update.name
        if update.description is not None:
            updates["description"] = update.description
        if update.rotation_config is not None:
            updates["rotation_config"] = update.rotation_config
        if update.access_policies is not None:
            updates["access_policies"] = update.access_policies
        if update.tags is not None:
            updates["tags"] = update.tags
        if update.custom_metadata is not None:
            updates["metadata"] = secret.metadata.model_copy(
                update={"custom_fields": {**secret.metadata.custom_fields, **update.custom_metadata}}
            )

        try:
            updated = await self._bounded(
                self.repository.update(secret_id, updates), timeout, f"update secret {secret_id}"
            )
        except Exception as e:
            await self.record_audit(secret_id, SecretAction.UPDATE, context, success=False, error=e, timeout=timeout)
            raise

        await self.record_audit(
            secret_id, SecretAction.UPDATE, context, metadata={"fields": sorted(updates)}, timeout=timeout
        )
        return updated

    async def get_secret_value(
        self,
        secret_id: str,
        context: Optional[AuditContext] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Read the live value.

        Base64-encoded values (binary secrets) are returned as stored; the
        secret's metadata.encoding says which it is.

        Raises:
            SecretNotFoundError: Secret or its value is absent
            SecretOperationTimeoutError: Store or repository call timed out
            SecretReadError: Store read failed
        """
        context = context or AuditContext()
        secret = await self._load_for(secret_id, SecretAction.READ, context, timeout)

        try:
            result = await self._bounded(
                self.connector.read_secret(secret.path), timeout, f"read secret {secret_id}"
            )
            if result is None or VALUE_KEY not in (result.get("data") or {}):
                raise SecretNotFoundError(f"Secret value not found at path {secret.path}")
            value = result["data"][VALUE_KEY]

            await self._bounded(
                self.repository.update(secret_id, {"last_accessed_at": datetime.now(timezone.utc)}),
                timeout,
                f"touch secret {secret_id}",
            )
        except Exception as e:
            logger.error(f"Failed to read secret {secret_id}: {e}", exc_info=True)
            await self.record_audit(secret_id, SecretAction.READ, context, success=False, error=e, timeout=timeout)
            raise

        await self.record_audit(
            secret_id, SecretAction.READ, context, metadata={"version": secret.version}, timeout=timeout
        )
        return value

    async def set_secret_value(
        self,
        secret_id: str,
        value: Union[str, bytes],
        context: Optional[AuditContext] = None,
        timeout: Optional[float] = None,
        action: SecretAction = SecretAction.UPDATE,
    ) -> SecretVersion:
        """
        Write a new live value, creating version current + 1.

        This is the only path by which Secret.version advances. Writers of
        the same secret are serialized.
        """
        context = context or AuditContext()

        async with self._write_locks.hold(secret_id):
            secret = await self._load_for(secret_id, action, context, timeout)
            secret_updates = (
                {"last_rotated_at": datetime.now(timezone.utc)} if action == SecretAction.ROTATE else None
            )
            try:
                version = await self._write_value(
                    secret, value, context.principal_id, timeout, secret_updates=secret_updates
                )
            except Exception as e:
                logger.error(f"Failed to write value for secret {secret_id}: {e}", exc_info=True)
                await self.record_audit(secret_id, action, context, success=False, error=e, timeout=timeout)
                raise

        await self.record_audit(
            secret_id,
            action,
            context,
            metadata={"version": version.version, "previous_version": secret.version},
            timeout=timeout,
        )
        return version

    async def rollback_secret(
        self,
        secret_id: str,
        target_version: int,
        reason: Optional[str] = None,
        context: Optional[AuditContext] = None,
        timeout: Optional[float] = None,
    ) -> SecretVersion:
        """
        Re-publish a historical value as a new version.

        The target version record is never revived: the result always has
        version current + 1, even when rolling back to version 1.

        Raises:
            SecretVersionNotFoundError: Target version (or its stored value) is absent
        """
        context = context or AuditContext()
        audit_metadata: Dict[str, Any] = {"rolled_back_from": target_version, "reason": reason}

        async with self._write_locks.hold(secret_id):
            secret = await self._load_for(secret_id, SecretAction.UPDATE, context, timeout, audit_metadata)
            try:
                target = await self._bounded(
                    self.repository.find_version(secret_id, target_version), timeout, "find version"
                )
                if target is None:
                    raise SecretVersionNotFoundError(secret_id, target_version)
                if target.store_version is None:
                    raise SecretVersionNotFoundError(
                        secret_id,
                        target_version,
                        f"Version {target_version} of secret {secret_id} has no stored value",
                    )

                historical = await self._bounded(
                    self.connector.read_secret(secret.path, target.store_version),
                    timeout,
                    f"read version {target_version} of {secret_id}",
                )
                if historical is None or VALUE_KEY not in (historical.get("data") or {}):
                    raise SecretVersionNotFoundError(
                        secret_id,
                        target_version,
                        f"Value for version {target_version} of secret {secret_id} is no longer in the store",
                    )

                value = decode_stored_value(historical["data"][VALUE_KEY], target.metadata.encoding)
                version = await self._write_value(
                    secret,
                    value,
                    context.principal_id,
                    timeout,
                    version_fields={"rolled_back_from": target_version},
                )
            except Exception as e:
                logger.error(
                    f"Rollback of secret {secret_id} to version {target_version} failed: {e}",
                    exc_info=True,
                )
                await self.record_audit(
                    secret_id, SecretAction.UPDATE, context, success=False, error=e,
                    metadata=audit_metadata, timeout=timeout,
                )
                raise

        audit_metadata["version"] = version.version
        await self.record_audit(secret_id, SecretAction.UPDATE, context, metadata=audit_metadata, timeout=timeout)
        logger.info(
            f"Rolled back secret {secret_id} to the value of version {target_version} "
            f"as version {version.version}"
        )
        return version

    async def delete_secret(
        self,
        secret_id: str,
        context: Optional[AuditContext] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """
        Soft-delete the metadata after a best-effort delete of the live value.

        A secret-store failure is logged and recorded in the audit entry but
        does not stop the metadata delete.
        """
        context = context or AuditContext()
        secret = await self._load_for(secret_id, SecretAction.DELETE, context, timeout)

        store_error: Optional[str] = None
        try:
            await self._bounded(self.connector.delete_secret(secret.path), timeout, f"delete value {secret_id}")
        except Exception as e:
            store_error = str(e) or type(e).__name__
            logger.warning(f"Failed to delete value of secret {secret_id} at {secret.path}: {e}")

        try:
            await self._bounded(self.repository.delete(secret_id), timeout, f"delete secret {secret_id}")
        except Exception as e:
            logger.error(f"Failed to delete secret {secret_id}: {e}", exc_info=True)
            await self.record_audit(secret_id, SecretAction.DELETE, context, success=False, error=e, timeout=timeout)
            raise

        await self.record_audit(
            secret_id,
            SecretAction.DELETE,
            context,
            metadata={"path": secret.path, "store_deleted": store_error is None, "store_error": store_error},
            timeout=timeout,
        )
        logger.info(f"Deleted secret {secret_id}")

    # ====================
    # Queries
    # ====================

    async def list_secrets(
        self, filter: Optional[SecretFilter] = None, timeout: Optional[float] = None
    ) -> List[Secret]:
        return await self._bounded(self.repository.find_many(filter), timeout, "list secrets")

    async def search_secrets(
        self, query: str, filter: Optional[SecretFilter] = None, timeout: Optional[float] = None
    ) -> List[Secret]:
        return await self._bounded(self.repository.search(query, filter), timeout, "search secrets")

    async def get_secret_versions(self, secret_id: str, timeout: Optional[float] = None) -> List[SecretVersion]:
        """Version history, newest first"""
        await self.get_secret(secret_id, timeout)
        return await self._bounded(self.repository.find_versions(secret_id), timeout, "find versions")

    async def get_secret_version(
        self, secret_id: str, version: int, timeout: Optional[float] = None
    ) -> SecretVersion:
        record = await self._bounded(self.repository.find_version(secret_id, version), timeout, "find version")
        if record is None:
            raise SecretVersionNotFoundError(secret_id, version)
        return record

    async def get_audit_logs(
        self, secret_id: str, limit: Optional[int] = None, timeout: Optional[float] = None
    ) -> List[SecretAuditLog]:
        """Audit trail, newest first; available for deleted secrets too"""
        return await self._bounded(self.repository.find_audit_logs(secret_id, limit), timeout, "find audit logs")

    # ====================
    # Access Control
    # ====================

    def _require_access_control(self) -> AccessControlProtocol:
        if self.access_control is None:
            raise AccessControlNotConfiguredError("No access-control collaborator configured")
        return self.access_control

    async def grant_access(
        self,
        secret_id: str,
        policy: SecretAccessPolicy,
        context: Optional[AuditContext] = None,
        timeout: Optional[float] = None,
    ) -> Secret:
        """Register a policy with the collaborator and reference it from the secret"""
        access_control = self._require_access_control()
        context = context or AuditContext()
        if policy.secret_id != secret_id:
            raise SecretValidationError(
                f"Policy {policy.id} targets secret {policy.secret_id}, not {secret_id}"
            )
        audit_metadata = {
            "policy_id": policy.id,
            "principal_id": policy.principal_id,
            "permissions": [p.value for p in policy.permissions],
        }
        secret = await self._load_for(secret_id, SecretAction.GRANT_ACCESS, context, timeout, audit_metadata)

        try:
            await self._bounded(access_control.create_policy(policy), timeout, "create access policy")
            updated = secret
            if policy.id not in secret.access_policies:
                updated = await self._bounded(
                    self.repository.update(
                        secret_id, {"access_policies": [*secret.access_policies, policy.id]}
                    ),
                    timeout,
                    f"update secret {secret_id}",
                )
        except Exception as e:
            await self.record_audit(
                secret_id, SecretAction.GRANT_ACCESS, context, success=False, error=e,
                metadata=audit_metadata, timeout=timeout,
            )
            raise

        await self.record_audit(secret_id, SecretAction.GRANT_ACCESS, context, metadata=audit_metadata, timeout=timeout)
        return updated

    async def revoke_access(
        self,
        secret_id: str,
        principal_id: str,
        context: Optional[AuditContext] = None,
        timeout: Optional[float] = None,
    ) -> None:
        access_control = self._require_access_control()
        context = context or AuditContext()
        await self._load_for(
            secret_id, SecretAction.REVOKE_ACCESS, context, timeout, {"principal_id": principal_id}
        )

        try:
            await self._bounded(
                access_control.revoke_access(secret_id, principal_id), timeout, "revoke access"
            )
        except Exception as e:
            await self.record_audit(
                secret_id, SecretAction.REVOKE_ACCESS, context, success=False, error=e,
                metadata={"principal_id": principal_id}, timeout=timeout,
            )
            raise

        await self.record_audit(
            secret_id, SecretAction.REVOKE_ACCESS, context,
            metadata={"principal_id": principal_id}, timeout=timeout,
        )

    async def check_access(
        self, secret_id: str, principal_id: str, permission: str, timeout: Optional[float] = None
    ) -> bool:
        access_control = self._require_access_control()
        return await self._bounded(
            access_control.check_permission(secret_id, principal_id, permission), timeout, "check access"
        )

    # ====================
    # Export / Import
    # ====================

    async def export_secrets(
        self,
        options: Optional[SecretExportOptions] = None,
        context: Optional[AuditContext] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Serialize the filtered secrets; each exported secret is audited as export"""
        options = options or SecretExportOptions()
        context = context or AuditContext()
        secrets_to_export = await self.list_secrets(options.filter, timeout)

        entries: List[SecretTransferEntry] = []
        for secret in secrets_to_export:
            audit_metadata = {"format": options.format.value, "masked": options.mask_values}
            value: Optional[str] = None
            if not options.mask_values:
                try:
                    result = await self._bounded(
                        self.connector.read_secret(secret.path), timeout, f"read secret {secret.id}"
                    )
                except Exception as e:
                    await self.record_audit(
                        secret.id, SecretAction.EXPORT, context, success=False, error=e,
                        metadata=audit_metadata, timeout=timeout,
                    )
                    raise
                value = ((result or {}).get("data") or {}).get(VALUE_KEY)

            entries.append(transfer.to_entry(secret, value, options.include_metadata))
            await self.record_audit(secret.id, SecretAction.EXPORT, context, metadata=audit_metadata, timeout=timeout)

        logger.info(f"Exported {len(entries)} secrets as {options.format.value}")
        return transfer.dump_entries(entries, options.format, mask_values=options.mask_values)

    async def import_secrets(
        self,
        content: str,
        options: SecretImportOptions,
        context: Optional[AuditContext] = None,
        timeout: Optional[float] = None,
    ) -> SecretImportResult:
        """
        Create (or, with overwrite_existing, update) secrets from a document.

        Nothing is written when validation fails or validate_only is set.
        """
        context = context or AuditContext()
        entries, validation = transfer.load_entries(content, options.format)
        result = SecretImportResult(validation=validation)
        if not validation.valid or options.validate_only:
            return result

        for entry in entries:
            path = self.generate_secret_path(options.environment_id, entry.name)
            existing = await self._bounded(self.repository.find_by_path(path), timeout, "find secret by path")

            if existing is None:
                await self.create_secret(
                    SecretCreateRequest(
                        name=entry.name,
                        type=entry.type or options.default_type,
                        environment_id=options.environment_id,
                        created_by=context.principal_id,
                        description=entry.description,
                        value=entry.value,
                        tags=entry.tags,
                    ),
                    context=context,
                    timeout=timeout,
                )
                result.created.append(entry.name)
            elif options.overwrite_existing and entry.value is not None:
                await self.set_secret_value(existing.id, entry.value, context=context, timeout=timeout)
                result.updated.append(entry.name)
            else:
                result.skipped.append(entry.name)

        logger.info(
            f"Imported secrets into {options.environment_id}: {len(result.created)} created, "
            f"{len(result.updated)} updated, {len(result.skipped)} skipped"
        )
        return result

    # ====================
    # Health
    # ====================

    async def health_check(self) -> Dict[str, Any]:
        connected = self.connector.is_connected()
        return {
            "service": "secrets_service",
            "status": "healthy" if connected else "degraded",
            "secret_store_connected": connected,
            "active_writers": len(self._write_locks),
        }
