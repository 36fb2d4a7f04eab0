"""
Secrets Service Models

Data models for versioned secret metadata, rotation configuration,
audit logging and access policies. Secret values never appear in these
models except in transient request/response shapes.
"""

import re
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============ Enums ============

class SecretType(str, Enum):
    """Kinds of credentials managed by the service"""
    PASSWORD = "password"
    API_KEY = "api_key"
    CERTIFICATE = "certificate"
    PRIVATE_KEY = "private_key"
    DATABASE_CREDENTIAL = "database_credential"
    OAUTH_TOKEN = "oauth_token"
    CUSTOM = "custom"


class RotationType(str, Enum):
    """Built-in rotation strategy keys (handlers may register any string)"""
    MANUAL = "manual"
    AUTOMATIC = "automatic"
    PASSWORD = "password"
    DATABASE_PASSWORD = "database_password"
    API_KEY = "api_key"
    CERTIFICATE = "certificate"
    CUSTOM = "custom"


class SecretAction(str, Enum):
    """Actions recorded in the audit log"""
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    ROTATE = "rotate"
    GRANT_ACCESS = "grant_access"
    REVOKE_ACCESS = "revoke_access"
    LIST = "list"
    EXPORT = "export"


class PrincipalType(str, Enum):
    """Who performed an audited action"""
    USER = "user"
    SERVICE = "service"
    SYSTEM = "system"


class PolicyPrincipalType(str, Enum):
    """Principal kinds an access policy can target"""
    USER = "user"
    ROLE = "role"
    SERVICE = "service"


class SecretPermission(str, Enum):
    """Permissions an access policy can grant"""
    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    ROTATE = "rotate"
    MANAGE_ACCESS = "manage_access"
    AUDIT = "audit"


class ConditionType(str, Enum):
    IP_RANGE = "ip_range"
    TIME_WINDOW = "time_window"
    ENVIRONMENT = "environment"
    CUSTOM = "custom"


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    IN = "in"
    NOT_IN = "not_in"
    MATCHES = "matches"


class SecretEncoding(str, Enum):
    UTF8 = "utf8"
    BASE64 = "base64"


class TransferFormat(str, Enum):
    """Export/import document formats"""
    JSON = "json"
    YAML = "yaml"
    ENV = "env"


class RotationState(str, Enum):
    """Per-secret rotation state machine"""
    IDLE = "idle"
    SCHEDULED = "scheduled"
    ROTATING = "rotating"
    FAILED = "failed"


# ============ Embedded Value Objects ============

class SecretMetadata(BaseModel):
    """Size/encoding/checksum of the current value, derived from raw bytes"""
    size: int = Field(default=0, ge=0, description="Value size in bytes")
    encoding: SecretEncoding = Field(default=SecretEncoding.UTF8)
    checksum: Optional[str] = Field(None, description="SHA-256 hex digest of the value")
    content_type: Optional[str] = None
    custom_fields: Dict[str, Any] = Field(default_factory=dict)


class SecretRotationConfig(BaseModel):
    """Rotation settings embedded in a Secret"""
    enabled: bool = False
    interval: int = Field(default=90, ge=1, description="Rotation interval in days")
    type: str = Field(default=RotationType.MANUAL.value, description="Rotation handler key")
    notify_before: int = Field(default=7, ge=0, description="Days before rotation to notify")
    auto_rotate: bool = False
    rotation_handler: Optional[str] = Field(None, description="Custom rotation handler identifier")
    settings: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, v):
        if isinstance(v, Enum):
            return v.value
        return v

    @property
    def handler_keys(self) -> List[str]:
        """Registry keys tried in order: the rotation type, then rotation_handler"""
        keys = [self.type]
        if self.rotation_handler and self.rotation_handler != self.type:
            keys.append(self.rotation_handler)
        return keys

    @property
    def interval_delta(self) -> timedelta:
        return timedelta(days=self.interval)


class AuditContext(BaseModel):
    """Caller identity and network context attached to audit entries"""
    principal_id: str = "system"
    principal_type: PrincipalType = PrincipalType.SYSTEM
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


# ============ Aggregates ============

class Secret(BaseModel):
    """Secret metadata record (never carries the value)"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    path: str
    type: SecretType
    description: Optional[str] = None
    environment_id: str
    version: int = Field(default=1, ge=1)
    rotation_config: Optional[SecretRotationConfig] = None
    access_policies: List[str] = Field(default_factory=list)
    tags: Dict[str, str] = Field(default_factory=dict)
    metadata: SecretMetadata = Field(default_factory=SecretMetadata)
    created_by: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_accessed_at: Optional[datetime] = None
    last_rotated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @property
    def next_rotation_at(self) -> Optional[datetime]:
        """When the current value is due for rotation, if rotation is enabled"""
        if not self.rotation_config or not self.rotation_config.enabled:
            return None
        base = self.last_rotated_at or self.created_at
        if base is None:
            return None
        return base + self.rotation_config.interval_delta


class SecretVersion(BaseModel):
    """Immutable snapshot of one value write"""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    secret_id: str
    version: int = Field(..., ge=1)
    value_hash: str = Field(..., description="SHA-256 hex digest of the raw value")
    metadata: SecretMetadata = Field(default_factory=SecretMetadata)
    created_by: str
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_active: bool = True

    @property
    def store_version(self) -> Optional[int]:
        """Backend version number recorded when the value was written"""
        value = self.metadata.custom_fields.get("store_version")
        return int(value) if value is not None else None


class SecretAuditLog(BaseModel):
    """Append-only audit record"""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    secret_id: str
    action: SecretAction
    principal_id: str
    principal_type: PrincipalType = PrincipalType.SYSTEM
    success: bool = True
    error_message: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None


class AccessCondition(BaseModel):
    """Constraint attached to an access policy"""
    type: ConditionType
    operator: ConditionOperator = ConditionOperator.EQUALS
    value: Any = None


class SecretAccessPolicy(BaseModel):
    """Who may act on a secret; owned by the access-control collaborator"""
    id: str
    name: str
    secret_id: str
    principal_id: str
    principal_type: PolicyPrincipalType = PolicyPrincipalType.USER
    permissions: List[SecretPermission] = Field(default_factory=list)
    conditions: List[AccessCondition] = Field(default_factory=list)
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    created_by: str


# ============ Request Models ============

SECRET_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._\-/ ]*$")


class SecretCreateRequest(BaseModel):
    """Input for create_secret; required fields are checked by the service"""
    name: Optional[str] = Field(None, max_length=255)
    type: Optional[SecretType] = None
    environment_id: Optional[str] = None
    created_by: Optional[str] = None
    description: Optional[str] = Field(None, max_length=1000)
    value: Optional[str] = Field(None, description="Optional initial value, written as version 1")
    rotation_config: Optional[SecretRotationConfig] = None
    access_policies: List[str] = Field(default_factory=list)
    tags: Dict[str, str] = Field(default_factory=dict)
    content_type: Optional[str] = None

    def missing_fields(self) -> List[str]:
        required = ("name", "type", "environment_id", "created_by")
        return [f for f in required if not getattr(self, f)]

    @property
    def has_valid_name(self) -> bool:
        return bool(self.name and SECRET_NAME_PATTERN.match(self.name))


class SecretUpdate(BaseModel):
    """Metadata-only update; values change through set_secret_value"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    rotation_config: Optional[SecretRotationConfig] = None
    access_policies: Optional[List[str]] = None
    tags: Optional[Dict[str, str]] = None
    custom_metadata: Optional[Dict[str, Any]] = None


class SecretFilter(BaseModel):
    """Filter shared by find_many, search and export"""
    environment_id: Optional[str] = None
    name: Optional[str] = Field(None, description="Case-insensitive substring")
    path: Optional[str] = Field(None, description="Case-insensitive substring")
    type: Optional[SecretType] = None
    tags: Dict[str, str] = Field(default_factory=dict)
    created_by: Optional[str] = None
    last_accessed_after: Optional[datetime] = None
    last_accessed_before: Optional[datetime] = None
    expiring_before: Optional[datetime] = None
    limit: Optional[int] = Field(None, ge=1, le=10000)
    offset: int = Field(default=0, ge=0)


class SecretExportOptions(BaseModel):
    format: TransferFormat = TransferFormat.JSON
    include_metadata: bool = False
    mask_values: bool = True
    filter: Optional[SecretFilter] = None


class SecretTransferEntry(BaseModel):
    """One secret in an export/import document"""
    name: str
    type: Optional[SecretType] = None
    description: Optional[str] = None
    value: Optional[str] = Field(None, description="None when masked or unavailable")
    path: Optional[str] = None
    version: Optional[int] = None
    tags: Dict[str, str] = Field(default_factory=dict)
    metadata: Optional[Dict[str, Any]] = None


class SecretImportOptions(BaseModel):
    format: TransferFormat = TransferFormat.JSON
    environment_id: str
    overwrite_existing: bool = False
    validate_only: bool = False
    default_type: SecretType = SecretType.CUSTOM


# ============ Result Models ============

class SecretValidationResult(BaseModel):
    valid: bool = True
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class SecretImportResult(BaseModel):
    validation: SecretValidationResult = Field(default_factory=SecretValidationResult)
    created: List[str] = Field(default_factory=list, description="Names of created secrets")
    updated: List[str] = Field(default_factory=list, description="Names of overwritten secrets")
    skipped: List[str] = Field(default_factory=list, description="Names left untouched")


class RotationResult(BaseModel):
    success: bool
    secret_id: str
    old_version: int
    new_version: int
    rotated_at: datetime
    error: Optional[str] = None


class RotationStatus(BaseModel):
    secret_id: str
    scheduled: bool
    state: RotationState = RotationState.IDLE
    next_rotation: Optional[datetime] = None
    last_rotation: Optional[datetime] = None
    last_error: Optional[str] = None


class PendingRotation(BaseModel):
    secret_id: str
    scheduled_at: datetime
