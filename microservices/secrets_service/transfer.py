"""
Secret export/import documents

Serializes SecretTransferEntry lists to json, yaml or env text and parses
them back, with validation that never touches the store.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .models import (
    SECRET_NAME_PATTERN,
    Secret,
    SecretTransferEntry,
    SecretType,
    SecretValidationResult,
    TransferFormat,
)

logger = logging.getLogger(__name__)

MASKED_VALUE = "********"

_ENV_KEY_UNSAFE = re.compile(r"[^A-Za-z0-9_]")
_ENV_LINE = re.compile(r"^\s*(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*=\s*(.*)$")


def to_entry(secret: Secret, value: Optional[str], include_metadata: bool = False) -> SecretTransferEntry:
    """Build the document entry for one secret"""
    return SecretTransferEntry(
        name=secret.name,
        type=secret.type,
        description=secret.description,
        value=value,
        path=secret.path,
        version=secret.version,
        tags=dict(secret.tags),
        metadata=(
            {
                "size": secret.metadata.size,
                "encoding": secret.metadata.encoding.value,
                "checksum": secret.metadata.checksum,
                "content_type": secret.metadata.content_type,
                "created_by": secret.created_by,
                "created_at": secret.created_at.isoformat() if secret.created_at else None,
                "updated_at": secret.updated_at.isoformat() if secret.updated_at else None,
                "last_rotated_at": secret.last_rotated_at.isoformat() if secret.last_rotated_at else None,
                "rotation_config": (
                    secret.rotation_config.model_dump(mode="json") if secret.rotation_config else None
                ),
            }
            if include_metadata
            else None
        ),
    )


def env_key(name: str) -> str:
    """Environment-variable form of a secret name"""
    key = _ENV_KEY_UNSAFE.sub("_", name).upper()
    return f"_{key}" if key[:1].isdigit() else key


def _quote_env(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def _unquote_env(raw: str) -> str:
    raw = raw.strip()
    if len(raw) >= 2 and raw[0] == raw[-1] == "'":
        return raw[1:-1]
    if len(raw) >= 2 and raw[0] == raw[-1] == '"':
        body = raw[1:-1]
        return re.sub(r"\\(.)", lambda m: "\n" if m.group(1) == "n" else m.group(1), body)
    return raw


def dump_entries(
    entries: List[SecretTransferEntry],
    format: TransferFormat,
    mask_values: bool = True,
) -> str:
    """Render entries in the requested format"""

    def shown(entry: SecretTransferEntry) -> Optional[str]:
        return MASKED_VALUE if mask_values else entry.value

    if format == TransferFormat.ENV:
        lines = []
        for entry in entries:
            if entry.description:
                lines.append(f"# {entry.description}")
            lines.append(f"{env_key(entry.name)}={_quote_env(shown(entry) or '')}")
        return "\n".join(lines) + ("\n" if lines else "")

    documents: List[Dict[str, Any]] = []
    for entry in entries:
        document = entry.model_dump(mode="json", exclude_none=True)
        document["value"] = shown(entry)
        documents.append(document)

    if format == TransferFormat.YAML:
        return yaml.safe_dump({"secrets": documents}, sort_keys=False, default_flow_style=False)
    return json.dumps({"secrets": documents}, indent=2)


def _parse_documents(content: str, format: TransferFormat) -> List[Dict[str, Any]]:
    if format == TransferFormat.ENV:
        documents = []
        description = None
        for number, line in enumerate(content.splitlines(), start=1):
            stripped = line.strip()
            if not stripped:
                description = None
                continue
            if stripped.startswith("#"):
                description = stripped.lstrip("#").strip() or None
                continue
            match = _ENV_LINE.match(line)
            if not match:
                raise ValueError(f"Line {number} is not KEY=VALUE")
            documents.append({
                "name": match.group(1),
                "value": _unquote_env(match.group(2)),
                "description": description,
            })
            description = None
        return documents

    if format == TransferFormat.YAML:
        try:
            body = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML: {e}") from e
    else:
        try:
            body = json.loads(content)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON: {e}") from e

    if isinstance(body, dict):
        body = body.get("secrets")
    if not isinstance(body, list):
        raise ValueError("Document must be a list of secrets or an object with a 'secrets' list")
    return body


def load_entries(
    content: str, format: TransferFormat
) -> Tuple[List[SecretTransferEntry], SecretValidationResult]:
    """
    Parse and validate an import document.

    Masked or empty values become None and produce a warning; bad names,
    unknown types and duplicates are errors.
    """
    result = SecretValidationResult()
    try:
        documents = _parse_documents(content, format)
    except ValueError as e:
        result.valid = False
        result.errors.append(str(e))
        return [], result

    entries: List[SecretTransferEntry] = []
    seen = set()
    for index, document in enumerate(documents):
        if not isinstance(document, dict):
            result.errors.append(f"Entry {index} is not an object")
            continue

        name = document.get("name")
        if not isinstance(name, str) or not SECRET_NAME_PATTERN.match(name):
            result.errors.append(f"Entry {index} has an invalid name: {name!r}")
            continue
        if name in seen:
            result.errors.append(f"Duplicate secret name: {name}")
            continue
        seen.add(name)

        secret_type = document.get("type")
        if secret_type is not None:
            try:
                secret_type = SecretType(secret_type)
            except ValueError:
                result.errors.append(f"Secret {name} has an unknown type: {secret_type!r}")
                continue

        value = document.get("value")
        if value is not None and not isinstance(value, str):
            value = str(value)
        if value in (None, "", MASKED_VALUE):
            result.warnings.append(f"Secret {name} has no value; it will be created without one")
            value = None

        tags = document.get("tags") or {}
        if not isinstance(tags, dict):
            result.errors.append(f"Secret {name} has tags that are not a mapping")
            continue

        entries.append(
            SecretTransferEntry(
                name=name,
                type=secret_type,
                description=document.get("description"),
                value=value,
                tags={str(k): str(v) for k, v in tags.items()},
            )
        )

    result.valid = not result.errors
    if not result.valid:
        logger.warning(f"Import document rejected with {len(result.errors)} errors")
    return entries, result
