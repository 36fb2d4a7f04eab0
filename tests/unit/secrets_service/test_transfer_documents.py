"""
Transfer Document Unit Tests

Rendering and parsing of export/import documents.
"""
import json
from datetime import datetime, timezone

import pytest
import yaml

from microservices.secrets_service.models import (
    Secret,
    SecretTransferEntry,
    SecretType,
    TransferFormat,
)
from microservices.secrets_service.transfer import (
    MASKED_VALUE,
    dump_entries,
    env_key,
    load_entries,
    to_entry,
)

pytestmark = pytest.mark.unit


def entry(**overrides) -> SecretTransferEntry:
    fields = {"name": "db-pass", "type": SecretType.PASSWORD, "value": "p@ss", "tags": {"team": "core"}}
    fields.update(overrides)
    return SecretTransferEntry(**fields)


class TestToEntry:

    def test_metadata_only_when_requested(self):
        secret = Secret(
            id="sec_1", name="db-pass", path="environments/e/secrets/db-pass",
            type=SecretType.PASSWORD, environment_id="e", created_by="user-1",
            created_at=datetime(2025, 1, 1, tzinfo=timezone.utc), version=4,
        )

        bare = to_entry(secret, None)
        full = to_entry(secret, "v", include_metadata=True)

        assert bare.metadata is None
        assert bare.version == 4
        assert full.metadata["created_by"] == "user-1"
        assert full.metadata["created_at"] == "2025-01-01T00:00:00+00:00"
        assert full.value == "v"


class TestDumpEntries:

    def test_json_masked(self):
        document = json.loads(dump_entries([entry()], TransferFormat.JSON))

        assert document["secrets"][0]["value"] == MASKED_VALUE
        assert document["secrets"][0]["type"] == "password"

    def test_yaml_unmasked(self):
        document = yaml.safe_load(dump_entries([entry()], TransferFormat.YAML, mask_values=False))

        assert document == {"secrets": [
            {"name": "db-pass", "type": "password", "value": "p@ss", "tags": {"team": "core"}}
        ]}

    def test_env_escapes_quotes_and_newlines(self):
        text = dump_entries(
            [entry(name="tls cert", value='line1\nsay "hi"', description="PEM bundle")],
            TransferFormat.ENV,
            mask_values=False,
        )

        assert text == '# PEM bundle\nTLS_CERT="line1\\nsay \\"hi\\""\n'

    def test_empty_env_document(self):
        assert dump_entries([], TransferFormat.ENV) == ""

    @pytest.mark.parametrize("name,key", [("db-pass", "DB_PASS"), ("9lives", "_9LIVES"), ("a.b/c", "A_B_C")])
    def test_env_key(self, name, key):
        assert env_key(name) == key


class TestLoadEntries:

    def test_env_round_trip_preserves_escapes(self):
        original = entry(name="TLS_CERT", value='line1\nsay "hi"', description="PEM bundle")
        text = dump_entries([original], TransferFormat.ENV, mask_values=False)

        entries, result = load_entries(text, TransferFormat.ENV)

        assert result.valid
        assert entries[0].value == 'line1\nsay "hi"'
        assert entries[0].description == "PEM bundle"

    def test_env_accepts_export_prefix_and_single_quotes(self):
        entries, result = load_entries("export API_KEY='abc'\nplain=value\n", TransferFormat.ENV)

        assert result.valid
        assert [(e.name, e.value) for e in entries] == [("API_KEY", "abc"), ("plain", "value")]

    def test_env_malformed_line(self):
        entries, result = load_entries("not a pair\n", TransferFormat.ENV)

        assert entries == []
        assert result.valid is False
        assert "Line 1" in result.errors[0]

    def test_json_list_or_object(self):
        listed, _ = load_entries('[{"name": "a", "value": "1"}]', TransferFormat.JSON)
        wrapped, _ = load_entries('{"secrets": [{"name": "a", "value": "1"}]}', TransferFormat.JSON)

        assert listed == wrapped

    def test_invalid_json(self):
        _, result = load_entries("{not json", TransferFormat.JSON)

        assert result.valid is False
        assert result.errors[0].startswith("Invalid JSON")

    def test_invalid_yaml(self):
        _, result = load_entries("secrets: [unclosed", TransferFormat.YAML)

        assert result.valid is False
        assert result.errors[0].startswith("Invalid YAML")

    def test_scalar_document_rejected(self):
        _, result = load_entries("42", TransferFormat.JSON)

        assert result.valid is False

    def test_collects_all_errors(self):
        content = json.dumps([
            {"name": "ok", "value": "1"},
            {"name": "!bad"},
            {"name": "ok", "value": "2"},
            {"name": "typed", "type": "ssh_key"},
            {"name": "tagged", "tags": ["a"]},
            "not-an-object",
        ])

        entries, result = load_entries(content, TransferFormat.JSON)

        assert result.valid is False
        assert len(result.errors) == 5
        assert [e.name for e in entries] == ["ok"]

    def test_masked_and_empty_values_warn(self):
        content = json.dumps([
            {"name": "masked", "value": MASKED_VALUE},
            {"name": "empty", "value": ""},
            {"name": "number", "value": 1234},
        ])

        entries, result = load_entries(content, TransferFormat.JSON)

        assert result.valid
        assert len(result.warnings) == 2
        assert [e.value for e in entries] == [None, None, "1234"]
