"""Tests for the document model and field lookup."""

from __future__ import annotations

import json
from typing import Any

import pytest

from ogdat_cli.document import (
    FIELD_SLOTS,
    MinimalMetadata,
    Namespace,
    field_value,
    namespace_of,
    parse_document,
    slot_for,
    version_from_schema_name,
)
from ogdat_cli.errors import DocumentParseError
from ogdat_cli.parsers import Identifier, Url


class TestFieldSlots:
    @pytest.mark.unit
    def test_every_id_from_1_to_34_except_7(self) -> None:
        assert sorted(FIELD_SLOTS) == [i for i in range(1, 35) if i != 7]

    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("field_id", "namespace", "key"),
        [
            (9, Namespace.CORE, "notes"),
            (11, Namespace.CORE, "tags"),
            (2, Namespace.EXTRAS, "schema_name"),
            (32, Namespace.RESOURCE, "characterset"),
            (18, Namespace.RESOURCE, "last_modified"),
        ],
    )
    def test_slot_locations(self, field_id: int, namespace: Namespace, key: str) -> None:
        slot = slot_for(field_id)

        assert slot is not None
        assert slot.namespace is namespace
        assert slot.key == key

    @pytest.mark.unit
    def test_unknown_id(self) -> None:
        assert slot_for(7) is None
        assert namespace_of(99) is None


class TestParseDocument:
    @pytest.mark.unit
    def test_parses_all_namespaces(self, valid_document: dict[str, Any]) -> None:
        document = parse_document(valid_document)

        assert document.core[8] == "Bezirksgrenzen Wien"
        assert isinstance(document.extras[1], Identifier)
        assert document.identifier == "d3a4e1a0-9d6e-4a0f-8b3e-2f6c9a7b1e01"
        assert document.schema_name == "OGD Austria Metadata 2.2"
        assert len(document.resources) == 1
        assert isinstance(document.resources[0].values[14], Url)

    @pytest.mark.unit
    def test_accepts_json_text_and_bytes(self) -> None:
        text = '{"title": "Wien"}'

        assert parse_document(text).core[8] == "Wien"
        assert parse_document(text.encode()).core[8] == "Wien"

    @pytest.mark.unit
    def test_nulls_are_absent(self) -> None:
        document = parse_document({"title": None, "extras": {"publisher": None}})

        assert field_value(document, 8) == (None, False)
        assert field_value(document, 20) == (None, False)

    @pytest.mark.unit
    def test_tolerates_odd_containers(self) -> None:
        document = parse_document({"extras": ["x"], "resources": [None, {"format": "csv"}]})

        assert document.extras == {}
        assert [r.index for r in document.resources] == [0, 1]
        assert document.resources[0].values == {}
        assert field_value(document.resources[1], 15) == ("csv", True)

    @pytest.mark.unit
    def test_invalid_utf8_survives_as_surrogates(self) -> None:
        document = parse_document(b'{"title": "Stra\xdfe"}')

        assert "\udcdf" in document.core[8]

    @pytest.mark.unit
    @pytest.mark.parametrize("data", ["[1, 2]", "not json", b"\"text\""])
    def test_non_objects_raise(self, data: str | bytes) -> None:
        with pytest.raises(DocumentParseError):
            parse_document(data, source="input.json")


class TestFieldValue:
    @pytest.mark.unit
    def test_document_does_not_answer_resource_fields(
        self, valid_document: dict[str, Any]
    ) -> None:
        document = parse_document(valid_document)

        assert field_value(document, 14) == (None, False)

    @pytest.mark.unit
    def test_resource_does_not_answer_document_fields(
        self, valid_document: dict[str, Any]
    ) -> None:
        resource = parse_document(valid_document).resources[0]

        assert field_value(resource, 8) == (None, False)
        assert field_value(resource, 15) == ("json", True)

    @pytest.mark.unit
    def test_unregistered_id(self, valid_document: dict[str, Any]) -> None:
        assert field_value(parse_document(valid_document), 7) == (None, False)


class TestVersionFromSchemaName:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("OGD Austria Metadata 2.1", "2.1"),
            ("OGD Austria Metadata 2.3 (draft)", "2.3"),
            ("OGD Austria Metadata", ""),
            ("OGD 2 Austria Metadata 2.1", ""),
            (None, ""),
            ("", ""),
        ],
    )
    def test_extracts_single_number(self, name: str | None, expected: str) -> None:
        assert version_from_schema_name(name) == expected


class TestMinimalMetadata:
    @pytest.mark.unit
    def test_from_full_document(self, valid_document: dict[str, Any]) -> None:
        minimal = MinimalMetadata.from_json(valid_document)

        assert minimal.version == "2.2"
        assert minimal.publisher == "Stadt Wien"
        assert minimal.categories == ("verwaltung-und-politik", "geographie-und-planung")
        assert minimal.to_dict()["identifier"] == "d3a4e1a0-9d6e-4a0f-8b3e-2f6c9a7b1e01"

    @pytest.mark.unit
    def test_unsupported_version_still_projects(self) -> None:
        minimal = MinimalMetadata.from_json(
            '{"notes": "x", "extras": {"schema_name": "OGD Austria Metadata 1.0", '
            '"categorization": "umwelt"}}'
        )

        assert minimal.version == "1.0"
        assert minimal.categories == ("umwelt",)
        assert minimal.description == "x"

    @pytest.mark.unit
    def test_empty_document(self) -> None:
        minimal = MinimalMetadata.from_json("{}")

        assert minimal == MinimalMetadata()
        assert minimal.version == ""

    @pytest.mark.unit
    def test_undecodable_bytes_become_escapes(self) -> None:
        minimal = MinimalMetadata.from_json(
            b'{"notes": "Stra\xdfe", "extras": {"publisher": "Magistrat\xff", '
            b'"categorization": ["umwelt\xe4"]}}'
        )

        assert minimal.description == "Stra\\xdfe"
        assert minimal.publisher == "Magistrat\\xff"
        assert minimal.categories == ("umwelt\\xe4",)
        json.dumps(minimal.to_dict(), ensure_ascii=False).encode("utf-8")
