"""Tests for gatecheck.openapi.resolver -- $ref expansion and cycle detection."""

from __future__ import annotations

import copy
import textwrap
from pathlib import Path
from typing import Any

import pytest

from gatecheck.exceptions import CyclicRefError, UnresolvableRefError
from gatecheck.openapi.resolver import (
    CYCLE_MARKER_KEY,
    MEMORY_SOURCE,
    contains_refs,
    lookup_pointer,
    resolve_document,
    resolve_file,
)
from gatecheck.report import FindingKind, Severity


def _schema_ref(name: str) -> dict[str, str]:
    return {"$ref": f"#/components/schemas/{name}"}


def _doc_with_schemas(schemas: dict[str, Any], root_ref: str = "A") -> dict[str, Any]:
    """A document whose only operation returns ``components.schemas.<root_ref>``."""
    return {
        "openapi": "3.0.3",
        "info": {"title": "t", "version": "1"},
        "paths": {
            "/x": {
                "get": {
                    "responses": {
                        "200": {
                            "description": "ok",
                            "content": {
                                "application/json": {"schema": _schema_ref(root_ref)}
                            },
                        }
                    }
                }
            }
        },
        "components": {"schemas": schemas},
    }


def _response_schema(doc: dict[str, Any]) -> Any:
    return doc["paths"]["/x"]["get"]["responses"]["200"]["content"]["application/json"]["schema"]


# ---------------------------------------------------------------------------
# Internal references
# ---------------------------------------------------------------------------


class TestInternalRefs:
    def test_inlines_internal_ref(self) -> None:
        doc = _doc_with_schemas({"A": {"type": "string"}})
        resolved = resolve_document(doc)
        assert _response_schema(resolved.document) == {"type": "string"}
        assert not contains_refs(resolved.document)
        assert resolved.source == MEMORY_SOURCE
        assert resolved.findings == []

    def test_chained_refs(self) -> None:
        doc = _doc_with_schemas({"A": _schema_ref("B"), "B": {"type": "integer"}})
        resolved = resolve_document(doc)
        assert _response_schema(resolved.document) == {"type": "integer"}

    def test_input_is_not_mutated(self) -> None:
        doc = _doc_with_schemas({"A": {"type": "object", "properties": {"b": _schema_ref("B")}},
                                 "B": {"type": "string"}})
        before = copy.deepcopy(doc)
        resolve_document(doc)
        assert doc == before

    def test_diamond_targets_are_independent_copies(self) -> None:
        doc = _doc_with_schemas(
            {
                "A": {"type": "object", "properties": {"left": _schema_ref("C"), "right": _schema_ref("C")}},
                "C": {"type": "object", "properties": {"n": {"type": "number"}}},
            }
        )
        schema = _response_schema(resolve_document(doc).document)
        left, right = schema["properties"]["left"], schema["properties"]["right"]
        assert left == right
        assert left is not right

    def test_escaped_and_percent_encoded_pointer(self) -> None:
        doc = {
            "paths": {"/users/{id}": {"get": {"summary": "by id"}}},
            "x-alias": {"$ref": "#/paths/~1users~1%7Bid%7D/get"},
        }
        resolved = resolve_document(doc)
        assert resolved.document["x-alias"] == {"summary": "by id"}

    def test_array_index_pointer(self) -> None:
        doc = {"tags": [{"name": "a"}, {"name": "b"}], "x-second": {"$ref": "#/tags/1"}}
        assert resolve_document(doc).document["x-second"] == {"name": "b"}


# ---------------------------------------------------------------------------
# Cycles
# ---------------------------------------------------------------------------


class TestCycles:
    def test_two_node_cycle_names_full_path(self) -> None:
        doc = _doc_with_schemas(
            {
                "A": {"type": "object", "properties": {"b": _schema_ref("B")}},
                "B": {"type": "object", "properties": {"a": _schema_ref("A")}},
            }
        )
        with pytest.raises(CyclicRefError) as exc_info:
            resolve_document(doc)
        assert exc_info.value.cycle == [
            "#/components/schemas/A",
            "#/components/schemas/B",
            "#/components/schemas/A",
        ]
        assert "A -> " in str(exc_info.value)

    def test_self_reference_is_a_cycle(self) -> None:
        doc = _doc_with_schemas(
            {"A": {"type": "object", "properties": {"child": _schema_ref("A")}}}
        )
        with pytest.raises(CyclicRefError) as exc_info:
            resolve_document(doc)
        assert exc_info.value.cycle == ["#/components/schemas/A", "#/components/schemas/A"]

    def test_cycle_error_carries_fatal_finding(self) -> None:
        doc = _doc_with_schemas({"A": _schema_ref("A")})
        with pytest.raises(CyclicRefError) as exc_info:
            resolve_document(doc)
        [finding] = exc_info.value.findings
        assert finding.kind == FindingKind.CYCLIC_REF
        assert finding.severity == Severity.FATAL

    def test_tolerated_cycle_leaves_marker_and_warning(self) -> None:
        doc = _doc_with_schemas(
            {
                "A": {"type": "object", "properties": {"b": _schema_ref("B")}},
                "B": {"type": "object", "properties": {"a": _schema_ref("A")}},
            }
        )
        resolved = resolve_document(doc, tolerate_cycles=True)

        schema = _response_schema(resolved.document)
        assert schema["properties"]["b"]["properties"]["a"] == {
            CYCLE_MARKER_KEY: "#/components/schemas/A"
        }
        assert not contains_refs(resolved.document)
        assert resolved.findings
        assert all(f.kind == FindingKind.CYCLIC_REF for f in resolved.findings)
        assert all(f.severity == Severity.WARNING for f in resolved.findings)

    def test_repeated_non_cyclic_ref_is_not_a_cycle(self) -> None:
        doc = _doc_with_schemas(
            {
                "A": {"type": "array", "items": _schema_ref("B")},
                "B": {"type": "object", "properties": {"c": _schema_ref("C"), "d": _schema_ref("C")}},
                "C": {"type": "string"},
            }
        )
        resolved = resolve_document(doc)
        assert resolved.findings == []


# ---------------------------------------------------------------------------
# External references
# ---------------------------------------------------------------------------


class TestExternalRefs:
    def test_relative_file_ref(self, tmp_path: Path) -> None:
        (tmp_path / "common.yaml").write_text(
            textwrap.dedent("""\
                components:
                  schemas:
                    Error:
                      type: object
                      properties:
                        detail:
                          $ref: "#/components/schemas/Detail"
                    Detail:
                      type: string
            """),
            encoding="utf-8",
        )
        main = tmp_path / "main.yaml"
        main.write_text(
            textwrap.dedent("""\
                openapi: 3.0.3
                info: {title: t, version: "1"}
                paths: {}
                x-error:
                  $ref: "common.yaml#/components/schemas/Error"
            """),
            encoding="utf-8",
        )
        resolved = resolve_file(str(main))
        assert resolved.source == str(main)
        assert resolved.document["x-error"] == {
            "type": "object",
            "properties": {"detail": {"type": "string"}},
        }

    def test_cross_file_cycle(self, tmp_path: Path) -> None:
        (tmp_path / "a.yaml").write_text('node:\n  $ref: "b.yaml#/node"\n', encoding="utf-8")
        (tmp_path / "b.yaml").write_text('node:\n  $ref: "a.yaml#/node"\n', encoding="utf-8")
        with pytest.raises(CyclicRefError) as exc_info:
            resolve_file(str(tmp_path / "a.yaml"))
        cycle = exc_info.value.cycle
        assert cycle[0] == cycle[-1]
        assert {c.split("#")[0] for c in cycle} == {
            str((tmp_path / "a.yaml").resolve()),
            str((tmp_path / "b.yaml").resolve()),
        }

    def test_missing_external_file(self, tmp_path: Path) -> None:
        main = tmp_path / "main.yaml"
        main.write_text('x:\n  $ref: "nope.yaml#/a"\n', encoding="utf-8")
        with pytest.raises(UnresolvableRefError) as exc_info:
            resolve_file(str(main))
        assert exc_info.value.ref == "nope.yaml#/a"
        assert exc_info.value.findings[0].kind == FindingKind.UNRESOLVABLE_REF

    def test_url_refs_use_loader_relative_to_source(self) -> None:
        fetched: list[str] = []

        def fake_loader(location: str) -> dict[str, Any]:
            fetched.append(location)
            return {"Pet": {"type": "object"}}

        doc = {"a": {"$ref": "schemas.yaml#/Pet"}, "b": {"$ref": "schemas.yaml#/Pet"}}
        resolved = resolve_document(
            doc, source="https://example.com/api/main.yaml", loader=fake_loader
        )
        assert resolved.document == {"a": {"type": "object"}, "b": {"type": "object"}}
        assert fetched == ["https://example.com/api/schemas.yaml"]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestUnresolvable:
    def test_missing_key(self) -> None:
        doc = _doc_with_schemas({}, root_ref="Missing")
        with pytest.raises(UnresolvableRefError, match="'Missing' not found"):
            resolve_document(doc)

    def test_non_string_ref(self) -> None:
        with pytest.raises(UnresolvableRefError, match="must be a string"):
            resolve_document({"x": {"$ref": 42}})

    def test_bad_array_index(self) -> None:
        with pytest.raises(UnresolvableRefError, match="invalid array index"):
            lookup_pointer({"tags": []}, "/tags/3", "#/tags/3")

    def test_pointer_must_start_with_slash(self) -> None:
        with pytest.raises(UnresolvableRefError):
            lookup_pointer({}, "components", "#components")

    def test_empty_pointer_is_whole_document(self) -> None:
        doc = {"a": 1}
        assert lookup_pointer(doc, "", "#") is doc
