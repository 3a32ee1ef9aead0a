"""Tests for gatecheck.openapi.schema."""

from __future__ import annotations

import pytest

from gatecheck.openapi.schema import (
    OpenApiSpecValidator,
    SchemaViolation,
    violations_to_findings,
)
from gatecheck.report import FindingKind, Severity

from conftest import lambda_uri, make_document, operation


class TestOpenApiSpecValidator:
    def test_valid_3_0_document(self) -> None:
        doc = make_document({"/v1/users": {"post": operation(lambda_uri("lambda_1_arn"))}})
        assert OpenApiSpecValidator().validate(doc) == []

    def test_valid_3_1_document(self) -> None:
        doc = make_document({"/v1/users": {"get": operation()}})
        doc["openapi"] = "3.1.0"
        assert OpenApiSpecValidator().validate(doc) == []

    def test_missing_info_is_reported(self) -> None:
        doc = make_document({})
        del doc["info"]
        violations = OpenApiSpecValidator().validate(doc)
        assert violations
        assert any("info" in v.message for v in violations)

    def test_violation_path_is_dotted(self) -> None:
        doc = make_document({"/v1/users": {"get": {"responses": {"200": {}}}}})
        violations = OpenApiSpecValidator().validate(doc)
        assert violations
        assert any(v.path.startswith("paths") for v in violations)

    def test_malformed_operation_does_not_raise(self) -> None:
        doc = make_document({"/v1/users": {"get": {"responses": "nope"}}})
        violations = OpenApiSpecValidator().validate(doc)
        assert violations
        assert all(v.message for v in violations)

    def test_validator_failure_becomes_violation(self, monkeypatch: pytest.MonkeyPatch) -> None:
        class Error:
            message = "'description' is a required property"
            path = ["paths", "/v1/users", "get"]

        class Stopping:
            def __init__(self, document: dict) -> None:
                self.document = document

            def iter_errors(self):
                yield Error()
                raise KeyError("responses")

        monkeypatch.setattr("gatecheck.openapi.schema.OpenAPIV30SpecValidator", Stopping)
        violations = OpenApiSpecValidator().validate(make_document({}))
        assert violations == [
            SchemaViolation("'description' is a required property", "paths./v1/users.get"),
            SchemaViolation("Schema validation stopped: KeyError: 'responses'"),
        ]

    def test_missing_openapi_field_is_violation(self) -> None:
        doc = make_document({})
        del doc["openapi"]
        [violation] = OpenApiSpecValidator().validate(doc)
        assert violation.path == "openapi"
        assert "Missing 'openapi' field" in violation.message

    def test_unsupported_version_is_violation(self) -> None:
        [violation] = OpenApiSpecValidator().validate({"swagger": "2.0", "paths": {}})
        assert "Swagger 2.0 is not supported" in violation.message


class TestViolationsToFindings:
    def test_messages_pass_through_verbatim(self) -> None:
        findings = violations_to_findings(
            [SchemaViolation("'info' is a required property"), SchemaViolation("bad", "paths./x")],
            source="api/",
        )
        assert [f.message for f in findings] == ["'info' is a required property", "bad"]
        assert all(f.kind == FindingKind.SCHEMA_VIOLATION for f in findings)
        assert all(f.severity == Severity.FATAL for f in findings)
        assert findings[0].location.pointer is None
        assert findings[1].location.pointer == "paths./x"
        assert findings[1].location.file == "api/"

    def test_empty(self) -> None:
        assert violations_to_findings([]) == []
