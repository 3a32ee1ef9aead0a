"""Tests for gatecheck.validation.crossref -- the consistency checks."""

from __future__ import annotations

from typing import Any

import pytest

from gatecheck.exit_codes import EXIT_FINDINGS, EXIT_SUCCESS
from gatecheck.models import TerraformModel
from gatecheck.openapi.merger import MergedDocument
from gatecheck.report import FindingKind, Severity
from gatecheck.validation.crossref import CHECKS, validate

from conftest import lambda_arn, lambda_uri, make_document, make_model, operation

IDEAL_LAMBDAS = {"lambda-1": "one.handler", "lambda-2": "two.handler"}
IDEAL_PERMISSIONS = {
    "lambda-1": [("AllowOne", "*/POST/v1/lambda/endpoint1")],
    "lambda-2": [("AllowTwo", "*/GET/v1/lambda/endpoint2")],
}
IDEAL_BINDINGS = {
    "lambda_1_arn": lambda_arn("lambda-1"),
    "lambda_2_arn": lambda_arn("lambda-2"),
}


def _model(**overrides: Any) -> TerraformModel:
    """The ideal model with some of its parts replaced."""
    return make_model(
        lambdas=overrides.get("lambdas", IDEAL_LAMBDAS),
        permissions=overrides.get("permissions", IDEAL_PERMISSIONS),
        bindings=overrides.get("bindings", IDEAL_BINDINGS),
    )


def _with_path(document: dict[str, Any], path: str, method: str, op: dict[str, Any]) -> dict[str, Any]:
    document["paths"].setdefault(path, {})[method] = op
    return document


def _kinds(report) -> list[FindingKind]:
    return [f.kind for f in report.findings]


# ---------------------------------------------------------------------------
# Consistent deployment
# ---------------------------------------------------------------------------


class TestIdealDeployment:
    def test_no_findings(self, ideal_document: dict[str, Any], ideal_model: TerraformModel) -> None:
        report = validate(ideal_document, ideal_model)
        assert report.findings == ()
        assert report.exit_code == EXIT_SUCCESS

    def test_path_parameter_covered_by_wildcard(self) -> None:
        document = make_document(
            {"/v1/orders/{orderId}": {"get": operation(lambda_uri("lambda_2_arn"))},
             "/v1/lambda/endpoint1": {"post": operation(lambda_uri("lambda_1_arn"))}}
        )
        permissions = dict(IDEAL_PERMISSIONS, **{"lambda-2": [("AllowTwo", "*/GET/v1/orders/*")]})
        assert validate(document, _model(permissions=permissions)).findings == ()

    def test_any_method_operation(self) -> None:
        document = make_document(
            {"/v1/lambda/endpoint1": {"post": operation(lambda_uri("lambda_1_arn"))},
             "/v1/proxy/{path+}": {"x-amazon-apigateway-any-method": operation(lambda_uri("lambda_2_arn"))}}
        )
        permissions = dict(IDEAL_PERMISSIONS, **{"lambda-2": [("AllowProxy", "*/ANY/v1/proxy/*")]})
        assert validate(document, _model(permissions=permissions)).findings == ()

    def test_checks_run_in_declared_order(self) -> None:
        names = [check.__name__ for check in CHECKS]
        assert names == [
            "check_lambda_permissions",
            "check_permission_paths",
            "check_binding_lambdas",
            "check_integration_variables",
            "check_unused_bindings",
            "check_integration_targets",
            "check_unpermitted_operations",
            "check_duplicate_handlers",
        ]


# ---------------------------------------------------------------------------
# Lambdas and permissions
# ---------------------------------------------------------------------------


class TestLambdaPermissions:
    def test_orphan_lambda(self, ideal_document: dict[str, Any]) -> None:
        model = _model(permissions={"lambda-2": IDEAL_PERMISSIONS["lambda-2"]})
        report = validate(ideal_document, model)

        [orphan] = report.of_kind(FindingKind.ORPHAN_LAMBDA)
        assert orphan.location.logical_name == "lambda-1"
        assert orphan.severity == Severity.FATAL
        assert report.exit_code == EXIT_FINDINGS
        # The operation it serves is not reported a second time.
        related = [
            f.kind
            for f in report.findings
            if f.location.logical_name == "lambda-1" or "lambda-1" in f.message
        ]
        assert related == [FindingKind.ORPHAN_LAMBDA]
        assert _kinds(report) == [FindingKind.ORPHAN_LAMBDA]

    def test_empty_permission_list_is_orphan(self, ideal_document: dict[str, Any]) -> None:
        model = _model(permissions={"lambda-1": [], "lambda-2": IDEAL_PERMISSIONS["lambda-2"]})
        [orphan] = validate(ideal_document, model).of_kind(FindingKind.ORPHAN_LAMBDA)
        assert orphan.location.logical_name == "lambda-1"

    def test_orphan_permission(self, ideal_document: dict[str, Any]) -> None:
        permissions = dict(IDEAL_PERMISSIONS, ghost=[("AllowGhost", "*/POST/v1/lambda/endpoint1")])
        report = validate(ideal_document, _model(permissions=permissions))
        [orphan] = report.of_kind(FindingKind.ORPHAN_PERMISSION)
        assert orphan.location.logical_name == "ghost"
        assert orphan.location.file == "lambda_permissions.tf"


class TestPermissionPaths:
    def test_route_matching_no_operation(self, ideal_document: dict[str, Any]) -> None:
        permissions = dict(IDEAL_PERMISSIONS, **{"lambda-1": [("AllowOne", "*/POST/v1/lambda/wrong")]})
        report = validate(ideal_document, _model(permissions=permissions))

        [mismatch] = report.of_kind(FindingKind.PERMISSION_PATH_MISMATCH)
        assert "POST /v1/lambda/wrong" in mismatch.message
        assert mismatch.location.pointer == "statement_id AllowOne"
        # The operation lost its permission as a consequence.
        [unpermitted] = report.of_kind(FindingKind.UNPERMITTED_OPERATION)
        assert unpermitted.location.pointer == "POST /v1/lambda/endpoint1"

    def test_wrong_method(self, ideal_document: dict[str, Any]) -> None:
        permissions = dict(IDEAL_PERMISSIONS, **{"lambda-1": [("AllowOne", "*/GET/v1/lambda/endpoint1")]})
        report = validate(ideal_document, _model(permissions=permissions))
        assert len(report.of_kind(FindingKind.PERMISSION_PATH_MISMATCH)) == 1

    def test_arn_without_route(self, ideal_document: dict[str, Any]) -> None:
        permissions = dict(IDEAL_PERMISSIONS, **{"lambda-1": [("AllowOne", "prod")]})
        report = validate(ideal_document, _model(permissions=permissions))
        [mismatch] = report.of_kind(FindingKind.PERMISSION_PATH_MISMATCH)
        assert "names no HTTP method and path" in mismatch.message

    def test_ambiguous_arn_is_a_warning(self, ideal_document: dict[str, Any]) -> None:
        permissions = dict(
            IDEAL_PERMISSIONS,
            **{"lambda-2": [("AllowTwo", "*/POST/v1/GET/v1/lambda/endpoint2")]},
        )
        report = validate(ideal_document, _model(permissions=permissions))
        [ambiguous] = report.of_kind(FindingKind.AMBIGUOUS_SOURCE_ARN)
        assert ambiguous.severity == Severity.WARNING
        assert "using GET /v1/lambda/endpoint2" in ambiguous.message
        assert not report.has_fatal


# ---------------------------------------------------------------------------
# Bindings and integrations
# ---------------------------------------------------------------------------


class TestBindings:
    def test_binding_to_undefined_lambda(self, ideal_document: dict[str, Any]) -> None:
        bindings = dict(IDEAL_BINDINGS, lambda_3_arn=lambda_arn("lambda-3"))
        report = validate(ideal_document, _model(bindings=bindings))
        [unbound] = report.of_kind(FindingKind.UNBOUND_TEMPLATE_VARIABLE)
        assert unbound.location.logical_name == "lambda-3"
        assert unbound.location.pointer == "templatefile.lambda_3_arn"

    def test_duplicate_binding(self, ideal_document: dict[str, Any]) -> None:
        bindings = dict(IDEAL_BINDINGS, alias_arn=lambda_arn("lambda-1"))
        report = validate(ideal_document, _model(bindings=bindings))
        [duplicate] = report.of_kind(FindingKind.DUPLICATE_BINDING)
        assert duplicate.severity == Severity.FATAL
        assert "alias_arn, lambda_1_arn" in duplicate.message

    def test_unused_binding_is_a_warning(self, ideal_document: dict[str, Any]) -> None:
        bindings = dict(IDEAL_BINDINGS, region="var.region")
        report = validate(ideal_document, _model(bindings=bindings))
        assert _kinds(report) == [FindingKind.UNUSED_BINDING]
        assert report.findings[0].location.pointer == "templatefile.region"
        assert report.exit_code == EXIT_SUCCESS


class TestIntegrations:
    def test_unbound_integration_variable(self, ideal_document: dict[str, Any], ideal_model) -> None:
        _with_path(ideal_document, "/v1/extra", "post", operation(lambda_uri("lambda_3_arn")))
        report = validate(ideal_document, ideal_model)
        [unbound] = report.of_kind(FindingKind.UNBOUND_INTEGRATION_VARIABLE)
        assert "${lambda_3_arn}" in unbound.message
        assert unbound.location.pointer == "POST /v1/extra"

    def test_missing_extension(self, ideal_document: dict[str, Any], ideal_model) -> None:
        _with_path(ideal_document, "/v1/health", "get", operation())
        report = validate(ideal_document, ideal_model)
        assert _kinds(report) == [FindingKind.MISSING_INTEGRATION]
        assert not report.has_fatal

    def test_extension_without_uri(self, ideal_document: dict[str, Any], ideal_model) -> None:
        _with_path(ideal_document, "/v1/health", "get", operation(type="aws_proxy"))
        report = validate(ideal_document, ideal_model)
        [missing] = report.of_kind(FindingKind.MISSING_INTEGRATION)
        assert "has no uri" in missing.message

    def test_mock_integration_is_skipped(self, ideal_document: dict[str, Any], ideal_model) -> None:
        _with_path(ideal_document, "/v1/lambda/endpoint1", "options", operation(type="mock"))
        assert validate(ideal_document, ideal_model).findings == ()

    @pytest.mark.parametrize(
        "uri",
        [
            "arn:aws:apigateway:eu-west-1:states:action/StartExecution",
            "https://backend.example.com/orders",
        ],
    )
    def test_unsupported_integration(self, ideal_document: dict[str, Any], ideal_model, uri: str) -> None:
        _with_path(ideal_document, "/v1/other", "post", operation(uri, type="http"))
        report = validate(ideal_document, ideal_model)
        assert _kinds(report) == [FindingKind.UNSUPPORTED_INTEGRATION]

    def test_untemplated_lambda_uri(self, ideal_document: dict[str, Any], ideal_model) -> None:
        uri = (
            "arn:aws:apigateway:eu-west-1:lambda:path/2015-03-31/functions/"
            "arn:aws:lambda:eu-west-1:123456789012:function:fixed/invocations"
        )
        _with_path(ideal_document, "/v1/fixed", "get", operation(uri))
        report = validate(ideal_document, ideal_model)
        assert _kinds(report) == [
            FindingKind.UNTEMPLATED_INTEGRATION,
            FindingKind.UNPERMITTED_OPERATION,
        ]

    def test_integration_target_mismatch(self, ideal_model: TerraformModel) -> None:
        swapped = make_document(
            {
                "/v1/lambda/endpoint1": {"post": operation(lambda_uri("lambda_2_arn"))},
                "/v1/lambda/endpoint2": {"get": operation(lambda_uri("lambda_1_arn"))},
            }
        )
        report = validate(swapped, ideal_model)
        mismatches = report.of_kind(FindingKind.INTEGRATION_TARGET_MISMATCH)
        assert [m.location.logical_name for m in mismatches] == ["lambda-1", "lambda-2"]
        assert "invokes lambda-2" in mismatches[0].message

    def test_unpermitted_operation(self, ideal_document: dict[str, Any], ideal_model) -> None:
        _with_path(ideal_document, "/v1/lambda/endpoint1", "get", operation(lambda_uri("lambda_1_arn")))
        report = validate(ideal_document, ideal_model)
        [unpermitted] = report.of_kind(FindingKind.UNPERMITTED_OPERATION)
        assert unpermitted.severity == Severity.WARNING
        assert unpermitted.message.endswith("(invokes lambda-1)")


# ---------------------------------------------------------------------------
# Handlers and report properties
# ---------------------------------------------------------------------------


class TestDuplicateHandlers:
    def test_shared_handler(self, ideal_document: dict[str, Any]) -> None:
        lambdas = {"lambda-1": "shared.handler", "lambda-2": "shared.handler"}
        report = validate(ideal_document, _model(lambdas=lambdas))
        [duplicate] = report.of_kind(FindingKind.DUPLICATE_HANDLER)
        assert "lambda-1, lambda-2" in duplicate.message
        assert duplicate.location.file == "lambda.tf"


class TestReportProperties:
    def test_findings_follow_check_order(self, ideal_document: dict[str, Any]) -> None:
        _with_path(ideal_document, "/v1/lambda/endpoint1", "get", operation(lambda_uri("lambda_2_arn")))
        model = _model(
            lambdas={"lambda-1": "shared.handler", "lambda-2": "shared.handler"},
            permissions={"lambda-2": IDEAL_PERMISSIONS["lambda-2"]},
        )
        assert _kinds(validate(ideal_document, model)) == [
            FindingKind.ORPHAN_LAMBDA,
            FindingKind.UNPERMITTED_OPERATION,
            FindingKind.DUPLICATE_HANDLER,
        ]

    def test_deterministic(self, ideal_document: dict[str, Any]) -> None:
        model = _model(
            lambdas={"b": "x.handler", "a": "x.handler", "lambda-2": "two.handler"},
            permissions={"z": [("Z", "*/GET/nowhere")], "lambda-2": IDEAL_PERMISSIONS["lambda-2"]},
            bindings=dict(IDEAL_BINDINGS, unused="var.unused"),
        )
        first = validate(ideal_document, model)
        second = validate(ideal_document, model)
        assert first.model_dump_json() == second.model_dump_json()
        assert len(first) > 0

    def test_inputs_are_not_modified(self, ideal_document: dict[str, Any], ideal_model) -> None:
        before = (dict(ideal_document["paths"]), ideal_model.model_dump())
        validate(ideal_document, ideal_model)
        assert (dict(ideal_document["paths"]), ideal_model.model_dump()) == before

    def test_merged_document_supplies_file(self, ideal_document: dict[str, Any], ideal_model) -> None:
        _with_path(ideal_document, "/v1/health", "get", operation())
        merged = MergedDocument(document=ideal_document, sources={"/v1/health": "health.yaml"})
        [missing] = validate(merged, ideal_model).findings
        assert missing.location.file == "health.yaml"
