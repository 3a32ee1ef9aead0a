"""Shared test fixtures for gatecheck.

Provides reusable fixtures for building OpenAPI documents and Terraform
models, copying the on-disk fixture deployment, and isolating configuration.
These fixtures are automatically discovered by pytest and available to all
test modules without explicit imports.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any, Optional

import pytest

from gatecheck.models import (
    LambdaDefinition,
    PermissionStatement,
    TemplateBinding,
    TerraformModel,
)
from gatecheck.output import reset_output


FIXTURES_DIR = Path(__file__).parent / "fixtures"

EXECUTION_ARN = "${aws_api_gateway_rest_api.api.execution_arn}"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale.
    Resetting forces a fresh manager to be created on next use.  Handlers
    installed on the ``gatecheck`` logger hold the same stale streams and
    are removed too.
    """
    yield
    reset_output()
    logger = logging.getLogger("gatecheck")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def lambda_uri(variable: str) -> str:
    return (
        "arn:aws:apigateway:eu-west-1:lambda:path/2015-03-31/functions/"
        f"${{{variable}}}/invocations"
    )


def operation(uri: Optional[str] = None, **extension: Any) -> dict[str, Any]:
    """An OpenAPI operation, with an integration extension when *uri* is given."""
    op: dict[str, Any] = {"responses": {"200": {"description": "OK"}}}
    if uri is not None or extension:
        integration: dict[str, Any] = {"type": "aws_proxy", "httpMethod": "POST"}
        integration.update(extension)
        if uri is not None:
            integration["uri"] = uri
        op["x-amazon-apigateway-integration"] = integration
    return op


def make_document(paths: dict[str, Any]) -> dict[str, Any]:
    return {
        "openapi": "3.0.3",
        "info": {"title": "Test API", "version": "1.0.0"},
        "paths": paths,
    }


def make_model(
    lambdas: Optional[dict[str, str]] = None,
    permissions: Optional[dict[str, list[tuple[str, str]]]] = None,
    bindings: Optional[dict[str, str]] = None,
) -> TerraformModel:
    """Build a :class:`TerraformModel` from compact descriptions.

    Args:
        lambdas: logical name -> handler.
        permissions: logical name -> ``[(statement_id, route), ...]`` where
            *route* is appended to the execution ARN, e.g. ``"*/POST/v1/x"``.
        bindings: variable -> Terraform expression.
    """
    from gatecheck.terraform.expressions import referenced_lambda

    return TerraformModel(
        lambdas={
            name: LambdaDefinition(name=name, handler=handler, source_file="lambda.tf")
            for name, handler in (lambdas or {}).items()
        },
        permissions={
            name: [
                PermissionStatement(
                    logical_name=name,
                    statement_id=sid,
                    principal="apigateway.amazonaws.com",
                    source_arn=f"{EXECUTION_ARN}/{route}",
                    source_file="lambda_permissions.tf",
                )
                for sid, route in statements
            ]
            for name, statements in (permissions or {}).items()
        },
        bindings={
            variable: TemplateBinding(
                variable=variable,
                expression=expression,
                logical_name=referenced_lambda(expression),
                source_file="api_gateway.tf",
            )
            for variable, expression in (bindings or {}).items()
        },
    )


def lambda_arn(name: str) -> str:
    return f'module.lambda["{name}"].lambda_arn'


# ---------------------------------------------------------------------------
# The consistent two-lambda deployment
# ---------------------------------------------------------------------------


@pytest.fixture
def ideal_document() -> dict[str, Any]:
    """Two paths, each integrated with its own templated lambda."""
    return make_document(
        {
            "/v1/lambda/endpoint1": {"post": operation(lambda_uri("lambda_1_arn"))},
            "/v1/lambda/endpoint2": {"get": operation(lambda_uri("lambda_2_arn"))},
        }
    )


@pytest.fixture
def ideal_model() -> TerraformModel:
    """Two lambdas, each permitted on its path and bound to its variable."""
    return make_model(
        lambdas={"lambda-1": "one.handler", "lambda-2": "two.handler"},
        permissions={
            "lambda-1": [("AllowOne", "*/POST/v1/lambda/endpoint1")],
            "lambda-2": [("AllowTwo", "*/GET/v1/lambda/endpoint2")],
        },
        bindings={
            "lambda_1_arn": lambda_arn("lambda-1"),
            "lambda_2_arn": lambda_arn("lambda-2"),
        },
    )


@pytest.fixture
def deployment(tmp_path: Path) -> Path:
    """Copy of ``fixtures/ideal`` (``api/`` and ``terraform/``) under tmp_path.

    Tests may edit the copy freely.
    """
    target = tmp_path / "deployment"
    shutil.copytree(FIXTURES_DIR / "ideal", target)
    return target


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path so
    that tests never touch real user config, clears all GATECHECK_*
    environment variables, and changes the working directory to tmp_path.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("gatecheck.config._is_xdg_platform", lambda: True)

    for var in [
        "GATECHECK_TOLERATE_CYCLIC_REFS",
        "GATECHECK_SCHEMA_VALIDATION",
        "GATECHECK_SOURCE_ARN_MATCHER",
        "NO_COLOR",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path

