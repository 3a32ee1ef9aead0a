"""Canonical Pydantic models shared across all gatecheck modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into three groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`OutputConfig`, :class:`VerifySettings` and :class:`GlobalConfig`.

**Terraform models** -- produced by :mod:`gatecheck.terraform.extractor`:
    :class:`LambdaDefinition`, :class:`PermissionStatement`,
    :class:`TemplateBinding` and :class:`TerraformModel`.

**OpenAPI models** -- produced by :mod:`gatecheck.openapi.extractor`:
    :class:`HTTPMethod` and :class:`IntegrationTarget`.

Terraform and OpenAPI models are frozen; once extracted they are only read.
"""

from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Configuration ---


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class VerifySettings(BaseModel):
    """Knobs that change how a verification run behaves.

    Resolved by :func:`~gatecheck.config.resolve_config` from CLI flags,
    environment variables, the project-local ``gatecheck.json`` and the user
    config, in that order of precedence.
    """

    tolerate_cyclic_refs: bool = Field(
        default=False,
        description="Report reference cycles as warnings instead of aborting",
    )
    schema_validation: bool = Field(
        default=True, description="Run OpenAPI schema validation on the merged document"
    )
    source_arn_matcher: str = Field(
        default="method-marker",
        description="Name of the matcher that extracts routes from source_arn",
    )
    api_gateway_module_pattern: str = Field(
        default=r"api[_-]?gateway|apigw",
        description="Regex matched against module names to find the API Gateway module",
    )
    exclude: list[str] = Field(
        default_factory=list,
        description="Gitignore-style patterns excluded from file discovery",
    )
    parallel: bool = Field(
        default=True, description="Resolve and validate independent inputs concurrently"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/gatecheck/config.json``.

    Loaded and saved by :func:`~gatecheck.config.load_global_config` and
    :func:`~gatecheck.config.save_global_config`. Fields here have the
    lowest precedence and can be overridden by project config, environment
    variables, or CLI flags.
    """

    verify: VerifySettings = Field(default_factory=VerifySettings)
    output: OutputConfig = Field(default_factory=OutputConfig)


# --- Terraform ---


class LambdaDefinition(BaseModel):
    """One entry of ``locals.lambdas`` in ``lambda.tf``.

    Attributes other than ``handler`` are kept in ``attributes`` and otherwise
    ignored.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    handler: str
    attributes: dict[str, Any] = Field(default_factory=dict)
    source_file: Optional[str] = None


class PermissionStatement(BaseModel):
    """One element of a ``locals.lambdas_permissions`` list."""

    model_config = ConfigDict(frozen=True)

    logical_name: str
    statement_id: str
    principal: str
    source_arn: str
    source_file: Optional[str] = None


class TemplateBinding(BaseModel):
    """A variable passed to the OpenAPI template through ``templatefile(...)``.

    ``expression`` is the literal Terraform text of the value. When it has the
    shape ``module.lambda["<name>"].lambda_arn``, ``logical_name`` holds
    ``<name>``.
    """

    model_config = ConfigDict(frozen=True)

    variable: str
    expression: str
    logical_name: Optional[str] = None
    source_file: Optional[str] = None


class TerraformModel(BaseModel):
    """Everything gatecheck needs from the Terraform files.

    ``lambdas`` and ``bindings`` are keyed by their unique identifier
    (logical name and variable name). ``permissions`` maps a logical name to
    its statements in declaration order; its keys are *not* guaranteed to be
    defined in ``lambdas``.
    """

    model_config = ConfigDict(frozen=True)

    lambdas: dict[str, LambdaDefinition] = Field(default_factory=dict)
    permissions: dict[str, list[PermissionStatement]] = Field(default_factory=dict)
    bindings: dict[str, TemplateBinding] = Field(default_factory=dict)


# --- OpenAPI ---


class HTTPMethod(str, enum.Enum):
    """HTTP methods an API Gateway operation can be declared for.

    ``ANY`` corresponds to the ``x-amazon-apigateway-any-method`` path-item
    key.
    """

    GET = "get"
    POST = "post"
    PUT = "put"
    PATCH = "patch"
    DELETE = "delete"
    HEAD = "head"
    OPTIONS = "options"
    TRACE = "trace"
    ANY = "any"


class IntegrationType(str, enum.Enum):
    """How an operation's integration ``uri`` is classified."""

    LAMBDA = "lambda"
    STEP_FUNCTION = "step_function"
    OTHER = "other"
    NONE = "none"


class IntegrationTarget(BaseModel):
    """One OpenAPI operation and its ``x-amazon-apigateway-integration``.

    ``variables`` lists the ``${name}`` placeholders of ``uri`` in order of
    first appearance. ``extension_type`` is the extension's own ``type``
    (``aws_proxy``, ``mock``, ...).
    """

    model_config = ConfigDict(frozen=True)

    path: str
    method: HTTPMethod
    has_extension: bool = False
    extension_type: Optional[str] = None
    uri: Optional[str] = None
    integration_type: IntegrationType = IntegrationType.NONE
    variables: tuple[str, ...] = ()

    @property
    def label(self) -> str:
        return f"{self.method.value.upper()} {self.path}"
