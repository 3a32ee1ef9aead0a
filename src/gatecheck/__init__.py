"""gatecheck -- Cross-validate OpenAPI documents against API Gateway Terraform.

This package catches drift between the OpenAPI documents that describe an AWS
API Gateway and the Terraform that wires the gateway to Lambda functions,
before anything is deployed.

Typical workflow::

    gatecheck verify --api-path ./openapi --terraform ./terraform

The OpenAPI documents are resolved, merged and schema-checked, the Terraform
files are turned into a typed model, and an identifier graph linking both is
checked for consistency.

Modules:
    app: Typer application factory and CLI entry point.
    models: Pydantic models shared across the entire package.
    config: XDG-aware configuration and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
    report: Findings and the immutable validation report.
    pipeline: End-to-end verification run.
"""

__version__ = "0.3.0"
