"""Verification pipeline: load, resolve, merge, validate, cross-reference.

Stage order::

    discover OpenAPI files
      -> resolve each document (in parallel, one resolver context each)
      -> merge
      -> schema validation  ||  Terraform load + extraction   (in parallel)
      -> cross-reference validation

Resolution and structural errors (reference cycles, unresolvable references,
key collisions, missing or malformed Terraform blocks) stop the pipeline
before cross-referencing.  They are folded into the returned report as fatal
findings rather than raised, so the caller always gets a report.  Load
errors (unreadable files, bad syntax, missing directories) are raised as
:class:`~gatecheck.exceptions.DocumentLoadError`.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional, Union

from gatecheck.exceptions import DocumentLoadError, ResolutionError, StructuralError
from gatecheck.models import TerraformModel, VerifySettings
from gatecheck.openapi.loader import discover_documents
from gatecheck.openapi.merger import MergedDocument, merge_documents
from gatecheck.openapi.resolver import resolve_file
from gatecheck.openapi.schema import (
    OpenApiSpecValidator,
    SchemaValidator,
    violations_to_findings,
)
from gatecheck.report import Finding, ReportBuilder, ValidationReport
from gatecheck.terraform.extractor import extract_model
from gatecheck.terraform.loader import load_terraform
from gatecheck.validation.crossref import validate
from gatecheck.validation.matchers import SourceArnMatcher, get_matcher

logger = logging.getLogger(__name__)

MAX_WORKERS = 8

PathLike = Union[str, Path]


def _workers(settings: VerifySettings, jobs: int) -> int:
    return max(1, min(MAX_WORKERS, jobs)) if settings.parallel else 1


def load_merged_document(
    api_path: PathLike, settings: Optional[VerifySettings] = None
) -> MergedDocument:
    """Discover, resolve and merge every OpenAPI document under *api_path*.

    Raises:
        DocumentLoadError: If no document is found or one cannot be loaded.
        ResolutionError: On a reference cycle (unless tolerated) or an
            unresolvable reference.
        KeyCollisionError: If the documents collide when merged.
    """
    settings = settings or VerifySettings()
    paths = discover_documents(api_path, settings.exclude)
    if not paths:
        raise DocumentLoadError(f"No OpenAPI documents found in {api_path}")
    logger.info("Resolving %d OpenAPI document(s) from %s", len(paths), api_path)

    def resolve(path: Path):
        return resolve_file(str(path), tolerate_cycles=settings.tolerate_cyclic_refs)

    with ThreadPoolExecutor(max_workers=_workers(settings, len(paths))) as pool:
        resolved = list(pool.map(resolve, paths))
    return merge_documents(resolved)


def load_model(
    terraform_path: PathLike, settings: Optional[VerifySettings] = None
) -> TerraformModel:
    """Parse the Terraform directory and extract its :class:`TerraformModel`.

    Raises:
        DocumentLoadError: If a file is missing or cannot be parsed.
        MissingBlockError: If a required block is absent.
        MalformedBlockError: If a block lacks required attributes.
    """
    settings = settings or VerifySettings()
    logger.info("Extracting Terraform model from %s", terraform_path)
    parsed = load_terraform(terraform_path, settings.exclude)
    return extract_model(parsed, settings.api_gateway_module_pattern)


def _schema_findings(merged: MergedDocument, validator: SchemaValidator) -> list[Finding]:
    violations = validator.validate(merged.document)
    logger.debug("Schema validation reported %d violation(s)", len(violations))
    return violations_to_findings(violations)


def run_verification(
    api_path: PathLike,
    terraform_path: PathLike,
    settings: Optional[VerifySettings] = None,
    schema_validator: Optional[SchemaValidator] = None,
    matcher: Optional[SourceArnMatcher] = None,
) -> ValidationReport:
    """Run every verification stage and return the combined report.

    Args:
        api_path: Directory holding the OpenAPI documents.
        terraform_path: Directory holding ``lambda.tf``,
            ``lambda_permissions.tf`` and ``api_gateway.tf``.
        settings: Verification settings; defaults apply when ``None``.
        schema_validator: Schema validation delegate; defaults to
            :class:`~gatecheck.openapi.schema.OpenApiSpecValidator`.
        matcher: Source-ARN matcher; defaults to the one named in
            ``settings.source_arn_matcher``.

    Returns:
        The :class:`~gatecheck.report.ValidationReport`.  Its findings are
        ordered by stage: resolution and merge warnings, schema violations,
        then cross-reference findings.

    Raises:
        InvalidUsageError: If the configured matcher does not exist.
        DocumentLoadError: If an input cannot be found, read or parsed.
    """
    settings = settings or VerifySettings()
    matcher = matcher or get_matcher(settings.source_arn_matcher)
    builder = ReportBuilder()

    try:
        merged = load_merged_document(api_path, settings)
    except (ResolutionError, StructuralError) as exc:
        logger.info("OpenAPI stage failed: %s", exc)
        builder.extend(exc.findings)
        return builder.build()
    builder.extend(merged.findings)

    validator = schema_validator or OpenApiSpecValidator()
    with ThreadPoolExecutor(max_workers=_workers(settings, 2)) as pool:
        schema_future = (
            pool.submit(_schema_findings, merged, validator)
            if settings.schema_validation
            else None
        )
        model_future = pool.submit(load_model, terraform_path, settings)

        if schema_future is not None:
            builder.extend(schema_future.result())
        try:
            model = model_future.result()
        except StructuralError as exc:
            logger.info("Terraform stage failed: %s", exc)
            builder.extend(exc.findings)
            return builder.build()

    builder.extend(validate(merged, model, matcher).findings)
    return builder.build()
