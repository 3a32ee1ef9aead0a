"""OpenAPI schema validation of the merged document.

Schema compliance is delegated to :mod:`openapi_spec_validator`.  gatecheck
does not interpret the violations; they are surfaced verbatim as fatal
``SchemaViolation`` findings.

Any object with a ``validate(document)`` method returning
:class:`SchemaViolation` instances satisfies :class:`SchemaValidator`, which
keeps the pipeline testable without the real validator.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from openapi_spec_validator import OpenAPIV30SpecValidator, OpenAPIV31SpecValidator

from gatecheck.exceptions import DocumentLoadError
from gatecheck.openapi.loader import validate_openapi_version
from gatecheck.report import Finding, FindingKind, make_finding

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchemaViolation:
    """One violation reported by the schema validator.

    Attributes:
        message: Validator message, unmodified.
        path: Dotted location inside the document (empty for the root).
    """

    message: str
    path: str = ""


class SchemaValidator(Protocol):
    def validate(self, document: dict[str, Any]) -> list[SchemaViolation]: ...


class OpenApiSpecValidator:
    """:class:`SchemaValidator` backed by ``openapi-spec-validator``.

    The 3.1 validator is used for ``openapi: 3.1.x`` documents, the 3.0
    validator for everything else.  A missing or unsupported ``openapi``
    version is itself a violation.  The validator can fail part-way through
    a document it finds invalid (a ``KeyError`` on a malformed operation,
    say); the violations collected so far are kept and the failure is
    reported as one more violation.
    """

    def validate(self, document: dict[str, Any]) -> list[SchemaViolation]:
        try:
            version = validate_openapi_version(document)
        except DocumentLoadError as exc:
            return [SchemaViolation(message=str(exc), path="openapi")]
        validator_cls = (
            OpenAPIV31SpecValidator if version.startswith("3.1") else OpenAPIV30SpecValidator
        )

        violations: list[SchemaViolation] = []
        try:
            for err in validator_cls(document).iter_errors():
                violations.append(
                    SchemaViolation(
                        message=err.message,
                        path=".".join(str(part) for part in err.path),
                    )
                )
        except Exception as exc:  # noqa: BLE001
            logger.debug("Schema validator stopped early", exc_info=True)
            violations.append(
                SchemaViolation(
                    message=f"Schema validation stopped: {type(exc).__name__}: {exc}"
                )
            )
        return violations


def violations_to_findings(
    violations: list[SchemaViolation], source: str = "merged document"
) -> list[Finding]:
    return [
        make_finding(
            FindingKind.SCHEMA_VIOLATION,
            v.message,
            file=source,
            pointer=v.path or None,
        )
        for v in violations
    ]
