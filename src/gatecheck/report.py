"""Findings and the immutable validation report.

Every stage of a verification run (resolution, merging, schema validation,
Terraform extraction and cross-referencing) reports problems as
:class:`Finding` instances. Findings are accumulated in a
:class:`ReportBuilder` and frozen into a :class:`ValidationReport` once the
run is over.

Each :class:`FindingKind` has a default :class:`Severity`; callers may
override it (a tolerated reference cycle, for instance, is a warning while an
untolerated one is fatal).
"""

from __future__ import annotations

import enum
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field

from gatecheck.exit_codes import EXIT_FINDINGS, EXIT_SUCCESS


class Severity(str, enum.Enum):
    """How a finding affects the process exit status."""

    FATAL = "fatal"
    WARNING = "warning"


class FindingKind(str, enum.Enum):
    """Every category of problem gatecheck can report."""

    # Delegate
    SCHEMA_VIOLATION = "SchemaViolation"
    # Structural
    KEY_COLLISION = "KeyCollision"
    MISSING_BLOCK = "MissingBlock"
    MALFORMED_BLOCK = "MalformedBlock"
    DUPLICATE_TAG = "DuplicateTag"
    # Resolution
    CYCLIC_REF = "CyclicRef"
    UNRESOLVABLE_REF = "UnresolvableRef"
    # Consistency
    ORPHAN_LAMBDA = "OrphanLambda"
    ORPHAN_PERMISSION = "OrphanPermission"
    PERMISSION_PATH_MISMATCH = "PermissionPathMismatch"
    AMBIGUOUS_SOURCE_ARN = "AmbiguousSourceArn"
    UNBOUND_TEMPLATE_VARIABLE = "UnboundTemplateVariable"
    DUPLICATE_BINDING = "DuplicateBinding"
    UNBOUND_INTEGRATION_VARIABLE = "UnboundIntegrationVariable"
    MISSING_INTEGRATION = "MissingIntegration"
    UNSUPPORTED_INTEGRATION = "UnsupportedIntegration"
    UNTEMPLATED_INTEGRATION = "UntemplatedIntegration"
    UNUSED_BINDING = "UnusedBinding"
    INTEGRATION_TARGET_MISMATCH = "IntegrationTargetMismatch"
    UNPERMITTED_OPERATION = "UnpermittedOperation"
    DUPLICATE_HANDLER = "DuplicateHandler"


DEFAULT_SEVERITY: dict[FindingKind, Severity] = {
    FindingKind.SCHEMA_VIOLATION: Severity.FATAL,
    FindingKind.KEY_COLLISION: Severity.FATAL,
    FindingKind.MISSING_BLOCK: Severity.FATAL,
    FindingKind.MALFORMED_BLOCK: Severity.FATAL,
    FindingKind.DUPLICATE_TAG: Severity.WARNING,
    FindingKind.CYCLIC_REF: Severity.FATAL,
    FindingKind.UNRESOLVABLE_REF: Severity.FATAL,
    FindingKind.ORPHAN_LAMBDA: Severity.FATAL,
    FindingKind.ORPHAN_PERMISSION: Severity.FATAL,
    FindingKind.PERMISSION_PATH_MISMATCH: Severity.FATAL,
    FindingKind.AMBIGUOUS_SOURCE_ARN: Severity.WARNING,
    FindingKind.UNBOUND_TEMPLATE_VARIABLE: Severity.FATAL,
    FindingKind.DUPLICATE_BINDING: Severity.FATAL,
    FindingKind.UNBOUND_INTEGRATION_VARIABLE: Severity.FATAL,
    FindingKind.MISSING_INTEGRATION: Severity.WARNING,
    FindingKind.UNSUPPORTED_INTEGRATION: Severity.WARNING,
    FindingKind.UNTEMPLATED_INTEGRATION: Severity.WARNING,
    FindingKind.UNUSED_BINDING: Severity.WARNING,
    FindingKind.INTEGRATION_TARGET_MISMATCH: Severity.FATAL,
    FindingKind.UNPERMITTED_OPERATION: Severity.WARNING,
    FindingKind.DUPLICATE_HANDLER: Severity.FATAL,
}


class Location(BaseModel):
    """Where a finding points: a file, a pointer inside it, and/or a lambda.

    ``pointer`` is a human-oriented locator such as ``POST /v1/users`` or
    ``locals.lambdas["lambda-1"]`` rather than a strict JSON pointer.
    """

    model_config = ConfigDict(frozen=True)

    file: Optional[str] = None
    pointer: Optional[str] = None
    logical_name: Optional[str] = None

    def __str__(self) -> str:
        parts = [p for p in (self.file, self.pointer) if p]
        if self.logical_name:
            parts.append(f"lambda {self.logical_name}")
        return " | ".join(parts)


class Finding(BaseModel):
    """A single problem (or notice) reported by a verification stage."""

    model_config = ConfigDict(frozen=True)

    severity: Severity
    kind: FindingKind
    message: str
    location: Optional[Location] = None

    @property
    def is_fatal(self) -> bool:
        return self.severity == Severity.FATAL


def make_finding(
    kind: FindingKind,
    message: str,
    *,
    severity: Optional[Severity] = None,
    file: Optional[str] = None,
    pointer: Optional[str] = None,
    logical_name: Optional[str] = None,
) -> Finding:
    """Build a :class:`Finding`, defaulting the severity from the kind.

    A :class:`Location` is attached only when at least one of ``file``,
    ``pointer`` or ``logical_name`` is given.
    """
    location = None
    if file or pointer or logical_name:
        location = Location(file=file, pointer=pointer, logical_name=logical_name)
    return Finding(
        severity=severity or DEFAULT_SEVERITY[kind],
        kind=kind,
        message=message,
        location=location,
    )


class ValidationReport(BaseModel):
    """Ordered, immutable collection of findings from one verification run."""

    model_config = ConfigDict(frozen=True)

    findings: tuple[Finding, ...] = Field(default_factory=tuple)

    @property
    def fatal(self) -> tuple[Finding, ...]:
        return tuple(f for f in self.findings if f.is_fatal)

    @property
    def warnings(self) -> tuple[Finding, ...]:
        return tuple(f for f in self.findings if not f.is_fatal)

    @property
    def has_fatal(self) -> bool:
        return any(f.is_fatal for f in self.findings)

    @property
    def exit_code(self) -> int:
        """``EXIT_FINDINGS`` when any finding is fatal, ``EXIT_SUCCESS`` otherwise."""
        return EXIT_FINDINGS if self.has_fatal else EXIT_SUCCESS

    def of_kind(self, kind: FindingKind) -> tuple[Finding, ...]:
        return tuple(f for f in self.findings if f.kind == kind)

    def __len__(self) -> int:
        return len(self.findings)


class ReportBuilder:
    """Mutable accumulator that produces a :class:`ValidationReport`.

    Findings keep their insertion order. :meth:`build` may be called more
    than once; each call returns an independent snapshot.
    """

    def __init__(self) -> None:
        self._findings: list[Finding] = []

    def add(self, finding: Finding) -> None:
        self._findings.append(finding)

    def extend(self, findings: Iterable[Finding]) -> None:
        self._findings.extend(findings)

    def report(
        self,
        kind: FindingKind,
        message: str,
        *,
        severity: Optional[Severity] = None,
        file: Optional[str] = None,
        pointer: Optional[str] = None,
        logical_name: Optional[str] = None,
    ) -> None:
        """Shorthand for ``add(make_finding(...))``."""
        self.add(
            make_finding(
                kind,
                message,
                severity=severity,
                file=file,
                pointer=pointer,
                logical_name=logical_name,
            )
        )

    @property
    def has_fatal(self) -> bool:
        return any(f.is_fatal for f in self._findings)

    def build(self) -> ValidationReport:
        return ValidationReport(findings=tuple(self._findings))
