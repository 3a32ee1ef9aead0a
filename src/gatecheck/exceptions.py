"""Exception hierarchy for gatecheck.

All exceptions inherit from :class:`GatecheckError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`gatecheck.exit_codes`.
The top-level error handler in :func:`gatecheck.app.main` catches
``GatecheckError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Errors that abort a verification stage (:class:`ResolutionError`,
:class:`StructuralError`) carry the :class:`~gatecheck.report.Finding`
objects that describe them, so the pipeline can fold them into the report
instead of losing them.

Subclass hierarchy::

    GatecheckError (exit 1)
    +-- InvalidUsageError       (exit 2)
    +-- DocumentLoadError       (exit 7)
    +-- ConfigError             (exit 1)
    +-- ResolutionError         (exit 1)
    |   +-- CyclicRefError
    |   +-- UnresolvableRefError
    +-- StructuralError         (exit 1)
        +-- KeyCollisionError
        +-- MissingBlockError
        +-- MalformedBlockError
"""

from __future__ import annotations

from typing import Optional, Sequence

from gatecheck.exit_codes import (
    EXIT_DOCUMENT_ERROR,
    EXIT_FINDINGS,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
)
from gatecheck.report import Finding, FindingKind, Severity, make_finding


class GatecheckError(Exception):
    """Base exception for all gatecheck errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`gatecheck.exit_codes`.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(GatecheckError):
    """Raised for invalid CLI arguments (missing directories, unknown matcher)."""

    exit_code = EXIT_INVALID_USAGE


class DocumentLoadError(GatecheckError):
    """Raised when an OpenAPI or Terraform file cannot be read or parsed."""

    exit_code = EXIT_DOCUMENT_ERROR


class ConfigError(GatecheckError):
    """Raised for configuration problems (invalid JSON, bad values)."""

    exit_code = EXIT_GENERIC_FAILURE


class ResolutionError(GatecheckError):
    """Base class for ``$ref`` resolution failures.

    Attributes:
        ref: The ``$ref`` string that could not be expanded.
        source: The document the reference was found in.
    """

    exit_code = EXIT_FINDINGS
    kind: FindingKind = FindingKind.UNRESOLVABLE_REF

    def __init__(self, message: str, ref: str, source: Optional[str] = None):
        super().__init__(message)
        self.ref = ref
        self.source = source

    @property
    def findings(self) -> list[Finding]:
        return [
            make_finding(
                self.kind,
                str(self),
                severity=Severity.FATAL,
                file=self.source,
                pointer=self.ref,
            )
        ]


class CyclicRefError(ResolutionError):
    """Raised when a ``$ref`` chain revisits a reference already being expanded.

    Attributes:
        cycle: Canonical reference identifiers forming the cycle, with the
            repeated identifier at both ends (``[A, B, A]``).
    """

    kind = FindingKind.CYCLIC_REF

    def __init__(self, cycle: Sequence[str], ref: str, source: Optional[str] = None):
        self.cycle = list(cycle)
        super().__init__(f"Cyclic $ref: {' -> '.join(self.cycle)}", ref, source)


class UnresolvableRefError(ResolutionError):
    """Raised when a ``$ref`` target does not exist or cannot be loaded."""

    kind = FindingKind.UNRESOLVABLE_REF


class StructuralError(GatecheckError):
    """Base class for errors that leave a model unusable.

    Args:
        findings: Every structural problem detected before giving up.
    """

    exit_code = EXIT_FINDINGS

    def __init__(self, findings: Sequence[Finding]):
        self.findings = list(findings)
        summary = "; ".join(f.message for f in self.findings) or "structural error"
        super().__init__(summary)


class KeyCollisionError(StructuralError):
    """Raised when merged OpenAPI documents define the same key differently."""


class MissingBlockError(StructuralError):
    """Raised when a required Terraform block or attribute is absent."""


class MalformedBlockError(StructuralError):
    """Raised when a Terraform block exists but lacks required attributes."""
