"""Verify command -- cross-check OpenAPI documents against Terraform.

``gatecheck verify`` resolves and merges every OpenAPI document under
``--api-path``, validates the merged document, extracts the Lambda model from
the Terraform files under ``--terraform`` and cross-references the two.  The
report goes to stdout; the exit status is 0 when no finding is fatal and 1
otherwise.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from gatecheck.exceptions import GatecheckError, InvalidUsageError
from gatecheck.models import VerifySettings
from gatecheck.output import error, print_report, suggest

CLOSING_NOTES = (
    "Make sure to check the JSON policy in either api_gateway.tf or the "
    "resources for the attached policy.",
    "NOTE: This tool only checks for common errors. It does not check for all errors.",
)


def require_directory(path: Path, option: str) -> Path:
    """Return *path* if it is an existing directory.

    Raises:
        InvalidUsageError: Otherwise.
    """
    if not path.is_dir():
        raise InvalidUsageError(f"{option}: '{path}' is not a directory")
    return path


def load_settings(
    skip_cyclic: bool = False,
    no_schema: bool = False,
    matcher: Optional[str] = None,
    exclude: Optional[list[str]] = None,
) -> VerifySettings:
    """Resolve :class:`VerifySettings` with CLI flags on top of the config chain."""
    from gatecheck.config import resolve_config

    config = resolve_config(
        cli_tolerate_cycles=True if skip_cyclic else None,
        cli_schema_validation=False if no_schema else None,
        cli_matcher=matcher,
        cli_exclude=exclude,
    )
    return config.verify


def verify_command(
    api_path: Path = typer.Option(
        ..., "--api-path", "-a", help="Directory holding the OpenAPI documents."
    ),
    terraform: Path = typer.Option(
        ..., "--terraform", "-t", help="Directory holding the Terraform files."
    ),
    skip_cyclic: bool = typer.Option(
        False, "--skip-cyclic", help="Report cyclic $ref chains as warnings instead of aborting."
    ),
    no_schema: bool = typer.Option(
        False, "--no-schema", help="Skip OpenAPI schema validation."
    ),
    matcher: Optional[str] = typer.Option(
        None, "--matcher", help="Source ARN matcher to use (default: method-marker)."
    ),
    exclude: Optional[list[str]] = typer.Option(
        None, "--exclude", "-x", help="Gitignore-style pattern to skip (repeatable)."
    ),
) -> None:
    """Verify that the API Gateway OpenAPI and the Lambda Terraform agree.

    Example::

        gatecheck verify --api-path api/ --terraform infra/
        gatecheck --json verify -a api/ -t infra/ --skip-cyclic
    """
    from gatecheck.pipeline import run_verification

    try:
        require_directory(api_path, "--api-path")
        require_directory(terraform, "--terraform")
        settings = load_settings(skip_cyclic, no_schema, matcher, exclude)
        report = run_verification(api_path, terraform, settings)
    except GatecheckError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    print_report(report)
    for note in CLOSING_NOTES:
        suggest(note)
    raise typer.Exit(code=report.exit_code)
