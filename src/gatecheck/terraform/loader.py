"""Discover and parse the Terraform files of an API Gateway deployment.

Every ``*.tf`` file under the Terraform directory is parsed with
``python-hcl2`` so that syntax errors anywhere are reported, not only in the
files gatecheck reads.  ``.terraform/`` directories are never visited.

Only the three files the model is built from are returned:
``lambda.tf``, ``lambda_permissions.tf`` and ``api_gateway.tf``.  Each of
them must exist directly in the Terraform directory.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Sequence

import hcl2

from gatecheck.exceptions import DocumentLoadError
from gatecheck.openapi.loader import discover_files

logger = logging.getLogger(__name__)

REQUIRED_FILES = ("lambda.tf", "lambda_permissions.tf", "api_gateway.tf")


def parse_terraform(text: str, source: str = "<string>") -> dict[str, Any]:
    """Parse Terraform text into a tree of blocks and attributes.

    Raises:
        DocumentLoadError: If the text is not valid HCL.
    """
    try:
        return hcl2.loads(text)
    except Exception as exc:
        raise DocumentLoadError(f"Failed to parse Terraform file {source}: {exc}") from exc


def load_terraform(
    root: str | Path,
    exclude_patterns: Sequence[str] | None = None,
) -> dict[str, dict[str, Any]]:
    """Parse every Terraform file under *root* and return the required ones.

    Args:
        root: The Terraform directory.
        exclude_patterns: Gitignore-style patterns excluded from discovery.

    Returns:
        Parsed trees for :data:`REQUIRED_FILES`, keyed by file name.

    Raises:
        DocumentLoadError: If *root* is not a directory, a file cannot be
            read or parsed, or a required file is missing.
    """
    root_path = Path(root)
    parsed: dict[str, dict[str, Any]] = {}
    for path in discover_files(root_path, (".tf",), exclude_patterns):
        relative = path.relative_to(root_path).as_posix()
        logger.debug("Parsing %s", relative)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise DocumentLoadError(f"Failed to read Terraform file {path}: {exc}") from exc
        parsed[relative] = parse_terraform(text, source=relative)

    for name in REQUIRED_FILES:
        if name not in parsed:
            raise DocumentLoadError(f"File {name} doesn't exist in {root}")

    return {name: parsed[name] for name in REQUIRED_FILES}
