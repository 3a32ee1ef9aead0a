"""Load OpenAPI documents from a URL, local file, or stdin.

This module handles all I/O for fetching raw OpenAPI documents and converting
them into Python dictionaries.  It supports both JSON and YAML formats with
automatic format detection, and validates that the document declares a
supported OpenAPI version (3.0.x or 3.1.x).

The public functions are:

* :func:`load_document` -- Load and parse a document from any supported source.
* :func:`discover_documents` -- Find every OpenAPI file under a directory.
* :func:`validate_openapi_version` -- Check and return the ``openapi`` version
  string, rejecting Swagger 2.x and unsupported versions.

The resolver also uses :func:`load_document` to fetch external ``$ref``
targets.
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any, Sequence

import httpx
import pathspec
import yaml

from gatecheck.exceptions import DocumentLoadError

DOCUMENT_SUFFIXES = (".yaml", ".yml", ".json")

# Directories never worth descending into.
_ALWAYS_SKIP = {".git", ".terraform", "node_modules", "__pycache__"}


def is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def load_document(source: str) -> dict[str, Any]:
    """Load an OpenAPI document from URL, file path, or stdin ('-').

    Supports JSON and YAML formats.
    Auto-detects format from content/extension.

    Args:
        source: A URL (http/https), file path, or '-' for stdin.

    Returns:
        The parsed document as a dictionary.

    Raises:
        DocumentLoadError: If the source cannot be loaded or parsed.
    """
    if source == "-":
        return _load_from_stdin()
    elif is_url(source):
        return _load_from_url(source)
    else:
        return _load_from_file(source)


def _load_from_stdin() -> dict[str, Any]:
    """Read a document from stdin, parsing as JSON then YAML."""
    try:
        content = sys.stdin.read()
    except Exception as exc:
        raise DocumentLoadError(f"Failed to read from stdin: {exc}") from exc

    if not content.strip():
        raise DocumentLoadError("No input received from stdin")

    return _parse_content(content, hint="stdin")


def _load_from_url(url: str) -> dict[str, Any]:
    """Fetch a document from URL. Supports JSON and YAML responses.

    Raises:
        DocumentLoadError: If the URL cannot be fetched or content cannot be parsed.
    """
    try:
        response = httpx.get(url, timeout=30.0, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise DocumentLoadError(
            f"HTTP {exc.response.status_code} fetching document from {url}"
        ) from exc
    except httpx.RequestError as exc:
        raise DocumentLoadError(f"Failed to fetch document from {url}: {exc}") from exc

    content_type = response.headers.get("content-type", "")
    hint = ""
    if "json" in content_type:
        hint = "json"
    elif "yaml" in content_type or "yml" in content_type:
        hint = "yaml"

    return _parse_content(response.text, hint=hint)


def _load_from_file(path: str) -> dict[str, Any]:
    """Load a document from a local file.

    Supports .json, .yaml, and .yml extensions. Falls back to content-based
    detection if the extension is not recognized.

    Raises:
        DocumentLoadError: If the file cannot be read or content cannot be parsed.
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise DocumentLoadError(f"OpenAPI file not found: {path}")

    try:
        content = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise DocumentLoadError(f"Failed to read OpenAPI file {path}: {exc}") from exc

    if not content.strip():
        raise DocumentLoadError(f"OpenAPI file is empty: {path}")

    suffix = file_path.suffix.lower()
    hint = ""
    if suffix == ".json":
        hint = "json"
    elif suffix in (".yaml", ".yml"):
        hint = "yaml"

    try:
        return _parse_content(content, hint=hint)
    except DocumentLoadError as exc:
        raise DocumentLoadError(f"{path}: {exc}") from exc


def _parse_content(content: str, hint: str = "") -> dict[str, Any]:
    """Parse content as JSON or YAML.

    Tries JSON first (unless hint is 'yaml'), then falls back to YAML.
    Valid JSON is also valid YAML, but JSON parsing is stricter and faster.

    Raises:
        DocumentLoadError: If the content cannot be parsed as either format.
    """
    json_error: Exception | None = None
    yaml_error: Exception | None = None

    if hint != "yaml":
        try:
            result = json.loads(content)
            if not isinstance(result, dict):
                raise DocumentLoadError(
                    "Document must be a JSON/YAML object (got "
                    f"{type(result).__name__})"
                )
            return result
        except json.JSONDecodeError as exc:
            json_error = exc
            if hint == "json":
                raise DocumentLoadError(f"Invalid JSON: {exc}") from exc

    try:
        result = yaml.safe_load(content)
        if not isinstance(result, dict):
            raise DocumentLoadError(
                "Document must be a JSON/YAML object (got "
                f"{type(result).__name__ if result is not None else 'empty document'})"
            )
        return result
    except yaml.YAMLError as exc:
        yaml_error = exc

    msg = "Failed to parse document as JSON or YAML"
    if json_error:
        msg += f"\n  JSON error: {json_error}"
    if yaml_error:
        msg += f"\n  YAML error: {yaml_error}"
    raise DocumentLoadError(msg)


def discover_documents(
    root: str | Path,
    exclude_patterns: Sequence[str] | None = None,
) -> list[Path]:
    """Return every OpenAPI file under *root*, sorted by path.

    Files ending in ``.yaml``, ``.yml`` or ``.json`` are collected
    recursively.  Exclude patterns use gitignore syntax (via
    :mod:`pathspec`) relative to *root*.

    Raises:
        DocumentLoadError: If *root* is not a directory.
    """
    return discover_files(root, DOCUMENT_SUFFIXES, exclude_patterns)


def discover_files(
    root: str | Path,
    suffixes: Sequence[str],
    exclude_patterns: Sequence[str] | None = None,
) -> list[Path]:
    """Walk *root* and collect files with one of *suffixes*.

    Shared by OpenAPI and Terraform discovery.  Directories in
    ``_ALWAYS_SKIP`` are pruned, as is anything matching *exclude_patterns*.
    """
    root_path = Path(root)
    if not root_path.is_dir():
        raise DocumentLoadError(f"Path {root} is not a folder")

    exclude_spec = (
        pathspec.PathSpec.from_lines("gitignore", exclude_patterns)
        if exclude_patterns
        else None
    )

    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(str(root_path)):
        rel_dir = os.path.relpath(dirpath, str(root_path))

        dirnames[:] = [
            d for d in dirnames
            if d not in _ALWAYS_SKIP
            and not (exclude_spec and exclude_spec.match_file(
                (os.path.join(rel_dir, d) if rel_dir != "." else d) + "/",
            ))
        ]

        for fname in filenames:
            if not fname.lower().endswith(tuple(suffixes)):
                continue
            rel_path = os.path.join(rel_dir, fname) if rel_dir != "." else fname
            if exclude_spec and exclude_spec.match_file(rel_path):
                continue
            found.append(Path(dirpath) / fname)

    return sorted(found)


def validate_openapi_version(document: dict[str, Any]) -> str:
    """Validate and return the OpenAPI version string.

    Supports OpenAPI 3.0.x and 3.1.x. Raises DocumentLoadError for Swagger 2.x,
    missing version fields, or unsupported versions.

    Raises:
        DocumentLoadError: If the version is missing, unsupported, or indicates Swagger 2.x.
    """
    if "swagger" in document:
        swagger_ver = str(document["swagger"])
        raise DocumentLoadError(
            f"Swagger {swagger_ver} is not supported. "
            "Only OpenAPI 3.0.x and 3.1.x are supported. "
            "Consider converting with https://converter.swagger.io"
        )

    openapi_version = document.get("openapi")
    if openapi_version is None:
        raise DocumentLoadError(
            "Missing 'openapi' field. Is this an OpenAPI 3.x document?"
        )

    version_str = str(openapi_version)
    if version_str.startswith("3."):
        return version_str

    raise DocumentLoadError(
        f"Unsupported OpenAPI version: {version_str}. "
        "Only OpenAPI 3.0.x and 3.1.x are supported."
    )
