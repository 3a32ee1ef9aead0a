"""OpenAPI side of gatecheck -- load, resolve, merge, validate, extract.

Turns a directory of OpenAPI fragments into a single merged document and the
list of integration targets the cross-reference validator consumes.

Typical usage::

    from gatecheck.openapi import discover_documents, resolve_file, merge_documents

    resolved = [resolve_file(str(p)) for p in discover_documents("api/")]
    merged = merge_documents(resolved)

Sub-modules:

* :mod:`~gatecheck.openapi.loader` -- I/O layer (URL, file, stdin), format
  detection, discovery and OpenAPI version validation.
* :mod:`~gatecheck.openapi.resolver` -- ``$ref`` resolution with cycle
  detection and memoisation.
* :mod:`~gatecheck.openapi.merger` -- merging with collision detection.
* :mod:`~gatecheck.openapi.schema` -- schema validation delegate.
* :mod:`~gatecheck.openapi.extractor` -- integration targets per operation.
"""

from gatecheck.openapi.extractor import extract_integrations
from gatecheck.openapi.loader import discover_documents, load_document, validate_openapi_version
from gatecheck.openapi.merger import MergedDocument, merge_documents
from gatecheck.openapi.resolver import ResolvedDocument, resolve_document, resolve_file

__all__ = [
    "discover_documents",
    "load_document",
    "validate_openapi_version",
    "resolve_document",
    "resolve_file",
    "ResolvedDocument",
    "merge_documents",
    "MergedDocument",
    "extract_integrations",
]
