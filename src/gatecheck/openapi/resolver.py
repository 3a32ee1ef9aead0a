"""Resolve ``$ref`` JSON Reference pointers in OpenAPI documents.

OpenAPI documents commonly use ``$ref`` pointers (e.g.,
``{"$ref": "#/components/schemas/Pet"}`` or
``{"$ref": "common.yaml#/components/schemas/Error"}``) to avoid repetition.
This module performs a depth-first traversal of a document, replacing every
``$ref`` with a copy of the value it points to, so that the result can be
merged with other documents without any cross-document pointers remaining.

Internal references (``#/...``), relative file references and URL references
are supported.  Every reference is canonicalised to ``<location>#<pointer>``
before use, which makes two spellings of the same target share one cache
entry.

While a reference is being expanded its identifier sits on the *resolution
path*.  Meeting an identifier that is already on the path means the
references form a cycle:

* by default this raises :class:`~gatecheck.exceptions.CyclicRefError`
  naming every identifier in the cycle;
* with ``tolerate_cycles=True`` the reference is replaced by the opaque
  marker ``{"x-gatecheck-cyclic-ref": "<ref>"}`` and a warning finding is
  recorded, so the rest of the document is still usable.

Targets that have been fully resolved are memoised, so a schema referenced
from many places is expanded once.

The public entry points are :func:`resolve_document` and
:func:`resolve_file`.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import unquote, urljoin

from gatecheck.exceptions import CyclicRefError, DocumentLoadError, UnresolvableRefError
from gatecheck.openapi.loader import is_url, load_document
from gatecheck.report import Finding, FindingKind, Severity, make_finding

logger = logging.getLogger(__name__)

CYCLE_MARKER_KEY = "x-gatecheck-cyclic-ref"
"""Key of the opaque marker left in place of a tolerated cyclic reference."""

MEMORY_SOURCE = "<memory>"


@dataclass
class ResolvedDocument:
    """A document with every ``$ref`` replaced by its target.

    Attributes:
        source: File path or URL the document came from, or ``"<memory>"``.
        document: The resolved document.  Contains no ``$ref`` nodes; a
            tolerated cycle appears as a :data:`CYCLE_MARKER_KEY` marker.
        findings: Warnings recorded during resolution.
    """

    source: str
    document: dict[str, Any]
    findings: list[Finding] = field(default_factory=list)


def resolve_document(
    document: dict[str, Any],
    source: Optional[str] = None,
    tolerate_cycles: bool = False,
    loader: Callable[[str], dict[str, Any]] = load_document,
) -> ResolvedDocument:
    """Resolve all ``$ref`` pointers in *document*.

    The input is never mutated.

    Args:
        document: The raw OpenAPI document.
        source: Where *document* was loaded from.  Relative external
            references are resolved against it (or against the current
            directory when it is ``None``).
        tolerate_cycles: Downgrade reference cycles from an error to a
            warning finding plus an opaque marker.
        loader: Callable used to fetch external documents.

    Returns:
        A :class:`ResolvedDocument`.

    Raises:
        CyclicRefError: If a reference cycle is found and *tolerate_cycles*
            is false.
        UnresolvableRefError: If a reference target cannot be found or loaded.

    Example::

        resolved = resolve_document(load_document("api.yaml"), source="api.yaml")
        resolved.document["paths"]["/pets"]["get"]["responses"]["200"]
        # now contains the inlined response instead of a $ref pointer.
    """
    context = _ResolutionContext(
        root=document,
        root_location=_canonical_location(source) if source else "",
        tolerate_cycles=tolerate_cycles,
        loader=loader,
    )
    resolved = context.walk(document, context.root_location)
    return ResolvedDocument(
        source=source or MEMORY_SOURCE,
        document=resolved,
        findings=context.findings,
    )


def resolve_file(path: str, tolerate_cycles: bool = False) -> ResolvedDocument:
    """Load the document at *path* and resolve it.  See :func:`resolve_document`."""
    return resolve_document(load_document(path), source=path, tolerate_cycles=tolerate_cycles)


def contains_refs(node: Any) -> bool:
    """Return ``True`` if any dict below *node* still has a ``$ref`` key."""
    if isinstance(node, dict):
        if "$ref" in node:
            return True
        return any(contains_refs(v) for v in node.values())
    if isinstance(node, list):
        return any(contains_refs(v) for v in node)
    return False


def _canonical_location(location: str) -> str:
    if is_url(location):
        return location
    return str(Path(location).resolve())


def _join_location(base: str, target: str) -> str:
    """Resolve the file part of a reference against the referring document."""
    if is_url(target):
        return target
    if is_url(base):
        return urljoin(base, target)
    base_dir = Path(base).parent if base else Path.cwd()
    return str((base_dir / target).resolve())


def lookup_pointer(document: Any, pointer: str, ref: str) -> Any:
    """Navigate *document* along an RFC 6901 JSON pointer.

    Handles ``~0`` / ``~1`` escaping and percent-encoded segments.  An empty
    pointer returns the whole document.

    Raises:
        UnresolvableRefError: If any segment does not exist.
    """
    if pointer in ("", "/"):
        return document
    if not pointer.startswith("/"):
        raise UnresolvableRefError(
            f"Cannot resolve $ref '{ref}': pointer must start with '/'", ref
        )

    current: Any = document
    for raw_segment in pointer[1:].split("/"):
        segment = unquote(raw_segment).replace("~1", "/").replace("~0", "~")

        if isinstance(current, dict):
            if segment not in current:
                raise UnresolvableRefError(
                    f"Cannot resolve $ref '{ref}': key '{segment}' not found", ref
                )
            current = current[segment]
        elif isinstance(current, list):
            try:
                current = current[int(segment)]
            except (ValueError, IndexError) as exc:
                raise UnresolvableRefError(
                    f"Cannot resolve $ref '{ref}': invalid array index '{segment}'", ref
                ) from exc
        else:
            raise UnresolvableRefError(
                f"Cannot resolve $ref '{ref}': "
                f"cannot navigate into {type(current).__name__}",
                ref,
            )

    return current


class _ResolutionContext:
    """State owned by exactly one :func:`resolve_document` call.

    Holds the resolution path (a stack of reference identifiers), the memo
    of fully resolved targets, and the cache of loaded external documents.
    Never shared between calls, so separate documents can be resolved
    concurrently.
    """

    def __init__(
        self,
        root: dict[str, Any],
        root_location: str,
        tolerate_cycles: bool,
        loader: Callable[[str], dict[str, Any]],
    ) -> None:
        self.root_location = root_location
        self.tolerate_cycles = tolerate_cycles
        self.findings: list[Finding] = []
        self._loader = loader
        self._documents: dict[str, Any] = {root_location: root}
        self._memo: dict[str, Any] = {}
        self._path: list[str] = []

    def walk(self, node: Any, location: str) -> Any:
        if isinstance(node, dict):
            if "$ref" in node:
                return self._expand(node["$ref"], location)
            return {key: self.walk(value, location) for key, value in node.items()}
        if isinstance(node, list):
            return [self.walk(item, location) for item in node]
        return node

    def _expand(self, ref: Any, location: str) -> Any:
        if not isinstance(ref, str):
            raise UnresolvableRefError(
                f"$ref must be a string, got {type(ref).__name__}",
                str(ref),
                self._source_label(location),
            )

        target_location, pointer = self._split(ref, location)
        identifier = f"{target_location}#{pointer}"

        if identifier in self._memo:
            return copy.deepcopy(self._memo[identifier])

        if identifier in self._path:
            cycle = self._path[self._path.index(identifier):] + [identifier]
            if not self.tolerate_cycles:
                raise CyclicRefError(cycle, ref, self._source_label(location))
            logger.debug("Tolerating cyclic $ref %s", " -> ".join(cycle))
            self.findings.append(
                make_finding(
                    FindingKind.CYCLIC_REF,
                    f"Cyclic $ref left unresolved: {' -> '.join(cycle)}",
                    severity=Severity.WARNING,
                    file=self._source_label(location),
                    pointer=ref,
                )
            )
            return {CYCLE_MARKER_KEY: ref}

        self._path.append(identifier)
        try:
            target = lookup_pointer(self._document(target_location, ref), pointer, ref)
            resolved = self.walk(target, target_location)
        except UnresolvableRefError as exc:
            if exc.source is None:
                exc.source = self._source_label(location)
            raise
        finally:
            self._path.pop()

        self._memo[identifier] = resolved
        return copy.deepcopy(resolved)

    def _split(self, ref: str, location: str) -> tuple[str, str]:
        """Split *ref* into a canonical document location and a pointer."""
        file_part, _, pointer = ref.partition("#")
        if not file_part:
            return location, pointer
        return _join_location(location, file_part), pointer

    def _document(self, location: str, ref: str) -> Any:
        if location not in self._documents:
            logger.debug("Loading external document %s", location)
            try:
                self._documents[location] = self._loader(location)
            except DocumentLoadError as exc:
                raise UnresolvableRefError(
                    f"Cannot resolve $ref '{ref}': {exc}", ref
                ) from exc
        return self._documents[location]

    def _source_label(self, location: str) -> str:
        return location or MEMORY_SOURCE
