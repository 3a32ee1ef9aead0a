"""Merge several resolved OpenAPI documents into one.

API Gateway deployments often split their OpenAPI definition over several
files that are combined before being handed to ``templatefile``.  This
module performs that combination and refuses to silently overwrite anything:

* ``paths`` -- a path string may be defined by exactly one document.  Any
  repetition is a ``KeyCollision``, even when both definitions are equal.
* ``components`` -- every section (``schemas``, ``responses``,
  ``parameters``, ...) tolerates the same name with structurally identical
  bodies, which is what two documents sharing a ``$ref`` source produce.
  Different bodies under one name are a ``KeyCollision``.
* ``info`` and ``openapi`` -- taken from the first document that has them
  (fragments holding only shared components usually have neither).
* ``tags`` -- merged by name; a name repeated across documents is a
  ``DuplicateTag`` warning and the first definition wins.
* ``servers`` -- unioned in order of appearance.
* ``security`` and top-level ``x-*`` extensions -- first value seen wins.

All collisions are collected before :class:`~gatecheck.exceptions.KeyCollisionError`
is raised, so one run reports them all.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Sequence

from gatecheck.exceptions import DocumentLoadError, KeyCollisionError
from gatecheck.openapi.resolver import ResolvedDocument
from gatecheck.report import Finding, FindingKind, make_finding

_FIRST_WINS = ("openapi", "info", "security")


@dataclass
class MergedDocument:
    """The single document produced by :func:`merge_documents`.

    Attributes:
        document: The merged OpenAPI document.
        sources: Path string -> source of the document that defined it.
        findings: Warnings recorded while merging (and while resolving the
            inputs).
    """

    document: dict[str, Any]
    sources: dict[str, str] = field(default_factory=dict)
    findings: list[Finding] = field(default_factory=list)

    @property
    def paths(self) -> dict[str, Any]:
        return self.document.get("paths") or {}

    def source_of(self, path: str) -> str | None:
        return self.sources.get(path)


def merge_documents(documents: Sequence[ResolvedDocument]) -> MergedDocument:
    """Merge *documents* in order into a single :class:`MergedDocument`.

    Args:
        documents: Resolved documents, in order.  The first one declaring
            ``info`` or ``openapi`` supplies it.

    Returns:
        The merged document.  Warnings from the inputs are carried over into
        :attr:`MergedDocument.findings`.

    Raises:
        DocumentLoadError: If *documents* is empty.
        KeyCollisionError: If any path or component name collides.
    """
    if not documents:
        raise DocumentLoadError("No OpenAPI documents to merge")

    merged: dict[str, Any] = {}

    paths: dict[str, Any] = {}
    components: dict[str, dict[str, Any]] = {}
    sources: dict[str, str] = {}
    component_sources: dict[tuple[str, str], str] = {}
    tags: dict[str, dict[str, Any]] = {}
    tag_sources: dict[str, str] = {}
    servers: list[Any] = []
    collisions: list[Finding] = []
    warnings: list[Finding] = []

    for resolved in documents:
        doc = resolved.document
        warnings.extend(resolved.findings)

        for path, item in (doc.get("paths") or {}).items():
            if path in paths:
                collisions.append(
                    make_finding(
                        FindingKind.KEY_COLLISION,
                        f"Path '{path}' is defined in both {sources[path]} "
                        f"and {resolved.source}",
                        file=resolved.source,
                        pointer=f"paths.{path}",
                    )
                )
                continue
            paths[path] = copy.deepcopy(item)
            sources[path] = resolved.source

        for section, entries in (doc.get("components") or {}).items():
            if not isinstance(entries, dict):
                continue
            target = components.setdefault(section, {})
            for name, body in entries.items():
                if name not in target:
                    target[name] = copy.deepcopy(body)
                    component_sources[(section, name)] = resolved.source
                elif target[name] != body:
                    collisions.append(
                        make_finding(
                            FindingKind.KEY_COLLISION,
                            f"Component '{section}.{name}' differs between "
                            f"{component_sources[(section, name)]} and {resolved.source}",
                            file=resolved.source,
                            pointer=f"components.{section}.{name}",
                        )
                    )

        for tag in doc.get("tags") or []:
            name = tag.get("name") if isinstance(tag, dict) else None
            if name is None:
                continue
            if name in tags:
                warnings.append(
                    make_finding(
                        FindingKind.DUPLICATE_TAG,
                        f"Tag '{name}' is declared in both {tag_sources[name]} "
                        f"and {resolved.source}; keeping the first",
                        file=resolved.source,
                        pointer=f"tags.{name}",
                    )
                )
                continue
            tags[name] = copy.deepcopy(tag)
            tag_sources[name] = resolved.source

        for server in doc.get("servers") or []:
            if server not in servers:
                servers.append(copy.deepcopy(server))

        for key, value in doc.items():
            if (key in _FIRST_WINS or key.startswith("x-")) and key not in merged:
                merged[key] = copy.deepcopy(value)

    if collisions:
        raise KeyCollisionError(collisions)

    if servers:
        merged["servers"] = servers
    if tags:
        merged["tags"] = list(tags.values())
    merged["paths"] = paths
    if components:
        merged["components"] = components

    return MergedDocument(document=merged, sources=sources, findings=warnings)
