"""Extract API Gateway integration targets from a resolved OpenAPI document.

Walks every path item and HTTP method of a merged document and reports, per
operation, whether it carries an ``x-amazon-apigateway-integration``
extension, what its ``uri`` is, and which template placeholders the ``uri``
contains.  The result feeds the identifier graph in
:mod:`gatecheck.validation.graph`.

Placeholders follow Terraform ``templatefile`` syntax: ``${name}`` is a
placeholder, ``$${name}`` is an escaped literal and is ignored.
"""

from __future__ import annotations

import re
from typing import Any

from gatecheck.models import HTTPMethod, IntegrationTarget, IntegrationType

INTEGRATION_EXTENSION = "x-amazon-apigateway-integration"
ANY_METHOD_KEY = "x-amazon-apigateway-any-method"

_PLACEHOLDER_RE = re.compile(r"(?<!\$)\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

# Path-item keys mapped to the method they declare.
_METHOD_KEYS: dict[str, HTTPMethod] = {
    m.value: m for m in HTTPMethod if m is not HTTPMethod.ANY
}
_METHOD_KEYS[ANY_METHOD_KEY] = HTTPMethod.ANY


def extract_placeholders(uri: str) -> tuple[str, ...]:
    """Return the ``${name}`` placeholders in *uri*, first appearance first."""
    seen: dict[str, None] = {}
    for match in _PLACEHOLDER_RE.finditer(uri):
        seen.setdefault(match.group(1), None)
    return tuple(seen)


def classify_uri(uri: str) -> IntegrationType:
    """Classify an integration ``uri``.

    Step Functions URIs contain ``states:action``.  A URI is treated as a
    Lambda integration when it names the Lambda service or is templated;
    anything else (a plain HTTP backend, say) is ``OTHER``.
    """
    if "states:action" in uri:
        return IntegrationType.STEP_FUNCTION
    if ":lambda:" in uri or extract_placeholders(uri):
        return IntegrationType.LAMBDA
    return IntegrationType.OTHER


def extract_integrations(document: dict[str, Any]) -> list[IntegrationTarget]:
    """Return one :class:`IntegrationTarget` per operation, sorted by (path, method).

    Path-item keys that are not HTTP methods (``parameters``, ``summary``,
    other extensions) are skipped.
    """
    targets: list[IntegrationTarget] = []
    for path, path_item in (document.get("paths") or {}).items():
        if not isinstance(path_item, dict):
            continue
        for key, operation in path_item.items():
            method = _METHOD_KEYS.get(key.lower())
            if method is None or not isinstance(operation, dict):
                continue
            targets.append(_extract_target(path, method, operation))

    return sorted(targets, key=lambda t: (t.path, t.method.value))


def _extract_target(
    path: str, method: HTTPMethod, operation: dict[str, Any]
) -> IntegrationTarget:
    extension = operation.get(INTEGRATION_EXTENSION)
    if not isinstance(extension, dict):
        return IntegrationTarget(path=path, method=method)

    extension_type = extension.get("type")
    if not isinstance(extension_type, str):
        extension_type = None

    uri = extension.get("uri")
    if not isinstance(uri, str):
        return IntegrationTarget(
            path=path, method=method, has_extension=True, extension_type=extension_type
        )

    return IntegrationTarget(
        path=path,
        method=method,
        has_extension=True,
        extension_type=extension_type,
        uri=uri,
        integration_type=classify_uri(uri),
        variables=extract_placeholders(uri),
    )
