"""Cross-reference validation between OpenAPI and Terraform.

* :mod:`~gatecheck.validation.matchers` -- ``source_arn`` to route matching.
* :mod:`~gatecheck.validation.graph` -- the typed identifier graph.
* :mod:`~gatecheck.validation.crossref` -- the checks and :func:`validate`.
"""

from gatecheck.validation.crossref import CHECKS, validate
from gatecheck.validation.graph import IdentifierGraph, build_graph
from gatecheck.validation.matchers import MATCHERS, MethodMarkerMatcher, get_matcher

__all__ = [
    "validate",
    "CHECKS",
    "build_graph",
    "IdentifierGraph",
    "get_matcher",
    "MATCHERS",
    "MethodMarkerMatcher",
]
