"""Turn a permission's ``source_arn`` into the API route it grants.

An API Gateway execution ARN has the shape
``arn:aws:execute-api:<region>:<account>:<api-id>/<stage>/<METHOD>/<path>``.
In Terraform the prefix is usually an interpolation, for example
``${aws_api_gateway_rest_api.api.execution_arn}/*/POST/v1/lambda/endpoint1``.

How to find ``<METHOD>/<path>`` in every valid ARN shape is not settled, so
matching is pluggable: anything implementing :class:`SourceArnMatcher` can be
passed to the cross-reference validator, and named matchers are looked up
through :func:`get_matcher`.  A matcher returns *every* plausible route it
sees; more than one makes the match ambiguous, which the validator reports
as a warning instead of silently picking one.

Route comparison lives here too (:func:`route_matches`), since it has to
agree with what the matcher produces: ``*`` in an ARN matches one path
segment (a trailing ``*`` matches the remainder), while OpenAPI templates
``{param}`` and ``{proxy+}`` match one or all remaining segments.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Protocol

from gatecheck.exceptions import InvalidUsageError
from gatecheck.models import HTTPMethod

WILDCARD_METHOD = "*"


@dataclass(frozen=True)
class RouteCandidate:
    """A ``(METHOD, /path)`` pair read from a source ARN.

    ``method`` is upper case, ``ANY``, or ``*``.
    """

    method: str
    path: str

    def __str__(self) -> str:
        return f"{self.method} {self.path}"


@dataclass(frozen=True)
class ArnMatch:
    """Result of matching one ``source_arn``.

    Attributes:
        source_arn: The ARN text that was matched.
        candidates: Every route found, in order of appearance.
    """

    source_arn: str
    candidates: tuple[RouteCandidate, ...] = ()

    @property
    def matched(self) -> bool:
        return bool(self.candidates)

    @property
    def ambiguous(self) -> bool:
        return len(self.candidates) > 1

    @property
    def chosen(self) -> Optional[RouteCandidate]:
        """The route used for linkage: the one after the last method marker."""
        return self.candidates[-1] if self.candidates else None


class SourceArnMatcher(Protocol):
    name: str

    def match(self, source_arn: str) -> ArnMatch: ...


class MethodMarkerMatcher:
    """Find routes by locating ``/<METHOD>/`` markers in the ARN.

    Every upper-case HTTP method (or ``ANY``) delimited by slashes is a
    marker; the text after a marker is its route.  When no marker exists the
    wildcard form ``.../*/*/<path>`` is accepted with method ``*``.
    """

    name = "method-marker"

    _MARKER_RE = re.compile(r"/(GET|POST|PUT|PATCH|DELETE|HEAD|OPTIONS|TRACE|ANY)(?=/|$)")
    _WILDCARD_RE = re.compile(r"/\*/\*(?=/|$)")

    def match(self, source_arn: str) -> ArnMatch:
        candidates = [
            RouteCandidate(m.group(1), _route(source_arn[m.end():]))
            for m in self._MARKER_RE.finditer(source_arn)
        ]
        if not candidates:
            wildcard = self._WILDCARD_RE.search(source_arn)
            if wildcard is not None:
                rest = source_arn[wildcard.end():]
                candidates = [RouteCandidate(WILDCARD_METHOD, _route(rest) if rest else "/*")]
        return ArnMatch(source_arn=source_arn, candidates=tuple(candidates))


MATCHERS: dict[str, type] = {
    MethodMarkerMatcher.name: MethodMarkerMatcher,
}


def get_matcher(name: str) -> SourceArnMatcher:
    """Instantiate the matcher registered under *name*.

    Raises:
        InvalidUsageError: If no matcher has that name.
    """
    try:
        return MATCHERS[name]()
    except KeyError:
        raise InvalidUsageError(
            f"Unknown source ARN matcher '{name}'. "
            f"Available: {', '.join(sorted(MATCHERS))}"
        ) from None


def _route(text: str) -> str:
    segments = [s for s in text.split("/") if s]
    return "/" + "/".join(segments)


def _segments(path: str) -> list[str]:
    return [s for s in path.split("/") if s]


def method_matches(candidate_method: str, method: HTTPMethod) -> bool:
    if candidate_method in (WILDCARD_METHOD, "ANY") or method is HTTPMethod.ANY:
        return True
    return candidate_method.lower() == method.value


def route_matches(arn_path: str, api_path: str) -> bool:
    """Whether the ARN route *arn_path* covers the OpenAPI path *api_path*."""
    arn = _segments(arn_path)
    api = _segments(api_path)
    for i, segment in enumerate(arn):
        if segment == "*" and i == len(arn) - 1:
            return True
        if i >= len(api):
            return False
        template = api[i]
        if template.startswith("{") and template.endswith("+}"):
            return True
        if segment == "*" or segment == template:
            continue
        if template.startswith("{") and template.endswith("}"):
            continue
        return False
    return len(arn) == len(api)


def is_exact(arn_path: str, api_path: str) -> bool:
    return _segments(arn_path) == _segments(api_path)
