"""Typed identifier graph linking Terraform and OpenAPI identifiers.

Nodes:

* :class:`LambdaNode` -- a logical lambda name.  Names that only appear in a
  permission or a binding get a node with ``defined=False``.
* :class:`BindingNode` -- a ``templatefile`` variable.
* :class:`PathNode` -- one OpenAPI operation (``METHOD /path``).

Edges (see :class:`EdgeKind`):

* ``PERMITS``  lambda -> path, from a permission's ``source_arn``;
* ``BINDS``    binding -> lambda, from ``module.lambda["<name>"].lambda_arn``;
* ``INVOKES``  path -> binding, from a ``${var}`` placeholder in the
  integration ``uri``.

Besides the edges, every permission statement keeps its
:class:`PermissionLink`, which remembers what the matcher saw even when the
statement links to nothing.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from gatecheck.models import IntegrationTarget, PermissionStatement, TerraformModel
from gatecheck.openapi.extractor import extract_integrations
from gatecheck.openapi.merger import MergedDocument
from gatecheck.validation.matchers import (
    ArnMatch,
    MethodMarkerMatcher,
    RouteCandidate,
    SourceArnMatcher,
    is_exact,
    method_matches,
    route_matches,
)

logger = logging.getLogger(__name__)


class NodeKind(str, enum.Enum):
    LAMBDA = "lambda"
    BINDING = "binding"
    PATH = "path"


class EdgeKind(str, enum.Enum):
    PERMITS = "permits"
    BINDS = "binds"
    INVOKES = "invokes"


NodeId = tuple[NodeKind, str]


@dataclass(frozen=True)
class LambdaNode:
    name: str
    handler: Optional[str] = None
    defined: bool = True
    source_file: Optional[str] = None

    @property
    def id(self) -> NodeId:
        return (NodeKind.LAMBDA, self.name)


@dataclass(frozen=True)
class BindingNode:
    variable: str
    expression: str
    logical_name: Optional[str] = None
    source_file: Optional[str] = None

    @property
    def id(self) -> NodeId:
        return (NodeKind.BINDING, self.variable)


@dataclass(frozen=True)
class PathNode:
    target: IntegrationTarget
    source_file: Optional[str] = None

    @property
    def id(self) -> NodeId:
        return (NodeKind.PATH, self.target.label)


Node = Union[LambdaNode, BindingNode, PathNode]


@dataclass(frozen=True)
class PermissionLink:
    """What one permission statement resolved to.

    Attributes:
        statement: The permission statement.
        match: The matcher's result for its ``source_arn``.
        targets: Ids of the path nodes the chosen route covers, sorted.
    """

    statement: PermissionStatement
    match: ArnMatch
    targets: tuple[NodeId, ...] = ()


@dataclass
class IdentifierGraph:
    """Nodes keyed by id plus labelled adjacency in both directions."""

    nodes: dict[NodeId, Node] = field(default_factory=dict)
    permission_links: list[PermissionLink] = field(default_factory=list)
    _out: dict[NodeId, dict[EdgeKind, set[NodeId]]] = field(default_factory=dict)
    _in: dict[NodeId, dict[EdgeKind, set[NodeId]]] = field(default_factory=dict)

    def add_node(self, node: Node) -> None:
        existing = self.nodes.get(node.id)
        # A defined lambda replaces a placeholder created by a reference.
        if existing is None or (isinstance(existing, LambdaNode) and not existing.defined):
            self.nodes[node.id] = node

    def ensure_lambda(self, name: str) -> NodeId:
        node_id: NodeId = (NodeKind.LAMBDA, name)
        if node_id not in self.nodes:
            self.nodes[node_id] = LambdaNode(name=name, defined=False)
        return node_id

    def add_edge(self, source: NodeId, kind: EdgeKind, target: NodeId) -> None:
        self._out.setdefault(source, {}).setdefault(kind, set()).add(target)
        self._in.setdefault(target, {}).setdefault(kind, set()).add(source)

    def successors(self, node_id: NodeId, kind: EdgeKind) -> list[NodeId]:
        return sorted(self._out.get(node_id, {}).get(kind, ()))

    def predecessors(self, node_id: NodeId, kind: EdgeKind) -> list[NodeId]:
        return sorted(self._in.get(node_id, {}).get(kind, ()))

    def edges(self) -> list[tuple[NodeId, EdgeKind, NodeId]]:
        """Every edge, sorted by (source, kind, target)."""
        return sorted(
            (source, kind, target)
            for source, by_kind in self._out.items()
            for kind, targets in by_kind.items()
            for target in targets
        )

    def _of_kind(self, kind: NodeKind) -> list[Any]:
        return [self.nodes[i] for i in sorted(self.nodes) if i[0] == kind]

    def lambdas(self) -> list[LambdaNode]:
        return self._of_kind(NodeKind.LAMBDA)

    def bindings(self) -> list[BindingNode]:
        return self._of_kind(NodeKind.BINDING)

    def paths(self) -> list[PathNode]:
        return self._of_kind(NodeKind.PATH)

    def invoked_lambdas(self, path_id: NodeId) -> list[str]:
        """Logical names reached from a path through ``INVOKES`` then ``BINDS``."""
        names = {
            lambda_id[1]
            for binding_id in self.successors(path_id, EdgeKind.INVOKES)
            for lambda_id in self.successors(binding_id, EdgeKind.BINDS)
        }
        return sorted(names)


def build_graph(
    document: Union[MergedDocument, dict[str, Any]],
    model: TerraformModel,
    matcher: Optional[SourceArnMatcher] = None,
) -> IdentifierGraph:
    """Build the identifier graph for a merged document and a Terraform model.

    Args:
        document: The merged OpenAPI document (a plain dict is accepted too).
        model: The extracted Terraform model.
        matcher: Source-ARN matcher; defaults to :class:`MethodMarkerMatcher`.

    Returns:
        The populated :class:`IdentifierGraph`.
    """
    if isinstance(document, MergedDocument):
        raw, sources = document.document, document.sources
    else:
        raw, sources = document, {}
    matcher = matcher or MethodMarkerMatcher()
    graph = IdentifierGraph()

    for name, definition in model.lambdas.items():
        graph.add_node(
            LambdaNode(
                name=name,
                handler=definition.handler,
                source_file=definition.source_file,
            )
        )

    for variable, binding in model.bindings.items():
        node = BindingNode(
            variable=variable,
            expression=binding.expression,
            logical_name=binding.logical_name,
            source_file=binding.source_file,
        )
        graph.add_node(node)
        if binding.logical_name:
            graph.add_edge(node.id, EdgeKind.BINDS, graph.ensure_lambda(binding.logical_name))

    path_nodes: list[PathNode] = []
    for target in extract_integrations(raw):
        node = PathNode(target=target, source_file=sources.get(target.path))
        graph.add_node(node)
        path_nodes.append(node)
        for variable in target.variables:
            if variable in model.bindings:
                graph.add_edge(node.id, EdgeKind.INVOKES, (NodeKind.BINDING, variable))

    for name in sorted(model.permissions):
        lambda_id = graph.ensure_lambda(name)
        for statement in model.permissions[name]:
            match = matcher.match(statement.source_arn)
            targets = _covered_paths(match.chosen, path_nodes) if match.chosen else []
            for path_id in targets:
                graph.add_edge(lambda_id, EdgeKind.PERMITS, path_id)
            graph.permission_links.append(
                PermissionLink(statement=statement, match=match, targets=tuple(targets))
            )

    logger.debug(
        "Identifier graph: %d nodes, %d edges", len(graph.nodes), len(graph.edges())
    )
    return graph


def _covered_paths(candidate: RouteCandidate, paths: list[PathNode]) -> list[NodeId]:
    """Path node ids covered by *candidate*; exact route matches win."""
    by_method = [p for p in paths if method_matches(candidate.method, p.target.method)]
    exact = [p.id for p in by_method if is_exact(candidate.path, p.target.path)]
    if exact:
        return sorted(exact)
    return sorted(p.id for p in by_method if route_matches(candidate.path, p.target.path))
