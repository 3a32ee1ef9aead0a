"""Cross-reference the merged OpenAPI document against the Terraform model.

Every check is a plain function taking ``(graph, model, builder)``.  They are
independent, all of them run, and they run in the order of :data:`CHECKS`.
Each one iterates identifiers in sorted order, so two runs over the same
inputs produce the same report byte for byte.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable, Optional, Union

from gatecheck.models import IntegrationType, TerraformModel
from gatecheck.openapi.merger import MergedDocument
from gatecheck.report import FindingKind, ReportBuilder, ValidationReport
from gatecheck.validation.graph import EdgeKind, IdentifierGraph, build_graph
from gatecheck.validation.matchers import SourceArnMatcher

logger = logging.getLogger(__name__)

Check = Callable[[IdentifierGraph, TerraformModel, ReportBuilder], None]


def validate(
    document: Union[MergedDocument, dict[str, Any]],
    model: TerraformModel,
    matcher: Optional[SourceArnMatcher] = None,
) -> ValidationReport:
    """Run every cross-reference check and return the resulting report.

    Args:
        document: The merged OpenAPI document.
        model: The extracted Terraform model.
        matcher: Source-ARN matcher; defaults to the method-marker matcher.

    Returns:
        A :class:`~gatecheck.report.ValidationReport` with consistency
        findings only.  Consistency problems never raise.
    """
    graph = build_graph(document, model, matcher)
    builder = ReportBuilder()
    for check in CHECKS:
        check(graph, model, builder)
    report = builder.build()
    logger.debug(
        "Cross-reference: %d fatal, %d warnings", len(report.fatal), len(report.warnings)
    )
    return report


def _is_orphan(name: str, model: TerraformModel) -> bool:
    return name in model.lambdas and not model.permissions.get(name)


def check_lambda_permissions(
    graph: IdentifierGraph, model: TerraformModel, builder: ReportBuilder
) -> None:
    """Every defined lambda has permissions and every permission key a lambda."""
    for node in graph.lambdas():
        if _is_orphan(node.name, model):
            builder.report(
                FindingKind.ORPHAN_LAMBDA,
                f"Lambda '{node.name}' is defined but has no entry in lambdas_permissions",
                file=node.source_file,
                pointer=f'locals.lambdas["{node.name}"]',
                logical_name=node.name,
            )

    for name in sorted(model.permissions):
        if name not in model.lambdas:
            statements = model.permissions[name]
            builder.report(
                FindingKind.ORPHAN_PERMISSION,
                f"Permissions are declared for '{name}', which is not a defined lambda",
                file=statements[0].source_file if statements else None,
                pointer=f'locals.lambdas_permissions["{name}"]',
                logical_name=name,
            )


def check_permission_paths(
    graph: IdentifierGraph, model: TerraformModel, builder: ReportBuilder
) -> None:
    for link in graph.permission_links:
        statement = link.statement
        location = dict(
            file=statement.source_file,
            pointer=f"statement_id {statement.statement_id}",
            logical_name=statement.logical_name,
        )
        match = link.match
        if not match.matched:
            builder.report(
                FindingKind.PERMISSION_PATH_MISMATCH,
                f"source_arn '{statement.source_arn}' names no HTTP method and path",
                **location,
            )
            continue
        if match.ambiguous:
            builder.report(
                FindingKind.AMBIGUOUS_SOURCE_ARN,
                f"source_arn '{statement.source_arn}' contains several method markers "
                f"({', '.join(str(c) for c in match.candidates)}); using {match.chosen}",
                **location,
            )
        if not link.targets:
            builder.report(
                FindingKind.PERMISSION_PATH_MISMATCH,
                f"source_arn route {match.chosen} matches no operation in the OpenAPI document",
                **location,
            )


def check_binding_lambdas(
    graph: IdentifierGraph, model: TerraformModel, builder: ReportBuilder
) -> None:
    by_lambda: dict[str, list[str]] = defaultdict(list)
    for node in graph.bindings():
        if node.logical_name is None:
            continue
        by_lambda[node.logical_name].append(node.variable)
        if node.logical_name not in model.lambdas:
            builder.report(
                FindingKind.UNBOUND_TEMPLATE_VARIABLE,
                f"Template variable '{node.variable}' references lambda "
                f"'{node.logical_name}', which is not defined",
                file=node.source_file,
                pointer=f"templatefile.{node.variable}",
                logical_name=node.logical_name,
            )

    for name in sorted(by_lambda):
        variables = by_lambda[name]
        if len(variables) > 1:
            builder.report(
                FindingKind.DUPLICATE_BINDING,
                f"Lambda '{name}' is bound by several template variables: "
                f"{', '.join(variables)}",
                pointer="templatefile",
                logical_name=name,
            )


def check_integration_variables(
    graph: IdentifierGraph, model: TerraformModel, builder: ReportBuilder
) -> None:
    for node in graph.paths():
        target = node.target
        location = dict(file=node.source_file, pointer=target.label)
        if not target.has_extension:
            builder.report(
                FindingKind.MISSING_INTEGRATION,
                f"{target.label} has no x-amazon-apigateway-integration",
                **location,
            )
            continue
        if target.uri is None:
            if (target.extension_type or "").lower() != "mock":
                builder.report(
                    FindingKind.MISSING_INTEGRATION,
                    f"{target.label} integration has no uri",
                    **location,
                )
            continue
        if target.integration_type is IntegrationType.STEP_FUNCTION:
            builder.report(
                FindingKind.UNSUPPORTED_INTEGRATION,
                f"{target.label} integrates with Step Functions, which is not validated",
                **location,
            )
            continue
        if target.integration_type is IntegrationType.OTHER:
            builder.report(
                FindingKind.UNSUPPORTED_INTEGRATION,
                f"{target.label} integrates with '{target.uri}', which is not a Lambda",
                **location,
            )
            continue
        if not target.variables:
            builder.report(
                FindingKind.UNTEMPLATED_INTEGRATION,
                f"{target.label} integration uri has no template variable",
                **location,
            )
            continue
        for variable in target.variables:
            if variable not in model.bindings:
                builder.report(
                    FindingKind.UNBOUND_INTEGRATION_VARIABLE,
                    f"{target.label} uses '${{{variable}}}', which templatefile does not bind",
                    **location,
                )


def check_unused_bindings(
    graph: IdentifierGraph, model: TerraformModel, builder: ReportBuilder
) -> None:
    for node in graph.bindings():
        if not graph.predecessors(node.id, EdgeKind.INVOKES):
            builder.report(
                FindingKind.UNUSED_BINDING,
                f"Template variable '{node.variable}' is not used by any integration uri",
                file=node.source_file,
                pointer=f"templatefile.{node.variable}",
                logical_name=node.logical_name,
            )


def check_integration_targets(
    graph: IdentifierGraph, model: TerraformModel, builder: ReportBuilder
) -> None:
    """A permitted path must invoke the lambda the permission belongs to."""
    for link in graph.permission_links:
        name = link.statement.logical_name
        for path_id in link.targets:
            invoked = graph.invoked_lambdas(path_id)
            if invoked and name not in invoked:
                builder.report(
                    FindingKind.INTEGRATION_TARGET_MISMATCH,
                    f"Permission '{link.statement.statement_id}' grants '{name}' on "
                    f"{path_id[1]}, whose integration invokes {', '.join(invoked)}",
                    file=link.statement.source_file,
                    pointer=path_id[1],
                    logical_name=name,
                )


def check_unpermitted_operations(
    graph: IdentifierGraph, model: TerraformModel, builder: ReportBuilder
) -> None:
    for node in graph.paths():
        if node.target.integration_type is not IntegrationType.LAMBDA:
            continue
        if not graph.predecessors(node.id, EdgeKind.PERMITS):
            invoked = graph.invoked_lambdas(node.id)
            # Already reported as OrphanLambda.
            if invoked and all(_is_orphan(name, model) for name in invoked):
                continue
            suffix = f" (invokes {', '.join(invoked)})" if invoked else ""
            builder.report(
                FindingKind.UNPERMITTED_OPERATION,
                f"{node.target.label} is not covered by any lambda permission{suffix}",
                file=node.source_file,
                pointer=node.target.label,
            )


def check_duplicate_handlers(
    graph: IdentifierGraph, model: TerraformModel, builder: ReportBuilder
) -> None:
    by_handler: dict[str, list[str]] = defaultdict(list)
    for node in graph.lambdas():
        if node.defined and node.handler:
            by_handler[node.handler].append(node.name)

    for handler in sorted(by_handler):
        names = by_handler[handler]
        if len(names) > 1:
            builder.report(
                FindingKind.DUPLICATE_HANDLER,
                f"Handler '{handler}' is shared by lambdas {', '.join(names)}",
                file=model.lambdas[names[0]].source_file,
                pointer="locals.lambdas",
            )


CHECKS: tuple[Check, ...] = (
    check_lambda_permissions,
    check_permission_paths,
    check_binding_lambdas,
    check_integration_variables,
    check_unused_bindings,
    check_integration_targets,
    check_unpermitted_operations,
    check_duplicate_handlers,
)
