"""Inspect commands -- look at what gatecheck extracted.

Provides the ``gatecheck inspect`` sub-command group with read-only views of
the intermediate models a verification run builds: the operations of the
merged OpenAPI document, the lambdas of the Terraform model, and the
identifier graph linking them.  Useful when a finding is surprising and you
want to see what the matcher or the extractor actually saw.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from gatecheck.commands.verify import load_settings, require_directory
from gatecheck.exceptions import GatecheckError
from gatecheck.output import error, get_output, info


inspect_app = typer.Typer(no_args_is_help=True)


def _fail(exc: GatecheckError) -> typer.Exit:
    error(str(exc))
    return typer.Exit(code=exc.exit_code)


@inspect_app.command("paths")
def inspect_paths(
    api_path: Path = typer.Option(
        ..., "--api-path", "-a", help="Directory holding the OpenAPI documents."
    ),
    skip_cyclic: bool = typer.Option(
        False, "--skip-cyclic", help="Tolerate cyclic $ref chains."
    ),
    exclude: Optional[list[str]] = typer.Option(
        None, "--exclude", "-x", help="Gitignore-style pattern to skip (repeatable)."
    ),
) -> None:
    """List every operation of the merged OpenAPI document.

    Shows each operation's integration type, the template variables in its
    integration ``uri``, and the document that defined the path.

    Example::

        gatecheck inspect paths --api-path api/
    """
    from gatecheck.openapi.extractor import extract_integrations
    from gatecheck.pipeline import load_merged_document

    try:
        require_directory(api_path, "--api-path")
        settings = load_settings(skip_cyclic=skip_cyclic, exclude=exclude)
        merged = load_merged_document(api_path, settings)
    except GatecheckError as exc:
        raise _fail(exc) from None

    rows = [
        [
            target.method.value.upper(),
            target.path,
            target.integration_type.value,
            ", ".join(target.variables) or "-",
            merged.source_of(target.path) or "-",
        ]
        for target in extract_integrations(merged.document)
    ]
    get_output().print_table(
        ["Method", "Path", "Integration", "Variables", "Source"], rows, title="Operations"
    )
    info(f"{len(rows)} operation(s) across {len(merged.paths)} path(s)")


@inspect_app.command("lambdas")
def inspect_lambdas(
    terraform: Path = typer.Option(
        ..., "--terraform", "-t", help="Directory holding the Terraform files."
    ),
    matcher: Optional[str] = typer.Option(
        None, "--matcher", help="Source ARN matcher used to show permitted routes."
    ),
    exclude: Optional[list[str]] = typer.Option(
        None, "--exclude", "-x", help="Gitignore-style pattern to skip (repeatable)."
    ),
) -> None:
    """List the lambdas, their permitted routes and their template variables.

    Logical names that only appear in ``lambdas_permissions`` are listed
    with handler ``(undefined)``.

    Example::

        gatecheck inspect lambdas --terraform infra/
    """
    from gatecheck.pipeline import load_model
    from gatecheck.validation.matchers import get_matcher

    try:
        require_directory(terraform, "--terraform")
        settings = load_settings(matcher=matcher, exclude=exclude)
        model = load_model(terraform, settings)
        arn_matcher = get_matcher(settings.source_arn_matcher)
    except GatecheckError as exc:
        raise _fail(exc) from None

    variables: dict[str, list[str]] = {}
    for binding in model.bindings.values():
        if binding.logical_name:
            variables.setdefault(binding.logical_name, []).append(binding.variable)

    rows: list[list[str]] = []
    for name in sorted(set(model.lambdas) | set(model.permissions)):
        definition = model.lambdas.get(name)
        routes = [
            str(arn_matcher.match(s.source_arn).chosen or "?")
            for s in model.permissions.get(name, [])
        ]
        rows.append(
            [
                name,
                definition.handler if definition else "(undefined)",
                ", ".join(routes) or "-",
                ", ".join(sorted(variables.get(name, []))) or "-",
            ]
        )
    get_output().print_table(
        ["Lambda", "Handler", "Permitted routes", "Template variables"], rows, title="Lambdas"
    )


@inspect_app.command("graph")
def inspect_graph(
    api_path: Path = typer.Option(
        ..., "--api-path", "-a", help="Directory holding the OpenAPI documents."
    ),
    terraform: Path = typer.Option(
        ..., "--terraform", "-t", help="Directory holding the Terraform files."
    ),
    skip_cyclic: bool = typer.Option(
        False, "--skip-cyclic", help="Tolerate cyclic $ref chains."
    ),
    matcher: Optional[str] = typer.Option(
        None, "--matcher", help="Source ARN matcher to use."
    ),
    exclude: Optional[list[str]] = typer.Option(
        None, "--exclude", "-x", help="Gitignore-style pattern to skip (repeatable)."
    ),
) -> None:
    """Print every edge of the identifier graph.

    Edges are ``permits`` (lambda to operation), ``binds`` (template
    variable to lambda) and ``invokes`` (operation to template variable).

    Example::

        gatecheck inspect graph -a api/ -t infra/
    """
    from gatecheck.pipeline import load_merged_document, load_model
    from gatecheck.validation.graph import build_graph
    from gatecheck.validation.matchers import get_matcher

    try:
        require_directory(api_path, "--api-path")
        require_directory(terraform, "--terraform")
        settings = load_settings(skip_cyclic=skip_cyclic, matcher=matcher, exclude=exclude)
        merged = load_merged_document(api_path, settings)
        model = load_model(terraform, settings)
        graph = build_graph(merged, model, get_matcher(settings.source_arn_matcher))
    except GatecheckError as exc:
        raise _fail(exc) from None

    rows = [
        [f"{source[0].value}:{source[1]}", kind.value, f"{target[0].value}:{target[1]}"]
        for source, kind, target in graph.edges()
    ]
    get_output().print_table(["Source", "Edge", "Target"], rows, title="Identifier graph")

    undefined = [n.name for n in graph.lambdas() if not n.defined]
    if undefined:
        info(f"Referenced but undefined lambdas: {', '.join(undefined)}")
