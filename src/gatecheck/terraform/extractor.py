"""Build a :class:`~gatecheck.models.TerraformModel` from parsed Terraform.

The input is the output of the structured-text parser (see
:mod:`gatecheck.terraform.loader`): one tree per file, where block types map
to lists of blocks and every block maps labels/attribute names to values.
Three things are required:

* ``locals { lambdas = { <name> = { handler = "..." ... } } }``
* ``locals { lambdas_permissions = { <name> = [ { statement_id, principal,
  source_arn }, ... ] } }``
* a ``module`` block whose name matches the API Gateway pattern and contains
  a ``templatefile(<path>, { <var> = <expr>, ... })`` call.

A missing block is a ``MissingBlock`` finding; a block without a required
attribute is a ``MalformedBlock`` finding.  Every problem is collected before
raising, so one run reports all of them.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterator, Mapping, Optional

from gatecheck.exceptions import MalformedBlockError, MissingBlockError
from gatecheck.models import (
    LambdaDefinition,
    PermissionStatement,
    TemplateBinding,
    TerraformModel,
)
from gatecheck.report import Finding, FindingKind, make_finding
from gatecheck.terraform.expressions import (
    TemplateVariablesError,
    capture_templatefile_bindings,
    normalize,
    referenced_lambda,
)

logger = logging.getLogger(__name__)

DEFAULT_MODULE_PATTERN = r"api[_-]?gateway|apigw"

PERMISSION_ATTRIBUTES = ("statement_id", "principal", "source_arn")

ParsedTerraform = Mapping[str, Mapping[str, Any]]
"""File name -> parsed tree, as returned by :func:`~gatecheck.terraform.loader.load_terraform`."""


def extract_model(
    parsed: ParsedTerraform,
    module_pattern: str = DEFAULT_MODULE_PATTERN,
) -> TerraformModel:
    """Extract lambdas, permissions and template bindings from *parsed*.

    Args:
        parsed: Parsed Terraform trees keyed by file name.  Files are
            searched in sorted name order; the first match wins.
        module_pattern: Regular expression searched in module names to find
            the API Gateway module.

    Returns:
        The extracted :class:`~gatecheck.models.TerraformModel`.

    Raises:
        MissingBlockError: If any required block is absent.
        MalformedBlockError: If all blocks exist but some lack required
            attributes.
    """
    problems: list[Finding] = []

    lambdas: dict[str, LambdaDefinition] = {}
    found = _find_local(parsed, "lambdas")
    if found is None:
        problems.append(
            make_finding(
                FindingKind.MISSING_BLOCK,
                "No 'locals.lambdas' block found",
                pointer="locals.lambdas",
            )
        )
    else:
        lambdas = _extract_lambdas(*found, problems)

    permissions: dict[str, list[PermissionStatement]] = {}
    found = _find_local(parsed, "lambdas_permissions")
    if found is None:
        problems.append(
            make_finding(
                FindingKind.MISSING_BLOCK,
                "No 'locals.lambdas_permissions' block found",
                pointer="locals.lambdas_permissions",
            )
        )
    else:
        permissions = _extract_permissions(*found, problems)

    bindings = _extract_bindings(parsed, module_pattern, problems)

    if any(p.kind == FindingKind.MISSING_BLOCK for p in problems):
        raise MissingBlockError(problems)
    if problems:
        raise MalformedBlockError(problems)

    logger.debug(
        "Extracted %d lambdas, %d permission keys, %d bindings",
        len(lambdas), len(permissions), len(bindings),
    )
    return TerraformModel(lambdas=lambdas, permissions=permissions, bindings=bindings)


def _iter_blocks(tree: Mapping[str, Any], block_type: str) -> Iterator[dict[str, Any]]:
    blocks = tree.get(block_type)
    if isinstance(blocks, dict):
        blocks = [blocks]
    for block in blocks or []:
        if isinstance(block, dict):
            yield block


def _entries(mapping: Mapping[str, Any]) -> Iterator[tuple[str, Any]]:
    """Yield ``(normalised_key, value)``, skipping parser metadata keys."""
    for key, value in mapping.items():
        if str(key).startswith("__"):
            continue
        yield normalize(str(key)), value


def _find_local(parsed: ParsedTerraform, name: str) -> Optional[tuple[str, Any]]:
    for file_name in sorted(parsed):
        for block in _iter_blocks(parsed[file_name], "locals"):
            for key, value in _entries(block):
                if key == name:
                    return file_name, value
    return None


def _extract_lambdas(
    file_name: str, value: Any, problems: list[Finding]
) -> dict[str, LambdaDefinition]:
    if not isinstance(value, dict):
        problems.append(
            make_finding(
                FindingKind.MALFORMED_BLOCK,
                "'locals.lambdas' must be a map of lambda definitions",
                file=file_name,
                pointer="locals.lambdas",
            )
        )
        return {}

    lambdas: dict[str, LambdaDefinition] = {}
    for name, body in _entries(value):
        pointer = f'locals.lambdas["{name}"]'
        if not isinstance(body, dict):
            problems.append(
                make_finding(
                    FindingKind.MALFORMED_BLOCK,
                    f"Lambda '{name}' must be a map of attributes",
                    file=file_name, pointer=pointer, logical_name=name,
                )
            )
            continue

        attributes = {key.lower(): normalize(v) for key, v in _entries(body)}
        handler = attributes.pop("handler", None)
        if handler is None:
            problems.append(
                make_finding(
                    FindingKind.MALFORMED_BLOCK,
                    f"Lambda '{name}' has no 'handler' attribute",
                    file=file_name, pointer=pointer, logical_name=name,
                )
            )
            continue

        lambdas[name] = LambdaDefinition(
            name=name,
            handler=str(handler),
            attributes=attributes,
            source_file=file_name,
        )
    return lambdas


def _extract_permissions(
    file_name: str, value: Any, problems: list[Finding]
) -> dict[str, list[PermissionStatement]]:
    if not isinstance(value, dict):
        problems.append(
            make_finding(
                FindingKind.MALFORMED_BLOCK,
                "'locals.lambdas_permissions' must be a map of permission lists",
                file=file_name,
                pointer="locals.lambdas_permissions",
            )
        )
        return {}

    permissions: dict[str, list[PermissionStatement]] = {}
    for name, statements in _entries(value):
        pointer = f'locals.lambdas_permissions["{name}"]'
        if not isinstance(statements, list):
            problems.append(
                make_finding(
                    FindingKind.MALFORMED_BLOCK,
                    f"Permissions for '{name}' must be a list of statements",
                    file=file_name, pointer=pointer, logical_name=name,
                )
            )
            continue

        extracted: list[PermissionStatement] = []
        for index, statement in enumerate(statements):
            item_pointer = f"{pointer}[{index}]"
            if not isinstance(statement, dict):
                problems.append(
                    make_finding(
                        FindingKind.MALFORMED_BLOCK,
                        f"Permission {index} for '{name}' must be a map",
                        file=file_name, pointer=item_pointer, logical_name=name,
                    )
                )
                continue

            attributes = {key: normalize(v) for key, v in _entries(statement)}
            missing = [a for a in PERMISSION_ATTRIBUTES if a not in attributes]
            if missing:
                problems.append(
                    make_finding(
                        FindingKind.MALFORMED_BLOCK,
                        f"Permission {index} for '{name}' is missing "
                        f"{', '.join(repr(m) for m in missing)}",
                        file=file_name, pointer=item_pointer, logical_name=name,
                    )
                )
                continue

            extracted.append(
                PermissionStatement(
                    logical_name=name,
                    statement_id=str(attributes["statement_id"]),
                    principal=str(attributes["principal"]),
                    source_arn=str(attributes["source_arn"]),
                    source_file=file_name,
                )
            )
        permissions[name] = extracted
    return permissions


def _extract_bindings(
    parsed: ParsedTerraform, module_pattern: str, problems: list[Finding]
) -> dict[str, TemplateBinding]:
    pattern = re.compile(module_pattern)
    matched_modules: list[str] = []

    for file_name in sorted(parsed):
        for block in _iter_blocks(parsed[file_name], "module"):
            for module_name, body in _entries(block):
                if not pattern.search(module_name):
                    continue
                matched_modules.append(module_name)
                try:
                    pairs = capture_templatefile_bindings(body)
                except TemplateVariablesError as exc:
                    problems.append(
                        make_finding(
                            FindingKind.MALFORMED_BLOCK,
                            f"Module '{module_name}': {exc}",
                            file=file_name,
                            pointer=f"module.{module_name}",
                        )
                    )
                    return {}
                if pairs is None:
                    continue
                return {
                    variable: TemplateBinding(
                        variable=variable,
                        expression=expression,
                        logical_name=referenced_lambda(expression),
                        source_file=file_name,
                    )
                    for variable, expression in pairs
                }

    if matched_modules:
        message = (
            f"Module {', '.join(repr(m) for m in matched_modules)} has no "
            "templatefile(...) call"
        )
    else:
        message = f"No module block matching '{module_pattern}' found"
    problems.append(
        make_finding(FindingKind.MISSING_BLOCK, message, pointer="module")
    )
    return {}
