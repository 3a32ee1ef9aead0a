"""Capture the pieces of Terraform expression text gatecheck cares about.

gatecheck does not evaluate Terraform expressions.  It only needs to

* strip the quoting that parsers leave around keys and values
  (``"lambda-1"``, ``${module.x.y}``),
* find a ``templatefile(...)`` call and split its second argument, an object
  literal, into ``variable -> expression text`` pairs, and
* recognise ``module.lambda["<name>"].lambda_arn`` and pull out ``<name>``.

Depending on its version, ``python-hcl2`` renders a function call either as
HCL-like text (``{a = x}``) or with Python ``repr`` quoting (``{'a': 'x'}``).
The scanner below understands both: it tracks double- and single-quoted
strings, ``${...}`` interpolations inside double-quoted strings, and bracket
depth, so separators are only honoured at the top level.
"""

from __future__ import annotations

import re
from typing import Any, Iterator, Optional

_QUOTES = ('"', "'")
_OPENERS = "([{"
_CLOSERS = ")]}"

_LAMBDA_REF_RE = re.compile(
    r"module\.lambda\[\\?[\"']([^\"'\\]+)\\?[\"']\]\.lambda_arn(?![\w])"
)
_TEMPLATEFILE_RE = re.compile(r"\btemplatefile\s*\(")


class TemplateVariablesError(ValueError):
    """A ``templatefile(...)`` call whose variables are not an object literal."""


def _walk(text: str) -> Iterator[tuple[int, str, int]]:
    """Yield ``(index, char, depth)`` for every character outside string literals.

    ``depth`` is the bracket depth *outside* the character: an opening
    bracket is reported at the depth it opens from and a closing bracket at
    the depth it returns to.
    """
    stack: list[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        top = stack[-1] if stack else None
        if top in _QUOTES:
            if ch == "\\":
                i += 2
                continue
            if top == '"' and text.startswith("${", i):
                stack.append("${")
                i += 2
                continue
            if ch == top:
                stack.pop()
            i += 1
            continue

        depth = sum(1 for s in stack if s not in _QUOTES)
        if ch in _QUOTES:
            stack.append(ch)
        elif ch in _OPENERS:
            yield i, ch, depth
            stack.append(ch)
        elif ch in _CLOSERS:
            if stack:
                stack.pop()
            yield i, ch, sum(1 for s in stack if s not in _QUOTES)
        else:
            yield i, ch, depth
        i += 1


def split_top_level(text: str, separators: str = ",") -> list[str]:
    """Split *text* on *separators* that are outside strings and brackets."""
    parts: list[str] = []
    start = 0
    for i, ch, depth in _walk(text):
        if depth == 0 and ch in separators:
            parts.append(text[start:i])
            start = i + 1
    parts.append(text[start:])
    return [p.strip() for p in parts if p.strip()]


def _matching_close(text: str, open_index: int) -> Optional[int]:
    """Index of the bracket closing the one at *open_index*, or ``None``."""
    for i, ch, depth in _walk(text[open_index:]):
        if i > 0 and ch in _CLOSERS and depth == 0:
            return open_index + i
    return None


def unquote(text: str) -> str:
    """Strip one layer of matching surrounding quotes from *text*."""
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in _QUOTES:
        inner = text[1:-1]
        if text[0] == '"':
            inner = inner.replace('\\"', '"')
        return inner
    return text


def unwrap_interpolation(text: str) -> str:
    """Turn ``${expr}`` into ``expr`` when the interpolation spans all of *text*."""
    text = text.strip()
    if text.startswith("${") and text.endswith("}"):
        if _matching_close(text, 1) == len(text) - 1:
            return text[2:-1].strip()
    return text


def normalize(value: Any) -> Any:
    """Strip parser quoting from a scalar; non-strings pass through."""
    if not isinstance(value, str):
        return value
    previous = None
    current = value
    while current != previous:
        previous = current
        current = unwrap_interpolation(unquote(current))
    return current


def parse_object_literal(text: str) -> Optional[list[tuple[str, str]]]:
    """Parse ``{k = v, ...}`` (or ``{'k': 'v'}``) into ``(key, value_text)`` pairs.

    Returns ``None`` when *text* is not an object literal.  Keys are
    normalised; values are returned as literal text with quoting removed.
    """
    text = text.strip()
    if not (text.startswith("{") and _matching_close(text, 0) == len(text) - 1):
        return None

    pairs: list[tuple[str, str]] = []
    for entry in split_top_level(text[1:-1], ",\n"):
        split_at = next(
            (i for i, ch, depth in _walk(entry) if depth == 0 and ch in "=:"),
            None,
        )
        if split_at is None:
            continue
        key = normalize(entry[:split_at])
        value = normalize(entry[split_at + 1:])
        pairs.append((key, value))
    return pairs


def find_call_arguments(text: str, function: str = "templatefile") -> Optional[list[str]]:
    """Return the top-level argument texts of the first *function* call in *text*."""
    pattern = _TEMPLATEFILE_RE if function == "templatefile" else re.compile(
        rf"\b{re.escape(function)}\s*\("
    )
    match = pattern.search(text)
    if match is None:
        return None
    open_index = match.end() - 1
    close_index = _matching_close(text, open_index)
    if close_index is None:
        return None
    return split_top_level(text[open_index + 1:close_index], ",")


def capture_templatefile_bindings(value: Any) -> Optional[list[tuple[str, str]]]:
    """Find a ``templatefile(path, vars)`` call anywhere in *value*.

    *value* may be a string or any nesting of dicts and lists (a parsed
    block body).  Returns the ``(variable, expression)`` pairs of the
    second argument, or ``None`` when no call exists.

    Raises:
        TemplateVariablesError: If the call has no second argument or the
            argument is not an object literal (a ``local`` or ``var``
            reference, say).
    """
    if isinstance(value, str):
        args = find_call_arguments(value)
        if args is None:
            return None
        if len(args) < 2:
            raise TemplateVariablesError("templatefile(...) call has no variables argument")
        pairs = parse_object_literal(args[1])
        if pairs is None:
            raise TemplateVariablesError(
                f"templatefile(...) variables must be an object literal, got: {args[1].strip()}"
            )
        return pairs
    if isinstance(value, dict):
        children = [v for k, v in value.items() if not str(k).startswith("__")]
    elif isinstance(value, list):
        children = value
    else:
        return None
    for child in children:
        found = capture_templatefile_bindings(child)
        if found is not None:
            return found
    return None


def referenced_lambda(expression: str) -> Optional[str]:
    """Return ``<name>`` from ``module.lambda["<name>"].lambda_arn``, else ``None``."""
    match = _LAMBDA_REF_RE.search(expression)
    return match.group(1) if match else None
