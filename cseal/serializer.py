"""
Canonical serialization of encoder definitions.

The canonical text is the hash input for sealing. It is built from the
*source* of each capability, so it is sensitive to spelling: a lambda and an
equivalent ``def`` produce different text. Two spellings are normalized:

- a ``def`` nested in a class body (decorated or not), and
- a module-level ``def`` under any name

both become a dedented ``def <capability>(...)`` block without decorators.

Dependencies are emitted after ``encode``/``decode``/``preencode`` in name
order. That order is also the factory's parameter order and the loader's
argument order (see ``sort_dependencies``).
"""

from __future__ import annotations

import ast
import inspect
import io
import keyword
import linecache
import re
import textwrap
import tokenize
import types
from collections.abc import Mapping
from typing import Any

from .errors import InvalidDependencyError, SerializationError

CAPABILITIES = ("encode", "decode", "preencode")
EXTERNALS = ("cenc", "b4a")
RESERVED_NAMES = frozenset((*EXTERNALS, *CAPABILITIES, "name", "hash"))

_DEF_HEADER = re.compile(r"^(async\s+)?def\s+\w+")
_STRING_SPANS = tuple(
    (getattr(tokenize, start), getattr(tokenize, end))
    for start, end in (("FSTRING_START", "FSTRING_END"), ("TSTRING_START", "TSTRING_END"))
    if hasattr(tokenize, start)
)


def get_capability(definition: Any, name: str) -> Any:
    """Read a capability from a mapping or an attribute-bearing object."""
    if isinstance(definition, Mapping):
        return definition.get(name)
    return getattr(definition, name, None)


def sort_dependencies(dependencies: Mapping[str, Any] | None) -> list[tuple[str, Any]]:
    """
    Return dependencies as a name-sorted association list.

    Names become positional parameters of the generated factory, so they must
    be identifiers that do not collide with keywords or reserved names.
    """
    if not dependencies:
        return []

    for dep_name in dependencies:
        if not isinstance(dep_name, str) or not dep_name.isidentifier():
            raise InvalidDependencyError(f"dependency name must be an identifier: {dep_name!r}")
        if keyword.iskeyword(dep_name):
            raise InvalidDependencyError(f"dependency name is a Python keyword: {dep_name!r}")
        if dep_name in RESERVED_NAMES:
            raise InvalidDependencyError(f"dependency name is reserved: {dep_name!r}")

    return sorted(dependencies.items(), key=lambda item: item[0])


def serialize(definition: Any, dependencies: Mapping[str, Any] | None = None) -> str:
    """Build the canonical text for ``definition`` plus ``dependencies``."""
    return join_entries(capability_entries(definition) + dependency_entries(dependencies))


def join_entries(entries: list[tuple[str, str]]) -> str:
    return "\n\n".join(source for _, source in entries)


def capability_entries(definition: Any) -> list[tuple[str, str]]:
    """Canonical ``(name, source)`` pairs for the encoder's own capabilities."""
    entries = []
    for name in CAPABILITIES:
        fn = get_capability(definition, name)
        if fn is None:
            continue
        entries.append((name, function_source(fn, name)))
    return entries


def dependency_entries(dependencies: Mapping[str, Any] | None) -> list[tuple[str, str]]:
    entries = []
    for name, value in sort_dependencies(dependencies):
        if _is_function(value):
            entries.append((name, function_source(value, name, allow_bound=True)))
        elif callable(value):
            entries.append((name, _object_source(value, name)))
        else:
            # Only the key participates; the value is threaded through at load.
            entries.append((name, f"# {name}: injected value"))
    return entries


def function_source(fn: Any, name: str, *, allow_bound: bool = False) -> str:
    """
    Canonical source of a function bound to ``name``.

    ``def`` blocks are renamed to ``name`` with decorators dropped; lambdas
    are emitted as ``name = lambda ...``. Bound methods are accepted only for
    dependencies, which are hashed but never embedded in a module.
    """
    if isinstance(fn, staticmethod):
        fn = fn.__func__
    if inspect.ismethod(fn):
        if not allow_bound:
            raise SerializationError(
                f"{name}: bound methods cannot be sealed; use a staticmethod or a plain function"
            )
        fn = fn.__func__
    fn = inspect.unwrap(fn)
    if not isinstance(fn, types.FunctionType):
        raise SerializationError(f"{name}: expected a Python function, got {type(fn).__name__}")

    code = fn.__code__
    lines = linecache.getlines(code.co_filename, fn.__globals__)
    if not lines:
        raise SerializationError(f"{name}: source not available for {code.co_filename}")

    source = "".join(lines)
    try:
        tree = ast.parse(source, filename=code.co_filename)
    except SyntaxError as exc:
        raise SerializationError(f"{name}: cannot parse {code.co_filename}") from exc

    node = _locate(tree, code)
    if node is None:
        raise SerializationError(f"{name}: no definition of {code.co_name} at {code.co_filename}:{code.co_firstlineno}")

    segment = ast.get_source_segment(source, node)
    if segment is None:
        raise SerializationError(f"{name}: cannot slice source of {code.co_name}")

    first_line = lines[node.lineno - 1]
    width = len(first_line) - len(first_line.lstrip(" \t"))
    string_rows = {row - node.lineno for row in _string_rows(source) if row > node.lineno}
    text = _strip_indent(segment, width, string_rows)

    if isinstance(node, ast.Lambda):
        return f"{name} = {text}"
    header = _DEF_HEADER.match(text)
    if header is None:
        raise SerializationError(f"{name}: unexpected definition header in {code.co_filename}")
    keyword_prefix = "async def" if header.group(1) else "def"
    return f"{keyword_prefix} {name}{text[header.end():]}"


def indent_source(text: str, prefix: str) -> str:
    """Indent canonical text, leaving continuation lines of strings untouched."""
    string_rows = {row - 1 for row in _string_rows(text)}
    out = []
    for index, line in enumerate(text.split("\n")):
        if index in string_rows or not line.strip():
            out.append(line)
        else:
            out.append(prefix + line)
    return "\n".join(out)


def _object_source(value: Any, name: str) -> str:
    try:
        return textwrap.dedent(inspect.getsource(value)).rstrip()
    except (OSError, TypeError):
        # Builtins, partials and callable instances have no source of their
        # own; they are identified by where they come from.
        module = getattr(value, "__module__", None) or type(value).__module__
        qualname = getattr(value, "__qualname__", None) or type(value).__qualname__
        return f"# {name}: {module}.{qualname}"


def _is_function(value: Any) -> bool:
    return isinstance(value, (types.FunctionType, staticmethod)) or inspect.ismethod(value)


def _locate(tree: ast.AST, code: types.CodeType) -> ast.AST | None:
    lineno = code.co_firstlineno

    if code.co_name != "<lambda>":
        for node in ast.walk(tree):
            if not isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)) or node.name != code.co_name:
                continue
            first = node.decorator_list[0].lineno if node.decorator_list else node.lineno
            if first == lineno:
                return node
        return None

    params = set(_code_params(code))
    candidates = [
        node
        for node in ast.walk(tree)
        if isinstance(node, ast.Lambda) and node.lineno == lineno and set(_lambda_params(node)) == params
    ]
    if len(candidates) <= 1:
        return candidates[0] if candidates else None

    # Several lambdas with the same signature on one line: pick the one whose
    # span covers most instructions of this code object, innermost on ties.
    positions = [
        (line, col, end_line, end_col)
        for line, end_line, col, end_col in code.co_positions()
        if None not in (line, end_line, col, end_col)
    ]

    def rank(node: ast.Lambda) -> tuple[int, int, int]:
        covered = sum(1 for pos in positions if _covers(node, pos))
        return (-covered, node.end_lineno - node.lineno, node.end_col_offset - node.col_offset)

    return min(candidates, key=rank)


def _covers(node: ast.AST, position: tuple[int, int, int, int]) -> bool:
    line, col, end_line, end_col = position
    starts_after = (line, col) >= (node.lineno, node.col_offset)
    ends_before = (end_line, end_col) <= (node.end_lineno, node.end_col_offset)
    return starts_after and ends_before


def _code_params(code: types.CodeType) -> tuple[str, ...]:
    count = code.co_argcount + code.co_kwonlyargcount
    if code.co_flags & inspect.CO_VARARGS:
        count += 1
    if code.co_flags & inspect.CO_VARKEYWORDS:
        count += 1
    return code.co_varnames[:count]


def _lambda_params(node: ast.Lambda) -> list[str]:
    args = node.args
    names = [a.arg for a in (*args.posonlyargs, *args.args, *args.kwonlyargs)]
    if args.vararg:
        names.append(args.vararg.arg)
    if args.kwarg:
        names.append(args.kwarg.arg)
    return names


def _string_rows(source: str) -> set[int]:
    """1-based rows that continue a multi-line string literal."""
    rows: set[int] = set()
    opened: list[int] = []
    try:
        for tok in tokenize.generate_tokens(io.StringIO(source).readline):
            if tok.type == tokenize.STRING:
                rows.update(range(tok.start[0] + 1, tok.end[0] + 1))
                continue
            for start_type, end_type in _STRING_SPANS:
                if tok.type == start_type:
                    opened.append(tok.start[0])
                elif tok.type == end_type and opened:
                    rows.update(range(opened.pop() + 1, tok.end[0] + 1))
    except (tokenize.TokenError, SyntaxError) as exc:
        raise SerializationError("cannot tokenize source") from exc
    return rows


def _strip_indent(segment: str, width: int, string_rows: set[int]) -> str:
    lines = segment.split("\n")
    out = [lines[0]]
    for index, line in enumerate(lines[1:], start=1):
        if index in string_rows:
            out.append(line)
        elif not line.strip():
            out.append("")
        else:
            leading = len(line) - len(line.lstrip(" \t"))
            out.append(line[min(width, leading):])
    return "\n".join(out)
