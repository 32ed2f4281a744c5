"""Per-host variable namespace: interpolation and ``when`` conditions.

Interpolation is plain lookup: ``{{ name }}``, ``{{ name.attr }}``,
``{{ name[0] }}`` and ``{{ name['key'] }}``. A string that is exactly one
reference keeps the referenced value's type. Conditions are a small
expression language parsed with :mod:`ast` and walked node by node.
"""

from __future__ import annotations

import ast
import copy
import re
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from hc_common.errors import PlanValidationError, UnresolvedVariable
from hc_common.models.hosts import RemoteHostConfig

_REFERENCE_RE = re.compile(r"\{\{\s*(.*?)\s*\}\}")
_HEAD_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_SEGMENT_RE = re.compile(r"\.([A-Za-z_][A-Za-z0-9_]*)|\[(-?\d+)\]|\[(['\"])(.*?)\3\]")
_DEFINED_RE = re.compile(
    r"(?P<ref>[A-Za-z_][\w.]*(?:\[[^\]]+\])*)\s+is\s+(?P<neg>not\s+)?(?P<kind>defined|undefined)\b"
)
_LITERAL_NAMES = {
    "true": True,
    "True": True,
    "false": False,
    "False": False,
    "none": None,
    "None": None,
    "null": None,
}
_MISSING = object()

PathPart = Union[str, int]


def parse_reference(expr: str) -> Tuple[PathPart, ...]:
    """Split a reference into lookup steps.

    >>> parse_reference("result.stdout")
    ('result', 'stdout')
    >>> parse_reference("hosts[0]['name']")
    ('hosts', 0, 'name')
    """
    expr = expr.strip()
    head = _HEAD_RE.match(expr)
    if head is None:
        raise UnresolvedVariable(
            f"Invalid variable reference '{expr}'", context={"reference": expr}
        )
    parts: list[PathPart] = [head.group(0)]
    pos = head.end()
    while pos < len(expr):
        match = _SEGMENT_RE.match(expr, pos)
        if match is None:
            raise UnresolvedVariable(
                f"Unsupported expression '{expr}': only plain variable lookups are allowed",
                context={"reference": expr},
            )
        if match.group(1) is not None:
            parts.append(match.group(1))
        elif match.group(2) is not None:
            parts.append(int(match.group(2)))
        else:
            parts.append(match.group(4))
        pos = match.end()
    return tuple(parts)


def _step(value: Any, key: PathPart) -> Any:
    if isinstance(value, Mapping):
        return value.get(key, _MISSING)
    if isinstance(value, (list, tuple)) and isinstance(key, int):
        try:
            return value[key]
        except IndexError:
            return _MISSING
    if isinstance(key, str) and not key.startswith("_"):
        return getattr(value, key, _MISSING)
    return _MISSING


def has_references(value: Any) -> bool:
    if isinstance(value, str):
        return _REFERENCE_RE.search(value) is not None
    if isinstance(value, Mapping):
        return any(has_references(item) for item in value.values())
    if isinstance(value, (list, tuple)):
        return any(has_references(item) for item in value)
    return False


class VariableNamespace:
    """Variables visible to one host for one run.

    Never shared between hosts: construction deep-copies every seed value.
    """

    MAX_DEPTH = 10

    def __init__(self, variables: Optional[Mapping[str, Any]] = None) -> None:
        self._values: Dict[str, Any] = copy.deepcopy(dict(variables or {}))

    @classmethod
    def for_host(
        cls, variables: Mapping[str, Any], host: RemoteHostConfig
    ) -> "VariableNamespace":
        """Seed from declared variables, then host vars and ``inventory_hostname``."""
        namespace = cls(variables)
        namespace._values.update(copy.deepcopy(host.vars))
        namespace._values["inventory_hostname"] = host.name
        return namespace

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def get(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    def register(self, name: str, payload: Mapping[str, Any]) -> None:
        self._values[name] = dict(payload)

    def register_loop_item(
        self, name: str, payload: Mapping[str, Any], loop_index: int
    ) -> None:
        """Append one loop item's payload under ``name['results']``."""
        current = self._values.get(name)
        if loop_index == 0 or not isinstance(current, dict) or "results" not in current:
            current = {"results": [], "changed": False, "failed": False}
            self._values[name] = current
        current["results"].append(dict(payload))
        current["changed"] = current["changed"] or bool(payload.get("changed"))
        current["failed"] = current["failed"] or bool(payload.get("failed"))

    def lookup(
        self,
        expr: str,
        extra: Optional[Mapping[str, Any]] = None,
        _depth: int = 0,
    ) -> Any:
        """Return the fully resolved value of a reference."""
        parts = parse_reference(expr)
        value = self._raw(parts, extra)
        if value is _MISSING:
            raise UnresolvedVariable(
                f"'{expr}' is undefined", context={"reference": expr}
            )
        if has_references(value):
            return self.resolve(value, extra, _depth=_depth + 1)
        return value

    def is_defined(self, expr: str, extra: Optional[Mapping[str, Any]] = None) -> bool:
        return self._raw(parse_reference(expr), extra) is not _MISSING

    def resolve(
        self,
        value: Any,
        extra: Optional[Mapping[str, Any]] = None,
        _depth: int = 0,
    ) -> Any:
        """Substitute every reference inside ``value`` (str, list or mapping)."""
        if _depth > self.MAX_DEPTH:
            raise UnresolvedVariable(
                "Variable references nest too deeply (recursive definition?)",
                context={"value": value},
            )
        if isinstance(value, str):
            return self._resolve_string(value, extra, _depth)
        if isinstance(value, Mapping):
            return {key: self.resolve(item, extra, _depth) for key, item in value.items()}
        if isinstance(value, list):
            return [self.resolve(item, extra, _depth) for item in value]
        if isinstance(value, tuple):
            return tuple(self.resolve(item, extra, _depth) for item in value)
        return value

    def evaluate(
        self,
        condition: Union[bool, str, None],
        extra: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Evaluate a ``when`` condition; None and True both mean run."""
        if condition is None or isinstance(condition, bool):
            return condition is not False
        tree = compile_condition(condition)
        return bool(_ConditionEvaluator(self, extra).visit(tree))

    def _resolve_string(
        self, text: str, extra: Optional[Mapping[str, Any]], depth: int
    ) -> Any:
        full = _REFERENCE_RE.fullmatch(text.strip())
        if full is not None and text.strip().count("{{") == 1:
            return self.lookup(full.group(1), extra, _depth=depth)
        return _REFERENCE_RE.sub(
            lambda match: str(self.lookup(match.group(1), extra, _depth=depth)), text
        )

    def _raw(self, parts: Tuple[PathPart, ...], extra: Optional[Mapping[str, Any]]) -> Any:
        head, *rest = parts
        if extra is not None and head in extra:
            value = extra[head]
        else:
            value = self._values.get(head, _MISSING)
        for part in rest:
            if value is _MISSING:
                break
            value = _step(value, part)
        return value


_ALLOWED_NODES = (
    ast.Expression,
    ast.BoolOp,
    ast.And,
    ast.Or,
    ast.UnaryOp,
    ast.Not,
    ast.USub,
    ast.Compare,
    ast.Eq,
    ast.NotEq,
    ast.Lt,
    ast.LtE,
    ast.Gt,
    ast.GtE,
    ast.In,
    ast.NotIn,
    ast.Is,
    ast.IsNot,
    ast.Name,
    ast.Load,
    ast.Constant,
    ast.Attribute,
    ast.Subscript,
    ast.List,
    ast.Tuple,
    ast.Call,
)


@lru_cache(maxsize=512)
def compile_condition(text: str) -> ast.Expression:
    """Parse a ``when`` string; raise PlanValidationError on unsupported syntax."""
    source = text.strip()
    if source.startswith("{{") and source.endswith("}}"):
        source = source[2:-2].strip()

    def _defined_call(match: re.Match) -> str:
        wants_defined = (match.group("kind") == "defined") != bool(match.group("neg"))
        call = f"__defined__({match.group('ref')!r})"
        return call if wants_defined else f"(not {call})"

    source = _DEFINED_RE.sub(_defined_call, source)
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError as exc:
        raise PlanValidationError(
            f"Invalid condition '{text}': {exc.msg}", context={"when": text}, cause=exc
        ) from exc
    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_NODES):
            raise PlanValidationError(
                f"Unsupported syntax in condition '{text}': {type(node).__name__}",
                context={"when": text},
            )
        if isinstance(node, ast.Call) and not _is_defined_call(node):
            raise PlanValidationError(
                f"Function calls are not allowed in condition '{text}'",
                context={"when": text},
            )
    return tree


def _is_defined_call(node: ast.Call) -> bool:
    return (
        isinstance(node.func, ast.Name)
        and node.func.id == "__defined__"
        and len(node.args) == 1
        and not node.keywords
        and isinstance(node.args[0], ast.Constant)
        and isinstance(node.args[0].value, str)
    )


_COMPARATORS = {
    ast.Eq: lambda left, right: left == right,
    ast.NotEq: lambda left, right: left != right,
    ast.Lt: lambda left, right: left < right,
    ast.LtE: lambda left, right: left <= right,
    ast.Gt: lambda left, right: left > right,
    ast.GtE: lambda left, right: left >= right,
    ast.In: lambda left, right: left in right,
    ast.NotIn: lambda left, right: left not in right,
    ast.Is: lambda left, right: left is right,
    ast.IsNot: lambda left, right: left is not right,
}


class _ConditionEvaluator:
    """Walks a validated condition tree against a namespace."""

    def __init__(
        self, namespace: VariableNamespace, extra: Optional[Mapping[str, Any]]
    ) -> None:
        self._namespace = namespace
        self._extra = extra

    def visit(self, node: ast.AST) -> Any:
        method = getattr(self, f"_visit_{type(node).__name__}")
        return method(node)

    def _visit_Expression(self, node: ast.Expression) -> Any:
        return self.visit(node.body)

    def _visit_BoolOp(self, node: ast.BoolOp) -> Any:
        if isinstance(node.op, ast.And):
            result: Any = True
            for value in node.values:
                result = self.visit(value)
                if not result:
                    return result
            return result
        result = False
        for value in node.values:
            result = self.visit(value)
            if result:
                return result
        return result

    def _visit_UnaryOp(self, node: ast.UnaryOp) -> Any:
        operand = self.visit(node.operand)
        if isinstance(node.op, ast.Not):
            return not operand
        return -operand

    def _visit_Compare(self, node: ast.Compare) -> bool:
        left = self.visit(node.left)
        for op, comparator in zip(node.ops, node.comparators):
            right = self.visit(comparator)
            if not _COMPARATORS[type(op)](left, right):
                return False
            left = right
        return True

    def _visit_Name(self, node: ast.Name) -> Any:
        if node.id in _LITERAL_NAMES and node.id not in self._namespace:
            return _LITERAL_NAMES[node.id]
        return self._namespace.lookup(node.id, self._extra)

    def _visit_Constant(self, node: ast.Constant) -> Any:
        return node.value

    def _visit_Attribute(self, node: ast.Attribute) -> Any:
        return self._checked_step(self.visit(node.value), node.attr, node)

    def _visit_Subscript(self, node: ast.Subscript) -> Any:
        return self._checked_step(self.visit(node.value), self.visit(node.slice), node)

    def _visit_List(self, node: ast.List) -> list:
        return [self.visit(item) for item in node.elts]

    def _visit_Tuple(self, node: ast.Tuple) -> tuple:
        return tuple(self.visit(item) for item in node.elts)

    def _visit_Call(self, node: ast.Call) -> bool:
        return self._namespace.is_defined(node.args[0].value, self._extra)

    @staticmethod
    def _checked_step(value: Any, key: Any, node: ast.AST) -> Any:
        result = _step(value, key)
        if result is _MISSING:
            expr = ast.unparse(node)
            raise UnresolvedVariable(f"'{expr}' is undefined", context={"reference": expr})
        return result
