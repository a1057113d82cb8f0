"""
odata_models.odata.options - Query options
===========================================

Recognized system query options ($select, $filter, $search, $orderby,
$expand, $apply, $top, $skip, $skiptoken, $format) and free-form custom
parameters. Each option is read with ``option(kind)`` and written with
``option(kind, value)``; writing ``None`` removes it.

Expands nest: every expanded navigation property carries its own
:class:`QueryOptions`, rendered inline as ``Name($select=...;$top=...)``.
"""

from __future__ import annotations

import copy
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import quote

from odata_models.core.errors import UsageError
from odata_models.odata.literals import format_literal

PARAM_SEPARATOR = "&"
# characters left readable in rendered query values
_SAFE = "$,()/:@'=;*"
_UNSET = object()


class QueryOptionKind(str, Enum):
    SELECT = "select"
    FILTER = "filter"
    SEARCH = "search"
    ORDER_BY = "orderby"
    EXPAND = "expand"
    TRANSFORM = "transform"
    GROUP_BY = "groupby"
    TOP = "top"
    SKIP = "skip"
    SKIPTOKEN = "skiptoken"
    FORMAT = "format"
    CUSTOM = "custom"


# Filter tree operators
_COMPARISON = ("eq", "ne", "gt", "ge", "lt", "le")
_FUNCTIONS = ("contains", "startswith", "endswith")

Filter = Union[str, Mapping[str, Any], Sequence[Any]]
OrderBy = Union[str, Sequence[Union[str, Tuple[str, str]]]]


def _join_csv(items: Iterable[str]) -> str:
    """Join items as comma-separated values, stripping whitespace."""
    return ",".join([s.strip() for s in items if s and s.strip()])


# ---------------- filter expressions ----------------

def render_filter(expr: Filter) -> str:
    """
    Render a filter expression tree.

    - ``"Age gt 3"``: raw string, passed through
    - ``{"Name": "Bob"}``: ``Name eq 'Bob'``
    - ``{"Age": {"gt": 3, "le": 9}}``: ``Age gt 3 and Age le 9``
    - ``{"Name": {"contains": "ob"}}``: ``contains(Name,'ob')``
    - ``{"Id": {"in": [1, 2]}}``: ``Id in (1,2)``
    - ``{"or": [...]}``, ``{"and": [...]}``, ``{"not": ...}``
    - a list: items joined with ``and``
    """
    if isinstance(expr, str):
        return expr
    if isinstance(expr, Mapping):
        parts = [_render_filter_item(k, v) for k, v in expr.items()]
        if len(parts) == 1:
            return parts[0]
        return " and ".join(_group(p) for p in parts)
    if isinstance(expr, Sequence):
        return " and ".join(_group(render_filter(e)) for e in expr)
    raise UsageError(f"Unsupported filter expression: {expr!r}")


def _group(text: str) -> str:
    return f"({text})" if " and " in text or " or " in text else text


def _render_filter_item(field: str, value: Any) -> str:
    lowered = field.lower()
    if lowered in ("and", "or"):
        if not isinstance(value, Sequence) or isinstance(value, str):
            raise UsageError(f"'{field}' expects a list of expressions")
        return f" {lowered} ".join(_group(render_filter(v)) for v in value)
    if lowered == "not":
        return f"not ({render_filter(value)})"
    if isinstance(value, Mapping):
        parts = []
        for op, operand in value.items():
            op = op.lower()
            if op in _COMPARISON:
                parts.append(f"{field} {op} {format_literal(operand)}")
            elif op in _FUNCTIONS:
                parts.append(f"{op}({field},{format_literal(operand)})")
            elif op == "in":
                values = ",".join(format_literal(v) for v in operand)
                parts.append(f"{field} in ({values})")
            else:
                raise UsageError(f"Unsupported filter operator: {op}")
        return " and ".join(parts)
    return f"{field} eq {format_literal(value)}"


# ---------------- other renderers ----------------

def _render_orderby(value: OrderBy) -> str:
    if isinstance(value, str):
        return value
    parts = []
    for item in value:
        if isinstance(item, str):
            parts.append(item)
        else:
            name, direction = item
            parts.append(f"{name} {direction}")
    return _join_csv(parts)


def _render_groupby(value: Any) -> str:
    if isinstance(value, Mapping):
        props = value.get("properties") or []
        aggregate = value.get("aggregate") or {}
    else:
        props, aggregate = value, {}
    out = f"groupby(({_join_csv(props)})"
    if aggregate:
        aggs = ",".join(
            f"{name} with {spec['with']} as {spec['as']}" for name, spec in aggregate.items()
        )
        out += f",aggregate({aggs})"
    return out + ")"


def _render_apply(transform: Any, groupby: Any) -> Optional[str]:
    steps: List[str] = []
    if transform:
        steps.extend([transform] if isinstance(transform, str) else list(transform))
    if groupby:
        steps.append(_render_groupby(groupby))
    return "/".join(steps) or None


class QueryOptions:
    """
    Mutable set of query options, at most one value per option kind.

    Examples
    --------
    >>> opts = QueryOptions()
    >>> opts.option(QueryOptionKind.TOP, 10)
    10
    >>> opts.expanded("Friends").option(QueryOptionKind.SELECT, ["UserName"])
    ['UserName']
    >>> opts.params()
    {'$expand': 'Friends($select=UserName)', '$top': '10'}
    """

    def __init__(self, values: Optional[Dict[QueryOptionKind, Any]] = None) -> None:
        self._values: Dict[QueryOptionKind, Any] = {}
        for kind, value in (values or {}).items():
            self.option(kind, value)

    # ---------------- access ----------------

    def option(self, kind: Union[QueryOptionKind, str], value: Any = _UNSET) -> Any:
        """Get (no value) or set an option. Setting ``None`` removes it."""
        kind = QueryOptionKind(kind)
        if value is _UNSET:
            return self._copy(kind, self._values.get(kind))
        if value is None:
            self._values.pop(kind, None)
            return None
        self._values[kind] = self._normalize(kind, value)
        return self._copy(kind, self._values[kind])

    def has(self, kind: Union[QueryOptionKind, str]) -> bool:
        return QueryOptionKind(kind) in self._values

    def keep(self, *kinds: QueryOptionKind) -> None:
        """Drop every option except ``kinds``."""
        self._values = {k: v for k, v in self._values.items() if k in kinds}

    def clear(self) -> None:
        self._values = {}

    def expanded(self, name: str) -> "QueryOptions":
        """
        Options scoped to one expanded navigation property.

        The property is added to $expand when missing; the returned
        instance is stored in (and rendered from) this one.
        """
        expand = self._values.setdefault(QueryOptionKind.EXPAND, {})
        nested = expand.get(name)
        if nested is None:
            nested = expand[name] = QueryOptions()
        return nested

    @staticmethod
    def _copy(kind: QueryOptionKind, value: Any) -> Any:
        if kind is QueryOptionKind.EXPAND and value is not None:
            return {name: nested.clone() for name, nested in value.items()}
        return copy.deepcopy(value)

    def _normalize(self, kind: QueryOptionKind, value: Any) -> Any:
        if kind in (QueryOptionKind.TOP, QueryOptionKind.SKIP):
            if isinstance(value, bool) or not isinstance(value, int):
                raise UsageError(f"${kind.value} must be an integer, got {value!r}")
            if value < 0:
                raise UsageError(f"${kind.value} must not be negative, got {value}")
            return value
        if kind is QueryOptionKind.SELECT:
            fields = [value] if isinstance(value, str) else list(value)
            # keep first occurrence order
            return list(dict.fromkeys(f.strip() for f in fields if f and f.strip()))
        if kind is QueryOptionKind.EXPAND:
            return self._normalize_expand(value)
        if kind is QueryOptionKind.CUSTOM:
            return dict(value)
        if kind is QueryOptionKind.ORDER_BY and not isinstance(value, str):
            return [item if isinstance(item, str) else tuple(item) for item in value]
        return copy.deepcopy(value)

    @staticmethod
    def _normalize_expand(value: Any) -> Dict[str, "QueryOptions"]:
        if isinstance(value, str):
            value = [v.strip() for v in value.split(",") if v.strip()]
        if not isinstance(value, Mapping):
            return {name: QueryOptions() for name in value}
        out: Dict[str, QueryOptions] = {}
        for name, nested in value.items():
            if isinstance(nested, QueryOptions):
                out[name] = nested.clone()
            elif nested:
                out[name] = QueryOptions(
                    {QueryOptionKind(k): v for k, v in nested.items()}
                )
            else:
                out[name] = QueryOptions()
        return out

    # ---------------- rendering ----------------

    def params(self) -> Dict[str, str]:
        """Rendered ``$name -> value`` pairs; options without a value are omitted."""
        v = self._values
        out: Dict[str, str] = {}
        if v.get(QueryOptionKind.SELECT):
            out["$select"] = _join_csv(v[QueryOptionKind.SELECT])
        if v.get(QueryOptionKind.FILTER):
            out["$filter"] = render_filter(v[QueryOptionKind.FILTER])
        if v.get(QueryOptionKind.SEARCH):
            out["$search"] = str(v[QueryOptionKind.SEARCH])
        apply = _render_apply(v.get(QueryOptionKind.TRANSFORM), v.get(QueryOptionKind.GROUP_BY))
        if apply:
            out["$apply"] = apply
        if v.get(QueryOptionKind.ORDER_BY):
            out["$orderby"] = _render_orderby(v[QueryOptionKind.ORDER_BY])
        if v.get(QueryOptionKind.EXPAND):
            out["$expand"] = self._render_expand(v[QueryOptionKind.EXPAND])
        if QueryOptionKind.TOP in v:
            out["$top"] = str(v[QueryOptionKind.TOP])
        if QueryOptionKind.SKIP in v:
            out["$skip"] = str(v[QueryOptionKind.SKIP])
        if v.get(QueryOptionKind.SKIPTOKEN):
            out["$skiptoken"] = str(v[QueryOptionKind.SKIPTOKEN])
        if v.get(QueryOptionKind.FORMAT):
            out["$format"] = str(v[QueryOptionKind.FORMAT])
        for name, value in (v.get(QueryOptionKind.CUSTOM) or {}).items():
            if value is not None:
                out[name] = str(value)
        return out

    @staticmethod
    def _render_expand(expand: Dict[str, "QueryOptions"]) -> str:
        parts = []
        for name, nested in expand.items():
            inner = ";".join(f"{k}={val}" for k, val in nested.params().items())
            parts.append(f"{name}({inner})" if inner else name)
        return ",".join(parts)

    def query_string(self, extra: Optional[Mapping[str, Any]] = None) -> str:
        """Percent-encoded ``name=value`` pairs joined by ``&``."""
        params: Dict[str, Any] = self.params()
        if extra:
            params.update(extra)
        return PARAM_SEPARATOR.join(
            f"{quote(str(k), safe='$')}={quote(str(val), safe=_SAFE)}"
            for k, val in params.items()
        )

    # ---------------- copy / serialize ----------------

    def clone(self) -> "QueryOptions":
        other = QueryOptions()
        other._values = copy.deepcopy(self._values)
        return other

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for kind, value in self._values.items():
            if kind is QueryOptionKind.EXPAND:
                out[kind.value] = {name: nested.to_dict() for name, nested in value.items()}
            elif kind is QueryOptionKind.ORDER_BY and not isinstance(value, str):
                out[kind.value] = [i if isinstance(i, str) else list(i) for i in value]
            else:
                out[kind.value] = copy.deepcopy(value)
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "QueryOptions":
        opts = cls()
        for name, value in data.items():
            kind = QueryOptionKind(name)
            if kind is QueryOptionKind.EXPAND:
                value = {n: cls.from_dict(nested) for n, nested in value.items()}
            opts.option(kind, value)
        return opts

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, QueryOptions):
            return NotImplemented
        return self._values == other._values

    def __repr__(self) -> str:
        return f"QueryOptions({self.params()!r})"
