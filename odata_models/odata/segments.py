"""
odata_models.odata.segments - Resource path segments
=====================================================

An ordered, typed sequence of segments describing a resource address.
Keys and function parameters live on their segment; they are never part
of the query options.
"""

from __future__ import annotations

import copy
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional
from urllib.parse import quote

from odata_models.core.errors import UsageError
from odata_models.odata.literals import format_key, format_literal

PATH_SEPARATOR = "/"

# Literal characters left as-is inside key and parameter brackets.
_LITERAL_SAFE = "'(),=:@"


class SegmentKind(str, Enum):
    ENTITY_SET = "entitySet"
    NAVIGATION_PROPERTY = "navigationProperty"
    PROPERTY = "property"
    ACTION = "action"
    FUNCTION = "function"
    REF = "ref"
    COUNT = "count"
    VALUE = "value"
    METADATA = "metadata"


# Segments that address a collection and may therefore carry a key.
KEYABLE = frozenset({SegmentKind.ENTITY_SET, SegmentKind.NAVIGATION_PROPERTY})

_FIXED_NAMES = {
    SegmentKind.REF: "$ref",
    SegmentKind.COUNT: "$count",
    SegmentKind.VALUE: "$value",
    SegmentKind.METADATA: "$metadata",
}


class Segment:
    """One step of a resource path."""

    __slots__ = ("kind", "name", "key", "parameters")

    def __init__(
        self,
        kind: SegmentKind,
        name: Optional[str] = None,
        *,
        key: Any = None,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.kind = SegmentKind(kind)
        self.name = name if name is not None else _FIXED_NAMES.get(self.kind, "")
        self.key = key
        self.parameters = parameters

    def clone(self) -> "Segment":
        return Segment(
            self.kind,
            self.name,
            key=copy.deepcopy(self.key),
            parameters=copy.deepcopy(self.parameters),
        )

    def render(self) -> str:
        if self.kind is SegmentKind.FUNCTION:
            params = self.parameters or {}
            args = ",".join(f"{k}={format_literal(v)}" for k, v in params.items())
            return f"{self.name}({quote(args, safe=_LITERAL_SAFE)})"
        if self.key is not None:
            return f"{self.name}({quote(format_key(self.key), safe=_LITERAL_SAFE)})"
        return self.name

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"kind": self.kind.value, "name": self.name}
        if self.key is not None:
            out["key"] = copy.deepcopy(self.key)
        if self.parameters is not None:
            out["parameters"] = copy.deepcopy(self.parameters)
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Segment":
        return cls(
            SegmentKind(data["kind"]),
            data.get("name"),
            key=copy.deepcopy(data.get("key")),
            parameters=copy.deepcopy(data.get("parameters")),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Segment):
            return NotImplemented
        return (self.kind, self.name, self.key, self.parameters) == (
            other.kind, other.name, other.key, other.parameters
        )

    def __repr__(self) -> str:
        return f"Segment({self.kind.value}, {self.render()!r})"


class PathSegments:
    """
    Ordered segment list with key handling.

    Only the last segment may carry a key, and only when it addresses a
    collection (entity set or navigation property).
    """

    def __init__(self, segments: Optional[List[Segment]] = None) -> None:
        self._segments: List[Segment] = list(segments or [])

    def add(self, kind: SegmentKind, name: Optional[str] = None, **kwargs: Any) -> Segment:
        segment = Segment(kind, name, **kwargs)
        self._segments.append(segment)
        return segment

    def last(self) -> Optional[Segment]:
        return self._segments[-1] if self._segments else None

    def kinds(self) -> List[SegmentKind]:
        return [s.kind for s in self._segments]

    def key(self, *value: Any) -> Any:
        """
        Get (no argument) or set the key of the last segment.

        Setting ``None`` removes the key.
        """
        last = self.last()
        if not value:
            return last.key if last is not None else None
        if last is None or last.kind not in KEYABLE:
            kind = last.kind.value if last is not None else "empty path"
            raise UsageError(f"Cannot set a key on a {kind} segment")
        last.key = value[0]
        return last.key

    def has_key(self) -> bool:
        last = self.last()
        return last is not None and last.key is not None

    def path(self) -> str:
        return PATH_SEPARATOR.join(s.render() for s in self._segments)

    def clone(self) -> "PathSegments":
        return PathSegments([s.clone() for s in self._segments])

    def to_list(self) -> List[Dict[str, Any]]:
        return [s.to_dict() for s in self._segments]

    @classmethod
    def from_list(cls, data: List[Dict[str, Any]]) -> "PathSegments":
        return cls([Segment.from_dict(d) for d in data])

    def __iter__(self) -> Iterator[Segment]:
        return iter(self._segments)

    def __len__(self) -> int:
        return len(self._segments)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PathSegments):
            return NotImplemented
        return self._segments == other._segments

    def __repr__(self) -> str:
        return f"PathSegments({self.path()!r})"
