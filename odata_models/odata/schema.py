"""
odata_models.odata.schema - Type descriptors and type resolution
=================================================================

Descriptors tell the resource layer which fields form an entity key,
how scalar values are converted on the way in and serialized on the way
out, and which type a navigation or structural property leads to.

:class:`TypeRegistry` is the type-resolution collaborator handed to the
service; it can be filled by hand or from ``$metadata`` (see
:mod:`odata_models.odata.metadata`).
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from odata_models.core.errors import MalformedResponse

Converter = Callable[[Any], Any]

_LEGACY_DATE = re.compile(r"^/Date\((-?\d+)([+-]\d{4})?\)/$")


# ---------------- Edm converters ----------------

def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).lower() == "true"


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    text = str(value)
    m = _LEGACY_DATE.match(text)
    if m:
        return datetime.fromtimestamp(int(m.group(1)) / 1000.0, tz=timezone.utc)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _to_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _to_time(value: Any) -> time:
    if isinstance(value, time):
        return value
    return time.fromisoformat(str(value))


def _from_datetime(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat().replace("+00:00", "Z")
    return value


def _from_iso(value: Any) -> Any:
    return value.isoformat() if isinstance(value, (date, time)) else value


EDM_CONVERTERS: Dict[str, Converter] = {
    "Edm.Byte": int,
    "Edm.SByte": int,
    "Edm.Int16": int,
    "Edm.Int32": int,
    "Edm.Int64": int,
    "Edm.Decimal": lambda v: Decimal(str(v)),
    "Edm.Double": float,
    "Edm.Single": float,
    "Edm.Boolean": _to_bool,
    "Edm.Guid": lambda v: v if isinstance(v, UUID) else UUID(str(v)),
    "Edm.Date": _to_date,
    "Edm.TimeOfDay": _to_time,
    "Edm.DateTime": _to_datetime,
    "Edm.DateTimeOffset": _to_datetime,
}

EDM_SERIALIZERS: Dict[str, Converter] = {
    "Edm.Decimal": lambda v: str(v) if isinstance(v, Decimal) else v,
    "Edm.Guid": lambda v: str(v) if isinstance(v, UUID) else v,
    "Edm.Date": _from_iso,
    "Edm.TimeOfDay": _from_iso,
    "Edm.DateTime": _from_datetime,
    "Edm.DateTimeOffset": _from_datetime,
}


def _unwrap_collection(type_name: str) -> str:
    if type_name.startswith("Collection(") and type_name.endswith(")"):
        return type_name[len("Collection("):-1]
    return type_name


# ---------------- descriptors ----------------

class PropertyDescriptor(BaseModel):
    """A structural property of an entity or complex type."""

    name: str
    type: str = "Edm.String"
    nullable: bool = True
    is_key: bool = False

    @property
    def is_collection(self) -> bool:
        return self.type.startswith("Collection(")


class NavigationDescriptor(BaseModel):
    """A relation to another entity type."""

    name: str
    type: str
    collection: bool = False


class TypeDescriptor(BaseModel):
    """
    Entity, complex or primitive type as seen by the client.

    Parameters
    ----------
    name : str
        Type name, unqualified (e.g. "Person") or an Edm primitive name
    namespace : str, optional
        Schema namespace
    keys : list of str
        Key field names, in key order
    properties : dict
        Structural properties by name
    navigation : dict
        Navigation properties by name
    converters : dict
        Per-field overrides for value conversion (parse direction)

    Examples
    --------
    >>> person = TypeDescriptor(
    ...     name="Person",
    ...     keys=["UserName"],
    ...     properties={"UserName": PropertyDescriptor(name="UserName")},
    ...     navigation={"Friends": NavigationDescriptor(name="Friends", type="Person", collection=True)},
    ... )
    >>> person.resolve_key({"UserName": "russellwhyte"})
    'russellwhyte'
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    namespace: Optional[str] = None
    keys: List[str] = Field(default_factory=list)
    properties: Dict[str, PropertyDescriptor] = Field(default_factory=dict)
    navigation: Dict[str, NavigationDescriptor] = Field(default_factory=dict)
    converters: Dict[str, Converter] = Field(default_factory=dict, exclude=True)

    _registry: Optional["TypeRegistry"] = PrivateAttr(default=None)

    @classmethod
    def primitive(cls, edm_type: str) -> "TypeDescriptor":
        return cls(name=edm_type)

    @property
    def qualified_name(self) -> str:
        return f"{self.namespace}.{self.name}" if self.namespace else self.name

    @property
    def is_primitive(self) -> bool:
        return self.name.startswith("Edm.")

    # ---------------- keys ----------------

    def resolve_key(self, data: Mapping[str, Any]) -> Any:
        """
        Key value read from ``data``.

        One key field gives a scalar, several give a dict. Returns None
        when any key field is missing or empty.
        """
        if not self.keys:
            return None
        values = {k: data.get(k) for k in self.keys}
        if any(v is None or v == "" for v in values.values()):
            return None
        if len(self.keys) == 1:
            return values[self.keys[0]]
        return values

    # ---------------- conversion ----------------

    def converter(self, field: str) -> Optional[Converter]:
        if field in self.converters:
            return self.converters[field]
        prop = self.properties.get(field)
        if prop is None:
            return None
        return EDM_CONVERTERS.get(prop.type)

    def parse_value(self, value: Any) -> Any:
        """Convert a bare value of a primitive type."""
        conv = EDM_CONVERTERS.get(self.name) if self.is_primitive else None
        if conv is None or value is None:
            return value
        try:
            return conv(value)
        except (TypeError, ValueError) as exc:
            raise MalformedResponse(f"Cannot convert {value!r} to {self.name}: {exc}") from exc

    def parse(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        """Run every field with a converter through it; others pass unchanged."""
        out: Dict[str, Any] = {}
        for field, value in data.items():
            conv = self.converter(field)
            if conv is None or value is None:
                out[field] = value
                continue
            try:
                out[field] = conv(value)
            except (TypeError, ValueError) as exc:
                raise MalformedResponse(
                    f"Cannot convert {self.name}.{field}={value!r}: {exc}"
                ) from exc
        return out

    def serialize(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        """
        JSON-ready body for ``data``.

        When the type declares properties only those are written;
        navigation values are never written.
        """
        out: Dict[str, Any] = {}
        for field, value in data.items():
            if field in self.navigation:
                continue
            prop = self.properties.get(field)
            if self.properties and prop is None:
                continue
            ser = EDM_SERIALIZERS.get(prop.type) if prop is not None else None
            out[field] = ser(value) if ser is not None and value is not None else value
        return out

    # ---------------- relations ----------------

    def is_collection(self, name: str) -> Optional[bool]:
        """Whether relation ``name`` is collection-valued; None when unknown."""
        nav = self.navigation.get(name)
        if nav is not None:
            return nav.collection
        prop = self.properties.get(name)
        if prop is not None:
            return prop.is_collection
        return None

    def related(self, name: str) -> Optional["TypeDescriptor"]:
        """Descriptor reached through navigation or structural property ``name``."""
        nav = self.navigation.get(name)
        if nav is not None:
            target = nav.type
        else:
            prop = self.properties.get(name)
            if prop is None:
                return None
            target = _unwrap_collection(prop.type)
        if target.startswith("Edm."):
            return TypeDescriptor.primitive(target)
        if self._registry is None:
            return None
        return self._registry.resolve(target)


class TypeRegistry:
    """
    Registry of type descriptors, addressable by type name or entity set.

    Examples
    --------
    >>> registry = TypeRegistry()
    >>> registry.register(person, entity_set="People")
    >>> registry.for_entity_set("People").name
    'Person'
    """

    def __init__(self) -> None:
        self._types: Dict[str, TypeDescriptor] = {}
        self._entity_sets: Dict[str, str] = {}

    def register(
        self,
        descriptor: TypeDescriptor,
        *,
        entity_set: Optional[str] = None,
    ) -> TypeDescriptor:
        descriptor._registry = self
        self._types[descriptor.qualified_name] = descriptor
        self._types.setdefault(descriptor.name, descriptor)
        if entity_set:
            self._entity_sets[entity_set] = descriptor.qualified_name
        return descriptor

    def add_entity_set(self, name: str, type_name: str) -> None:
        self._entity_sets[name] = type_name

    def resolve(self, name: str) -> Optional[TypeDescriptor]:
        """Descriptor for a type name (qualified or not) or an entity-set name."""
        name = _unwrap_collection(name)
        if name.startswith("Edm."):
            return TypeDescriptor.primitive(name)
        if name in self._types:
            return self._types[name]
        if name in self._entity_sets:
            return self.resolve(self._entity_sets[name])
        return self._types.get(name.rsplit(".", 1)[-1])

    def for_entity_set(self, name: str) -> Optional[TypeDescriptor]:
        type_name = self._entity_sets.get(name)
        return self.resolve(type_name) if type_name else None

    def entity_sets(self) -> Dict[str, str]:
        return dict(self._entity_sets)

    def related(self, type_name: str, name: str) -> Optional[TypeDescriptor]:
        """Descriptor of relation ``name`` declared on ``type_name``."""
        owner = self.resolve(type_name)
        return owner.related(name) if owner is not None else None

    def __contains__(self, name: str) -> bool:
        return self.resolve(name) is not None

    def __len__(self) -> int:
        return len({id(t) for t in self._types.values()})
