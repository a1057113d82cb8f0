"""
odata_models.odata.annotations - Response annotations and payload parsing
==========================================================================

Splits a raw JSON payload into (value, annotations). Annotations come only
from protocol-reserved fields: ``@odata.*`` (and ``odata.*``) in OData v4,
``__metadata`` / ``__count`` / ``__next`` in OData v2. Everything else is
data.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import parse_qs, urlsplit

from pydantic import BaseModel, ConfigDict, Field

from odata_models.core.errors import MalformedResponse
from odata_models.odata.schema import TypeDescriptor

ODATA_PREFIX = "@odata."
ODATA_ETAG = "@odata.etag"
ODATA_ID = "@odata.id"

ENTITY = "entity"
ENTITIES = "entities"
PROPERTY = "property"
RESPONSE_TYPES = (ENTITY, ENTITIES, PROPERTY)


class EntityAnnotations(BaseModel):
    """Version token, identity and type of one entity."""

    model_config = ConfigDict(frozen=True)

    etag: Optional[str] = None
    id: Optional[str] = None
    type: Optional[str] = None
    context: Optional[str] = None
    # instance annotations on single fields, e.g. {"Photo": {"mediaEditLink": ...}}
    properties: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class CollectionAnnotations(BaseModel):
    """Count and continuation cursor of a page of entities."""

    model_config = ConfigDict(frozen=True)

    count: Optional[int] = None
    next_link: Optional[str] = None
    skip: Optional[int] = None
    skiptoken: Optional[str] = None
    top: Optional[int] = None
    delta_link: Optional[str] = None
    context: Optional[str] = None

    @property
    def has_next(self) -> bool:
        return self.skip is not None or self.skiptoken is not None


class PropertyAnnotations(BaseModel):
    """Type of a property value."""

    model_config = ConfigDict(frozen=True)

    type: Optional[str] = None
    context: Optional[str] = None


Annotations = Union[EntityAnnotations, CollectionAnnotations, PropertyAnnotations]


def _continuation(next_link: Optional[str]) -> Dict[str, Any]:
    """$skip / $skiptoken / $top carried by a next link's query string."""
    if not next_link:
        return {}
    qs = parse_qs(urlsplit(next_link).query)
    out: Dict[str, Any] = {}
    try:
        if "$skip" in qs:
            out["skip"] = int(qs["$skip"][0])
        if "$top" in qs:
            out["top"] = int(qs["$top"][0])
    except ValueError as exc:
        raise MalformedResponse(f"Invalid paging value in next link {next_link!r}") from exc
    if "$skiptoken" in qs:
        out["skiptoken"] = qs["$skiptoken"][0]
    return out


def _to_int(value: Any, name: str) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise MalformedResponse(f"Invalid {name}: {value!r}") from exc


class AnnotationParser:
    """
    Classifies payloads as entity / entities / property and extracts
    their annotations.

    Parameters
    ----------
    version : str
        "4.0" (default) or "2.0"

    Examples
    --------
    >>> parser = AnnotationParser()
    >>> parser.entity({"Id": 1, "@odata.etag": "W/\\"1\\""})
    ({'Id': 1}, EntityAnnotations(etag='W/"1"', ...))
    """

    def __init__(self, version: str = "4.0") -> None:
        self.version = version

    @property
    def v2(self) -> bool:
        return self.version.startswith("2")

    def parse(
        self,
        payload: Any,
        response_type: str,
        entity_type: Optional[TypeDescriptor] = None,
    ) -> Tuple[Any, Annotations]:
        if response_type == ENTITY:
            return self.entity(payload, entity_type)
        if response_type == ENTITIES:
            return self.entities(payload, entity_type)
        if response_type == PROPERTY:
            return self.property(payload, entity_type)
        raise ValueError(f"Unknown response type: {response_type!r}")

    # ---------------- helpers ----------------

    def _unwrap(self, payload: Any) -> Any:
        if self.v2 and isinstance(payload, Mapping) and "d" in payload:
            return payload["d"]
        return payload

    def split(self, record: Mapping[str, Any]) -> Tuple[Dict[str, Any], EntityAnnotations]:
        """Separate reserved fields from data fields of one record."""
        if self.v2:
            return self._split_v2(record)
        data: Dict[str, Any] = {}
        found: Dict[str, Any] = {}
        fields: Dict[str, Dict[str, Any]] = {}
        for k, v in record.items():
            if k.startswith("@"):
                name = k[1:]
                found[name[6:] if name.startswith("odata.") else name] = v
            elif k.startswith("odata."):
                found[k[6:]] = v
            elif "@" in k:
                field, annotation = k.split("@", 1)
                fields.setdefault(field, {})[annotation.replace("odata.", "", 1)] = v
            else:
                data[k] = v
        annots = EntityAnnotations(
            etag=found.get("etag"),
            id=found.get("id"),
            type=found.get("type"),
            context=found.get("context"),
            properties=fields,
        )
        return data, annots

    @staticmethod
    def _split_v2(record: Mapping[str, Any]) -> Tuple[Dict[str, Any], EntityAnnotations]:
        meta = record.get("__metadata") or {}
        data = {k: v for k, v in record.items() if k != "__metadata"}
        return data, EntityAnnotations(
            etag=meta.get("etag"),
            id=meta.get("id") or meta.get("uri"),
            type=meta.get("type"),
        )

    # ---------------- branches ----------------

    def entity(
        self,
        payload: Any,
        entity_type: Optional[TypeDescriptor] = None,
    ) -> Tuple[Dict[str, Any], EntityAnnotations]:
        record = self._unwrap(payload)
        if not isinstance(record, Mapping):
            raise MalformedResponse(f"Expected an entity object, got {type(record).__name__}")
        data, annots = self.split(record)
        if entity_type is not None:
            data = entity_type.parse(data)
        return data, annots

    def entities(
        self,
        payload: Any,
        entity_type: Optional[TypeDescriptor] = None,
    ) -> Tuple[List[Dict[str, Any]], CollectionAnnotations]:
        """
        Records of an entity-set payload, each still carrying its own
        reserved fields (so models can read their version token).
        """
        body = self._unwrap(payload)
        if self.v2 and isinstance(body, list):
            body = {"results": body}
        values_field = "results" if self.v2 else "value"
        if not isinstance(body, Mapping) or not isinstance(body.get(values_field), list):
            raise MalformedResponse(f"Collection payload has no '{values_field}' array")

        records = []
        for item in body[values_field]:
            if not isinstance(item, Mapping):
                raise MalformedResponse("Collection payload contains a non-object entry")
            records.append(dict(entity_type.parse(item)) if entity_type is not None else dict(item))

        if self.v2:
            count, next_link, delta, context = (
                body.get("__count"), body.get("__next"), body.get("__delta"), None
            )
        else:
            count = body.get("@odata.count", body.get("odata.count"))
            next_link = body.get("@odata.nextLink", body.get("odata.nextLink"))
            delta = body.get("@odata.deltaLink")
            context = body.get("@odata.context")

        annots = CollectionAnnotations(
            count=_to_int(count, "count"),
            next_link=next_link,
            delta_link=delta,
            context=context,
            **_continuation(next_link),
        )
        return records, annots

    def property(
        self,
        payload: Any,
        entity_type: Optional[TypeDescriptor] = None,
    ) -> Tuple[Any, PropertyAnnotations]:
        body = self._unwrap(payload)
        if not isinstance(body, Mapping):
            raise MalformedResponse(f"Expected a property object, got {type(body).__name__}")

        if self.v2:
            fields = [k for k in body if k != "__metadata"]
            if len(fields) != 1:
                raise MalformedResponse("Property payload must hold exactly one value field")
            value = body[fields[0]]
            meta = body.get("__metadata") or {}
            annots = PropertyAnnotations(type=meta.get("type"))
        else:
            if "value" not in body:
                raise MalformedResponse("Property payload has no 'value' field")
            value = body["value"]
            annots = PropertyAnnotations(
                type=body.get("@odata.type"),
                context=body.get("@odata.context"),
            )

        if entity_type is not None:
            if entity_type.is_primitive:
                if isinstance(value, list):
                    value = [entity_type.parse_value(v) for v in value]
                else:
                    value = entity_type.parse_value(value)
            elif isinstance(value, Mapping):
                value = entity_type.parse(value)
            elif isinstance(value, list):
                value = [entity_type.parse(v) if isinstance(v, Mapping) else v for v in value]
        return value, annots
