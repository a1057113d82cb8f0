"""
odata_models.odata.resource - Resource composition and requests
================================================================

An :class:`ODataResource` is a path (segments) plus query options plus the
declared type of what it addresses. Navigation methods never touch the
resource they are called on: each returns a new resource built from deep
copies. Option methods (``select``, ``top``, ...) read with no argument and
mutate this resource with one.

Verb methods validate synchronously, then return an awaitable resolving to
``(value, annotations)``.
"""

from __future__ import annotations

import logging
from typing import (
    TYPE_CHECKING, Any, AsyncIterator, Awaitable, Dict, List, Mapping, Optional, Tuple,
)

from odata_models.core.errors import MissingKey, TransportError, UsageError, classify_transport_error
from odata_models.odata.annotations import (
    ENTITIES, ENTITY, PROPERTY, RESPONSE_TYPES,
    Annotations, CollectionAnnotations, EntityAnnotations, PropertyAnnotations,
)
from odata_models.odata.options import _UNSET, QueryOptionKind, QueryOptions
from odata_models.odata.schema import TypeDescriptor
from odata_models.odata.segments import KEYABLE, PathSegments, SegmentKind

if TYPE_CHECKING:
    from odata_models.models.collection import ODataCollection
    from odata_models.models.model import ODataModel
    from odata_models.odata.service import ODataService

logger = logging.getLogger("odata_models.resource")

# Segments after which the path cannot be extended.
_TERMINAL = frozenset({
    SegmentKind.ACTION, SegmentKind.REF, SegmentKind.COUNT,
    SegmentKind.VALUE, SegmentKind.METADATA,
})

# Options an addressed entity keeps from its collection.
_ENTITY_OPTIONS = (QueryOptionKind.SELECT, QueryOptionKind.EXPAND, QueryOptionKind.FORMAT)


class ODataResource:
    """
    Addressable OData resource.

    Parameters
    ----------
    service : ODataService
        Service providing transport, annotation parser, schema and
        model registry
    segments : PathSegments
        Path of the resource
    options : QueryOptions
        Query options of the resource
    entity_type : TypeDescriptor, optional
        Declared type of what the resource addresses
    many : bool, optional
        Whether a keyless navigation property is collection-valued
        (None when unknown)

    Examples
    --------
    >>> people = service.entity_set("People")
    >>> russell = people.entity("russellwhyte")
    >>> friends = russell.navigation_property("Friends")
    >>> friends.top(5)
    5
    >>> str(friends)
    "People('russellwhyte')/Friends?$top=5"
    >>> entities, annots = await friends.get()
    """

    def __init__(
        self,
        service: "ODataService",
        segments: PathSegments,
        options: QueryOptions,
        entity_type: Optional[TypeDescriptor] = None,
        *,
        many: Optional[bool] = None,
    ) -> None:
        self.service = service
        self.segments = segments
        self.options = options
        self.entity_type = entity_type
        self.many = many

    # ---------------- identity / rendering ----------------

    def clone(self) -> "ODataResource":
        return ODataResource(
            self.service,
            self.segments.clone(),
            self.options.clone(),
            self.entity_type,
            many=self.many,
        )

    def path(self) -> str:
        return self.segments.path()

    def params(self) -> Dict[str, str]:
        return self.options.params()

    def query_string(self) -> str:
        return self.options.query_string()

    def __str__(self) -> str:
        path, query = self.path(), self.query_string()
        return f"{path}?{query}" if query else path

    def __repr__(self) -> str:
        type_name = self.entity_type.name if self.entity_type else None
        return f"<ODataResource {self} type={type_name}>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "segments": self.segments.to_list(),
            "options": self.options.to_dict(),
            "type": self.entity_type.qualified_name if self.entity_type else None,
            "many": self.many,
        }

    @classmethod
    def from_dict(cls, service: "ODataService", data: Mapping[str, Any]) -> "ODataResource":
        type_name = data.get("type")
        return cls(
            service,
            PathSegments.from_list(data.get("segments") or []),
            QueryOptions.from_dict(data.get("options") or {}),
            service.schema.resolve(type_name) if type_name else None,
            many=data.get("many"),
        )

    def same_address(self, other: "ODataResource") -> bool:
        return self.segments == other.segments and self.options == other.options

    # ---------------- shape ----------------

    @property
    def kind(self) -> Optional[SegmentKind]:
        last = self.segments.last()
        return last.kind if last is not None else None

    def key(self, *value: Any) -> Any:
        """Get (no argument) or set the key of the addressed collection member."""
        if value and isinstance(value[0], Mapping):
            resolved = self._key_from(value[0])
            if resolved is None:
                raise MissingKey(f"Incomplete key {dict(value[0])!r} for {self.path()}")
            value = (resolved,)
        return self.segments.key(*value)

    def has_key(self) -> bool:
        return self.segments.has_key()

    def is_collection(self) -> bool:
        """True when the resource addresses a collection of entities."""
        if self.has_key():
            return False
        if self.kind is SegmentKind.ENTITY_SET:
            return True
        if self.kind is SegmentKind.NAVIGATION_PROPERTY:
            return self.many is not False
        return False

    def _key_from(self, data: Mapping[str, Any]) -> Any:
        if self.entity_type is not None and self.entity_type.keys:
            return self.entity_type.resolve_key(data)
        return dict(data)

    def _require_extensible(self, action: str) -> None:
        if self.kind in _TERMINAL:
            raise UsageError(f"Cannot {action} after a {self.kind.value} segment")

    def _require_single(self, action: str) -> None:
        self._require_extensible(action)
        if self.kind is SegmentKind.ENTITY_SET and not self.has_key():
            raise MissingKey(f"Cannot {action} from entity set {self.path()} without a key")
        if self.kind is SegmentKind.NAVIGATION_PROPERTY and self.many and not self.has_key():
            raise MissingKey(f"Cannot {action} from collection {self.path()} without a key")

    def _derive(
        self,
        kind: SegmentKind,
        name: Optional[str] = None,
        *,
        entity_type: Optional[TypeDescriptor] = None,
        keep: Tuple[QueryOptionKind, ...] = (QueryOptionKind.FORMAT,),
        many: Optional[bool] = None,
        **segment: Any,
    ) -> "ODataResource":
        res = self.clone()
        res.segments.add(kind, name, **segment)
        res.options.keep(*keep)
        res.entity_type = entity_type
        res.many = many
        return res

    # ---------------- navigation ----------------

    def entity(self, key: Any = None) -> "ODataResource":
        """
        The member of this collection identified by ``key``.

        ``key`` may be a scalar, a mapping of key fields, or a full entity
        record (its key fields are read through the declared type). With no
        key the result addresses the collection's member type without a key.
        """
        if self.kind not in KEYABLE:
            raise UsageError(f"Cannot address an entity from {self.path() or 'an empty path'}")
        res = self.clone()
        res.options.keep(*_ENTITY_OPTIONS)
        res.key(key)
        return res

    def navigation_property(self, name: str) -> "ODataResource":
        self._require_single("navigate")
        parent = self.entity_type
        return self._derive(
            SegmentKind.NAVIGATION_PROPERTY,
            name,
            entity_type=parent.related(name) if parent else None,
            many=parent.is_collection(name) if parent else None,
        )

    def property(self, name: str) -> "ODataResource":
        self._require_single("read a property")
        parent = self.entity_type
        return self._derive(
            SegmentKind.PROPERTY,
            name,
            entity_type=parent.related(name) if parent else None,
        )

    def action(self, name: str, return_type: Optional[str] = None) -> "ODataResource":
        self._require_extensible("call an action")
        return self._derive(
            SegmentKind.ACTION,
            name,
            entity_type=self.service.schema.resolve(return_type) if return_type else None,
            keep=(),
        )

    def function(
        self,
        name: str,
        params: Optional[Mapping[str, Any]] = None,
        return_type: Optional[str] = None,
    ) -> "ODataResource":
        self._require_extensible("call a function")
        return self._derive(
            SegmentKind.FUNCTION,
            name,
            entity_type=self.service.schema.resolve(return_type) if return_type else None,
            parameters=dict(params or {}),
        )

    def ref(self) -> "ODataResource":
        if self.kind is not SegmentKind.NAVIGATION_PROPERTY and not (
            self.kind is SegmentKind.ENTITY_SET and self.has_key()
        ):
            raise UsageError(f"$ref needs an entity or navigation property, got {self.path()}")
        return self._derive(SegmentKind.REF, entity_type=self.entity_type, many=self.many)

    def count(self) -> "ODataResource":
        if not self.is_collection():
            raise UsageError(f"$count needs a collection, got {self.path()}")
        return self._derive(
            SegmentKind.COUNT,
            entity_type=TypeDescriptor.primitive("Edm.Int32"),
            keep=(QueryOptionKind.FILTER, QueryOptionKind.SEARCH),
        )

    def value(self) -> "ODataResource":
        if self.kind not in (SegmentKind.PROPERTY, SegmentKind.NAVIGATION_PROPERTY) and not (
            self.kind is SegmentKind.ENTITY_SET and self.has_key()
        ):
            raise UsageError(f"$value needs a property or media entity, got {self.path()}")
        return self._derive(SegmentKind.VALUE, entity_type=self.entity_type, keep=())

    # ---------------- query options ----------------

    def select(self, value: Any = _UNSET) -> Any:
        return self.options.option(QueryOptionKind.SELECT, value)

    def filter(self, value: Any = _UNSET) -> Any:
        return self.options.option(QueryOptionKind.FILTER, value)

    def search(self, value: Any = _UNSET) -> Any:
        return self.options.option(QueryOptionKind.SEARCH, value)

    def order_by(self, value: Any = _UNSET) -> Any:
        return self.options.option(QueryOptionKind.ORDER_BY, value)

    def expand(self, value: Any = _UNSET) -> Any:
        return self.options.option(QueryOptionKind.EXPAND, value)

    def expanded(self, name: str) -> QueryOptions:
        """Options of one expanded navigation property, editable in place."""
        return self.options.expanded(name)

    def transform(self, value: Any = _UNSET) -> Any:
        return self.options.option(QueryOptionKind.TRANSFORM, value)

    def group_by(self, value: Any = _UNSET) -> Any:
        return self.options.option(QueryOptionKind.GROUP_BY, value)

    def top(self, value: Any = _UNSET) -> Any:
        return self.options.option(QueryOptionKind.TOP, value)

    def skip(self, value: Any = _UNSET) -> Any:
        return self.options.option(QueryOptionKind.SKIP, value)

    def skiptoken(self, value: Any = _UNSET) -> Any:
        return self.options.option(QueryOptionKind.SKIPTOKEN, value)

    def format(self, value: Any = _UNSET) -> Any:
        return self.options.option(QueryOptionKind.FORMAT, value)

    def custom(self, value: Any = _UNSET) -> Any:
        return self.options.option(QueryOptionKind.CUSTOM, value)

    # ---------------- requests ----------------

    def _default_response_type(self) -> Optional[str]:
        if self.kind in (SegmentKind.ENTITY_SET, SegmentKind.NAVIGATION_PROPERTY):
            return ENTITIES if self.is_collection() else ENTITY
        if self.kind is SegmentKind.PROPERTY:
            return PROPERTY
        return None

    def _check_response_type(self, response_type: Optional[str]) -> Optional[str]:
        if response_type is not None and response_type not in RESPONSE_TYPES:
            raise UsageError(f"response_type must be one of {RESPONSE_TYPES}, got {response_type!r}")
        return response_type

    def _require_entity_scope(self, verb: str) -> None:
        if self.kind is SegmentKind.REF:
            return
        if self.is_collection():
            raise MissingKey(f"{verb} needs an entity address, {self.path()} has no key")

    def _with_count(self) -> "ODataResource":
        res = self.clone()
        custom = dict(res.custom() or {})
        if self.service.parser.v2:
            custom["$inlinecount"] = "allpages"
        else:
            custom["$count"] = "true"
        res.custom(custom)
        return res

    async def _send(
        self,
        method: str,
        response_type: Optional[str],
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        body: Any = None,
        etag: Optional[str] = None,
    ) -> Tuple[Any, Annotations]:
        logger.debug("%s %s", method, self)
        try:
            payload = await self.service.transport.request(
                method, self, headers=headers, params=params, body=body, etag=etag,
            )
        except TransportError as exc:
            classified = classify_transport_error(exc)
            if classified is exc:
                raise
            raise classified from exc

        if self.kind is SegmentKind.COUNT and payload is not None:
            return self.entity_type.parse_value(payload), PropertyAnnotations()
        if response_type is None:
            return payload, PropertyAnnotations()
        if payload is None:
            empty = {
                ENTITY: EntityAnnotations,
                ENTITIES: CollectionAnnotations,
                PROPERTY: PropertyAnnotations,
            }[response_type]
            return None, empty()
        return self.service.parser.parse(payload, response_type, self.entity_type)

    def get(
        self,
        *,
        response_type: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        with_count: bool = False,
    ) -> Awaitable[Tuple[Any, Annotations]]:
        """
        Read the resource.

        ``response_type`` defaults from the address: "entities" for
        collections, "entity" for a keyed or single-valued address,
        "property" for properties. ``$count``, ``$value`` and ``$metadata``
        return the raw payload.
        """
        rt = self._check_response_type(response_type or self._default_response_type())
        if rt == ENTITY and self.kind is SegmentKind.ENTITY_SET and not self.has_key():
            raise MissingKey(f"Cannot read a single entity from {self.path()} without a key")
        target = self._with_count() if with_count and rt == ENTITIES else self
        return target._send("GET", rt, headers=headers, params=params)

    def post(
        self,
        body: Any,
        *,
        response_type: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        with_count: bool = False,
    ) -> Awaitable[Tuple[Any, Annotations]]:
        """Create a member (collections) or invoke an action."""
        if self.kind not in (SegmentKind.ACTION, SegmentKind.REF):
            self._require_extensible("post")
        if response_type is None and self.kind in KEYABLE:
            response_type = ENTITY
        rt = self._check_response_type(response_type)
        target = self._with_count() if with_count and rt == ENTITIES else self
        return target._send("POST", rt, headers=headers, params=params, body=body)

    def put(
        self,
        body: Any,
        *,
        etag: Optional[str] = None,
        response_type: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Awaitable[Tuple[Any, Annotations]]:
        self._require_entity_scope("PUT")
        rt = self._check_response_type(response_type or self._default_response_type())
        return self._send("PUT", rt, headers=headers, params=params, body=body, etag=etag)

    def patch(
        self,
        body: Any,
        *,
        etag: Optional[str] = None,
        response_type: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Awaitable[Tuple[Any, Annotations]]:
        self._require_entity_scope("PATCH")
        rt = self._check_response_type(response_type or self._default_response_type())
        return self._send("PATCH", rt, headers=headers, params=params, body=body, etag=etag)

    def delete(
        self,
        *,
        etag: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Awaitable[Tuple[Any, Annotations]]:
        self._require_entity_scope("DELETE")
        return self._send("DELETE", None, headers=headers, params=params, etag=etag)

    # ---------------- paging ----------------

    def iterate(
        self,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        max_pages: Optional[int] = None,
    ) -> AsyncIterator[List[Dict[str, Any]]]:
        """
        Pages of this collection, following server continuation cursors.

        Each page is requested only after the previous one arrived. Stops
        when a page carries no cursor, after ``max_pages`` pages, or when
        the server repeats a cursor.

        Records keep their reserved fields (``@odata.etag`` and the like);
        ``service.parser.split(record)`` separates them from the data.
        """
        if not self.is_collection():
            raise UsageError(f"Cannot page through {self.path()}: not a collection")
        if max_pages is not None and max_pages < 1:
            raise UsageError(f"max_pages must be positive, got {max_pages}")
        return self._pages(headers, params, max_pages)

    async def _pages(
        self,
        headers: Optional[Dict[str, str]],
        params: Optional[Dict[str, Any]],
        max_pages: Optional[int],
    ) -> AsyncIterator[List[Dict[str, Any]]]:
        res = self.clone()
        seen = set()
        fetched = 0
        while True:
            records, annots = await res._send("GET", ENTITIES, headers=headers, params=params)
            fetched += 1
            yield records
            if not annots.has_next:
                return
            if max_pages is not None and fetched >= max_pages:
                return
            cursor = (annots.skip, annots.skiptoken)
            if cursor in seen:
                logger.warning("Server repeated paging cursor %s for %s; stopping", cursor, self.path())
                return
            seen.add(cursor)
            if annots.skiptoken:
                res.skip(None)
                res.skiptoken(annots.skiptoken)
            elif annots.skip is not None:
                res.skiptoken(None)
                res.skip(annots.skip)
            if annots.top is not None:
                res.top(annots.top)

    def all(
        self,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        max_pages: Optional[int] = None,
    ) -> Awaitable[List[Dict[str, Any]]]:
        """
        Every record of every page, in server order.

        As with :meth:`iterate`, each record still carries its own reserved
        fields.
        """
        pages = self.iterate(headers=headers, params=params, max_pages=max_pages)

        async def collect() -> List[Dict[str, Any]]:
            out: List[Dict[str, Any]] = []
            async for page in pages:
                out.extend(page)
            logger.debug("Collected %s records from %s", len(out), self.path())
            return out

        return collect()

    # ---------------- models ----------------

    def as_model(
        self,
        data: Optional[Mapping[str, Any]] = None,
        annotations: Optional[EntityAnnotations] = None,
    ) -> "ODataModel":
        """A model bound to (a clone of) this resource, built by the service's registry."""
        return self.service.models.model(self, data, annotations)

    def as_collection(
        self,
        records: Optional[List[Any]] = None,
        annotations: Optional[CollectionAnnotations] = None,
    ) -> "ODataCollection":
        """A collection bound to (a clone of) this resource, built by the service's registry."""
        return self.service.models.collection(self, records, annotations)
