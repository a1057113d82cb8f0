"""
odata_models.models.model - Entity models
==========================================

An :class:`ODataModel` binds one entity's data and annotations to the
resource that addresses it. The model owns a private clone of that
resource; every operation works on a further clone and only replaces the
model's state after the response has been parsed.

Lifecycle: transient (no resolvable key, ``is_new()``) -> bound (key known,
after fetch or save) -> destroyed (every further call raises
:class:`ModelDestroyed`).
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Awaitable, Dict, Mapping, Optional, Tuple, Union

from odata_models.core.errors import MissingKey, ModelDestroyed, UsageError
from odata_models.odata.annotations import ENTITY, ODATA_ID, Annotations, EntityAnnotations
from odata_models.odata.segments import KEYABLE, SegmentKind

if TYPE_CHECKING:
    from odata_models.models.collection import ODataCollection
    from odata_models.odata.resource import ODataResource
    from odata_models.odata.schema import TypeDescriptor

logger = logging.getLogger("odata_models.model")

_RETURN_REPRESENTATION = {"Prefer": "return=representation"}

Record = Mapping[str, Any]


def apply_patch(record: Record, patch: Optional[Record]) -> Mapping[str, Any]:
    """
    New read-only record with ``patch`` applied over ``record``.

    Neither argument is modified.
    """
    merged: Dict[str, Any] = dict(record)
    if patch:
        merged.update(patch)
    return MappingProxyType(merged)


def _merge_headers(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
    out = dict(_RETURN_REPRESENTATION)
    if headers:
        out.update(headers)
    return out


class ODataModel:
    """
    One entity bound to the resource that addresses it.

    Parameters
    ----------
    data : mapping, optional
        Field values (no annotation fields)
    resource : ODataResource
        Resource addressing the entity or its collection; cloned on entry
    annotations : EntityAnnotations, optional
        Version token, identity and type

    Examples
    --------
    >>> person = service.model("People", {"UserName": "russellwhyte"})
    >>> await person.fetch()
    >>> person = person.set(FirstName="Russell")
    >>> await person.save()
    """

    def __init__(
        self,
        data: Optional[Record] = None,
        *,
        resource: "ODataResource",
        annotations: Optional[EntityAnnotations] = None,
    ) -> None:
        self._resource = resource.clone()
        self._data: Mapping[str, Any] = apply_patch({}, data)
        self._annotations = annotations or EntityAnnotations()
        self._destroyed = False

    # ---------------- state ----------------

    @property
    def resource(self) -> "ODataResource":
        """Copy of the bound resource."""
        return self._resource.clone()

    @property
    def entity_type(self) -> Optional["TypeDescriptor"]:
        return self._resource.entity_type

    @property
    def data(self) -> Mapping[str, Any]:
        return self._data

    @property
    def annotations(self) -> EntityAnnotations:
        return self._annotations

    @property
    def etag(self) -> Optional[str]:
        return self._annotations.etag

    @property
    def identity_url(self) -> str:
        """Server-assigned identity, else the absolute URL of the entity address."""
        if self._annotations.id:
            return self._annotations.id
        return self._resource.service.endpoint_url(self._entity_resource())

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def __getitem__(self, name: str) -> Any:
        return self._data[name]

    def get(self, name: str, default: Any = None) -> Any:
        return self._data.get(name, default)

    def __repr__(self) -> str:
        type_name = self.entity_type.name if self.entity_type else "?"
        return f"<{self.__class__.__name__} {type_name} key={self.resolve_key()!r}>"

    def set(self, **changes: Any) -> "ODataModel":
        """Apply local changes (not sent until save())."""
        self._check()
        self._data = apply_patch(self._data, changes)
        return self

    def to_json(self) -> Dict[str, Any]:
        t = self.entity_type
        return t.serialize(self._data) if t is not None else dict(self._data)

    def _check(self) -> None:
        if self._destroyed:
            raise ModelDestroyed(f"{self!r} was destroyed")

    # ---------------- keys ----------------

    def resolve_key(self) -> Any:
        """Key from the key fields of the current data, else the bound resource's key."""
        t = self.entity_type
        key = t.resolve_key(self._data) if t is not None else None
        if key is None:
            key = self._resource.key()
        return key

    def is_new(self) -> bool:
        return self.resolve_key() is None

    def _addresses_member(self, resource: "ODataResource") -> bool:
        if resource.kind is SegmentKind.ENTITY_SET:
            return True
        return resource.kind is SegmentKind.NAVIGATION_PROPERTY and resource.many is not False

    def _entity_resource(self) -> "ODataResource":
        """Clone of the bound resource addressing exactly this entity."""
        res = self._resource.clone()
        if self._addresses_member(res):
            key = self.resolve_key()
            if key is None:
                raise MissingKey(f"{self!r} has no key; save it first")
            res.key(key)
        return res

    def _bind(self, res: "ODataResource", data: Optional[Record], annots: Optional[Annotations]) -> None:
        if data is not None:
            self._data = apply_patch(self._data, data)
        if isinstance(annots, EntityAnnotations) and data is not None:
            self._annotations = annots
        if self._addresses_member(res) and not res.has_key():
            key = self.resolve_key()
            if key is not None:
                res.key(key)
        self._resource = res

    # ---------------- requests ----------------

    def fetch(
        self,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Awaitable["ODataModel"]:
        """Re-read the entity; data and annotations are replaced from the response."""
        self._check()
        res = self._entity_resource()

        pending = res.get(response_type=ENTITY, headers=headers, params=params)
        return self._assign_after(res, pending)

    def save(
        self,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Awaitable["ODataModel"]:
        """
        Create (POST to the collection) when new, else update (PUT to the
        entity with the last known version token).

        A stale version token fails with ConcurrencyConflict; the model is
        left unchanged.
        """
        if self.is_new():
            return self.create(headers=headers, params=params)
        return self.update(headers=headers, params=params)

    def create(
        self,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Awaitable["ODataModel"]:
        """POST the model to its collection, whether or not it already carries a key."""
        self._check()
        res = self._resource.clone()
        if not self._addresses_member(res):
            raise UsageError(
                f"Cannot create through {res.path()}; create the entity and use create_ref()"
            )
        res.key(None)
        pending = res.post(self.to_json(), response_type=ENTITY, headers=_merge_headers(headers), params=params)
        return self._assign_after(res, pending)

    def update(
        self,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Awaitable["ODataModel"]:
        """PUT the full model to its entity address with the last known version token."""
        self._check()
        res = self._entity_resource()
        pending = res.put(
            self.to_json(), etag=self.etag, response_type=ENTITY,
            headers=_merge_headers(headers), params=params,
        )
        return self._assign_after(res, pending)

    def _assign_after(self, res: "ODataResource", pending: Awaitable[Tuple[Any, Annotations]]) -> Awaitable["ODataModel"]:
        async def run() -> "ODataModel":
            data, annots = await pending
            self._bind(res, data, annots)
            return self

        return run()

    def patch(
        self,
        changes: Record,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Awaitable["ODataModel"]:
        """Send only ``changes`` (PATCH) and apply them locally once accepted."""
        self._check()
        res = self._entity_resource()
        t = self.entity_type
        body = t.serialize(changes) if t is not None else dict(changes)
        pending = res.patch(
            body, etag=self.etag, response_type=ENTITY,
            headers=_merge_headers(headers), params=params,
        )

        async def run() -> "ODataModel":
            data, annots = await pending
            self._bind(res, apply_patch(changes, data), annots if data is not None else None)
            return self

        return run()

    def destroy(
        self,
        *,
        force: bool = False,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Awaitable[None]:
        """
        Delete the entity, conditional on the last known version token.

        Without a version token this raises UsageError unless ``force`` is
        set, in which case the delete is sent unconditionally.
        """
        self._check()
        res = self._entity_resource()
        if not self.etag and not force:
            raise UsageError(f"{self!r} has no version token; fetch it first or pass force=True")
        pending = res.delete(etag=self.etag, headers=headers, params=params)

        async def run() -> None:
            await pending
            self._destroyed = True
            logger.info("Deleted %s", res.path())

        return run()

    def attach(self, resource: "ODataResource") -> "ODataModel":
        """Bind to another resource of the same entity type."""
        self._check()
        mine, theirs = self.entity_type, resource.entity_type
        if mine is not None and theirs is not None and mine.qualified_name != theirs.qualified_name:
            raise UsageError(f"Cannot attach a {theirs.name} resource to a {mine.name} model")
        self._resource = resource.clone()
        return self

    # ---------------- relations ----------------

    def _navigation(self, name: str) -> "ODataResource":
        self._check()
        return self._entity_resource().navigation_property(name)

    def related_model(self, name: str) -> "ODataModel":
        """
        Model for single-valued navigation ``name``, seeded from locally
        present (expanded) data. Nothing is fetched.
        """
        res = self._navigation(name)
        if res.many:
            raise UsageError(f"{name} is collection-valued; use related_collection()")
        seed = self._data.get(name)
        data, annots = ({}, None)
        if isinstance(seed, Mapping):
            data, annots = res.service.parser.split(seed)
            if res.entity_type is not None:
                data = res.entity_type.parse(data)
        return res.as_model(data, annots)

    def related_collection(self, name: str) -> "ODataCollection":
        """
        Collection for collection-valued navigation ``name``, seeded from
        locally present (expanded) data. Nothing is fetched.
        """
        res = self._navigation(name)
        if res.many is False:
            raise UsageError(f"{name} is single-valued; use related_model()")
        seed = self._data.get(name) or []
        if isinstance(seed, Mapping):
            seed = seed.get("results") or []
        t = res.entity_type
        records = [t.parse(r) if t is not None else dict(r) for r in seed]
        return res.as_collection(records)

    def _ref_target(self, target: Union["ODataModel", "ODataResource", str]) -> str:
        return self._resource.service.identity_url(target)

    def create_ref(
        self,
        name: str,
        target: Union["ODataModel", "ODataResource", str],
        *,
        collection: Optional[bool] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Awaitable[Tuple[Any, Annotations]]:
        """
        Associate ``target`` through navigation ``name`` by identity only.

        Single-valued relations PUT the reference, collection-valued ones
        POST a new member reference.
        """
        nav = self._navigation(name)
        many = collection if collection is not None else bool(nav.many)
        ref = nav.ref()
        body = {ODATA_ID: self._ref_target(target)}
        logger.info("Adding reference %s -> %s", ref.path(), body[ODATA_ID])
        if many:
            return ref.post(body, headers=headers)
        return ref.put(body, etag=self.etag, headers=headers)

    def delete_ref(
        self,
        name: str,
        target: Optional[Union["ODataModel", "ODataResource", str]] = None,
        *,
        collection: Optional[bool] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Awaitable[Tuple[Any, Annotations]]:
        """
        Remove the association through navigation ``name``.

        Collection-valued relations need ``target``; it is passed as the
        ``$id`` of the member reference to remove.
        """
        nav = self._navigation(name)
        many = collection if collection is not None else bool(nav.many)
        ref = nav.ref()
        if many:
            if target is None:
                raise UsageError(f"Removing a reference from collection {name} needs a target")
            url = self._ref_target(target)
            logger.info("Removing reference %s -> %s", ref.path(), url)
            return ref.delete(etag=self.etag, headers=headers, params={"$id": url})
        logger.info("Removing reference %s", ref.path())
        return ref.delete(etag=self.etag, headers=headers)

    # ---------------- custom operations ----------------

    def call_action(
        self,
        name: str,
        body: Optional[Record] = None,
        *,
        response_type: Optional[str] = None,
        return_type: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Awaitable[Tuple[Any, Annotations]]:
        """Invoke bound action ``name`` on this entity."""
        self._check()
        res = self._entity_resource().action(name, return_type)
        return res.post(dict(body or {}), response_type=response_type, headers=headers)

    def call_function(
        self,
        name: str,
        params: Optional[Record] = None,
        *,
        response_type: Optional[str] = None,
        return_type: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Awaitable[Tuple[Any, Annotations]]:
        """Invoke bound function ``name`` on this entity."""
        self._check()
        res = self._entity_resource().function(name, params, return_type)
        return res.get(response_type=response_type, headers=headers)
