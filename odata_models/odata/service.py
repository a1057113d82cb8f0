"""
odata_models.odata.service - OData Service Client
==================================================

Service-scoped entry point: hands out resources, models and collections
bound to one transport, one annotation parser, one type registry and one
model registry.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Awaitable, List, Mapping, Optional, Sequence, Tuple, Union

from odata_models.core.errors import NotFound, UsageError
from odata_models.odata.annotations import AnnotationParser
from odata_models.odata.metadata import ODataMetadata
from odata_models.odata.options import QueryOptions
from odata_models.odata.resource import ODataResource
from odata_models.odata.schema import TypeRegistry
from odata_models.odata.segments import PathSegments, SegmentKind

if TYPE_CHECKING:
    from odata_models.core.session import Transport
    from odata_models.models.collection import ODataCollection
    from odata_models.models.model import ODataModel
    from odata_models.models.registry import ModelRegistry

logger = logging.getLogger("odata_models.service")


class ODataService:
    """
    Service-scoped OData client.

    Parameters
    ----------
    transport : Transport
        Anything with an async ``request(method, resource, ...)``; usually an
        :class:`~odata_models.core.session.ODataSession`
    schema : TypeRegistry, optional
        Type resolution; filled by :meth:`load_metadata` when empty
    models : ModelRegistry, optional
        Type name -> Model/Collection factories
    version : str
        OData protocol version, "4.0" (default) or "2.0"
    base_url : str, optional
        Service root used to build absolute identity URLs

    Examples
    --------
    >>> with ODataSession(cfg) as sess:
    ...     api = ODataService(sess, base_url=cfg.base_url)
    ...     await api.load_metadata()
    ...     print(api.list_entity_sets())
    ...     russell = await api.fetch_model("People", "russellwhyte")
    ...     people = await api.fetch_collection("People")
    """

    def __init__(
        self,
        transport: "Transport",
        *,
        schema: Optional[TypeRegistry] = None,
        models: Optional["ModelRegistry"] = None,
        version: str = "4.0",
        base_url: Optional[str] = None,
    ) -> None:
        if models is None:
            from odata_models.models.registry import ModelRegistry
            models = ModelRegistry()
        self.transport = transport
        self.schema = schema if schema is not None else TypeRegistry()
        self.models = models
        self.version = version
        self.parser = AnnotationParser(version)
        self.base_url = base_url.rstrip("/") + "/" if base_url else ""
        self.meta: Optional[ODataMetadata] = None

    def __repr__(self) -> str:
        return f"<ODataService {self.base_url or '?'} v{self.version}>"

    # ---------------- resources ----------------

    def entity_set(self, name: str) -> ODataResource:
        """Resource addressing entity set ``name``."""
        segments = PathSegments()
        segments.add(SegmentKind.ENTITY_SET, name)
        return ODataResource(self, segments, QueryOptions(), self.schema.for_entity_set(name))

    def metadata(self) -> ODataResource:
        """Resource addressing the service's ``$metadata`` document."""
        segments = PathSegments()
        segments.add(SegmentKind.METADATA)
        return ODataResource(self, segments, QueryOptions())

    def load_metadata(self) -> Awaitable[ODataMetadata]:
        """Fetch ``$metadata`` and parse it into the service's type registry."""
        pending = self.metadata().get(headers={"Accept": "application/xml"})

        async def run() -> ODataMetadata:
            xml_text, _ = await pending
            self.meta = ODataMetadata(xml_text, registry=self.schema)
            logger.info("Loaded metadata: %s entity sets", len(self.meta.entity_sets()))
            return self.meta

        return run()

    def endpoint_url(self, resource: ODataResource) -> str:
        """Absolute URL of a resource's path (no query string)."""
        return f"{self.base_url}{resource.path()}"

    def identity_url(self, target: Union["ODataModel", ODataResource, str]) -> str:
        """Identity used in ``$ref`` bodies for a model, resource or URL."""
        if isinstance(target, str):
            return target
        if isinstance(target, ODataResource):
            return self.endpoint_url(target)
        return target.identity_url

    # ---------------- models ----------------

    def model(self, entity_set: str, data: Optional[Mapping[str, Any]] = None) -> "ODataModel":
        """Unsaved-or-unfetched model of ``entity_set`` holding ``data``."""
        return self.entity_set(entity_set).as_model(data)

    def collection(
        self,
        entity_set: str,
        models: Optional[Sequence[Any]] = None,
    ) -> "ODataCollection":
        return self.entity_set(entity_set).as_collection(list(models or []))

    def fetch_model(self, entity_set: str, key: Any, **kwargs: Any) -> Awaitable["ODataModel"]:
        """Fetch one entity of ``entity_set`` by key."""
        if key is None:
            raise UsageError(f"fetch_model({entity_set!r}) needs a key")
        return self.entity_set(entity_set).entity(key).as_model().fetch(**kwargs)

    def fetch_collection(self, entity_set: str, **kwargs: Any) -> Awaitable["ODataCollection"]:
        """First page of ``entity_set``."""
        return self.collection(entity_set).fetch(**kwargs)

    def read_or_create(self, entity_set: str, data: Mapping[str, Any]) -> Awaitable["ODataModel"]:
        """
        Fetch the entity whose key ``data`` carries; create it from ``data``
        when the server reports it does not exist.
        """
        candidate = self.model(entity_set, data)
        key = candidate.resolve_key()
        if key is None:
            return candidate.create()

        async def run() -> "ODataModel":
            try:
                return await self.fetch_model(entity_set, key)
            except NotFound:
                logger.info("%s(%r) not found; creating it", entity_set, key)
                return await candidate.create()

        return run()

    # ---------------- discovery helpers ----------------

    def list_entity_sets(self) -> List[str]:
        """
        List all entity sets known to this service.

        Returns
        -------
        list of str
            Entity set names
        """
        if self.meta is not None:
            return self.meta.entity_sets()
        return sorted(self.schema.entity_sets())

    def list_fields(self, entity_set: str) -> List[str]:
        """
        List all fields/properties for an entity set.

        Returns
        -------
        list of str
            Field/property names
        """
        if self.meta is not None:
            return self.meta.properties(entity_set)
        desc = self.schema.for_entity_set(entity_set)
        return list(desc.properties) if desc is not None else []

    def validate_select(self, entity_set: str, fields: List[str]) -> Tuple[List[str], List[str]]:
        """(valid_fields, unknown_fields) of ``fields`` for ``entity_set``."""
        known = set(self.list_fields(entity_set))
        valid, unknown = [], []
        for f in fields:
            (valid if f in known else unknown).append(f)
        return valid, unknown
