"""
odata_models.models.registry - Model / Collection factories by type
====================================================================

Maps entity type names to the factory used to build models and
collections of that type. Types without an entry get the plain
:class:`ODataModel` / :class:`ODataCollection`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional

from odata_models.models.collection import ODataCollection
from odata_models.models.model import ODataModel

if TYPE_CHECKING:
    from odata_models.odata.annotations import CollectionAnnotations, EntityAnnotations
    from odata_models.odata.resource import ODataResource

ModelFactory = Callable[..., ODataModel]
CollectionFactory = Callable[..., ODataCollection]


class ModelRegistry:
    """
    Explicit type name -> factory registry.

    Examples
    --------
    >>> class Person(ODataModel):
    ...     def friends(self):
    ...         return self.related_collection("Friends")
    >>> registry = ModelRegistry()
    >>> registry.register("Microsoft.OData.SampleService.Models.TripPin.Person", model=Person)
    """

    def __init__(self) -> None:
        self._models: Dict[str, ModelFactory] = {}
        self._collections: Dict[str, CollectionFactory] = {}

    def register(
        self,
        type_name: str,
        *,
        model: Optional[ModelFactory] = None,
        collection: Optional[CollectionFactory] = None,
    ) -> None:
        if model is not None:
            self._models[type_name] = model
        if collection is not None:
            self._collections[type_name] = collection

    @staticmethod
    def _lookup(table: Dict[str, Any], resource: "ODataResource") -> Optional[Any]:
        t = resource.entity_type
        if t is None:
            return None
        return table.get(t.qualified_name) or table.get(t.name)

    def model_factory(self, resource: "ODataResource") -> ModelFactory:
        return self._lookup(self._models, resource) or ODataModel

    def collection_factory(self, resource: "ODataResource") -> CollectionFactory:
        return self._lookup(self._collections, resource) or ODataCollection

    def model(
        self,
        resource: "ODataResource",
        data: Optional[Mapping[str, Any]] = None,
        annotations: Optional["EntityAnnotations"] = None,
    ) -> ODataModel:
        factory = self.model_factory(resource)
        return factory(data, resource=resource, annotations=annotations)

    def collection(
        self,
        resource: "ODataResource",
        records: Optional[List[Any]] = None,
        annotations: Optional["CollectionAnnotations"] = None,
    ) -> ODataCollection:
        factory = self.collection_factory(resource)
        return factory(records, resource=resource, annotations=annotations)
