"""
odata_models.models.collection - Entity collections with paging
================================================================

An :class:`ODataCollection` holds the models of one page of an entity set
(or collection-valued navigation property) together with the page state
derived from the server's count and continuation annotations.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import (
    TYPE_CHECKING, Any, Awaitable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union,
)

from odata_models.core.errors import UsageError
from odata_models.models.model import ODataModel
from odata_models.odata.annotations import ENTITIES, Annotations, CollectionAnnotations
from odata_models.odata.options import _UNSET
from odata_models.odata.segments import KEYABLE

if TYPE_CHECKING:
    from odata_models.odata.resource import ODataResource
    from odata_models.odata.schema import TypeDescriptor

logger = logging.getLogger("odata_models.collection")

Member = Union[ODataModel, Mapping[str, Any]]


@dataclass
class PageState:
    """
    Paging position of a collection.

    ``total_pages`` is only known when both ``total_records`` and
    ``page_size`` are.
    """

    page: Optional[int] = None
    page_size: Optional[int] = None
    total_records: Optional[int] = None
    total_pages: Optional[int] = None


def _pages_for(records: Optional[int], size: Optional[int]) -> Optional[int]:
    if records is None or not size:
        return None
    return math.ceil(records / size)


def _clamp(page: int, total_pages: Optional[int]) -> int:
    if total_pages is None:
        return page
    return max(1, min(page, total_pages))


class ODataCollection:
    """
    Ordered models of one collection page, bound to the collection resource.

    Parameters
    ----------
    records : list, optional
        Records (with their reserved fields) or ready models
    resource : ODataResource
        Resource addressing the entity set or navigation collection;
        cloned on entry
    annotations : CollectionAnnotations, optional
        Count and continuation of the page the records came from

    Examples
    --------
    >>> people = service.collection("People")
    >>> people.order_by([("LastName", "asc")])
    >>> people.set_page_size(20)
    >>> await people.fetch()
    >>> people.page_state
    PageState(page=1, page_size=20, total_records=95, total_pages=5)
    >>> await people.get_next_page()
    """

    def __init__(
        self,
        records: Optional[Sequence[Member]] = None,
        *,
        resource: "ODataResource",
        annotations: Optional[CollectionAnnotations] = None,
    ) -> None:
        self._resource = resource.clone()
        self._annotations = annotations or CollectionAnnotations()
        self._models: Tuple[ODataModel, ...] = self._build(self._resource, records or [])
        self._state = PageState(total_records=self._annotations.count)

    # ---------------- state ----------------

    @property
    def resource(self) -> "ODataResource":
        """Copy of the bound resource."""
        return self._resource.clone()

    @property
    def entity_type(self) -> Optional["TypeDescriptor"]:
        return self._resource.entity_type

    @property
    def models(self) -> Tuple[ODataModel, ...]:
        return self._models

    @property
    def annotations(self) -> CollectionAnnotations:
        return self._annotations

    @property
    def page_state(self) -> PageState:
        return replace(self._state)

    def __iter__(self) -> Iterator[ODataModel]:
        return iter(self._models)

    def __len__(self) -> int:
        return len(self._models)

    def __getitem__(self, index: int) -> ODataModel:
        return self._models[index]

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self._resource.path()} models={len(self._models)}>"

    def to_json(self) -> List[Dict[str, Any]]:
        return [m.to_json() for m in self._models]

    def attach(self, resource: "ODataResource") -> "ODataCollection":
        """Bind to another resource of the same entity type."""
        mine, theirs = self.entity_type, resource.entity_type
        if mine is not None and theirs is not None and mine.qualified_name != theirs.qualified_name:
            raise UsageError(f"Cannot attach a {theirs.name} resource to a {mine.name} collection")
        self._resource = resource.clone()
        return self

    def _build(self, res: "ODataResource", records: Sequence[Member]) -> Tuple[ODataModel, ...]:
        member = res.entity() if res.kind in KEYABLE else res.clone()
        parser = res.service.parser
        models = []
        for record in records:
            if isinstance(record, ODataModel):
                theirs = record.entity_type
                if self.entity_type is not None and theirs is not None and \
                        theirs.qualified_name != self.entity_type.qualified_name:
                    raise UsageError(f"Cannot add a {theirs.name} model to a {self.entity_type.name} collection")
                models.append(record)
                continue
            data, annots = parser.split(record)
            models.append(member.as_model(data, annots))
        return tuple(models)

    # ---------------- requests ----------------

    def fetch(
        self,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Awaitable["ODataCollection"]:
        """
        Load the current page (page 1 before any paging), with the count
        requested, and replace models and page state from the response.
        """
        return self._load(self._state.page or 1, headers=headers, params=params)

    def _load(
        self,
        page: int,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Awaitable["ODataCollection"]:
        res = self._resource.clone()
        size = self._state.page_size
        if size:
            res.top(size)
            res.skip(size * (page - 1) or None)
        pending = res.get(response_type=ENTITIES, headers=headers, params=params, with_count=True)

        async def run() -> "ODataCollection":
            records, annots = await pending
            models = self._build(res, records)
            state = self._next_state(res, annots, page)
            self._models, self._state, self._annotations = models, state, annots
            logger.debug("Loaded page %s of %s (%s models)", state.page, res.path(), len(models))
            return self

        return run()

    def _next_state(self, res: "ODataResource", annots: CollectionAnnotations, page: int) -> PageState:
        offset = res.skip() or 0
        size = self._state.page_size or res.top()
        if not size and annots.skip is not None and annots.skip > offset:
            size = annots.skip - offset
        records = annots.count if annots.count is not None else self._state.total_records
        if size:
            page = offset // size + 1
        return PageState(
            page=page,
            page_size=size,
            total_records=records,
            total_pages=_pages_for(records, size),
        )

    def count(self, *, headers: Optional[Dict[str, str]] = None) -> Awaitable[int]:
        """Number of entities matching the collection's filter, ignoring paging."""
        pending = self._resource.count().get(headers=headers)

        async def run() -> int:
            value, _ = await pending
            return value

        return run()

    # ---------------- paging ----------------

    def get_page(self, page: int, **kwargs: Any) -> Awaitable["ODataCollection"]:
        """
        Load page ``page``.

        Pages past the last known page are clamped to it; ``page < 1`` is a
        UsageError. Without a known page size this is a plain fetch().
        """
        if isinstance(page, bool) or not isinstance(page, int) or page < 1:
            raise UsageError(f"Page must be a positive integer, got {page!r}")
        if not self._state.page_size:
            return self.fetch(**kwargs)
        return self._load(_clamp(page, self._state.total_pages), **kwargs)

    def get_first_page(self, **kwargs: Any) -> Awaitable["ODataCollection"]:
        return self._load(1, **kwargs)

    def get_next_page(self, **kwargs: Any) -> Awaitable["ODataCollection"]:
        if self._state.total_pages is None:
            return self.fetch(**kwargs)
        return self.get_page((self._state.page or 1) + 1, **kwargs)

    def get_previous_page(self, **kwargs: Any) -> Awaitable["ODataCollection"]:
        if self._state.total_pages is None:
            return self.fetch(**kwargs)
        return self.get_page(max(1, (self._state.page or 1) - 1), **kwargs)

    def get_last_page(self, **kwargs: Any) -> Awaitable["ODataCollection"]:
        if self._state.total_pages is None:
            return self.fetch(**kwargs)
        return self.get_page(max(1, self._state.total_pages), **kwargs)

    def set_page_size(self, size: int) -> PageState:
        """Change the page size locally; the current page is clamped, nothing is fetched."""
        if isinstance(size, bool) or not isinstance(size, int) or size < 1:
            raise UsageError(f"Page size must be a positive integer, got {size!r}")
        state = self._state
        pages = _pages_for(state.total_records, size)
        page = _clamp(state.page, pages) if state.page is not None else None
        self._state = PageState(page=page, page_size=size, total_records=state.total_records, total_pages=pages)
        return self.page_state

    # ---------------- query options ----------------

    def select(self, value: Any = _UNSET) -> Any:
        return self._resource.select(value)

    def filter(self, value: Any = _UNSET) -> Any:
        return self._resource.filter(value)

    def search(self, value: Any = _UNSET) -> Any:
        return self._resource.search(value)

    def order_by(self, value: Any = _UNSET) -> Any:
        return self._resource.order_by(value)

    def expand(self, value: Any = _UNSET) -> Any:
        return self._resource.expand(value)

    def group_by(self, value: Any = _UNSET) -> Any:
        return self._resource.group_by(value)

    def transform(self, value: Any = _UNSET) -> Any:
        return self._resource.transform(value)

    # ---------------- custom operations ----------------

    def call_action(
        self,
        name: str,
        body: Optional[Mapping[str, Any]] = None,
        *,
        response_type: Optional[str] = None,
        return_type: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Awaitable[Tuple[Any, Annotations]]:
        """Invoke action ``name`` bound to the collection."""
        res = self._resource.action(name, return_type)
        return res.post(dict(body or {}), response_type=response_type, headers=headers)

    def call_function(
        self,
        name: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        response_type: Optional[str] = None,
        return_type: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Awaitable[Tuple[Any, Annotations]]:
        """Invoke function ``name`` bound to the collection."""
        res = self._resource.function(name, params, return_type)
        return res.get(response_type=response_type, headers=headers)
