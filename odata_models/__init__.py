"""
OData Models (odata_models)
===========================

Client toolkit for OData v4 (and v2) services: composable resources that
render exact request addresses, annotation-aware response parsing, and
stateful Model / Collection objects with paging, navigation, version
tokens and ``$ref`` links.

Usage
-----
>>> from odata_models import ConnectionContext
>>>
>>> with ConnectionContext(base_url="https://services.odata.org/V4/TripPinService/",
...                        anonymous=True) as conn:
...     service = conn.get_service()
...     await service.load_metadata()
...     people = service.collection("People")
...     people.filter({"FirstName": {"startswith": "R"}})
...     await people.fetch()
...     russell = people[0]
...     friends = russell.related_collection("Friends")
...     await friends.fetch()

Subpackages
-----------
- odata_models.core: Session, configuration and errors
- odata_models.odata: Resources, query options, annotations, schema, service
- odata_models.models: Model, Collection and the factory registry

"""

__version__ = "0.1.0"

from odata_models.core.errors import (
    ODataError,
    UsageError,
    MissingKey,
    ModelDestroyed,
    MalformedResponse,
    TransportError,
    NotFound,
    ConcurrencyConflict,
)
from odata_models.core.session import ODataAuth, ODataConfig, ODataSession
from odata_models.core.connection import ConnectionContext

from odata_models.odata import (
    ODataService,
    ODataResource,
    ODataMetadata,
    QueryOptions,
    TypeDescriptor,
    TypeRegistry,
)
from odata_models.models import ODataModel, ODataCollection, ModelRegistry, PageState

__all__ = [
    # Version
    "__version__",
    # Core
    "ODataAuth",
    "ODataConfig",
    "ODataSession",
    "ConnectionContext",
    # Errors
    "ODataError",
    "UsageError",
    "MissingKey",
    "ModelDestroyed",
    "MalformedResponse",
    "TransportError",
    "NotFound",
    "ConcurrencyConflict",
    # OData
    "ODataService",
    "ODataResource",
    "ODataMetadata",
    "QueryOptions",
    "TypeDescriptor",
    "TypeRegistry",
    # Models
    "ODataModel",
    "ODataCollection",
    "ModelRegistry",
    "PageState",
]
