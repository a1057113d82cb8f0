"""
odata_models.odata - Resource algebra and response mapping
===========================================================

- PathSegments / QueryOptions: the two halves of a resource address
- ODataResource: navigation, query options and verbs
- AnnotationParser: (value, annotations) from raw payloads
- TypeDescriptor / TypeRegistry: keys, converters and relation lookup
- ODataMetadata: $metadata parsing into a TypeRegistry
- ODataService: service-scoped entry point

"""

from odata_models.odata.literals import escape_odata_literal, format_key, format_literal
from odata_models.odata.segments import PathSegments, Segment, SegmentKind
from odata_models.odata.options import QueryOptionKind, QueryOptions, render_filter
from odata_models.odata.schema import (
    NavigationDescriptor,
    PropertyDescriptor,
    TypeDescriptor,
    TypeRegistry,
)
from odata_models.odata.annotations import (
    ENTITIES,
    ENTITY,
    PROPERTY,
    AnnotationParser,
    CollectionAnnotations,
    EntityAnnotations,
    PropertyAnnotations,
)
from odata_models.odata.metadata import EntitySetInfo, ODataMetadata
from odata_models.odata.resource import ODataResource
from odata_models.odata.service import ODataService

__all__ = [
    "escape_odata_literal",
    "format_key",
    "format_literal",
    "PathSegments",
    "Segment",
    "SegmentKind",
    "QueryOptionKind",
    "QueryOptions",
    "render_filter",
    "NavigationDescriptor",
    "PropertyDescriptor",
    "TypeDescriptor",
    "TypeRegistry",
    "ENTITIES",
    "ENTITY",
    "PROPERTY",
    "AnnotationParser",
    "CollectionAnnotations",
    "EntityAnnotations",
    "PropertyAnnotations",
    "EntitySetInfo",
    "ODataMetadata",
    "ODataResource",
    "ODataService",
]
