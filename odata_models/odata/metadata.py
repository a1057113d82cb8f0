"""
odata_models.odata.metadata - OData $metadata parsing
======================================================

Lightweight CSDL parser for OData v2/v4 services. Fills a
:class:`~odata_models.odata.schema.TypeRegistry` with entity and complex
types (keys, typed properties, navigation properties) and keeps the entity
set listing used for service discovery and field validation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
import logging
import xml.etree.ElementTree as ET

from odata_models.core.errors import MalformedResponse
from odata_models.odata.schema import (
    NavigationDescriptor,
    PropertyDescriptor,
    TypeDescriptor,
    TypeRegistry,
)

logger = logging.getLogger("odata_models.metadata")


@dataclass
class EntitySetInfo:
    """
    Information about an OData entity set.

    Attributes
    ----------
    name : str
        Entity set name (e.g., "People")
    entity_type : str
        Full entity type name including namespace
    properties : list of str
        List of property names available on this entity set
    """
    name: str
    entity_type: str
    properties: List[str]


def _strip_ns(tag: str) -> str:
    """Strip XML namespace from a tag name."""
    return tag.split("}", 1)[-1] if "}" in tag else tag


def _children(node: ET.Element, tag: str) -> List[ET.Element]:
    return [c for c in node if _strip_ns(c.tag) == tag]


def _iter(node: ET.Element, tag: str) -> List[ET.Element]:
    return [c for c in node.iter() if _strip_ns(c.tag) == tag]


def _multiplicities(schema: ET.Element, namespace: str) -> Dict[Tuple[str, str], Tuple[str, str]]:
    """(association, role) -> (end type, multiplicity) for v2 associations."""
    ends: Dict[Tuple[str, str], Tuple[str, str]] = {}
    for assoc in _children(schema, "Association"):
        name = f"{namespace}.{assoc.attrib.get('Name')}"
        for end in _children(assoc, "End"):
            ends[(name, end.attrib.get("Role", ""))] = (
                end.attrib.get("Type", ""),
                end.attrib.get("Multiplicity", "1"),
            )
    return ends


class ODataMetadata:
    """
    Lightweight $metadata parser for OData v2/v4.

    Parses entity types, complex types and entity sets from OData $metadata
    XML. Useful for key resolution, value conversion, field validation and
    service discovery.

    Parameters
    ----------
    xml_text : str
        The $metadata document
    registry : TypeRegistry, optional
        Registry to fill (a new one when omitted)

    Examples
    --------
    >>> meta = ODataMetadata(xml_text)
    >>> meta.entity_sets()
    ['Airlines', 'Airports', 'People']
    >>> meta.properties("People")
    ['UserName', 'FirstName', 'LastName', ...]
    >>> meta.registry.for_entity_set("People").keys
    ['UserName']
    """

    def __init__(self, xml_text: str, registry: Optional[TypeRegistry] = None) -> None:
        self.registry = registry if registry is not None else TypeRegistry()
        self._entity_sets: Dict[str, EntitySetInfo] = {}
        self._parse(xml_text)

    def _parse(self, xml_text: str) -> None:
        try:
            root = ET.fromstring(xml_text)
        except ET.ParseError as exc:
            raise MalformedResponse(f"Invalid $metadata document: {exc}") from exc

        types: Dict[str, TypeDescriptor] = {}
        for schema in _iter(root, "Schema"):
            namespace = schema.attrib.get("Namespace", "")
            ends = _multiplicities(schema, namespace)
            for node in schema:
                tag = _strip_ns(node.tag)
                if tag not in ("EntityType", "ComplexType"):
                    continue
                desc = self._type(node, namespace, ends)
                if desc is not None:
                    types[desc.qualified_name] = self.registry.register(desc)

        for node in _iter(root, "EntitySet"):
            es_name = node.attrib.get("Name")
            et_full = node.attrib.get("EntityType")
            if not es_name or not et_full:
                continue
            self.registry.add_entity_set(es_name, et_full)
            desc = types.get(et_full) or self.registry.resolve(et_full)
            self._entity_sets[es_name] = EntitySetInfo(
                name=es_name,
                entity_type=et_full,
                properties=list(desc.properties) if desc is not None else [],
            )
        logger.debug("Parsed $metadata: %s types, %s entity sets", len(types), len(self._entity_sets))

    @staticmethod
    def _type(
        node: ET.Element,
        namespace: str,
        ends: Dict[Tuple[str, str], Tuple[str, str]],
    ) -> Optional[TypeDescriptor]:
        name = node.attrib.get("Name")
        if not name:
            return None

        keys: List[str] = []
        for key in _children(node, "Key"):
            keys.extend(ref.attrib["Name"] for ref in _children(key, "PropertyRef") if "Name" in ref.attrib)

        props: Dict[str, PropertyDescriptor] = {}
        for c in _children(node, "Property"):
            pname = c.attrib.get("Name")
            if not pname:
                continue
            props[pname] = PropertyDescriptor(
                name=pname,
                type=c.attrib.get("Type", "Edm.String"),
                nullable=c.attrib.get("Nullable", "true").lower() != "false",
                is_key=pname in keys,
            )

        navigation: Dict[str, NavigationDescriptor] = {}
        for c in _children(node, "NavigationProperty"):
            nname = c.attrib.get("Name")
            if not nname:
                continue
            if "Type" in c.attrib:
                # v4: Type="NS.Person" or Type="Collection(NS.Person)"
                target = c.attrib["Type"]
                many = target.startswith("Collection(")
                if many:
                    target = target[len("Collection("):-1]
            else:
                # v2: resolved through the association end named by ToRole
                end = ends.get((c.attrib.get("Relationship", ""), c.attrib.get("ToRole", "")))
                if end is None:
                    continue
                target, many = end[0], end[1] == "*"
            navigation[nname] = NavigationDescriptor(name=nname, type=target, collection=many)

        return TypeDescriptor(
            name=name,
            namespace=namespace or None,
            keys=keys,
            properties=props,
            navigation=navigation,
        )

    def entity_sets(self) -> List[str]:
        """
        Get list of entity set names in the service.

        Returns
        -------
        list of str
            Sorted list of entity set names
        """
        return sorted(self._entity_sets.keys())

    def properties(self, entity_set: str) -> List[str]:
        """
        Get list of properties for an entity set.

        Parameters
        ----------
        entity_set : str
            Name of the entity set

        Returns
        -------
        list of str
            List of property names
        """
        info = self._entity_sets.get(entity_set)
        return list(info.properties) if info else []

    def validate_select(
        self,
        entity_set: str,
        fields: List[str]
    ) -> Tuple[List[str], List[str]]:
        """
        Validate fields against entity set metadata.

        Returns
        -------
        tuple of (list, list)
            (valid_fields, unknown_fields)
        """
        props = set(self.properties(entity_set))
        valid, unknown = [], []
        for f in fields:
            (valid if f in props else unknown).append(f)
        return valid, unknown

    def get_entity_set_info(self, entity_set: str) -> Optional[EntitySetInfo]:
        return self._entity_sets.get(entity_set)
