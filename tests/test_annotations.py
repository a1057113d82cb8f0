"""
Tests for odata_models.odata.annotations.
"""

from datetime import datetime, timezone

import pytest

from odata_models.core.errors import MalformedResponse
from odata_models.odata.annotations import (
    ENTITIES,
    ENTITY,
    PROPERTY,
    AnnotationParser,
    CollectionAnnotations,
    EntityAnnotations,
    PropertyAnnotations,
)


class TestEntity:
    """Single-entity payloads."""

    def test_reserved_fields_become_annotations(self):
        data, annots = AnnotationParser().entity({
            "@odata.context": "$metadata#People/$entity",
            "@odata.etag": 'W/"08D1"',
            "@odata.id": "People('russellwhyte')",
            "@odata.type": "#Trippin.Person",
            "Photo@odata.mediaEditLink": "People('russellwhyte')/Photo",
            "UserName": "russellwhyte",
            "FirstName": "Russell",
        })
        assert data == {"UserName": "russellwhyte", "FirstName": "Russell"}
        assert annots.etag == 'W/"08D1"'
        assert annots.id == "People('russellwhyte')"
        assert annots.type == "#Trippin.Person"
        assert annots.context == "$metadata#People/$entity"
        assert annots.properties == {"Photo": {"mediaEditLink": "People('russellwhyte')/Photo"}}

    def test_data_fields_never_become_annotations(self):
        data, annots = AnnotationParser().entity({"etag": "mine", "id": 3, "type": "x"})
        assert data == {"etag": "mine", "id": 3, "type": "x"}
        assert annots == EntityAnnotations()

    def test_non_object_payload(self):
        with pytest.raises(MalformedResponse):
            AnnotationParser().entity(["not", "an", "entity"])

    def test_type_conversion(self, schema):
        person = schema.for_entity_set("People")
        data, _ = AnnotationParser().entity(
            {"UserName": "a", "Age": "41", "Created": "2024-05-01T10:00:00Z"}, person
        )
        assert data["Age"] == 41
        assert data["Created"] == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)

    def test_conversion_failure_is_malformed(self, schema):
        with pytest.raises(MalformedResponse, match="Age"):
            AnnotationParser().entity({"UserName": "a", "Age": "old"}, schema.for_entity_set("People"))

    def test_annotations_are_frozen(self):
        _, annots = AnnotationParser().entity({"@odata.etag": "x"})
        with pytest.raises(Exception):
            annots.etag = "y"


class TestEntities:
    """Entity-set payloads."""

    def test_count_and_continuation(self, people_page):
        records, annots = AnnotationParser().entities(people_page)
        assert len(records) == 2
        # records keep their own reserved fields
        assert records[0]["@odata.etag"] == 'W/"1"'
        assert annots.count == 5
        assert annots.skip == 2
        assert annots.top == 2
        assert annots.skiptoken is None
        assert annots.has_next

    def test_last_page(self):
        records, annots = AnnotationParser().entities({"value": [{"Id": 1}]})
        assert records == [{"Id": 1}]
        assert annots == CollectionAnnotations()
        assert not annots.has_next

    def test_skiptoken_and_delta(self):
        _, annots = AnnotationParser().entities({
            "value": [],
            "@odata.nextLink": "https://h/People?%24skiptoken=abc%3D",
            "@odata.deltaLink": "https://h/People?$deltatoken=1",
        })
        assert annots.skiptoken == "abc="
        assert annots.delta_link == "https://h/People?$deltatoken=1"

    def test_missing_values_array(self):
        with pytest.raises(MalformedResponse, match="value"):
            AnnotationParser().entities({"@odata.count": 0})

    def test_values_field_not_a_list(self):
        with pytest.raises(MalformedResponse):
            AnnotationParser().entities({"value": {"Id": 1}})

    def test_non_object_entry(self):
        with pytest.raises(MalformedResponse):
            AnnotationParser().entities({"value": [1, 2]})

    def test_invalid_count(self):
        with pytest.raises(MalformedResponse, match="count"):
            AnnotationParser().entities({"value": [], "@odata.count": "many"})


class TestProperty:
    """Property payloads."""

    def test_scalar(self):
        value, annots = AnnotationParser().property({
            "@odata.context": "$metadata#People('a')/FirstName",
            "value": "Russell",
        })
        assert value == "Russell"
        assert isinstance(annots, PropertyAnnotations)
        assert annots.context == "$metadata#People('a')/FirstName"

    def test_object_value(self):
        value, _ = AnnotationParser().property({"value": {"Address": "187 Suffolk Ln."}})
        assert value == {"Address": "187 Suffolk Ln."}

    def test_primitive_conversion(self, schema):
        age = schema.resolve("Edm.Int32")
        value, _ = AnnotationParser().property({"value": "32"}, age)
        assert value == 32

    def test_missing_value_field(self):
        with pytest.raises(MalformedResponse, match="value"):
            AnnotationParser().property({"@odata.context": "x"})


class TestVersion2:
    """OData v2 JSON."""

    def test_entities(self, sample_odata_response):
        parser = AnnotationParser("2.0")
        records, annots = parser.entities(sample_odata_response)
        assert [r["ID"] for r in records] == ["001", "002"]
        assert annots.count == 12
        assert annots.skiptoken == "'002'"

        data, entity = parser.split(records[0])
        assert "__metadata" not in data
        assert entity.id.endswith("TestEntities('001')")
        assert entity.type == "TestService.TestEntity"
        assert entity.etag.startswith("W/")

    def test_bare_results_list(self):
        records, annots = AnnotationParser("2.0").entities({"d": [{"ID": "1"}]})
        assert records == [{"ID": "1"}]
        assert annots.count is None

    def test_entity_envelope(self):
        data, annots = AnnotationParser("2.0").entity(
            {"d": {"__metadata": {"uri": "https://h/S('1')", "etag": "W/\"1\""}, "ID": "1"}}
        )
        assert data == {"ID": "1"}
        assert annots.id == "https://h/S('1')"
        assert annots.etag == 'W/"1"'

    def test_property(self):
        value, _ = AnnotationParser("2.0").property({"d": {"Name": "Test 1"}})
        assert value == "Test 1"

    def test_missing_results(self):
        with pytest.raises(MalformedResponse, match="results"):
            AnnotationParser("2.0").entities({"d": {"__count": "1"}})


class TestDispatch:
    """parse() routing by response type."""

    @pytest.mark.parametrize("response_type,payload,expected", [
        (ENTITY, {"Id": 1}, EntityAnnotations),
        (ENTITIES, {"value": []}, CollectionAnnotations),
        (PROPERTY, {"value": 1}, PropertyAnnotations),
    ])
    def test_routes(self, response_type, payload, expected):
        _, annots = AnnotationParser().parse(payload, response_type)
        assert isinstance(annots, expected)

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            AnnotationParser().parse({}, "rows")
