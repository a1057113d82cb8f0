"""
Tests for odata_models.odata.service.
"""

import asyncio

import pytest

from odata_models.core.errors import NotFound, TransportError, UsageError
from odata_models.models.collection import ODataCollection
from odata_models.odata.metadata import ODataMetadata
from odata_models.odata.schema import TypeRegistry
from odata_models.odata.segments import SegmentKind
from odata_models.odata.service import ODataService


BASE_URL = "https://svc.example.com/odata/"


class TestResources:
    """Resource factories and URLs."""

    def test_entity_set(self, service):
        people = service.entity_set("People")
        assert people.kind is SegmentKind.ENTITY_SET
        assert people.path() == "People"
        assert people.entity_type.name == "Person"
        assert service.entity_set("Airports").entity_type is None

    def test_each_call_is_independent(self, service):
        first = service.entity_set("People")
        first.top(3)
        assert service.entity_set("People").top() is None

    def test_metadata_path(self, service):
        assert service.metadata().path() == "$metadata"

    def test_base_url_normalized(self, transport):
        svc = ODataService(transport, base_url="https://h/odata")
        assert svc.base_url == "https://h/odata/"
        assert ODataService(transport).base_url == ""

    def test_endpoint_and_identity_url(self, service):
        russell = service.entity_set("People").entity("russellwhyte")
        russell.select(["UserName"])
        assert service.endpoint_url(russell) == BASE_URL + "People('russellwhyte')"
        assert service.identity_url(russell) == BASE_URL + "People('russellwhyte')"
        assert service.identity_url("People('x')") == "People('x')"
        model = service.model("People", {"UserName": "x"})
        assert service.identity_url(model) == BASE_URL + "People('x')"

    def test_version_selects_parser(self, service, v2_service):
        assert not service.parser.v2
        assert v2_service.parser.v2


class TestMetadata:
    """Loading $metadata into the service."""

    def test_load_metadata(self, transport, sample_metadata_xml):
        transport.queue(sample_metadata_xml)
        svc = ODataService(transport)

        meta = asyncio.run(svc.load_metadata())

        assert isinstance(meta, ODataMetadata)
        assert transport.last["address"] == "$metadata"
        assert transport.last["headers"] == {"Accept": "application/xml"}
        assert svc.list_entity_sets() == ["TestEntities", "TestItems"]
        assert svc.list_fields("TestEntities") == ["ID", "Name", "Status", "CreatedAt"]
        assert svc.entity_set("TestItems").entity_type.keys == ["ID", "Pos"]

    def test_discovery_from_schema(self, service):
        assert service.list_entity_sets() == ["OrderItems", "People", "Trips"]
        assert service.list_fields("Trips") == ["TripId", "Name", "Budget"]
        assert service.list_fields("Unknown") == []

    def test_validate_select(self, service):
        valid, unknown = service.validate_select("People", ["UserName", "Bogus", "Age"])
        assert valid == ["UserName", "Age"]
        assert unknown == ["Bogus"]


class TestModels:
    """Model and collection helpers."""

    def test_model(self, service):
        model = service.model("People", {"UserName": "a"})
        assert model.resource.path() == "People"
        assert model.resolve_key() == "a"

    def test_collection(self, service):
        coll = service.collection("People", [{"UserName": "a"}])
        assert isinstance(coll, ODataCollection)
        assert coll[0]["UserName"] == "a"

    def test_fetch_model(self, service, transport):
        transport.queue({"@odata.etag": 'W/"5"', "UserName": "russellwhyte", "Age": 32})

        model = asyncio.run(service.fetch_model("People", "russellwhyte"))

        assert transport.last["address"] == "People('russellwhyte')"
        assert model["Age"] == 32
        assert model.etag == 'W/"5"'

    def test_fetch_model_composite_key(self, service, transport):
        transport.queue({"OrderID": 1, "ItemNo": "A", "Quantity": 2})
        asyncio.run(service.fetch_model("OrderItems", {"OrderID": 1, "ItemNo": "A"}))
        assert transport.last["address"] == "OrderItems(OrderID=1,ItemNo='A')"

    def test_fetch_model_needs_key(self, service, transport):
        with pytest.raises(UsageError):
            service.fetch_model("People", None)
        assert transport.calls == []

    def test_fetch_collection(self, service, transport, people_page):
        transport.queue(people_page)
        coll = asyncio.run(service.fetch_collection("People"))
        assert len(coll) == 2
        assert coll.page_state.total_records == 5


class TestReadOrCreate:
    """read_or_create()."""

    def test_existing_entity_is_read(self, service, transport):
        transport.queue({"UserName": "a", "FirstName": "Server"})

        model = asyncio.run(service.read_or_create("People", {"UserName": "a", "FirstName": "Local"}))

        assert transport.addresses == ["People('a')"]
        assert model["FirstName"] == "Server"

    def test_missing_entity_is_created(self, service, transport):
        transport.queue(
            TransportError(404, "Not Found", BASE_URL + "People('a')"),
            {"@odata.etag": 'W/"1"', "UserName": "a", "FirstName": "Local"},
        )

        model = asyncio.run(service.read_or_create("People", {"UserName": "a", "FirstName": "Local"}))

        assert [c["method"] for c in transport.calls] == ["GET", "POST"]
        assert transport.last["address"] == "People"
        assert transport.last["body"] == {"UserName": "a", "FirstName": "Local"}
        assert model.etag == 'W/"1"'
        assert model.resource.path() == "People('a')"

    def test_other_errors_propagate(self, service, transport):
        transport.queue(TransportError(500, "boom", BASE_URL + "People('a')"))
        with pytest.raises(TransportError) as info:
            asyncio.run(service.read_or_create("People", {"UserName": "a"}))
        assert not isinstance(info.value, NotFound)
        assert len(transport.calls) == 1

    def test_keyless_data_is_created(self, service, transport):
        transport.queue({"TripId": 9, "Name": "x"})
        model = asyncio.run(service.read_or_create("Trips", {"Name": "x"}))
        assert [c["method"] for c in transport.calls] == ["POST"]
        assert model.resolve_key() == 9


class TestCustomSchema:
    """Services built around an empty registry."""

    def test_untyped_entity_set(self, transport):
        svc = ODataService(transport, schema=TypeRegistry())
        transport.queue({"Id": 1, "Name": "x"})
        resource = svc.entity_set("Things").entity(1)
        model = asyncio.run(resource.as_model().fetch())
        assert transport.last["address"] == "Things(1)"
        assert model.data == {"Id": 1, "Name": "x"}
