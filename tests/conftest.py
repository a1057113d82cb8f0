"""
Pytest configuration and shared fixtures.
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from odata_models.odata.schema import (
    NavigationDescriptor,
    PropertyDescriptor,
    TypeDescriptor,
    TypeRegistry,
)
from odata_models.odata.service import ODataService


BASE_URL = "https://svc.example.com/odata/"


class FakeTransport:
    """
    In-memory transport: records every request and answers from a queue.

    Queued exceptions are raised instead of returned. A queued delay makes
    the answer arrive after that many seconds, so tests can reorder
    completions of concurrent calls.
    """

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self._answers: List[Any] = []

    def queue(self, *payloads: Any, delay: float = 0.0) -> "FakeTransport":
        for payload in payloads:
            self._answers.append((payload, delay))
        return self

    @property
    def addresses(self) -> List[str]:
        return [c["address"] for c in self.calls]

    @property
    def last(self) -> Dict[str, Any]:
        return self.calls[-1]

    async def request(
        self,
        method: str,
        resource: Any,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        body: Any = None,
        etag: Optional[str] = None,
    ) -> Any:
        self.calls.append({
            "method": method,
            "address": str(resource),
            "headers": headers,
            "params": params,
            "body": body,
            "etag": etag,
        })
        payload, delay = self._answers.pop(0) if self._answers else (None, 0.0)
        if delay:
            await asyncio.sleep(delay)
        if isinstance(payload, Exception):
            raise payload
        return payload


def build_schema() -> TypeRegistry:
    registry = TypeRegistry()
    registry.register(
        TypeDescriptor(
            name="Person",
            namespace="Trippin",
            keys=["UserName"],
            properties={
                "UserName": PropertyDescriptor(name="UserName", nullable=False, is_key=True),
                "FirstName": PropertyDescriptor(name="FirstName"),
                "LastName": PropertyDescriptor(name="LastName"),
                "Age": PropertyDescriptor(name="Age", type="Edm.Int32"),
                "Created": PropertyDescriptor(name="Created", type="Edm.DateTimeOffset"),
                "Emails": PropertyDescriptor(name="Emails", type="Collection(Edm.String)"),
            },
            navigation={
                "Friends": NavigationDescriptor(name="Friends", type="Trippin.Person", collection=True),
                "Manager": NavigationDescriptor(name="Manager", type="Trippin.Person"),
                "Trips": NavigationDescriptor(name="Trips", type="Trippin.Trip", collection=True),
            },
        ),
        entity_set="People",
    )
    registry.register(
        TypeDescriptor(
            name="Trip",
            namespace="Trippin",
            keys=["TripId"],
            properties={
                "TripId": PropertyDescriptor(name="TripId", type="Edm.Int32", is_key=True),
                "Name": PropertyDescriptor(name="Name"),
                "Budget": PropertyDescriptor(name="Budget", type="Edm.Decimal"),
            },
        ),
        entity_set="Trips",
    )
    registry.register(
        TypeDescriptor(
            name="OrderItem",
            namespace="Trippin",
            keys=["OrderID", "ItemNo"],
            properties={
                "OrderID": PropertyDescriptor(name="OrderID", type="Edm.Int32", is_key=True),
                "ItemNo": PropertyDescriptor(name="ItemNo", is_key=True),
                "Quantity": PropertyDescriptor(name="Quantity", type="Edm.Int32"),
            },
        ),
        entity_set="OrderItems",
    )
    return registry


@pytest.fixture
def schema():
    """TripPin-like type registry."""
    return build_schema()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def service(transport, schema):
    """OData v4 service over the fake transport."""
    return ODataService(transport, schema=schema, base_url=BASE_URL)


@pytest.fixture
def v2_service(transport, schema):
    """OData v2 service over the fake transport."""
    return ODataService(transport, schema=schema, version="2.0", base_url=BASE_URL)


@pytest.fixture
def people_page():
    """First page of People, two of five records."""
    return {
        "@odata.context": BASE_URL + "$metadata#People",
        "@odata.count": 5,
        "@odata.nextLink": BASE_URL + "People?$top=2&$skip=2",
        "value": [
            {"@odata.etag": 'W/"1"', "UserName": "russellwhyte", "FirstName": "Russell", "Age": 32},
            {"@odata.etag": 'W/"2"', "UserName": "scottketchum", "FirstName": "Scott", "Age": 41},
        ],
    }


@pytest.fixture
def sample_odata_response():
    """Sample OData v2 response."""
    return {
        "d": {
            "results": [
                {
                    "__metadata": {
                        "uri": BASE_URL + "TestEntities('001')",
                        "type": "TestService.TestEntity",
                        "etag": "W/\"datetime'2024-01-01T00%3A00%3A00'\"",
                    },
                    "ID": "001",
                    "Name": "Test 1",
                    "Status": "ACTIVE",
                },
                {"ID": "002", "Name": "Test 2", "Status": "INACTIVE"},
            ],
            "__count": "12",
            "__next": BASE_URL + "TestEntities?$skiptoken='002'",
        }
    }


@pytest.fixture
def sample_metadata_xml():
    """Sample OData v2 $metadata XML."""
    return """<?xml version="1.0" encoding="utf-8"?>
<edmx:Edmx Version="1.0" xmlns:edmx="http://schemas.microsoft.com/ado/2007/06/edmx">
  <edmx:DataServices m:DataServiceVersion="2.0" xmlns:m="http://schemas.microsoft.com/ado/2007/08/dataservices/metadata">
    <Schema Namespace="TestService" xmlns="http://schemas.microsoft.com/ado/2008/09/edm">
      <EntityType Name="TestEntity">
        <Key>
          <PropertyRef Name="ID"/>
        </Key>
        <Property Name="ID" Type="Edm.String" Nullable="false"/>
        <Property Name="Name" Type="Edm.String"/>
        <Property Name="Status" Type="Edm.String"/>
        <Property Name="CreatedAt" Type="Edm.DateTime"/>
        <NavigationProperty Name="Items" Relationship="TestService.Entity_Items" FromRole="Entity" ToRole="Items"/>
        <NavigationProperty Name="Owner" Relationship="TestService.Entity_Owner" FromRole="Entity" ToRole="Owner"/>
      </EntityType>
      <EntityType Name="TestItem">
        <Key>
          <PropertyRef Name="ID"/>
          <PropertyRef Name="Pos"/>
        </Key>
        <Property Name="ID" Type="Edm.String" Nullable="false"/>
        <Property Name="Pos" Type="Edm.Int32" Nullable="false"/>
      </EntityType>
      <Association Name="Entity_Items">
        <End Type="TestService.TestEntity" Multiplicity="1" Role="Entity"/>
        <End Type="TestService.TestItem" Multiplicity="*" Role="Items"/>
      </Association>
      <Association Name="Entity_Owner">
        <End Type="TestService.TestEntity" Multiplicity="*" Role="Entity"/>
        <End Type="TestService.TestEntity" Multiplicity="0..1" Role="Owner"/>
      </Association>
      <EntityContainer Name="TestService" m:IsDefaultEntityContainer="true">
        <EntitySet Name="TestEntities" EntityType="TestService.TestEntity"/>
        <EntitySet Name="TestItems" EntityType="TestService.TestItem"/>
      </EntityContainer>
    </Schema>
  </edmx:DataServices>
</edmx:Edmx>"""


@pytest.fixture
def sample_metadata_v4_xml():
    """Sample OData v4 $metadata XML."""
    return """<?xml version="1.0" encoding="utf-8"?>
<edmx:Edmx Version="4.0" xmlns:edmx="http://docs.oasis-open.org/odata/ns/edmx">
  <edmx:DataServices>
    <Schema Namespace="Trippin" xmlns="http://docs.oasis-open.org/odata/ns/edm">
      <EntityType Name="Person">
        <Key>
          <PropertyRef Name="UserName"/>
        </Key>
        <Property Name="UserName" Type="Edm.String" Nullable="false"/>
        <Property Name="FirstName" Type="Edm.String" Nullable="false"/>
        <Property Name="Age" Type="Edm.Int64"/>
        <Property Name="AddressInfo" Type="Collection(Trippin.Location)"/>
        <NavigationProperty Name="Friends" Type="Collection(Trippin.Person)"/>
        <NavigationProperty Name="BestFriend" Type="Trippin.Person"/>
      </EntityType>
      <ComplexType Name="Location">
        <Property Name="Address" Type="Edm.String"/>
      </ComplexType>
      <EntityContainer Name="Container">
        <EntitySet Name="People" EntityType="Trippin.Person"/>
      </EntityContainer>
    </Schema>
  </edmx:DataServices>
</edmx:Edmx>"""
