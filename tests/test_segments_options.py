"""
Tests for path segments, literals and query options.
"""

from datetime import datetime, timezone
from uuid import UUID

import pytest

from odata_models.core.errors import UsageError
from odata_models.odata.literals import escape_odata_literal, format_key, format_literal
from odata_models.odata.options import QueryOptionKind, QueryOptions, render_filter
from odata_models.odata.segments import PathSegments, SegmentKind


class TestLiterals:
    """Tests for literal rendering."""

    def test_escape_odata_literal(self):
        assert escape_odata_literal("O'Brien") == "O''Brien"
        assert escape_odata_literal("Normal") == "Normal"

    def test_format_literal(self):
        assert format_literal("russellwhyte") == "'russellwhyte'"
        assert format_literal(42) == "42"
        assert format_literal(True) == "true"
        assert format_literal(None) == "null"
        assert format_literal(UUID("12345678-1234-5678-1234-567812345678")) == \
            "12345678-1234-5678-1234-567812345678"
        assert format_literal(datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)) == \
            "2024-01-02T03:04:05Z"

    def test_format_composite_key(self):
        assert format_key({"OrderID": 1, "ItemNo": "A"}) == "OrderID=1,ItemNo='A'"


class TestPathSegments:
    """Tests for PathSegments."""

    def test_render_with_key(self):
        path = PathSegments()
        path.add(SegmentKind.ENTITY_SET, "People")
        path.key("russellwhyte")
        path.add(SegmentKind.NAVIGATION_PROPERTY, "Trips")
        path.key(0)
        assert path.path() == "People('russellwhyte')/Trips(0)"

    def test_fixed_segment_names(self):
        path = PathSegments()
        path.add(SegmentKind.ENTITY_SET, "People")
        path.add(SegmentKind.COUNT)
        assert path.path() == "People/$count"

    def test_function_parameters(self):
        path = PathSegments()
        path.add(SegmentKind.FUNCTION, "GetNearestAirport", parameters={"lat": 33, "lon": -118})
        assert path.path() == "GetNearestAirport(lat=33,lon=-118)"

    def test_reserved_characters_in_literals_are_encoded(self):
        path = PathSegments()
        path.add(SegmentKind.ENTITY_SET, "People")
        path.key("C#1?x/y")
        assert path.path() == "People('C%231%3Fx%2Fy')"

        path = PathSegments()
        path.add(SegmentKind.FUNCTION, "FindByName", parameters={"name": "50% off"})
        assert path.path() == "FindByName(name='50%25%20off')"

        path = PathSegments()
        path.add(SegmentKind.ENTITY_SET, "OrderItems")
        path.key({"OrderID": 1, "ItemNo": "A&B"})
        assert path.path() == "OrderItems(OrderID=1,ItemNo='A%26B')"

    def test_key_rejected_on_non_collection_segment(self):
        path = PathSegments()
        path.add(SegmentKind.ENTITY_SET, "People")
        path.add(SegmentKind.REF)
        with pytest.raises(UsageError):
            path.key("x")

    def test_key_rejected_on_empty_path(self):
        with pytest.raises(UsageError):
            PathSegments().key("x")

    def test_key_removed_with_none(self):
        path = PathSegments()
        path.add(SegmentKind.ENTITY_SET, "People")
        path.key("x")
        path.key(None)
        assert not path.has_key()
        assert path.path() == "People"

    def test_clone_is_independent(self):
        path = PathSegments()
        path.add(SegmentKind.ENTITY_SET, "OrderItems")
        path.key({"OrderID": 1, "ItemNo": "A"})
        other = path.clone()
        other.key()["ItemNo"] = "B"
        assert path.path() == "OrderItems(OrderID=1,ItemNo='A')"
        assert other.path() == "OrderItems(OrderID=1,ItemNo='B')"

    def test_list_round_trip(self):
        path = PathSegments()
        path.add(SegmentKind.ENTITY_SET, "People")
        path.key("x")
        path.add(SegmentKind.FUNCTION, "GetFriendsTrips", parameters={"userName": "y"})
        assert PathSegments.from_list(path.to_list()) == path


class TestRenderFilter:
    """Tests for filter expression trees."""

    @pytest.mark.parametrize("expr,expected", [
        ("Age gt 3", "Age gt 3"),
        ({"Name": "Bob"}, "Name eq 'Bob'"),
        ({"Age": {"gt": 3, "le": 9}}, "Age gt 3 and Age le 9"),
        ({"Name": {"contains": "ob"}}, "contains(Name,'ob')"),
        ({"Id": {"in": [1, 2]}}, "Id in (1,2)"),
        ({"or": [{"A": 1}, {"B": 2}]}, "A eq 1 or B eq 2"),
        ({"not": {"A": 1}}, "not (A eq 1)"),
        ({"A": 1, "B": {"gt": 2, "lt": 5}}, "A eq 1 and (B gt 2 and B lt 5)"),
        ([{"A": 1}, {"or": [{"B": 1}, {"C": 2}]}], "A eq 1 and (B eq 1 or C eq 2)"),
    ])
    def test_render(self, expr, expected):
        assert render_filter(expr) == expected

    def test_unknown_operator(self):
        with pytest.raises(UsageError, match="operator"):
            render_filter({"Age": {"between": [1, 2]}})


class TestQueryOptions:
    """Tests for QueryOptions."""

    def test_getter_is_pure(self):
        opts = QueryOptions()
        opts.option(QueryOptionKind.TOP, 5)
        before = opts.params()
        assert opts.option(QueryOptionKind.TOP) == 5
        assert opts.option(QueryOptionKind.TOP) == 5
        assert opts.option(QueryOptionKind.SKIP) is None
        assert opts.params() == before

    def test_returned_values_do_not_alias_state(self):
        opts = QueryOptions()
        selected = opts.option(QueryOptionKind.SELECT, ["UserName"])
        selected.append("Age")
        opts.option(QueryOptionKind.SELECT).append("Email")
        opts.option(QueryOptionKind.CUSTOM, {"sap-client": "100"})
        opts.option(QueryOptionKind.CUSTOM)["debug"] = "1"
        opts.option(QueryOptionKind.FILTER, {"Age": {"gt": 3}})
        opts.option(QueryOptionKind.FILTER)["Age"]["gt"] = 99
        opts.option(QueryOptionKind.EXPAND, "Friends")
        opts.option(QueryOptionKind.EXPAND)["Friends"].option(QueryOptionKind.TOP, 1)

        assert opts.params() == {
            "$select": "UserName",
            "$filter": "Age gt 3",
            "$expand": "Friends",
            "sap-client": "100",
        }

    @pytest.mark.parametrize("kind", [QueryOptionKind.TOP, QueryOptionKind.SKIP])
    @pytest.mark.parametrize("value", [-1, True, "3", 2.5])
    def test_paging_values_rejected(self, kind, value):
        with pytest.raises(UsageError):
            QueryOptions().option(kind, value)

    def test_zero_top_is_rendered(self):
        opts = QueryOptions({QueryOptionKind.TOP: 0})
        assert opts.params() == {"$top": "0"}

    def test_none_removes(self):
        opts = QueryOptions({QueryOptionKind.TOP: 5})
        opts.option(QueryOptionKind.TOP, None)
        assert not opts.has(QueryOptionKind.TOP)
        assert opts.params() == {}

    def test_select_deduplicated(self):
        opts = QueryOptions()
        opts.option(QueryOptionKind.SELECT, ["UserName", "FirstName", "UserName"])
        assert opts.params() == {"$select": "UserName,FirstName"}

    def test_nested_expand(self):
        opts = QueryOptions()
        opts.option(QueryOptionKind.TOP, 10)
        friends = opts.expanded("Friends")
        friends.option(QueryOptionKind.SELECT, ["UserName"])
        friends.option(QueryOptionKind.TOP, 3)
        assert opts.params() == {
            "$expand": "Friends($select=UserName;$top=3)",
            "$top": "10",
        }
        # the nested options are scoped to the expand
        assert friends.params() == {"$select": "UserName", "$top": "3"}

    def test_expand_forms(self):
        opts = QueryOptions()
        opts.option(QueryOptionKind.EXPAND, "Friends, Trips")
        assert opts.params()["$expand"] == "Friends,Trips"
        opts.option(QueryOptionKind.EXPAND, {"Trips": {"select": ["Name"]}})
        assert opts.params()["$expand"] == "Trips($select=Name)"

    def test_orderby_and_apply(self):
        opts = QueryOptions()
        opts.option(QueryOptionKind.ORDER_BY, [("LastName", "asc"), "Age"])
        opts.option(QueryOptionKind.TRANSFORM, "filter(Age gt 3)")
        opts.option(QueryOptionKind.GROUP_BY, {
            "properties": ["Country"],
            "aggregate": {"Age": {"with": "average", "as": "AvgAge"}},
        })
        params = opts.params()
        assert params["$orderby"] == "LastName asc,Age"
        assert params["$apply"] == \
            "filter(Age gt 3)/groupby((Country),aggregate(Age with average as AvgAge))"

    def test_query_string_encoding(self):
        opts = QueryOptions()
        opts.option(QueryOptionKind.FILTER, {"LastName": "O'Brien"})
        opts.option(QueryOptionKind.CUSTOM, {"sap-client": "100"})
        assert opts.query_string() == "$filter=LastName%20eq%20'O''Brien'&sap-client=100"

    def test_clone_is_independent(self):
        opts = QueryOptions()
        opts.option(QueryOptionKind.SELECT, ["UserName"])
        opts.expanded("Friends").option(QueryOptionKind.TOP, 1)

        other = opts.clone()
        other.option(QueryOptionKind.SELECT, ["FirstName"])
        other.expanded("Friends").option(QueryOptionKind.TOP, 9)

        assert opts.params() == {"$select": "UserName", "$expand": "Friends($top=1)"}
        assert other.params() == {"$select": "FirstName", "$expand": "Friends($top=9)"}

    def test_expand_dict_with_options_instance_is_copied(self):
        nested = QueryOptions({QueryOptionKind.TOP: 1})
        opts = QueryOptions({QueryOptionKind.EXPAND: {"Friends": nested}})
        nested.option(QueryOptionKind.TOP, 7)
        assert opts.params()["$expand"] == "Friends($top=1)"

    def test_dict_round_trip(self):
        opts = QueryOptions()
        opts.option(QueryOptionKind.FILTER, {"Age": {"gt": 3}})
        opts.option(QueryOptionKind.ORDER_BY, [("Age", "desc")])
        opts.option(QueryOptionKind.SKIP, 20)
        opts.expanded("Trips").option(QueryOptionKind.SELECT, ["Name"])

        again = QueryOptions.from_dict(opts.to_dict())
        assert again == opts
        assert again.query_string() == opts.query_string()
