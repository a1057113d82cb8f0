"""
Example: Basic OData usage with odata_models
============================================

This example walks the public TripPin service: metadata discovery, paging
through a collection, and reading / updating a single entity.
"""

import asyncio
import logging

from odata_models import ConnectionContext, ODataConfig, ODataService, ODataSession


TRIPPIN = "https://services.odata.org/V4/TripPinServiceRW/"


async def example_basic_query():
    """Discover entity sets, then page through People."""

    cfg = ODataConfig(
        base_url=TRIPPIN,
        verify=True,
    )

    with ODataSession(cfg) as sess:
        api = ODataService(sess, base_url=cfg.base_url)

        # Discover what's available
        await api.load_metadata()
        print("Entity Sets:", api.list_entity_sets())
        print("Fields:", api.list_fields("People"))

        people = api.collection("People")
        people.select(["UserName", "FirstName", "LastName"])
        people.filter({"FirstName": {"startswith": "S"}})
        people.order_by([("LastName", "asc")])
        people.set_page_size(5)

        await people.fetch()
        print("Page:", people.page_state)
        for person in people:
            print(" ", person["UserName"], person["FirstName"], person["LastName"])

        if people.page_state.total_pages and people.page_state.total_pages > 1:
            await people.get_next_page()
            print("Page:", people.page_state)


async def example_model():
    """Read one person, follow a relation, then change a field."""
    # Reads from environment variables: ODATA_BASE_URL, ODATA_USER, ODATA_PASS
    with ConnectionContext(anonymous=True) as conn:
        api = conn.get_service()
        await api.load_metadata()

        russell = await api.fetch_model("People", "russellwhyte")
        print("Person:", russell)

        friends = russell.related_collection("Friends")
        await friends.fetch()
        print("Friends:", [f["UserName"] for f in friends])

        russell.set(MiddleName="R")
        await russell.save()
        print("New version token:", russell.etag)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    # Uncomment the example you want to run
    # asyncio.run(example_basic_query())
    # asyncio.run(example_model())

    print("Set up your environment variables and uncomment an example to run.")
    print("Required: ODATA_BASE_URL (plus ODATA_USER / ODATA_PASS or ODATA_BEARER_TOKEN)")
