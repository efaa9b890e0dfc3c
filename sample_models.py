"""Sample metadata models and fake HTTP traffic shared by the unit tests."""

import asyncio
import json

import httpx
import requests

from odata_tools_lib.models import EntityProperty, EntitySet, EntityType, NavigationProperty, ODataMetadata

BASE_URL = "https://example.com/odata"


def customer_type() -> EntityType:
    return EntityType(
        name="Customer",
        namespace="Demo",
        properties=[
            EntityProperty(name="Id", type="Edm.Int32", nullable=False, is_key=True),
            EntityProperty(name="Name", type="Edm.String", nullable=False),
            EntityProperty(name="Email", type="Edm.String"),
            EntityProperty(name="Photo", type="Edm.Binary"),
        ],
        key_properties=["Id"],
        navigation_properties=[
            NavigationProperty(name="Orders", type="Collection(Demo.Order)"),
        ],
    )


def order_line_type() -> EntityType:
    return EntityType(
        name="OrderLine",
        namespace="Demo",
        properties=[
            EntityProperty(name="OrderId", type="Edm.Int32", nullable=False, is_key=True),
            EntityProperty(name="LineCode", type="Edm.String", nullable=False, is_key=True),
            EntityProperty(name="Quantity", type="Edm.Decimal"),
        ],
        key_properties=["OrderId", "LineCode"],
        navigation_properties=[
            NavigationProperty(name="Order", type="Demo.Order"),
        ],
    )


def order_type() -> EntityType:
    return EntityType(
        name="Order",
        namespace="Demo",
        properties=[
            EntityProperty(name="OrderId", type="Edm.Int32", nullable=False, is_key=True),
            EntityProperty(name="Total", type="Edm.Decimal"),
            EntityProperty(name="Shipped", type="Edm.Boolean"),
        ],
        key_properties=["OrderId"],
    )


def sample_metadata() -> ODataMetadata:
    types = [customer_type(), order_type(), order_line_type()]
    return ODataMetadata(
        entity_types={et.full_name: et for et in types},
        entity_sets={
            "Customers": EntitySet(name="Customers", entity_type="Demo.Customer"),
            "Orders": EntitySet(name="Orders", entity_type="Demo.Order"),
            "OrderLines": EntitySet(name="OrderLines", entity_type="Demo.OrderLine"),
        },
        service_url=BASE_URL,
        namespace="Demo",
    )


def customer_only_metadata() -> ODataMetadata:
    customer = EntityType(
        name="Customer",
        namespace="Demo",
        properties=[EntityProperty(name="Id", type="Edm.Int32", nullable=False, is_key=True)],
        key_properties=["Id"],
    )
    return ODataMetadata(
        entity_types={customer.full_name: customer},
        entity_sets={"Customers": EntitySet(name="Customers", entity_type="Demo.Customer")},
        service_url=BASE_URL,
    )


def make_response(status_code: int = 200, body=None, headers=None, text=None) -> httpx.Response:
    if body is not None:
        return httpx.Response(status_code, json=body, headers=headers)
    if text is not None:
        return httpx.Response(status_code, text=text, headers=headers)
    return httpx.Response(status_code, headers=headers)


def make_metadata_response(status_code: int = 200, text=None) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = (text or "").encode("utf-8")
    return response


class FakeService:
    """Async handler for httpx.MockTransport that replays queued outcomes.

    Each queued item is a response or an exception to raise. The last item is
    replayed once the queue is down to one entry. ``completed`` only records
    requests whose handler ran to the end, so an aborted request never shows up.
    """

    def __init__(self, *outcomes, delay: float = 0.0):
        self.outcomes = list(outcomes)
        self.delay = delay
        self.requests = []
        self.completed = []

    def queue(self, *outcomes):
        self.outcomes.extend(outcomes)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.outcomes:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        self.completed.append(request)
        return httpx.Response(outcome.status_code, headers=outcome.headers, content=outcome.content)


def make_client(service: FakeService) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(service))
