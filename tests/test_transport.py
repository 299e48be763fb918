import json

import httpx
import pytest
from kungfu import Ok

from storefront.config import StorefrontConfig
from storefront.errors import (
    ConflictError,
    NotFoundError,
    ServerError,
    SessionExpired,
    TransientNetworkError,
    ValidationError,
)
from storefront.transport import HttpTransport, classify


@pytest.mark.parametrize(
    ("status", "kind"),
    [
        (400, ValidationError),
        (422, ValidationError),
        (401, SessionExpired),
        (404, NotFoundError),
        (409, ConflictError),
        (429, ServerError),
        (500, ServerError),
        (502, TransientNetworkError),
        (503, TransientNetworkError),
        (504, TransientNetworkError),
    ],
)
def test_classify_status(status, kind):
    error = classify(httpx.Response(status, json={"message": "nope"})).unwrap_err()

    assert type(error) is kind
    assert error.status == status
    assert error.message == "nope"


class TestClassify:
    def test_success_body(self):
        assert classify(httpx.Response(200, json={"items": []})) == Ok({"items": []})

    def test_empty_body(self):
        assert classify(httpx.Response(204)) == Ok(None)

    def test_validation_field(self):
        response = httpx.Response(400, json={"message": "Only 2 items available in stock", "field": "quantity"})

        error = classify(response).unwrap_err()

        assert error.field == "quantity"
        assert error.payload["field"] == "quantity"

    def test_message_fallbacks(self):
        assert classify(httpx.Response(500, json={"error": "db down"})).unwrap_err().message == "db down"
        assert classify(httpx.Response(500, text="Bad Gateway")).unwrap_err().message == "Bad Gateway"
        assert classify(httpx.Response(500)).unwrap_err().message == "Request failed: 500 Internal Server Error"

    def test_only_gateway_errors_are_transient(self):
        assert classify(httpx.Response(503)).unwrap_err().transient
        assert not classify(httpx.Response(500)).unwrap_err().transient


def transport_for(handler) -> HttpTransport:
    return HttpTransport.from_config(
        StorefrontConfig().with_base_url("http://shop.test/api"),
        transport=httpx.MockTransport(handler),
    )


class TestHttpTransport:
    async def test_request_shape(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        transport = transport_for(handler)
        result = await transport.put("/cart/items/item_1", {"quantity": 3}, headers={"x-session-id": "sess_1"})
        await transport.aclose()

        assert result == Ok({"ok": True})
        assert seen[0].url == "http://shop.test/api/cart/items/item_1"
        assert seen[0].headers["x-session-id"] == "sess_1"
        assert json.loads(seen[0].content) == {"quantity": 3}

    async def test_connect_error_was_never_sent(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        transport = transport_for(handler)
        error = (await transport.post("/cart/items", {})).unwrap_err()
        await transport.aclose()

        assert isinstance(error, TransientNetworkError)
        assert error.request_sent is False

    async def test_read_timeout_may_have_been_sent(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        transport = transport_for(handler)
        error = (await transport.get("/cart")).unwrap_err()
        await transport.aclose()

        assert error.timed_out
        assert error.request_sent is True
