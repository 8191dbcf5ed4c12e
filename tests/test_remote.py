"""Tests for the REST file client, with httpx mocked by respx."""

import httpx
import pytest
import respx

from component_radar.errors import (
    MalformedResponse,
    OversizedResponse,
    RemoteForbidden,
    RemoteHTTPError,
    RemoteNotFound,
    RemoteRateLimited,
    RemoteTransportError,
    SkipReason,
)
from component_radar.remote import FigmaClient

API = "https://api.figma.com/v1"


def _file_body(name="Remote File") -> dict:
    return {
        "name": name,
        "document": {"id": "0:0", "type": "DOCUMENT", "children": [
            {"id": "0:1", "type": "CANVAS", "name": "Page 1", "children": []},
            "not a page",
        ]},
        "components": {"1:1": {"key": "K", "name": "Button"}},
    }


@pytest.mark.asyncio
async def test_fetch_file():
    with respx.mock:
        route = respx.get(f"{API}/files/abc").mock(return_value=httpx.Response(200, json=_file_body()))
        async with FigmaClient("secret") as client:
            remote = await client.fetch_file("abc")

    assert route.called
    assert route.calls.last.request.headers["X-Figma-Token"] == "secret"
    assert remote.key == "abc"
    assert remote.name == "Remote File"
    assert [p["name"] for p in remote.pages] == ["Page 1"]
    assert remote.manifest == {"1:1": {"key": "K", "name": "Button"}}


@pytest.mark.asyncio
@pytest.mark.parametrize("status,exc,reason", [
    (404, RemoteNotFound, SkipReason.NOT_FOUND),
    (403, RemoteForbidden, SkipReason.FORBIDDEN),
    (401, RemoteForbidden, SkipReason.FORBIDDEN),
    (500, RemoteHTTPError, SkipReason.HTTP_ERROR),
])
async def test_fetch_file_error_status(status, exc, reason):
    with respx.mock:
        respx.get(f"{API}/files/abc").mock(return_value=httpx.Response(status, json={"err": "nope"}))
        async with FigmaClient("secret") as client:
            with pytest.raises(exc) as info:
                await client.fetch_file("abc")

    assert info.value.reason is reason
    assert info.value.status_code == status
    assert info.value.file_key == "abc"


@pytest.mark.asyncio
async def test_rate_limited_carries_retry_after():
    with respx.mock:
        respx.get(f"{API}/files/abc").mock(
            return_value=httpx.Response(429, headers={"Retry-After": "30"}, text="slow down"))
        async with FigmaClient("secret") as client:
            with pytest.raises(RemoteRateLimited) as info:
                await client.fetch_file("abc")
    assert info.value.retry_after == 30.0


@pytest.mark.asyncio
@pytest.mark.parametrize("content", [b"", b"   ", b"{not json", b"[1, 2]"])
async def test_malformed_bodies(content):
    with respx.mock:
        respx.get(f"{API}/files/abc").mock(return_value=httpx.Response(200, content=content))
        async with FigmaClient("secret") as client:
            with pytest.raises(MalformedResponse):
                await client.fetch_file("abc")


@pytest.mark.asyncio
async def test_missing_document_is_malformed():
    with respx.mock:
        respx.get(f"{API}/files/abc").mock(return_value=httpx.Response(200, json={"name": "x"}))
        async with FigmaClient("secret") as client:
            with pytest.raises(MalformedResponse):
                await client.fetch_file("abc")


@pytest.mark.asyncio
async def test_oversized_body():
    with respx.mock:
        respx.get(f"{API}/files/abc").mock(return_value=httpx.Response(200, json=_file_body()))
        async with FigmaClient("secret", max_body_bytes=10) as client:
            with pytest.raises(OversizedResponse):
                await client.fetch_file("abc")


@pytest.mark.asyncio
async def test_oversized_stream_stops_reading_early():
    served = []

    async def body():
        for i in range(200):
            served.append(i)
            yield b"x" * 1024

    def handler(request):
        return httpx.Response(200, content=body())

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = FigmaClient("secret", max_body_bytes=1024, client=http)
        with pytest.raises(OversizedResponse) as info:
            await client.fetch_file("abc")
    assert info.value.reason is SkipReason.OVERSIZED
    assert len(served) < 200


@pytest.mark.asyncio
async def test_transport_error():
    with respx.mock:
        respx.get(f"{API}/files/abc").mock(side_effect=httpx.ConnectError("refused"))
        async with FigmaClient("secret") as client:
            with pytest.raises(RemoteTransportError) as info:
                await client.fetch_file("abc")
    assert info.value.reason is SkipReason.TRANSPORT


@pytest.mark.asyncio
async def test_list_project_files():
    body = {"files": [{"key": "f1", "name": "One"}, {"name": "no key"}, {"key": "f2"}]}
    with respx.mock:
        respx.get(f"{API}/projects/77/files").mock(return_value=httpx.Response(200, json=body))
        async with FigmaClient("secret") as client:
            assert await client.list_project_files("77") == ["f1", "f2"]


@pytest.mark.asyncio
async def test_custom_api_base_and_shared_client():
    async with httpx.AsyncClient() as http:
        with respx.mock:
            respx.get("https://figma.test/api/files/abc").mock(
                return_value=httpx.Response(200, json=_file_body("Mirror")))
            client = FigmaClient("secret", api_base="https://figma.test/api/", client=http)
            remote = await client.fetch_file("abc")
            await client.aclose()
        assert not http.is_closed
    assert remote.name == "Mirror"
