"""Tests for the JSON HTTP client against a local aiohttp server."""

import asyncio

import aiohttp
import pytest
from aiohttp import test_utils, web

from miningstats.services.errors import UpstreamError
from miningstats.services.http_client import JsonHttpClient


async def ok_handler(request):
    return web.json_response({
        "query": request.query.get("x"),
        "api_key": request.headers.get("api-key"),
    })


async def echo_handler(request):
    return web.json_response({"echo": await request.json()})


async def unavailable_handler(request):
    return web.json_response({"error": "maintenance"}, status=503)


async def html_handler(request):
    return web.Response(text="<html>rate limited</html>", content_type="text/html")


async def undecodable_handler(request):
    return web.Response(body=b'{"a": "\xff\xfe"}', content_type="application/json", charset="utf-8")


async def slow_handler(request):
    await asyncio.sleep(0.5)
    return web.json_response({})


@pytest.fixture
async def server():
    """Local upstream stand-in."""
    app = web.Application()
    app.router.add_get("/ok", ok_handler)
    app.router.add_post("/echo", echo_handler)
    app.router.add_get("/unavailable", unavailable_handler)
    app.router.add_get("/html", html_handler)
    app.router.add_get("/undecodable", undecodable_handler)
    app.router.add_get("/slow", slow_handler)

    server = test_utils.TestServer(app)
    await server.start_server()
    yield server
    await server.close()


@pytest.fixture
async def client():
    http = JsonHttpClient(timeout_seconds=2)
    yield http
    await http.close()


@pytest.mark.asyncio
async def test_get_json_passes_params_and_headers(server, client):
    data = await client.get_json("test", str(server.make_url("/ok")), params={"x": "1"}, headers={"api-key": "k"})
    assert data == {"query": "1", "api_key": "k"}


@pytest.mark.asyncio
async def test_post_json(server, client):
    data = await client.post_json("test", str(server.make_url("/echo")), {"method": "get_info"})
    assert data == {"echo": {"method": "get_info"}}


@pytest.mark.asyncio
async def test_non_2xx_becomes_upstream_error(server, client):
    with pytest.raises(UpstreamError) as exc_info:
        await client.get_json("nownodes", str(server.make_url("/unavailable")))
    assert exc_info.value.status == 503
    assert exc_info.value.provider == "nownodes"
    assert exc_info.value.code == "fetch_failed"


@pytest.mark.asyncio
async def test_malformed_json_becomes_upstream_error(server, client):
    with pytest.raises(UpstreamError) as exc_info:
        await client.get_json("minerstat", str(server.make_url("/html")))
    assert "malformed JSON" in exc_info.value.message


@pytest.mark.asyncio
async def test_undecodable_body_becomes_upstream_error(server, client):
    with pytest.raises(UpstreamError) as exc_info:
        await client.get_json("minerstat", str(server.make_url("/undecodable")))
    assert "malformed JSON" in exc_info.value.message
    assert exc_info.value.status == 200


@pytest.mark.asyncio
async def test_timeout_becomes_upstream_error(server):
    http = JsonHttpClient(timeout_seconds=0.1)
    try:
        with pytest.raises(UpstreamError) as exc_info:
            await http.get_json("slow", str(server.make_url("/slow")))
    finally:
        await http.close()
    assert "timed out" in exc_info.value.message


@pytest.mark.asyncio
async def test_connection_failure_becomes_upstream_error(client):
    with pytest.raises(UpstreamError) as exc_info:
        await client.get_json("down", "http://127.0.0.1:1/")
    assert exc_info.value.status is None


@pytest.mark.asyncio
async def test_shared_session_is_not_closed(server):
    session = aiohttp.ClientSession()
    try:
        http = JsonHttpClient(session=session)
        await http.get_json("test", str(server.make_url("/ok")))
        await http.close()
        assert not session.closed
    finally:
        await session.close()
