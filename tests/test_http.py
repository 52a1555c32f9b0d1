"""Tests for the authenticated GIS service fetcher."""

from __future__ import annotations

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer as GisTestServer

from ohdsi.cohortmap import TransportError
from ohdsi.cohortmap._http import AuthenticatedFetch


def _app(seen: dict) -> web.Application:
    async def bounds(request: web.Request) -> web.Response:
        seen.update({k.lower(): v for k, v in request.headers.items()})
        return web.json_response({"northLatitude": 1, "southLatitude": 0, "eastLongitude": 1, "westLongitude": 0})

    async def broken(request: web.Request) -> web.Response:
        return web.Response(text="<html>not json</html>", content_type="text/html")

    async def check(request: web.Request) -> web.Response:
        status = int(request.match_info["status"])
        if 300 <= status < 400:
            raise web.HTTPFound("/gis/ok/200")
        return web.Response(status=status)

    app = web.Application()
    app.router.add_get("/gis/bounds", bounds)
    app.router.add_get("/gis/broken", broken)
    app.router.add_get("/gis/ok/{status}", check)
    return app


@pytest.mark.asyncio
async def test_query_sends_credential_and_location() -> None:
    seen: dict = {}
    async with GisTestServer(_app(seen)) as server:
        fetch = AuthenticatedFetch(token="abc123", action_location="http://atlas/#/cohortdefinition/42")
        data = await fetch.query(str(server.make_url("/gis/bounds")))

    assert data["northLatitude"] == 1
    assert seen["authorization"] == "Bearer abc123"
    assert seen["action-location"] == "http://atlas/#/cohortdefinition/42"


@pytest.mark.asyncio
async def test_query_without_token_sends_no_authorization() -> None:
    seen: dict = {}
    async with GisTestServer(_app(seen)) as server:
        await AuthenticatedFetch().query(str(server.make_url("/gis/bounds")))

    assert "authorization" not in seen


@pytest.mark.asyncio
async def test_query_invalid_json_raises_transport_error() -> None:
    async with GisTestServer(_app({})) as server:
        url = str(server.make_url("/gis/broken"))
        with pytest.raises(TransportError) as excinfo:
            await AuthenticatedFetch(token="t").query(url)

    assert excinfo.value.url == url


@pytest.mark.asyncio
async def test_query_error_status_raises_transport_error() -> None:
    async with GisTestServer(_app({})) as server:
        with pytest.raises(TransportError) as excinfo:
            await AuthenticatedFetch(token="t").query(str(server.make_url("/gis/ok/503")))

    assert excinfo.value.status == 503


@pytest.mark.asyncio
@pytest.mark.parametrize(("status", "expected"), [(200, True), (204, False), (302, False), (404, False), (500, False)])
async def test_check_status(status: int, expected: bool) -> None:
    async with GisTestServer(_app({})) as server:
        result = await AuthenticatedFetch(token="t").check_status(str(server.make_url(f"/gis/ok/{status}")))

    assert result is expected


@pytest.mark.asyncio
async def test_unreachable_host_raises_transport_error() -> None:
    with pytest.raises(TransportError):
        await AuthenticatedFetch(timeout=2).check_status("http://127.0.0.1:9/gis/source/check/X")
