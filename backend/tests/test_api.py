"""Tests for the HTTP surface, wired to in-process services."""

import httpx
import pytest
import pytest_asyncio

from busradar.api import arrivals, pins, stops
from busradar.core.arrivals_engine import ArrivalsRefreshEngine
from busradar.core.catalog_store import StopCatalogStore
from busradar.core.lta_client import LtaClient
from busradar.core.pin_store import PinStore
from busradar.core.stop_selector import VisibleStopSelector, ZoomBudgetPolicy
from busradar.main import app
from busradar.schemas.stop import Stop

pytestmark = pytest.mark.asyncio

STOPS = [
    {"BusStopCode": "1", "RoadName": "Alpha Rd", "Description": "Alpha", "Latitude": 0.0, "Longitude": 0.0},
    {"BusStopCode": "2", "RoadName": "Beta Rd", "Description": "Beta", "Latitude": 0.001, "Longitude": 0.001},
    {"BusStopCode": "3", "RoadName": "Gamma Rd", "Description": "Gamma", "Latitude": 10.0, "Longitude": 10.0},
]


def lta_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/BusStops":
        return httpx.Response(200, json={"value": STOPS})
    code = request.url.params["BusStopCode"]
    if code == "3":
        return httpx.Response(500, text="down")
    return httpx.Response(200, json={
        "BusStopCode": code,
        "Services": [
            {"ServiceNo": "10", "Operator": "SBST", "NextBus": {"EstimatedArrival": "2026-01-01T12:03:00+08:00", "Load": "SEA", "Type": "DD", "Feature": "WAB"}},
            {"ServiceNo": "2", "Operator": "SBST", "NextBus": {"EstimatedArrival": "2026-01-01T12:05:00+08:00"}},
        ],
    })


@pytest_asyncio.fixture
async def services(tmp_path):
    lta = LtaClient(base_url="https://lta.test", account_key="k", max_retries=0,
                    transport=httpx.MockTransport(lta_handler))
    catalog_store = StopCatalogStore(lta, tmp_path / "stops.json", page_size=500)
    selector = VisibleStopSelector(policy=ZoomBudgetPolicy(), radius_m=200)
    engine = ArrivalsRefreshEngine(lta, refresh_interval=60)
    pin_store = PinStore(tmp_path / "preferences.json")
    catalog_store.changes.add_listener(selector.set_catalog)

    stops.catalog_store, stops.selector, stops.engine, stops.pins = catalog_store, selector, engine, pin_store
    arrivals.catalog_store, arrivals.engine = catalog_store, engine
    pins.pins = pin_store

    yield engine
    await engine.close()
    await lta.close()


@pytest_asyncio.fixture
async def client(services):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def test_health(client):
    resp = await client.get("/api/health")
    assert resp.json() == {"status": "ok"}


async def test_list_and_search_stops(client):
    resp = await client.get("/api/stops")
    assert [s["code"] for s in resp.json()] == ["1", "2", "3"]

    resp = await client.get("/api/stops/search", params={"q": "gamma"})
    assert [s["code"] for s in resp.json()] == ["3"]


async def test_visible_stops_submit_nearby_working_set(client, services):
    resp = await client.get("/api/stops/visible", params={
        "lat": 0.0, "lon": 0.0,
        "center_lat": 10.0, "center_lon": 10.0, "lat_span": 0.02, "lon_span": 0.02,
    })
    body = resp.json()
    assert [(s["code"], s["nearby"]) for s in body["stops"]] == [("1", True), ("2", True), ("3", False)]
    assert body["nearby_count"] == 2
    assert services.working_set == ["1", "2"]

    await services.wait_idle()
    resp = await client.get("/api/stops/1/arrivals")
    body = resp.json()
    assert body["loading"] is False
    assert [s["service_no"] for s in body["services"]] == ["2", "10"]
    first = body["services"][1]["arrivals"][0]
    assert first["load"] == "Seats Available"
    assert first["bus_type"] == "Double Deck"
    assert first["wheelchair_accessible"] is True


async def test_location_denied(client):
    resp = await client.get("/api/stops/visible", params={"lat": 0.0, "lon": 0.0, "location_allowed": False})
    assert resp.status_code == 403


async def test_failed_arrivals_show_empty_not_error(client, services):
    await client.get("/api/stops")
    resp = await client.get("/api/stops/3/arrivals")
    assert resp.json()["loading"] is True

    await services.wait_idle()
    resp = await client.get("/api/stops/3/arrivals")
    assert resp.status_code == 200
    assert resp.json() == {"stop_code": "3", "loading": False, "services": []}

    assert (await client.get("/api/stops/404/arrivals")).status_code == 404


async def test_pin_and_unpin(client):
    assert (await client.put("/api/pins/2")).json() == ["2"]
    assert (await client.put("/api/pins/2")).json() == ["2"]
    assert [s["code"] for s in (await client.get("/api/pins")).json()] == ["2"]
    assert [s["pinned"] for s in (await client.get("/api/stops")).json()] == [False, True, False]
    assert (await client.delete("/api/pins/2")).json() == []
    assert (await client.put("/api/pins/nope")).status_code == 404


async def test_unpin_code_missing_from_catalog(client):
    assert (await client.put("/api/pins/1")).json() == ["1"]
    # A stop that was pinned earlier and has since been decommissioned
    await pins.pins.pin(Stop(code="DEAD", lat=0.0, lon=0.0))

    resp = await client.delete("/api/pins/DEAD")
    assert resp.status_code == 200
    assert resp.json() == ["1"]
