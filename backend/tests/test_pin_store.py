"""Tests for PinStore."""

import asyncio
import datetime

import orjson
import pytest

from busradar.core.catalog_store import StopCatalog
from busradar.core.pin_store import STORAGE_KEY, PinStore
from busradar.schemas.stop import Stop

pytestmark = pytest.mark.asyncio


def make_stop(code: str) -> Stop:
    return Stop(code=code, road_name="Road", description=f"Stop {code}", lat=1.3, lon=103.8)


def make_catalog(*codes: str) -> StopCatalog:
    return StopCatalog.from_stops(
        [make_stop(c) for c in codes],
        datetime.datetime(2026, 1, 1, tzinfo=datetime.timezone.utc),
    )


async def test_pin_is_idempotent_and_persisted(tmp_path):
    path = tmp_path / "preferences.json"
    store = PinStore(path)
    await store.load()

    await store.pin(make_stop("01012"))
    await store.pin(make_stop("01012"))
    await store.pin(make_stop("10009"))
    assert store.codes == ["01012", "10009"]
    assert store.is_pinned("01012")

    saved = orjson.loads(path.read_bytes())
    assert saved[STORAGE_KEY] == ["01012", "10009"]

    reloaded = PinStore(path)
    await reloaded.load()
    assert reloaded.codes == ["01012", "10009"]


async def test_unpin_restores_previous_state(tmp_path):
    store = PinStore(tmp_path / "preferences.json")
    await store.pin(make_stop("A"))
    before = store.codes

    await store.pin(make_stop("B"))
    await store.unpin(make_stop("B"))
    assert store.codes == before

    # Unpinning something never pinned is a no-op
    await store.unpin(make_stop("Z"))
    assert store.codes == before


async def test_toggle(tmp_path):
    store = PinStore(tmp_path / "preferences.json")
    assert await store.toggle(make_stop("A")) is True
    assert await store.toggle(make_stop("A")) is False
    assert store.codes == []


async def test_pinned_stops_drops_codes_missing_from_catalog(tmp_path):
    store = PinStore(tmp_path / "preferences.json")
    for code in ("C", "GONE", "A"):
        await store.pin(make_stop(code))

    pinned = store.pinned_stops(make_catalog("A", "B", "C"))
    assert [s.code for s in pinned] == ["C", "A"]


async def test_other_preferences_are_preserved(tmp_path):
    path = tmp_path / "preferences.json"
    path.write_bytes(orjson.dumps({"showBusType": False, STORAGE_KEY: ["A", "A", "B"]}))
    store = PinStore(path)
    await store.load()
    assert store.codes == ["A", "B"]

    await store.unpin(make_stop("A"))
    saved = orjson.loads(path.read_bytes())
    assert saved == {"showBusType": False, STORAGE_KEY: ["B"]}


async def test_unwritable_location_is_not_fatal(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("")
    store = PinStore(blocker / "preferences.json")
    await store.pin(make_stop("A"))
    assert store.codes == ["A"]


async def test_concurrent_pins_all_reach_disk(tmp_path):
    path = tmp_path / "preferences.json"
    store = PinStore(path)
    await asyncio.gather(*(store.pin(make_stop(str(i))) for i in range(10)))
    await asyncio.gather(store.unpin(make_stop("3")), store.pin(make_stop("42")))

    reloaded = PinStore(path)
    await reloaded.load()
    assert reloaded.codes == store.codes
    assert "3" not in reloaded.codes
    assert reloaded.codes[-1] == "42"


async def test_unpin_by_code_for_decommissioned_stop(tmp_path):
    path = tmp_path / "preferences.json"
    store = PinStore(path)
    await store.pin(make_stop("GONE"))
    await store.pin(make_stop("A"))

    await store.unpin_code("GONE")
    assert store.codes == ["A"]
    assert orjson.loads(path.read_bytes())[STORAGE_KEY] == ["A"]
