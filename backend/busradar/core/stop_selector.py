"""Pick the stops worth showing: nearby ones first, then the map viewport.

Nearby stops are those within a straight-line radius of the user. Viewport
stops are those inside the map's bounding box (plain degree arithmetic, not
a geodesic test), capped by a budget that shrinks as the map zooms out.
"""

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass

from busradar.config import settings
from busradar.core.events import ChangeNotifier
from busradar.schemas.stop import Stop

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6_371_000
SEARCH_RESULT_LIMIT = 50


def distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters (haversine)."""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (math.sin(dlat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(dlon / 2) ** 2)
    return EARTH_RADIUS_M * 2 * math.asin(math.sqrt(min(1.0, a)))


@dataclass(frozen=True)
class Position:
    lat: float
    lon: float

    def distance_to(self, stop: Stop) -> float:
        return distance_m(self.lat, self.lon, stop.lat, stop.lon)


@dataclass(frozen=True)
class ViewportRegion:
    """Map region: center plus full latitude/longitude spans in degrees."""

    center_lat: float
    center_lon: float
    lat_span: float
    lon_span: float

    @property
    def center(self) -> Position:
        return Position(self.center_lat, self.center_lon)

    @property
    def min_span(self) -> float:
        return min(self.lat_span, self.lon_span)

    def contains(self, lat: float, lon: float) -> bool:
        half_lat = self.lat_span / 2
        half_lon = self.lon_span / 2
        return (self.center_lat - half_lat <= lat <= self.center_lat + half_lat and
                self.center_lon - half_lon <= lon <= self.center_lon + half_lon)


@dataclass(frozen=True)
class ZoomBudgetPolicy:
    """Three-tier step function from viewport span to max stops shown."""

    zoomed_in_span: float = 0.01
    medium_zoom_span: float = 0.05
    max_zoomed_in: int = 50
    max_medium_zoom: int = 30
    max_zoomed_out: int = 15

    @classmethod
    def from_settings(cls) -> "ZoomBudgetPolicy":
        return cls(
            zoomed_in_span=settings.zoomed_in_span,
            medium_zoom_span=settings.medium_zoom_span,
            max_zoomed_in=settings.max_stops_zoomed_in,
            max_medium_zoom=settings.max_stops_medium_zoom,
            max_zoomed_out=settings.max_stops_zoomed_out,
        )

    def for_span(self, span: float) -> int:
        if span < self.zoomed_in_span:
            return self.max_zoomed_in
        if span < self.medium_zoom_span:
            return self.max_medium_zoom
        return self.max_zoomed_out


def nearby_stops(stops: Iterable[Stop], position: Position, radius_m: float) -> list[Stop]:
    """Stops within ``radius_m`` of ``position``, nearest first."""
    with_dist = [(position.distance_to(s), s) for s in stops]
    within = [(d, s) for d, s in with_dist if d <= radius_m]
    within.sort(key=lambda pair: pair[0])
    return [s for _, s in within]


def viewport_stops(stops: Iterable[Stop], region: ViewportRegion, budget: int | None = None) -> list[Stop]:
    """Stops inside ``region``, nearest to its center first, at most ``budget``."""
    center = region.center
    inside = [(center.distance_to(s), s) for s in stops if region.contains(s.lat, s.lon)]
    inside.sort(key=lambda pair: pair[0])
    result = [s for _, s in inside]
    if budget is not None:
        result = result[:max(budget, 0)]
    return result


def select_visible_stops(
    stops: Iterable[Stop],
    position: Position | None,
    radius_m: float,
    region: ViewportRegion | None,
    policy: ZoomBudgetPolicy,
) -> list[Stop]:
    """Combine nearby and viewport stops into one ordered list without duplicates.

    Nearby stops always qualify. Viewport stops are appended, skipping codes
    already present, until the whole list reaches the zoom budget.
    """
    stops = list(stops)
    result: list[Stop] = []
    seen: set[str] = set()

    if position is not None:
        for stop in nearby_stops(stops, position, radius_m):
            if stop.code not in seen:
                result.append(stop)
                seen.add(stop.code)

    if region is not None:
        budget = policy.for_span(region.min_span)
        for stop in viewport_stops(stops, region):
            if len(result) >= budget:
                break
            if stop.code not in seen:
                result.append(stop)
                seen.add(stop.code)

    return result


def search_stops(
    stops: Iterable[Stop],
    query: str,
    position: Position | None = None,
    limit: int = SEARCH_RESULT_LIMIT,
) -> list[Stop]:
    """Case-insensitive match on description, road name or code."""
    query = query.strip().lower()
    if not query:
        return []
    matches = []
    for stop in stops:
        if (query in stop.description.lower() or
                query in stop.road_name.lower() or
                query in stop.code.lower()):
            matches.append(stop)
            if len(matches) >= limit:
                break
    if position is not None:
        matches.sort(key=position.distance_to)
    return matches


class VisibleStopSelector:
    """Holds the selection inputs and keeps the visible stop list current.

    Every setter recomputes the list and notifies listeners with it. Callers
    should feed viewport changes only when the map camera settles.
    """

    def __init__(
        self,
        policy: ZoomBudgetPolicy | None = None,
        radius_m: float | None = None,
    ) -> None:
        self.policy = policy or ZoomBudgetPolicy.from_settings()
        self.radius_m = float(settings.default_search_radius if radius_m is None else radius_m)
        self.position: Position | None = None
        self.region: ViewportRegion | None = None
        self._stops: list[Stop] = []
        self._visible: list[Stop] = []
        self.changes = ChangeNotifier()

    @property
    def visible_stops(self) -> list[Stop]:
        return list(self._visible)

    @property
    def nearby_stops(self) -> list[Stop]:
        """Visible stops that are within the search radius of the user."""
        if self.position is None:
            return []
        return [s for s in self._visible if self.position.distance_to(s) <= self.radius_m]

    def set_catalog(self, stops: Iterable[Stop]) -> None:
        self._stops = list(stops)
        self._recompute()

    def set_position(self, position: Position | None) -> None:
        if position == self.position:
            return
        self.position = position
        self._recompute()

    def set_radius(self, radius_m: float) -> None:
        if radius_m == self.radius_m:
            return
        self.radius_m = float(radius_m)
        self._recompute()

    def set_region(self, region: ViewportRegion | None) -> None:
        if region == self.region:
            return
        self.region = region
        self._recompute()

    def search(self, query: str) -> list[Stop]:
        return search_stops(self._stops, query, self.position)

    def _recompute(self) -> None:
        self._visible = select_visible_stops(
            self._stops, self.position, self.radius_m, self.region, self.policy,
        )
        logger.debug(
            "Visible stops recomputed: %d visible, %d nearby",
            len(self._visible), len(self.nearby_stops),
        )
        self.changes.notify(self.visible_stops)
