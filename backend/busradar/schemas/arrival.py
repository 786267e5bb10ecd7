"""LTA BusArrival v3 payload models and the helpers used to render them."""

import datetime
import re

from pydantic import BaseModel, ConfigDict, Field

LOAD_DESCRIPTIONS = {
    "SEA": "Seats Available",
    "SDA": "Standing Available",
    "LSD": "Limited Standing",
}

BUS_TYPES = {
    "SD": "Single Deck",
    "DD": "Double Deck",
    "BD": "Bendy",
}

_DIGITS = re.compile(r"(\d+)")

# DataMall timestamps are Singapore local time (UTC+8)
_SGT_TZ = datetime.timezone(datetime.timedelta(hours=8))


def parse_estimated_arrival(raw: str | None) -> datetime.datetime | None:
    """Parse an ISO-8601 timestamp, with or without fractional seconds."""
    if not raw:
        return None
    try:
        parsed = datetime.datetime.fromisoformat(raw)
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=_SGT_TZ)
    return parsed


def service_sort_key(service_no: str) -> tuple:
    """Natural, case-insensitive ordering: "2" < "10" < "10e" < "NR1"."""
    parts = _DIGITS.split(service_no)
    # re.split with a capture group alternates text, digits, text, ...
    key = [int(p) if i % 2 else p.casefold() for i, p in enumerate(parts)]
    return (key, service_no)


class NextBus(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    estimated_arrival: str = Field(default="", alias="EstimatedArrival")
    origin_code: str | None = Field(default=None, alias="OriginCode")
    destination_code: str | None = Field(default=None, alias="DestinationCode")
    latitude: str | None = Field(default=None, alias="Latitude")
    longitude: str | None = Field(default=None, alias="Longitude")
    visit_number: str | None = Field(default=None, alias="VisitNumber")
    load: str | None = Field(default=None, alias="Load")
    feature: str | None = Field(default=None, alias="Feature")
    type: str | None = Field(default=None, alias="Type")

    @property
    def arrival_time(self) -> datetime.datetime | None:
        return parse_estimated_arrival(self.estimated_arrival)

    def minutes_away(self, now: datetime.datetime | None = None) -> int | None:
        arrival = self.arrival_time
        if arrival is None:
            return None
        if now is None:
            now = datetime.datetime.now(datetime.timezone.utc)
        minutes = int((arrival - now).total_seconds() / 60)
        return max(0, minutes)

    def arrival_text(self, now: datetime.datetime | None = None) -> str:
        minutes = self.minutes_away(now)
        if minutes is None:
            return "-"
        if minutes == 0:
            return "Arr"
        return str(minutes)

    @property
    def load_description(self) -> str:
        return LOAD_DESCRIPTIONS.get(self.load or "", "Unknown")

    @property
    def bus_type(self) -> str:
        return BUS_TYPES.get(self.type or "", "")

    @property
    def is_wheelchair_accessible(self) -> bool:
        return self.feature == "WAB"


class BusService(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    service_no: str = Field(alias="ServiceNo")
    operator: str = Field(default="", alias="Operator")
    next_bus: NextBus = Field(alias="NextBus")
    next_bus_2: NextBus | None = Field(default=None, alias="NextBus2")
    next_bus_3: NextBus | None = Field(default=None, alias="NextBus3")

    @property
    def upcoming(self) -> list[NextBus]:
        """Predicted arrivals that carry a timestamp, soonest first."""
        buses = [self.next_bus, self.next_bus_2, self.next_bus_3]
        return [b for b in buses if b is not None and b.estimated_arrival]


class BusArrivalResponse(BaseModel):
    bus_stop_code: str = Field(alias="BusStopCode")
    services: list[BusService] = Field(default_factory=list, alias="Services")


def sort_services(services: list[BusService]) -> list[BusService]:
    return sorted(services, key=lambda s: service_sort_key(s.service_no))


class ArrivalRow(BaseModel):
    minutes: int | None = None
    text: str
    estimated_arrival: str
    load: str | None = None
    bus_type: str | None = None
    wheelchair_accessible: bool | None = None


class ServiceArrivals(BaseModel):
    service_no: str
    operator: str
    arrivals: list[ArrivalRow]


class StopArrivals(BaseModel):
    stop_code: str
    loading: bool
    services: list[ServiceArrivals]
