from pydantic import BaseModel, ConfigDict, Field


class Stop(BaseModel):
    """A bus stop as published by the LTA BusStops endpoint.

    Identity is the stop code: two records with the same code compare equal
    and hash the same even if their other attributes differ.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    code: str = Field(alias="BusStopCode")
    road_name: str = Field(default="", alias="RoadName")
    description: str = Field(default="", alias="Description")
    lat: float = Field(alias="Latitude")
    lon: float = Field(alias="Longitude")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Stop):
            return NotImplemented
        return self.code == other.code

    def __hash__(self) -> int:
        return hash(self.code)


class BusStopsResponse(BaseModel):
    value: list[Stop]


class StopView(BaseModel):
    code: str
    road_name: str
    description: str
    lat: float
    lon: float
    distance_m: float | None = None
    nearby: bool = False
    pinned: bool = False


class VisibleStops(BaseModel):
    stops: list[StopView]
    nearby_count: int
