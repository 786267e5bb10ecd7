"""Error taxonomy shared by the catalog, arrivals and HTTP layers."""


class BusRadarError(RuntimeError):
    """Base class for errors surfaced by busradar services."""


class NetworkFailure(BusRadarError):
    """Transport failure or a non-200 response from the LTA API."""

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @classmethod
    def from_status(cls, status_code: int, body: str | None) -> "NetworkFailure":
        return cls(f"Server error ({status_code})", status_code=status_code, body=body)


class DecodeFailure(BusRadarError):
    """Response body was not the JSON shape we expect."""


class PermissionDenied(BusRadarError):
    """Location access is unavailable."""

    def __init__(self, message: str = "Location access denied. Please enable it in Settings.") -> None:
        super().__init__(message)
