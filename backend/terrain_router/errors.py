"""
Routing Errors

Every error carries the HTTP status the API layer answers with.
"""


class RoutingError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 502

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(RoutingError):
    """Missing or malformed request parameters."""

    status_code = 400


class NoRouteFoundError(RoutingError):
    """Search exhausted without reaching the goal (terrain) or upstream found nothing (road)."""

    status_code = 404


class UpstreamError(RoutingError):
    """Elevation or road-graph service unreachable or answering with an error."""

    status_code = 502


class RouteCancelledError(RoutingError):
    """Computation stopped because the deadline passed or the client went away."""

    status_code = 504
