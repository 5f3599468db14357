"""Exceptions raised by the matching core."""


class LeaseHubError(Exception):
    """Base class for matching-core errors."""


class ListingNotFoundError(LeaseHubError):
    """Raised when a demand or property listing id does not resolve."""

    def __init__(self, kind: str, listing_id: str):
        self.kind = kind
        self.listing_id = listing_id
        super().__init__(f"{kind} listing {listing_id} not found")


class MatchNotFoundError(LeaseHubError):
    """Raised when a match id does not resolve."""

    def __init__(self, match_id: str):
        self.match_id = match_id
        super().__init__(f"Match {match_id} not found")


class ConnectionRejectedError(LeaseHubError):
    """Raised when a realtime connection fails authentication.

    ``reason`` is shown to the client verbatim, so the two auth failure
    modes must stay distinguishable.
    """

    TOKEN_REQUIRED = "Authentication token required"
    TOKEN_INVALID = "Invalid authentication token"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class PullTimeoutError(LeaseHubError):
    """Raised when a current-state pull exceeds its time bound."""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Current state request timed out after {timeout_seconds}s")
