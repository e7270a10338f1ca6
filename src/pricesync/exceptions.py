"""Exception types shared by the transport, fetcher and caches."""


class PriceSyncError(Exception):
    """Base class for all pricesync errors."""


class UpstreamError(PriceSyncError):
    """A failed call to the market-data provider.

    ``status`` is the HTTP status code, or None for timeouts, connection
    errors, unreadable bodies and requests that could not be built.
    ``transient`` overrides the status-based retry decision when set.
    """

    def __init__(self, message: str, status: int | None = None, transient: bool | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.message = message
        self._transient = transient

    @property
    def is_transient(self) -> bool:
        """Rate limits and network-class failures are worth retrying."""
        if self._transient is not None:
            return self._transient
        return self.status == 429 or self.status is None

    @property
    def is_not_found(self) -> bool:
        return self.status == 404

    def __repr__(self) -> str:
        return f"UpstreamError(status={self.status!r}, message={self.message!r})"


class ComparisonUnavailableError(PriceSyncError):
    """Both series of a pair comparison failed to load."""

    def __init__(self, coin1: str, coin2: str) -> None:
        super().__init__(f"Both coin fetches failed for {coin1} / {coin2}")
        self.coin1 = coin1
        self.coin2 = coin2


class SnapshotUnavailableError(PriceSyncError):
    """Market snapshot refresh failed and there is no previous snapshot to serve."""
