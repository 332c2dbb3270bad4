"""Error types raised by the comparison core."""


class CompareError(Exception):
    """Base class for all comparison errors."""


class FetchFailed(CompareError):
    """An upstream fetch for a series or a time range failed.

    Attributes:
        target: Series key, or a ``(kind, start, end)`` tuple for range fetches
        reason: Human-readable cause (usually the wrapped exception text)
    """

    def __init__(self, target, reason: str = ""):
        self.target = target
        self.reason = reason
        message = f"Fetch failed for {target}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InvalidRange(CompareError, ValueError):
    """Requested time span has min > max."""

    def __init__(self, start: int, end: int):
        self.start = start
        self.end = end
        super().__init__(f"Invalid range: start {start} > end {end}")
