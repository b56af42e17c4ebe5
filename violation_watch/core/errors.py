class ViolationWatchError(Exception):
    """Base class for pipeline errors."""


class FetchError(ViolationWatchError):
    """Upstream datastore unreachable or answered with a non-2xx status."""


class InvalidResponseError(ViolationWatchError):
    """Upstream answered, but the payload is not the expected shape."""


class PersistenceError(ViolationWatchError):
    def __init__(self, message: str, saved_count: int = 0):
        super().__init__(message)
        self.saved_count = saved_count


class NotificationError(ViolationWatchError):
    def __init__(self, channel: str, message: str):
        super().__init__(f"{channel}: {message}")
        self.channel = channel


class CheckpointError(ViolationWatchError):
    pass


class CircuitOpenError(ViolationWatchError):
    def __init__(self, service: str):
        super().__init__(f"Circuit breaker is OPEN for {service}")
        self.service = service
