from typing import Optional


class InsightsException(Exception):
    """Base exception for all insights-related errors."""
    pass

class ConfigError(InsightsException):
    """Raised when a required setting is missing or malformed."""
    pass

class StorageError(InsightsException):
    """Raised when a database operation fails."""
    pass

class NotFoundError(StorageError):
    """Raised when no live row matches the requested identity."""
    def __init__(self, table: str, entity_id: str):
        self.table = table
        self.entity_id = entity_id
        super().__init__(f"{table}: no row with id {entity_id}")

class ExternalApiError(InsightsException):
    """Base for failures talking to the upstream metrics API."""
    pass

class TransportError(ExternalApiError):
    """Raised on network/TLS failure or a non-success HTTP status."""
    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)

class DecodeError(ExternalApiError):
    """Raised when a response body cannot be parsed into the expected shape."""
    pass

class TimerError(InsightsException):
    """Raised when the scheduler's timer itself fails."""
    pass
