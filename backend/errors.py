"""
Error types raised by the watering log core.

Every error carries a message fit to show the user; none of them is retried
by the core. The HTTP layer maps each type to a status code.
"""


class PlantLogError(Exception):
    """Base class for errors surfaced to the caller"""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigurationError(PlantLogError):
    """Required settings (channel id or API keys) are missing"""

    status_code = 400


class ValidationError(PlantLogError):
    """Caller supplied malformed input"""

    status_code = 400


class ProviderUnavailable(PlantLogError):
    """ThingSpeak could not be reached or returned a malformed payload"""

    status_code = 502


class ProviderRejected(PlantLogError):
    """ThingSpeak refused a write, usually because of its rate limit"""

    status_code = 429

    def __init__(self, message: str, entry=None):
        self.entry = entry
        super().__init__(message)


class StoreFailure(PlantLogError):
    """The database rejected a read or write"""

    status_code = 500

    def __init__(self, message: str, operation: str | None = None):
        self.operation = operation
        super().__init__(message)
