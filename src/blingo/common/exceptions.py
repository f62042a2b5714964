"""Blingo exception hierarchy."""


class BlingoError(Exception):
    """Base exception for all Blingo errors."""

    def __init__(self, message: str = "", code: str = "BLINGO_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class InvalidApiKeyError(BlingoError):
    """Raised when an API key is missing, unknown, or cannot be checked."""

    def __init__(self, message: str = "Invalid API key"):
        super().__init__(message, code="INVALID_KEY")


class RateLimitExceededError(BlingoError):
    """Raised when an API key has used up its request quota."""

    def __init__(self, message: str = "Rate limit exceeded", usage: int = 0, limit: int = 0):
        self.usage = usage
        self.limit = limit
        super().__init__(message, code="RATE_LIMITED")


class StoreNotConfiguredError(BlingoError):
    """Raised by the key store when no database connection is configured."""

    def __init__(self, message: str = "Database not configured"):
        super().__init__(message, code="STORE_UNCONFIGURED")


class StoreError(BlingoError):
    """Raised when the key store is configured but a query fails."""

    def __init__(self, message: str = "Database error"):
        super().__init__(message, code="STORE_ERROR")


class InvalidRequestError(BlingoError):
    """Raised for malformed request bodies and unusable targets."""

    def __init__(self, message: str = "Invalid request"):
        super().__init__(message, code="INVALID_INPUT")


class ApiKeyNotFoundError(BlingoError):
    """Raised when an API key does not exist or belongs to another user."""

    def __init__(self, message: str = "API key not found"):
        super().__init__(message, code="NOT_FOUND")


class CompletionError(BlingoError):
    """Raised when the structured completion call fails or breaks its schema."""

    def __init__(self, message: str = "Failed to summarize repository"):
        super().__init__(message, code="COMPLETION_FAILED")


HTTP_STATUS_BY_CODE: dict[str, int] = {
    "INVALID_KEY": 401,
    "RATE_LIMITED": 429,
    "STORE_UNCONFIGURED": 503,
    "STORE_ERROR": 500,
    "INVALID_INPUT": 400,
    "NOT_FOUND": 404,
}


def http_status_for(error: BlingoError) -> int:
    return HTTP_STATUS_BY_CODE.get(error.code, 500)
