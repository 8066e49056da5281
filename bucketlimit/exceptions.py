"""Custom exceptions for the rate limiter."""


class RateLimitError(Exception):
    """Base class for rate limiter exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500

    def __init__(self, message: str = "Rate limiter error"):
        self.message = message
        super().__init__(message)


class CapacityReachedError(RateLimitError):
    """Raised when the bucket for a resource/account has no token left.

    This is an expected control-flow signal, not a fault.
    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429

    def __init__(
        self,
        resource_name: str | None = None,
        account_id: str | None = None,
        retry_after: float | None = None,
    ):
        self.resource_name = resource_name
        self.account_id = account_id
        self.retry_after = retry_after
        message = "resource usage is at capacity"
        if resource_name is not None:
            message += f" for {resource_name} on {account_id}"
        super().__init__(message)


class NotConfiguredError(RateLimitError):
    """Raised when no limit has been set for a resource/account.

    Maps to HTTP 404 Not Found.
    """
    status_code = 404

    def __init__(self, resource_name: str, account_id: str):
        self.resource_name = resource_name
        self.account_id = account_id
        super().__init__(f"limit has not been set for {resource_name} on {account_id}")


class InvalidConfigurationError(RateLimitError):
    """Raised when a limit is invalid or a stored limit cannot be parsed.

    Maps to HTTP 400 Bad Request.
    """
    status_code = 400

    def __init__(self, detail: str = "limit configuration is invalid"):
        self.detail = detail
        super().__init__(detail)


class StorageError(RateLimitError):
    """Raised when the storage backend fails (I/O, network, backend-internal).

    The original exception is chained as __cause__.
    Maps to HTTP 503 Service Unavailable.
    """
    status_code = 503

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        message = f"{operation} failed"
        if detail:
            message += f": {detail}"
        super().__init__(message)
