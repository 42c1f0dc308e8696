"""
Error taxonomy for the edge handlers.

Each error carries the HTTP status it maps to. The FastAPI exception handler
in tandril.main renders any TandrilError as {"success": false, "error": ...}.
"""


class TandrilError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(TandrilError):
    """Missing secret or credential. Operators must fix the deployment."""
    status_code = 500


class AuthenticationError(TandrilError):
    """Missing or invalid bearer token or signature."""
    status_code = 401


class ValidationError(TandrilError):
    """Malformed payload or missing required field."""
    status_code = 400

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class NotFoundError(TandrilError):
    status_code = 404


class DownstreamError(TandrilError):
    """Datastore or provider API failure."""
    status_code = 500


class RateLimitError(TandrilError):
    """Too many requests from one client. Rendered with a Retry-After header."""
    status_code = 429

    def __init__(self, message: str, retry_after: int = 60):
        super().__init__(message)
        self.retry_after = retry_after
