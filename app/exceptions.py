"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""

from uuid import UUID


class KeyHubError(Exception):
    """Base exception for all key hub errors."""

    pass


class ValidationError(KeyHubError):
    """Raised when a request is missing fields or carries malformed values."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConflictError(KeyHubError):
    """Raised when a unique field (email, key value) is already taken."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class AuthenticationError(KeyHubError):
    """Raised when authentication fails (missing/invalid token, bad credentials)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")


class AuthorizationError(KeyHubError):
    """Raised when the caller lacks the required role."""

    def __init__(self, required_role: str) -> None:
        self.required_role = required_role
        super().__init__(f"Authorization failed: {required_role} role required")


class QuotaExceededError(KeyHubError):
    """Raised when a user has used every copy allowed by their tier."""

    def __init__(self, copy_count: int, max_copy_limit: int, subscription: str) -> None:
        self.copy_count = copy_count
        self.max_copy_limit = max_copy_limit
        self.subscription = subscription
        super().__init__(
            f"Copy limit reached: {copy_count}/{max_copy_limit} on {subscription} plan"
        )


class ResourceNotFoundError(KeyHubError):
    """Raised when a requested record does not exist."""

    def __init__(self, resource: str, resource_id: UUID | str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found: {resource_id}")


class KeyUnavailableError(KeyHubError):
    """Raised when a key exists but is not usable (inactive or expired)."""

    def __init__(self, key_id: UUID, reason: str = "API key is not available") -> None:
        self.key_id = key_id
        self.reason = reason
        super().__init__(f"Key {key_id} unavailable: {reason}")


class KeyExpiredError(KeyUnavailableError):
    """Raised when a key's expiry date has passed."""

    def __init__(self, key_id: UUID) -> None:
        super().__init__(key_id, "This API key has expired")


class MirrorSyncError(KeyHubError):
    """Raised by mirror clients when the realtime mirror rejects an operation."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        self.message = message
        super().__init__(f"Mirror {operation} failed: {message}")


class RateLimitExceededError(KeyHubError):
    """Raised when a caller exceeds a route group's rate limit."""

    def __init__(self, limiter: str, message: str, retry_after_seconds: int) -> None:
        self.limiter = limiter
        self.message = message
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"Rate limit '{limiter}' exceeded: {message}")
