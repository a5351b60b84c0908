"""
Domain exceptions

Raised by services and mapped to HTTP responses by the handlers registered
in server.py. Lost races on conditional updates are NOT exceptions; they come
back as normal Denied / no-op results.
"""


class StoreUnavailableError(Exception):
    """The client record store could not be reached or rejected the write."""

    def __init__(self, operation: str, details: str = None):
        self.operation = operation
        self.details = details
        message = f"Record store unavailable during {operation}"
        if details:
            message = f"{message} - {details}"
        super().__init__(message)


class ExternalServiceError(Exception):
    """
    The address-normalization call failed, timed out or returned unusable output.

    Always paired with a credit refund attempt when a credit was reserved.
    """

    def __init__(self, reason: str, service: str = "gemini"):
        self.reason = reason
        self.service = service
        super().__init__(f"[{service}] {reason}")

    def to_dict(self):
        """Convert to API response format."""
        return {
            "status": "Error",
            "error": self.reason,
            "service": self.service
        }


class ClientNotFoundError(Exception):
    """No client document exists for the given id."""

    def __init__(self, client_id: str):
        self.client_id = client_id
        super().__init__(f"Client not found: {client_id}")


class UsernameTakenError(Exception):
    """Another client already uses this username."""

    def __init__(self, username: str):
        self.username = username
        super().__init__(f"Username already exists: {username}")


class BulkJobRejectedError(Exception):
    """A bulk job submission was refused (active job limit, credits, empty file)."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)
