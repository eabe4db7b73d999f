"""
Error taxonomy shared by every service.

Services raise these; the HTTP layer maps ``status_code`` onto the response so
callers can tell an inline form error from a redirect or a 404 page.
"""


class MarketplaceError(Exception):
    kind = "ServerError"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(MarketplaceError):
    """Rejected input or rule violation. The message is safe to show the user."""
    kind = "ValidationError"
    status_code = 400


class Unauthorized(MarketplaceError):
    kind = "Unauthorized"
    status_code = 401


class Forbidden(MarketplaceError):
    kind = "Forbidden"
    status_code = 403


class NotFound(MarketplaceError):
    kind = "NotFound"
    status_code = 404


class ServerError(MarketplaceError):
    kind = "ServerError"
    status_code = 500
