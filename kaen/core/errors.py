"""Error taxonomy for comment persistence and discussion interactions.

Every failure the persistence layer can report is one of these.  Routers map
them to HTTP status codes; discussion controllers catch them and surface the
message inline on the node that triggered the request.
"""


class KaenError(Exception):
    """Base class for all application errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TransportError(KaenError):
    """The backend was unreachable or answered with a server error."""


class ValidationError(KaenError):
    """The request carried invalid content (e.g. an empty comment body)."""


class AuthError(KaenError):
    """The action requires an identity the caller does not have."""


class NotFoundError(KaenError):
    """The targeted row does not exist (typically already deleted)."""
