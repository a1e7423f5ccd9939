"""
Failure taxonomy for the relay.
Handlers catch these at their boundary and render them into response events.
"""


class RelayError(Exception):
    """Base class for failures that are reported back to the client."""

    code = "RELAY_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class AuthFailure(RelayError):
    """Bad credentials, unknown user or unknown role at login."""

    code = "AUTH_FAILED"


class ValidationFailure(RelayError):
    """A required payload field is missing or has an invalid value."""

    code = "VALIDATION_FAILED"


class ProtocolFailure(RelayError):
    """Event from an unauthenticated connection, or a malformed frame."""

    code = "PROTOCOL_ERROR"


class PersistenceFailure(RelayError):
    """Message store unavailable or write rejected."""

    code = "PERSISTENCE_FAILED"


class ConnectionClosedError(Exception):
    """Raised by a connection handle when the underlying channel is gone."""
