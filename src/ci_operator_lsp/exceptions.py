"""Exception types shared by the resolver, the session and the server."""

from __future__ import annotations

from collections.abc import Mapping


class NeverRaise(RuntimeError):
    """Raised when a caller-guaranteed contract turns out to be broken.

    These are not user errors: reaching one means a caller handed the core
    coordinates or payloads it promised were valid. The ``env`` mapping holds
    the values that were in play, for the log line and the error reply.
    """

    def __init__(self, message: str, *, env: Mapping[str, object] | None = None):
        super().__init__(message)
        self.reason = message
        self.env = dict(env or {})


class NeverThrown(NeverRaise):
    """Alias for NeverRaise used by the explicit never() marker."""


class InitializationError(RuntimeError):
    """The initialize handshake was rejected; the session stays unready.

    Clients must not retry with the same workspace folders.
    """


class SessionNotReadyError(RuntimeError):
    """A request arrived before a successful initialize handshake."""


class DocumentReadError(RuntimeError):
    def __init__(self, uri: str, path: str, cause: Exception):
        super().__init__(f"cannot read document {uri}: {cause}")
        self.uri = uri
        self.path = path
        self.cause = cause
