"""Exception types raised by jmapmail."""


class JmapError(Exception):
    """Base class for all jmapmail errors."""


class TransportError(JmapError):
    """The HTTP exchange itself failed; no call in the batch can be trusted."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MethodError(JmapError):
    """A single method call came back as an ``error`` response."""

    def __init__(self, method: str, error_type: str, description: str = ""):
        detail = f": {description}" if description else ""
        super().__init__(f"{method} failed with {error_type}{detail}")
        self.method = method
        self.error_type = error_type
        self.description = description


class ResponseShapeError(JmapError):
    """A method response did not have the shape its call promised."""


class NotFoundError(JmapError):
    """A required entity (message, mailbox, identity) does not exist."""


class MutationError(JmapError):
    """The server refused an update and no recovery path applied."""


class SendError(JmapError):
    """A message could not be created or submitted for delivery."""


class BlobTransferError(JmapError):
    """Upload or download of blob content failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
