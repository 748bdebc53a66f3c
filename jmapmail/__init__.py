"""Mailbox provider over JMAP (Fastmail).

This package exposes one normalized mailbox contract (EmailProvider) and its
JMAP implementation:
- JmapClient: batches method calls and correlates responses
- FastmailProvider: threads, labels, mutations and sending over JMAP

Use fetch_session() with a bearer token to obtain the session, then open a
JmapClient and hand it to FastmailProvider.
"""

from .client import BatchResult, JmapClient
from .config import Config, load_config
from .errors import (
    BlobTransferError,
    JmapError,
    MethodError,
    MutationError,
    NotFoundError,
    ResponseShapeError,
    SendError,
    TransportError,
)
from .fastmail import FastmailProvider
from .provider import EmailProvider
from .session import JmapSession, fetch_session

__all__ = [
    "BatchResult",
    "BlobTransferError",
    "Config",
    "EmailProvider",
    "FastmailProvider",
    "JmapClient",
    "JmapError",
    "JmapSession",
    "MethodError",
    "MutationError",
    "NotFoundError",
    "ResponseShapeError",
    "SendError",
    "TransportError",
    "fetch_session",
    "load_config",
]
