""" Python implementation of request/response over a publish/subscribe bus.
    This includes client functions, which publish requests and match the
    replies back to the callers waiting on them, and worker functions, which
    consume requests, invoke handlers and publish the replies.
"""

# Utility components.

from . import json
from . import deadline

# Submodules used by multiple other components.

from . import errors
from . import config
from . import protocol
from . import transport
from . import correlation

# Primary public-facing interfaces.

from .client import Client, ReplyListener, RequestDispatcher
from .worker import Registry, Worker, WorkerDispatcher
from . import handlers

from .errors import (
    BusRpcError,
    DuplicateIdError,
    HandlerError,
    MalformedEnvelope,
    RemoteError,
    RequestTimeout,
    TransportError,
    UnknownOperationError,
)

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
