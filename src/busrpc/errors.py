"""Exception hierarchy shared by the client, the worker and the transports.

Errors that originate on the far side of the bus travel back inside a reply
envelope as a small dictionary (``type``, ``code``, ``text``, ``debug``);
:func:`from_detail` turns that dictionary back into the matching exception
class on the client side.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class BusRpcError(Exception):
    """Base class for all busrpc errors."""


class TransportError(BusRpcError):
    """The bus could not be reached, or a publish failed."""


class RequestTimeout(BusRpcError, TimeoutError):
    """A request did not receive a reply before its deadline."""


class DuplicateIdError(BusRpcError):
    """A correlation identifier was registered while still outstanding."""


class MalformedEnvelope(BusRpcError, ValueError):
    """An envelope could not be decoded.

    *id* is the correlation identifier, if one could be recovered from the
    damaged envelope; a worker uses it to send back an error reply, to
    *reply_to* if that was recovered as well.
    """

    code = 'malformed_envelope'

    def __init__(self, text: str, id: Optional[str] = None, reply_to: Optional[str] = None):
        BusRpcError.__init__(self, text)
        self.id = id
        self.reply_to = reply_to
        self.text = text


class RemoteError(BusRpcError):
    """The worker answered with an error reply."""

    code = 'remote_error'

    def __init__(self, text: str, code: Optional[str] = None, debug: Optional[str] = None):
        BusRpcError.__init__(self, text)
        self.text = text
        if code is not None:
            self.code = code
        self.debug = debug

    def __str__(self) -> str:
        return f"{self.code}: {self.text}"

    def detail(self) -> Dict[str, Any]:
        detail = {
            "type": type(self).__name__,
            "code": self.code,
            "text": self.text,
        }
        if self.debug:
            detail["debug"] = self.debug
        return detail


class UnknownOperationError(RemoteError):
    """No handler is registered for the requested operation."""

    code = 'unknown_operation'


class HandlerError(RemoteError):
    """A handler failed with a domain error, such as empty input."""

    code = 'handler_failed'


_remote_types = {
    'RemoteError': RemoteError,
    'UnknownOperationError': UnknownOperationError,
    'HandlerError': HandlerError,
}


def from_detail(detail: Any) -> BusRpcError:
    """Rebuild the exception described by the error detail of a reply."""

    if not isinstance(detail, dict):
        return RemoteError(repr(detail))

    type_name = detail.get("type")
    text = str(detail.get("text", ""))
    code = detail.get("code")
    debug = detail.get("debug")

    if type_name == 'MalformedEnvelope':
        return MalformedEnvelope(text)

    exception_class = _remote_types.get(type_name, RemoteError)
    return exception_class(text, code=code, debug=debug)
