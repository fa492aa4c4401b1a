from __future__ import annotations

import time
from typing import Any, Dict, Optional

from .. import json
from ..errors import MalformedEnvelope
from . import fields
from .envelope import ReplyEnvelope, RequestEnvelope


def encode_request(envelope: RequestEnvelope) -> bytes:
    """
    Serialize RequestEnvelope -> bytes

    Layout: a single compact JSON object, see RequestEnvelope.to_dict().
    """

    return json.dumps(envelope.to_dict())


def encode_reply(envelope: ReplyEnvelope) -> bytes:
    """
    Serialize ReplyEnvelope -> bytes
    """

    return json.dumps(envelope.to_dict())


def decode_request(raw: bytes) -> RequestEnvelope:
    """
    Deserialize bytes -> RequestEnvelope

    Raises MalformedEnvelope; its id attribute is set whenever the
    correlation identifier itself survived, so that the sender can still
    be told what went wrong.
    """

    header = _load(raw)
    msg_id = _recover_id(header)
    reply_to = _recover_reply_to(header)
    _check_version(header, msg_id, reply_to)

    try:
        return RequestEnvelope(
            id=msg_id,
            operation=header.get(fields.OPERATION),
            payload=header.get(fields.PAYLOAD),
            reply_to=header.get(fields.REPLY_TO),
            time=_time(header),
        )
    except (TypeError, ValueError) as exc:
        raise MalformedEnvelope(f"invalid request: {exc}", msg_id, reply_to) from exc


def decode_reply(raw: bytes) -> ReplyEnvelope:
    """
    Deserialize bytes -> ReplyEnvelope
    """

    header = _load(raw)
    msg_id = _recover_id(header)
    _check_version(header, msg_id)

    try:
        return ReplyEnvelope(
            id=msg_id,
            status=header.get(fields.STATUS),
            result=header.get(fields.RESULT),
            error=header.get(fields.ERROR_DETAIL),
            time=_time(header),
        )
    except (TypeError, ValueError) as exc:
        raise MalformedEnvelope(f"invalid reply: {exc}", msg_id) from exc


def _load(raw: bytes) -> Dict[str, Any]:
    if not raw:
        raise MalformedEnvelope("empty envelope")

    try:
        header = json.loads(raw)
    except (json.DecodeError, ValueError, TypeError) as exc:
        raise MalformedEnvelope(f"undecodable envelope: {exc}") from exc

    if not isinstance(header, dict):
        raise MalformedEnvelope(f"envelope must be a JSON object, not {type(header).__name__}")

    return header


def _recover_id(header: Dict[str, Any]) -> Optional[str]:
    msg_id = header.get(fields.ID)
    if isinstance(msg_id, str) and msg_id != "":
        return msg_id
    return None


def _recover_reply_to(header: Dict[str, Any]) -> Optional[str]:
    reply_to = header.get(fields.REPLY_TO)
    if isinstance(reply_to, str) and reply_to != "":
        return reply_to
    return None


def _check_version(header: Dict[str, Any], msg_id: Optional[str], reply_to: Optional[str] = None) -> None:
    their_version = header.get(fields.VERSION_KEY)
    if their_version != fields.VERSION:
        raise MalformedEnvelope(
            f"envelope is busrpc protocol {their_version!r}, recipient expects {fields.VERSION!r}",
            msg_id,
            reply_to,
        )


def _time(header: Dict[str, Any]) -> float:
    value = header.get(fields.TIME)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return time.time()
