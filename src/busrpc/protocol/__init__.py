"""
busrpc Protocol Layer
=====================

This package defines the transport-agnostic envelopes exchanged between
clients and workers, and their byte encoding.

The protocol layer MUST NOT depend on any transport implementation
(e.g. ZeroMQ, RabbitMQ, etc).

---------------------------------------------------------------------

Layer Architecture Overview
---------------------------

Client / Worker (client.py, worker.py)
    Correlation and dispatch
    - call()
    - resolve / reject / expire
    - handler invocation

    │
    ▼
Wire Codec (wire.py)
    Envelope <-> bytes
    - Compact JSON via busrpc.json
    - Exact preservation of identifiers and numeric payloads

    │
    ▼
Envelope Model (envelope.py)
    Immutable protocol data structures
    - RequestEnvelope
    - ReplyEnvelope
    Replies are only ever derived from the request they answer

    │
    ▼
Field Vocabulary (fields.py)
    Canonical names for envelope keys and statuses

---------------------------------------------------------------------

Below the Protocol Layer (for context)
--------------------------------------

Transport Layer (busrpc.transport)
    Moves bytes between topics
    - in-process memory bus
    - ZeroMQ
    - RabbitMQ

---------------------------------------------------------------------
"""

from . import fields
from . import envelope
from . import wire

from .envelope import ReplyEnvelope, RequestEnvelope
from .fields import VERSION as PROTOCOL_VERSION
