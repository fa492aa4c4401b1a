''' JSON codec for envelopes and configuration files. :func:`dumps` takes a
    dictionary and returns bytes ready to publish; :func:`loads` takes the
    bytes of a delivery. Decoding failures raise :data:`DecodeError`, which
    is the exception class of whichever library ended up handling the work.
'''

# msgspec is the declared dependency and the one normally in use; orjson or
# the standard library take over only where msgspec is missing.

msgspec = None
orjson = None
json = None

try:
    import msgspec
except ImportError:
    pass

if msgspec is None:
    try:
        import orjson
    except ImportError:
        pass

if msgspec is None and orjson is None:
    import json


# Envelopes go on the bus as compact bytes, whichever library encodes them.
# NaN and infinity never reach this point, envelopes reject them first; the
# standard library is told to refuse them all the same.

def stdlib_dumps(*args, **kwargs):
    kwargs.setdefault('allow_nan', False)
    kwargs.setdefault('separators', (',', ':'))
    return json.dumps(*args, **kwargs).encode()

if msgspec is not None:
    encoder = msgspec.json.Encoder()
    decoder = msgspec.json.Decoder()
    dumps = encoder.encode
    loads = decoder.decode
    DecodeError = msgspec.DecodeError
elif orjson is not None:
    dumps = orjson.dumps
    loads = orjson.loads
    DecodeError = orjson.JSONDecodeError
else:
    dumps = stdlib_dumps
    loads = json.loads
    DecodeError = json.JSONDecodeError

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
