import json
import busrpc


def test_json_encode_and_decode():
    encode_and_decode(json.dumps, json.loads, dump_is_bytes=False)


def test_busrpc_encode_and_decode():
    encode_and_decode(busrpc.json.dumps, busrpc.json.loads)


def test_decode_error():

    # Whichever library was selected, garbage must surface as the exception
    # class busrpc.json exports, which the envelope codec relies on.

    try:
        busrpc.json.loads(b'{"id": ')
    except busrpc.json.DecodeError:
        pass
    else:
        raise AssertionError('expected a DecodeError for truncated JSON')


def encode_and_decode(dumps, loads, dump_is_bytes=True):

    input_dictionary = dict()
    input_dictionary['list'] = [3, 7, 2, 9, 1]
    input_dictionary['floats'] = [0.1, -2.5, 1e-300, 123456789.125]
    input_dictionary['dict'] = {'one': 1, 'two': 2.0}
    input_dictionary['none'] = None
    input_dictionary['true'] = True
    input_dictionary['false'] = False
    input_dictionary['id'] = 'busrpc-0123456789abcdef.0000002a'

    encoded = dumps(input_dictionary)

    if dump_is_bytes:
        assert isinstance(encoded, bytes)
    else:
        assert isinstance(encoded, str)

    # It won't do to compare the encoded JSON against a pre-set notion of
    # what the encoded output should look like, as there is variance in
    # the handling of whitespace between the different modules available.

    decoded = loads(encoded)
    assert isinstance(decoded, dict)
    assert decoded == input_dictionary

    # Integers and floats must come back as the same types, otherwise a
    # result of 22 could turn into 22.0 on the way back to the caller.

    assert all(isinstance(value, int) for value in decoded['list'])
    assert isinstance(decoded['dict']['two'], float)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
