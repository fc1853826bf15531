from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from boaapi.wire import (
    RpcFault,
    WireEncodeError,
    WireKind,
    WireProtocolError,
    decode_call,
    decode_response,
    encode_call,
    encode_fault,
    encode_response,
    wire_kind,
)


def _chunked(data: bytes, size: int) -> list[bytes]:
    return [data[i : i + size] for i in range(0, len(data), size)]


def _depth(value: object) -> int:
    depth = 0
    while isinstance(value, list):
        depth += 1
        value = value[0] if value else None
    return depth


def test_call_round_trip_preserves_nested_values() -> None:
    params = [
        True,
        False,
        0,
        -17,
        2.5,
        "",
        "plain",
        "needs <escaping> & ]]> care\r\nok",
        b"\x00\x01binary\xff",
        datetime(2022, 3, 1, 10, 11, 12),
        None,
        [],
        {},
        [1, [2, [3, {"deep": ["x", {"deeper": None}]}]]],
        {"id": 2, "name": "2017", "tags": ["a", "b"], "nested": {"k": {"v": 1.25}}},
    ]

    method, decoded = decode_call(encode_call("boa.test", params))

    assert method == "boa.test"
    assert decoded == params


def test_tuples_encode_as_arrays() -> None:
    _, decoded = decode_call(encode_call("m", [(1, "two", (3.5,))]))
    assert decoded == [[1, "two", [3.5]]]


def test_integral_numbers_use_int_variant() -> None:
    body = encode_call("m", [3.0, 3.25, 7]).decode("utf-8")
    assert "<int>3</int>" in body
    assert "<double>3.25</double>" in body
    assert "<int>7</int>" in body


def test_empty_string_is_explicit() -> None:
    body = encode_call("m", [""]).decode("utf-8")
    assert "<string></string>" in body


def test_booleans_are_not_integers() -> None:
    assert wire_kind(True) is WireKind.BOOLEAN
    assert wire_kind(1) is WireKind.INTEGER
    assert "<boolean>1</boolean>" in encode_call("m", [True]).decode("utf-8")


def test_deep_nesting_does_not_exhaust_the_call_stack() -> None:
    depth = 3000
    value: list = []
    for _ in range(depth - 1):
        value = [value]

    body = encode_call("m", [value])
    method, decoded = decode_call(_chunked(body, 4096))

    assert method == "m"
    assert _depth(decoded[0]) == depth


def test_self_referencing_container_is_rejected() -> None:
    loop: list = [1]
    loop.append(loop)
    with pytest.raises(WireEncodeError):
        encode_call("m", [loop])


def test_repeated_non_cyclic_reference_is_allowed() -> None:
    shared = {"a": 1}
    _, decoded = decode_call(encode_call("m", [[shared, shared]]))
    assert decoded == [[{"a": 1}, {"a": 1}]]


@pytest.mark.parametrize("value", [object(), {1: "int key"}, float("nan"), "bad\x01char"])
def test_unencodable_values_raise(value: object) -> None:
    with pytest.raises(WireEncodeError):
        encode_call("m", [value])


def test_response_decodes_from_small_chunks() -> None:
    body = encode_response({"token": "abc", "list": [1, 2, 3]})
    assert decode_response(_chunked(body, 1)) == {"token": "abc", "list": [1, 2, 3]}


def test_fault_response_raises_rpc_fault() -> None:
    with pytest.raises(RpcFault) as excinfo:
        decode_response(encode_fault(403, "Access denied"))
    assert excinfo.value.code == 403
    assert excinfo.value.message == "Access denied"


def test_untyped_value_is_a_string_and_namespaced_nil_is_none() -> None:
    body = (
        b'<?xml version="1.0"?><methodResponse xmlns:ex="http://ws.apache.org/xmlrpc/namespaces/extensions">'
        b"<params><param><value><array><data>"
        b"<value>bare text</value><value><ex:nil/></value><value><i4>5</i4></value>"
        b"<value><dateTime.iso8601>20220301T10:11:12</dateTime.iso8601></value>"
        b"</data></array></value></param></params></methodResponse>"
    )
    assert decode_response(body) == ["bare text", None, 5, datetime(2022, 3, 1, 10, 11, 12)]


@pytest.mark.parametrize(
    "body",
    [
        b"",
        b"<html><body>Service unavailable</body></html>",
        b"<methodResponse><params><param><value><int>1</int></value>",
        b"<methodResponse><params><param><value><int>one</int></value></param></params></methodResponse>",
        b"<methodResponse><params><param><value><blob>1</blob></value></param></params></methodResponse>",
        b"<methodResponse><params></params></methodResponse>",
    ],
)
def test_malformed_responses_raise_protocol_error(body: bytes) -> None:
    with pytest.raises(WireProtocolError):
        decode_response(body)


def test_aware_datetime_is_sent_as_utc() -> None:
    aware = datetime(2022, 3, 1, 12, 0, 0, tzinfo=timezone(timedelta(hours=2)))
    _, decoded = decode_call(encode_call("m", [aware]))
    assert decoded == [datetime(2022, 3, 1, 10, 0, 0)]


def test_sub_second_datetime_is_rejected() -> None:
    with pytest.raises(WireEncodeError):
        encode_call("m", [datetime(2022, 3, 1, 10, 11, 12, 500)])
