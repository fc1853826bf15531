from __future__ import annotations

"""XML-RPC wire codec used by the Boa API transport.

Values map onto a closed set of Python types (see `WireKind`). Encoding and
decoding both walk nested arrays/structs with an explicit frame stack, so
deeply nested payloads never grow the interpreter call stack.
"""

import base64
import binascii
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Sequence, Tuple, Union
from xml.etree import ElementTree
from xml.sax.saxutils import escape

WireValue = Union[
    None,
    bool,
    int,
    float,
    str,
    bytes,
    datetime,
    List[Any],
    Tuple[Any, ...],
    Dict[str, Any],
]

DATETIME_FORMAT = "%Y%m%dT%H:%M:%S"
_DATETIME_INPUT_FORMATS = (
    DATETIME_FORMAT,
    "%Y-%m-%dT%H:%M:%S",
    "%Y%m%dT%H%M%S",
)

# Characters XML 1.0 cannot carry, even escaped.
_ILLEGAL_XML_CHARS = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")

_SCALAR_TAGS = {
    "int",
    "i4",
    "i8",
    "boolean",
    "double",
    "string",
    "base64",
    "dateTime.iso8601",
    "nil",
}
_STRUCTURAL_TAGS = {"params", "param", "data", "member", "methodResponse", "methodCall"}


class WireProtocolError(RuntimeError):
    """Raised when a message body is not a well-formed XML-RPC document."""


class WireEncodeError(ValueError):
    """Raised when a value has no XML-RPC representation."""


class RpcFault(Exception):
    """Application-level fault returned by the remote service."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"fault {code}: {message}")
        self.code = code
        self.message = message

    def __repr__(self) -> str:
        return f"RpcFault(code={self.code!r}, message={self.message!r})"


class WireKind(str, Enum):
    """Closed set of value kinds the codec can carry."""

    NIL = "nil"
    BOOLEAN = "boolean"
    INTEGER = "int"
    DOUBLE = "double"
    STRING = "string"
    BYTES = "base64"
    DATETIME = "dateTime.iso8601"
    ARRAY = "array"
    STRUCT = "struct"


def wire_kind(value: Any) -> WireKind:
    """Classify `value` into its wire kind or raise `WireEncodeError`."""
    if value is None:
        return WireKind.NIL
    # bool is an int subclass, so it must be checked first.
    if isinstance(value, bool):
        return WireKind.BOOLEAN
    if isinstance(value, int):
        return WireKind.INTEGER
    if isinstance(value, float):
        if not math.isfinite(value):
            raise WireEncodeError(f"cannot encode non-finite number {value!r}")
        return WireKind.INTEGER if value.is_integer() else WireKind.DOUBLE
    if isinstance(value, str):
        return WireKind.STRING
    if isinstance(value, (bytes, bytearray)):
        return WireKind.BYTES
    if isinstance(value, datetime):
        return WireKind.DATETIME
    if isinstance(value, (list, tuple)):
        return WireKind.ARRAY
    if isinstance(value, dict):
        return WireKind.STRUCT
    raise WireEncodeError(f"cannot encode {type(value).__name__} value")


def format_datetime(value: datetime) -> str:
    """Render a timestamp with second precision.

    Aware values are converted to naive UTC. Sub-second values cannot be
    carried and raise `WireEncodeError`.
    """
    if value.microsecond:
        raise WireEncodeError(f"dateTime.iso8601 has no sub-second precision: {value!r}")
    if value.tzinfo is not None and value.utcoffset() is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime(DATETIME_FORMAT)


def parse_datetime(text: str) -> datetime:
    """Parse the XML-RPC timestamp text format (and its dashed variant)."""
    cleaned = text.strip()
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1]
    for pattern in _DATETIME_INPUT_FORMATS:
        try:
            return datetime.strptime(cleaned, pattern)
        except ValueError:
            continue
    raise WireProtocolError(f"invalid dateTime.iso8601 value: {text!r}")


def _escape_text(text: str) -> str:
    if _ILLEGAL_XML_CHARS.search(text):
        raise WireEncodeError("string contains characters not allowed in XML")
    return escape(text, {"\r": "&#13;"})


def _scalar_xml(kind: WireKind, value: Any) -> str:
    if kind is WireKind.NIL:
        return "<value><nil/></value>"
    if kind is WireKind.BOOLEAN:
        return "<value><boolean>%d</boolean></value>" % (1 if value else 0)
    if kind is WireKind.INTEGER:
        return "<value><int>%d</int></value>" % int(value)
    if kind is WireKind.DOUBLE:
        return "<value><double>%r</double></value>" % float(value)
    if kind is WireKind.STRING:
        # Empty strings still produce an explicit (empty) string element.
        return "<value><string>%s</string></value>" % _escape_text(value)
    if kind is WireKind.BYTES:
        encoded = base64.b64encode(bytes(value)).decode("ascii")
        return "<value><base64>%s</base64></value>" % encoded
    if kind is WireKind.DATETIME:
        return "<value><dateTime.iso8601>%s</dateTime.iso8601></value>" % format_datetime(
            value
        )
    raise WireEncodeError(f"{kind.value} is not a scalar kind")


@dataclass
class _EncodeFrame:
    """One open array/struct during serialization."""

    items: Iterator[Any]
    closing: str
    keyed: bool
    container_id: int


_DONE = object()


def _serialize_value(value: Any, out: List[str]) -> None:
    """Append the XML for `value` to `out` without recursing into children."""
    stack: List[_EncodeFrame] = []
    active: set = set()

    def close_member() -> None:
        if stack and stack[-1].keyed:
            out.append("</member>")

    current = value
    while True:
        kind = wire_kind(current)
        if kind is WireKind.ARRAY or kind is WireKind.STRUCT:
            if id(current) in active:
                raise WireEncodeError("cannot encode a container that contains itself")
            active.add(id(current))
            if kind is WireKind.ARRAY:
                out.append("<value><array><data>")
                stack.append(
                    _EncodeFrame(iter(current), "</data></array></value>", False, id(current))
                )
            else:
                out.append("<value><struct>")
                stack.append(
                    _EncodeFrame(
                        iter(current.items()), "</struct></value>", True, id(current)
                    )
                )
        else:
            out.append(_scalar_xml(kind, current))
            close_member()

        while stack:
            frame = stack[-1]
            item = next(frame.items, _DONE)
            if item is _DONE:
                stack.pop()
                active.discard(frame.container_id)
                out.append(frame.closing)
                close_member()
                continue
            if frame.keyed:
                key, item = item
                if not isinstance(key, str):
                    raise WireEncodeError(f"struct keys must be strings, got {key!r}")
                out.append("<member><name>%s</name>" % _escape_text(key))
            current = item
            break
        else:
            return


def encode_call(method: str, params: Sequence[Any] = ()) -> bytes:
    """Build a `methodCall` request body."""
    if not method:
        raise WireEncodeError("method name cannot be empty")
    out = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        "<methodCall><methodName>",
        _escape_text(method),
        "</methodName><params>",
    ]
    for param in params:
        out.append("<param>")
        _serialize_value(param, out)
        out.append("</param>")
    out.append("</params></methodCall>")
    return "".join(out).encode("utf-8")


def encode_response(value: Any) -> bytes:
    """Build a successful `methodResponse` body wrapping one value."""
    out = ['<?xml version="1.0" encoding="UTF-8"?>', "<methodResponse><params><param>"]
    _serialize_value(value, out)
    out.append("</param></params></methodResponse>")
    return "".join(out).encode("utf-8")


def encode_fault(code: int, message: str) -> bytes:
    """Build a fault `methodResponse` body."""
    out = ['<?xml version="1.0" encoding="UTF-8"?>', "<methodResponse><fault>"]
    _serialize_value({"faultCode": int(code), "faultString": message}, out)
    out.append("</fault></methodResponse>")
    return "".join(out).encode("utf-8")


@dataclass
class _DecodeFrame:
    """One open array/struct while decoding."""

    kind: WireKind
    data: Any
    name: str | None = None


def _local_name(tag: str) -> str:
    # Drop any "{namespace}" prefix, e.g. the ex:nil extension.
    return tag.rsplit("}", 1)[-1]


def _convert_scalar(tag: str, text: str) -> Any:
    try:
        if tag in ("int", "i4", "i8"):
            return int(text.strip())
        if tag == "double":
            return float(text.strip())
        if tag == "boolean":
            flag = text.strip().lower()
            if flag in ("1", "true"):
                return True
            if flag in ("0", "false"):
                return False
            raise WireProtocolError(f"invalid boolean value: {text!r}")
        if tag == "string":
            return text
        if tag == "base64":
            return base64.b64decode(text.encode("ascii"))
        if tag == "dateTime.iso8601":
            return parse_datetime(text)
    except (ValueError, binascii.Error) as exc:
        raise WireProtocolError(f"invalid <{tag}> value: {text[:64]!r}") from exc
    # nil
    return None


class _WireDecoder:
    """Incremental XML-RPC document decoder fed one chunk at a time."""

    def __init__(self, root_tag: str) -> None:
        self.root_tag = root_tag
        self.method: str | None = None
        self.fault = False
        self.values: List[Any] = []

        self._parser = ElementTree.XMLPullParser(events=("start", "end"))
        self._root: ElementTree.Element | None = None
        self._containers: List[_DecodeFrame] = []
        self._typed: List[bool] = []

    def feed(self, chunk: bytes) -> None:
        try:
            self._parser.feed(chunk)
        except ElementTree.ParseError as exc:
            raise WireProtocolError(f"malformed XML-RPC document: {exc}") from exc
        self._drain()

    def close(self) -> None:
        try:
            self._parser.close()
        except ElementTree.ParseError as exc:
            raise WireProtocolError(f"malformed XML-RPC document: {exc}") from exc
        self._drain()
        if self._root is None:
            raise WireProtocolError("empty XML-RPC document")

    def _mark_typed(self, tag: str) -> None:
        if not self._typed:
            raise WireProtocolError(f"<{tag}> outside of <value>")
        self._typed[-1] = True

    def _emit(self, value: Any) -> None:
        if not self._containers:
            self.values.append(value)
            return
        frame = self._containers[-1]
        if frame.kind is WireKind.ARRAY:
            frame.data.append(value)
            return
        if frame.name is None:
            raise WireProtocolError("struct member is missing its <name>")
        frame.data[frame.name] = value
        frame.name = None

    def _drain(self) -> None:
        for event, elem in self._parser.read_events():
            tag = _local_name(elem.tag)
            if event == "start":
                if self._root is None:
                    if tag != self.root_tag:
                        raise WireProtocolError(
                            f"expected <{self.root_tag}> document, got <{tag}>"
                        )
                    self._root = elem
                elif tag == "value":
                    self._typed.append(False)
                elif tag == "array":
                    self._mark_typed(tag)
                    self._containers.append(_DecodeFrame(WireKind.ARRAY, []))
                elif tag == "struct":
                    self._mark_typed(tag)
                    self._containers.append(_DecodeFrame(WireKind.STRUCT, {}))
                continue

            if tag in _SCALAR_TAGS:
                self._mark_typed(tag)
                self._emit(_convert_scalar(tag, elem.text or ""))
            elif tag in ("array", "struct"):
                frame = self._containers.pop()
                self._emit(frame.data)
            elif tag == "value":
                if not self._typed.pop():
                    self._emit(elem.text or "")
                elem.clear()
            elif tag == "name":
                if not self._containers or self._containers[-1].kind is not WireKind.STRUCT:
                    raise WireProtocolError("<name> outside of <struct>")
                self._containers[-1].name = elem.text or ""
            elif tag == "methodName":
                self.method = (elem.text or "").strip()
            elif tag == "fault":
                self.fault = True
            elif tag not in _STRUCTURAL_TAGS:
                raise WireProtocolError(f"unexpected element <{tag}>")


def _chunks_of(source: bytes | bytearray | Iterable[bytes]) -> Iterable[bytes]:
    if isinstance(source, (bytes, bytearray)):
        return [bytes(source)]
    return source


def decode_response(source: bytes | Iterable[bytes]) -> Any:
    """Decode a `methodResponse`, returning its value or raising `RpcFault`.

    `source` may be the whole body or an iterable of byte chunks; parsing
    starts with the first chunk.
    """
    decoder = _WireDecoder("methodResponse")
    for chunk in _chunks_of(source):
        decoder.feed(chunk)
    decoder.close()

    if len(decoder.values) != 1:
        raise WireProtocolError(
            f"response must carry exactly one value, got {len(decoder.values)}"
        )
    value = decoder.values[0]
    if not decoder.fault:
        return value

    if not isinstance(value, dict) or "faultCode" not in value:
        raise WireProtocolError("fault response is missing faultCode")
    try:
        code = int(value["faultCode"])
    except (TypeError, ValueError) as exc:
        raise WireProtocolError("fault response has a non-integer faultCode") from exc
    raise RpcFault(code, str(value.get("faultString", "")))


def decode_call(source: bytes | Iterable[bytes]) -> tuple[str, list[Any]]:
    """Decode a `methodCall` into its method name and parameter list."""
    decoder = _WireDecoder("methodCall")
    for chunk in _chunks_of(source):
        decoder.feed(chunk)
    decoder.close()
    if not decoder.method:
        raise WireProtocolError("method call is missing <methodName>")
    return decoder.method, list(decoder.values)


__all__ = [
    "DATETIME_FORMAT",
    "RpcFault",
    "WireEncodeError",
    "WireKind",
    "WireProtocolError",
    "WireValue",
    "decode_call",
    "decode_response",
    "encode_call",
    "encode_fault",
    "encode_response",
    "format_datetime",
    "parse_datetime",
    "wire_kind",
]
