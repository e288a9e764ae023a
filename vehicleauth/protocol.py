"""Message types of the vehicle command protocol and their protobuf wire format."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Iterator, Type, TypeVar, Union

LABEL_SESSION_INFO = "session info"
LABEL_MESSAGE_AUTH = "authenticated command"

COUNTER_MAX = 0xFFFFFFFF
EPOCH_ID_LENGTH = 16
MAX_SECONDS_WITHOUT_COUNTER = 30
EPOCH_LENGTH = 1 << 30  # seconds

_U32 = 0xFFFFFFFF
_U64 = (1 << 64) - 1
_VARINT, _FIXED64, _LEN, _FIXED32 = 0, 1, 2, 5


class Tag(IntEnum):
    """Identifiers of authenticated metadata fields."""

    SIGNATURE_TYPE = 0
    DOMAIN = 1
    PERSONALIZATION = 2
    EPOCH = 3
    EXPIRES_AT = 4
    COUNTER = 5
    CHALLENGE = 6
    FLAGS = 7
    REQUEST_HASH = 8
    FAULT = 9
    END = 255


class SignatureType(IntEnum):
    AES_GCM = 0
    AES_GCM_PERSONALIZED = 5
    HMAC = 6
    HMAC_PERSONALIZED = 8
    AES_GCM_RESPONSE = 9


class Domain(IntEnum):
    BROADCAST = 0
    VEHICLE_SECURITY = 2
    INFOTAINMENT = 3


class MessageFault(IntEnum):
    NONE = 0
    BUSY = 1
    TIMEOUT = 2
    UNKNOWN_KEY_ID = 3
    INACTIVE_KEY = 4
    INVALID_SIGNATURE = 5
    INVALID_TOKEN_OR_COUNTER = 6
    INSUFFICIENT_PRIVILEGES = 7
    INVALID_DOMAINS = 8
    INVALID_COMMAND = 9
    DECODING = 10
    INTERNAL = 11
    WRONG_PERSONALIZATION = 12
    BAD_PARAMETER = 13
    KEYCHAIN_IS_FULL = 14
    INCORRECT_EPOCH = 15
    IV_INCORRECT_LENGTH = 16
    TIME_EXPIRED = 17
    NOT_PROVISIONED_WITH_IDENTITY = 18
    COULD_NOT_HASH_METADATA = 19
    TIME_TO_LIVE_TOO_LONG = 20
    REMOTE_ACCESS_DISABLED = 21
    REMOTE_SERVICE_ACCESS_DISABLED = 22
    COMMAND_REQUIRES_ACCOUNT_CREDENTIALS = 23

    @property
    def label(self) -> str:
        """Human-readable name, e.g. ``KeychainIsFull``."""
        return "".join(word.capitalize() for word in self.name.split("_"))


_E = TypeVar("_E", bound=IntEnum)


def _as_enum(enum_cls: Type[_E], value: int) -> Union[_E, int]:
    try:
        return enum_cls(value)
    except ValueError:
        return value


def _signed32(value: int) -> int:
    value &= _U32
    return value - (1 << 32) if value & 0x80000000 else value


def _encode_varint(value: int) -> bytes:
    value &= _U64
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _read_varint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(data):
            raise ValueError("truncated varint")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result & _U64, pos
        shift += 7
        if shift >= 70:
            raise ValueError("varint too long")


def _iter_fields(data: bytes) -> Iterator[tuple[int, int, Any]]:
    pos = 0
    end = len(data)
    while pos < end:
        key, pos = _read_varint(data, pos)
        field, wire = key >> 3, key & 7
        if field == 0 or field >= 1 << 29:
            raise ValueError(f"invalid field number {field}")
        if wire == _VARINT:
            value, pos = _read_varint(data, pos)
        elif wire == _FIXED64:
            if pos + 8 > end:
                raise ValueError("truncated fixed64")
            value = int.from_bytes(data[pos:pos + 8], "little")
            pos += 8
        elif wire == _LEN:
            length, pos = _read_varint(data, pos)
            if pos + length > end:
                raise ValueError("truncated length-delimited field")
            value = bytes(data[pos:pos + length])
            pos += length
        elif wire == _FIXED32:
            if pos + 4 > end:
                raise ValueError("truncated fixed32")
            value = int.from_bytes(data[pos:pos + 4], "little")
            pos += 4
        else:
            raise ValueError(f"unsupported wire type {wire}")
        yield field, wire, value


class _Writer:
    def __init__(self) -> None:
        self._parts: list[bytes] = []

    def _key(self, field: int, wire: int) -> None:
        self._parts.append(_encode_varint(field << 3 | wire))

    def varint(self, field: int, value: int, *, keep_zero: bool = False) -> None:
        if value or keep_zero:
            self._key(field, _VARINT)
            self._parts.append(_encode_varint(int(value)))

    def fixed32(self, field: int, value: int) -> None:
        if value:
            self._key(field, _FIXED32)
            self._parts.append((value & _U32).to_bytes(4, "little"))

    def raw(self, field: int, value: bytes | None, *, keep_empty: bool = False) -> None:
        if value is None or not (value or keep_empty):
            return
        self._key(field, _LEN)
        self._parts.append(_encode_varint(len(value)))
        self._parts.append(bytes(value))

    def getvalue(self) -> bytes:
        return b"".join(self._parts)


@dataclass
class Destination:
    """Routing target: either a domain or an opaque routing address."""

    domain: int | None = None
    routing_address: bytes | None = None

    def _to_bytes(self) -> bytes:
        writer = _Writer()
        if self.domain is not None:
            writer.varint(1, int(self.domain), keep_zero=True)
        elif self.routing_address is not None:
            writer.raw(2, self.routing_address, keep_empty=True)
        return writer.getvalue()

    @classmethod
    def _from_bytes(cls, data: bytes) -> Destination:
        dest = cls()
        for field, wire, value in _iter_fields(data):
            if (field, wire) == (1, _VARINT):
                dest.domain = _as_enum(Domain, _signed32(value))
                dest.routing_address = None
            elif (field, wire) == (2, _LEN):
                dest.routing_address = value
                dest.domain = None
        return dest


@dataclass
class SessionInfo:
    """Anti-replay state a Verifier shares with its Signers."""

    counter: int = 0
    public_key: bytes = b""
    epoch: bytes = b""
    clock_time: int = 0
    status: int = 0
    handle: int = 0

    def to_bytes(self) -> bytes:
        writer = _Writer()
        writer.varint(1, self.counter & _U32)
        writer.raw(2, self.public_key)
        writer.raw(3, self.epoch)
        writer.fixed32(4, self.clock_time)
        writer.varint(5, self.status)
        writer.varint(6, self.handle & _U32)
        return writer.getvalue()


def parse_session_info(data: bytes) -> SessionInfo:
    """Decode a protobuf-encoded SessionInfo; raises ValueError if malformed."""
    info = SessionInfo()
    for field, wire, value in _iter_fields(data):
        if (field, wire) == (1, _VARINT):
            info.counter = value & _U32
        elif (field, wire) == (2, _LEN):
            info.public_key = value
        elif (field, wire) == (3, _LEN):
            info.epoch = value
        elif (field, wire) == (4, _FIXED32):
            info.clock_time = value
        elif (field, wire) == (5, _VARINT):
            info.status = _signed32(value)
        elif (field, wire) == (6, _VARINT):
            info.handle = value & _U32
    return info


@dataclass
class HMACPersonalizedSignatureData:
    epoch: bytes | None = None
    counter: int = 0
    expires_at: int = 0
    tag: bytes = b""

    def _to_bytes(self) -> bytes:
        writer = _Writer()
        writer.raw(1, self.epoch)
        writer.varint(2, self.counter & _U32)
        writer.fixed32(3, self.expires_at)
        writer.raw(4, self.tag)
        return writer.getvalue()

    @classmethod
    def _from_bytes(cls, data: bytes) -> HMACPersonalizedSignatureData:
        sig = cls()
        for field, wire, value in _iter_fields(data):
            if (field, wire) == (1, _LEN):
                sig.epoch = value
            elif (field, wire) == (2, _VARINT):
                sig.counter = value & _U32
            elif (field, wire) == (3, _FIXED32):
                sig.expires_at = value
            elif (field, wire) == (4, _LEN):
                sig.tag = value
        return sig


@dataclass
class AESGCMPersonalizedSignatureData:
    epoch: bytes | None = None
    nonce: bytes = b""
    counter: int = 0
    expires_at: int = 0
    tag: bytes = b""

    def _to_bytes(self) -> bytes:
        writer = _Writer()
        writer.raw(1, self.epoch)
        writer.raw(2, self.nonce)
        writer.varint(3, self.counter & _U32)
        writer.fixed32(4, self.expires_at)
        writer.raw(5, self.tag)
        return writer.getvalue()

    @classmethod
    def _from_bytes(cls, data: bytes) -> AESGCMPersonalizedSignatureData:
        sig = cls()
        for field, wire, value in _iter_fields(data):
            if (field, wire) == (1, _LEN):
                sig.epoch = value
            elif (field, wire) == (2, _LEN):
                sig.nonce = value
            elif (field, wire) == (3, _VARINT):
                sig.counter = value & _U32
            elif (field, wire) == (4, _FIXED32):
                sig.expires_at = value
            elif (field, wire) == (5, _LEN):
                sig.tag = value
        return sig


@dataclass
class AESGCMResponseSignatureData:
    nonce: bytes = b""
    counter: int = 0
    tag: bytes = b""

    def _to_bytes(self) -> bytes:
        writer = _Writer()
        writer.raw(1, self.nonce)
        writer.varint(2, self.counter & _U32)
        writer.raw(3, self.tag)
        return writer.getvalue()

    @classmethod
    def _from_bytes(cls, data: bytes) -> AESGCMResponseSignatureData:
        sig = cls()
        for field, wire, value in _iter_fields(data):
            if (field, wire) == (1, _LEN):
                sig.nonce = value
            elif (field, wire) == (2, _VARINT):
                sig.counter = value & _U32
            elif (field, wire) == (3, _LEN):
                sig.tag = value
        return sig


@dataclass
class HMACSignatureData:
    tag: bytes = b""

    def _to_bytes(self) -> bytes:
        writer = _Writer()
        writer.raw(1, self.tag)
        return writer.getvalue()

    @classmethod
    def _from_bytes(cls, data: bytes) -> HMACSignatureData:
        sig = cls()
        for field, wire, value in _iter_fields(data):
            if (field, wire) == (1, _LEN):
                sig.tag = value
        return sig


SigType = Union[
    AESGCMPersonalizedSignatureData,
    HMACSignatureData,
    HMACPersonalizedSignatureData,
    AESGCMResponseSignatureData,
]

_SIG_TYPE_FIELDS: dict[type, int] = {
    AESGCMPersonalizedSignatureData: 5,
    HMACSignatureData: 6,
    HMACPersonalizedSignatureData: 8,
    AESGCMResponseSignatureData: 9,
}
_SIG_TYPE_BY_FIELD = {number: cls for cls, number in _SIG_TYPE_FIELDS.items()}


@dataclass
class SignatureData:
    """Signer identity plus exactly one kind of signature data."""

    signer_public_key: bytes | None = None
    signer_handle: int | None = None
    sig_type: SigType | None = None

    def _to_bytes(self) -> bytes:
        writer = _Writer()
        identity = _Writer()
        if self.signer_public_key is not None:
            identity.raw(1, self.signer_public_key, keep_empty=True)
        elif self.signer_handle is not None:
            identity.varint(3, self.signer_handle & _U32, keep_zero=True)
        if self.signer_public_key is not None or self.signer_handle is not None:
            writer.raw(1, identity.getvalue(), keep_empty=True)
        if self.sig_type is not None:
            writer.raw(_SIG_TYPE_FIELDS[type(self.sig_type)], self.sig_type._to_bytes(), keep_empty=True)
        return writer.getvalue()

    @classmethod
    def _from_bytes(cls, data: bytes) -> SignatureData:
        sig = cls()
        for field, wire, value in _iter_fields(data):
            if wire != _LEN:
                continue
            if field == 1:
                for id_field, id_wire, id_value in _iter_fields(value):
                    if (id_field, id_wire) == (1, _LEN):
                        sig.signer_public_key, sig.signer_handle = id_value, None
                    elif (id_field, id_wire) == (3, _VARINT):
                        sig.signer_handle, sig.signer_public_key = id_value & _U32, None
            elif field in _SIG_TYPE_BY_FIELD:
                sig.sig_type = _SIG_TYPE_BY_FIELD[field]._from_bytes(value)
        return sig


@dataclass
class RoutableMessage:
    """Envelope carrying a payload between a Signer and a Verifier.

    ``protobuf_message_as_bytes`` and ``session_info`` share one slot on the wire;
    when both are set only the former is encoded.
    """

    to_destination: Destination | None = None
    from_destination: Destination | None = None
    protobuf_message_as_bytes: bytes | None = None
    session_info: bytes | None = None
    signature_data: SignatureData | None = None
    operation_status: int = 0
    signed_message_fault: int = 0
    uuid: bytes = b""
    request_uuid: bytes = b""
    flags: int = 0

    def to_bytes(self) -> bytes:
        writer = _Writer()
        if self.to_destination is not None:
            writer.raw(6, self.to_destination._to_bytes(), keep_empty=True)
        if self.from_destination is not None:
            writer.raw(7, self.from_destination._to_bytes(), keep_empty=True)
        if self.protobuf_message_as_bytes is not None:
            writer.raw(10, self.protobuf_message_as_bytes, keep_empty=True)
        if self.operation_status or self.signed_message_fault:
            status = _Writer()
            status.varint(1, int(self.operation_status))
            status.varint(2, int(self.signed_message_fault))
            writer.raw(12, status.getvalue(), keep_empty=True)
        if self.signature_data is not None:
            writer.raw(13, self.signature_data._to_bytes(), keep_empty=True)
        if self.protobuf_message_as_bytes is None and self.session_info is not None:
            writer.raw(15, self.session_info, keep_empty=True)
        writer.raw(50, self.uuid)
        writer.raw(51, self.request_uuid)
        writer.varint(52, self.flags & _U32)
        return writer.getvalue()


def parse_routable_message(data: bytes) -> RoutableMessage:
    """Decode a protobuf-encoded RoutableMessage; raises ValueError if malformed."""
    message = RoutableMessage()
    for field, wire, value in _iter_fields(data):
        if wire == _LEN:
            if field == 6:
                message.to_destination = Destination._from_bytes(value)
            elif field == 7:
                message.from_destination = Destination._from_bytes(value)
            elif field == 10:
                message.protobuf_message_as_bytes, message.session_info = value, None
            elif field == 12:
                for st_field, st_wire, st_value in _iter_fields(value):
                    if (st_field, st_wire) == (1, _VARINT):
                        message.operation_status = _signed32(st_value)
                    elif (st_field, st_wire) == (2, _VARINT):
                        message.signed_message_fault = _as_enum(MessageFault, _signed32(st_value))
            elif field == 13:
                message.signature_data = SignatureData._from_bytes(value)
            elif field == 15:
                message.session_info, message.protobuf_message_as_bytes = value, None
            elif field == 50:
                message.uuid = value
            elif field == 51:
                message.request_uuid = value
        elif (field, wire) == (52, _VARINT):
            message.flags = value & _U32
    return message