"""State and metadata handling shared by Signers and Verifiers."""

from __future__ import annotations

import time
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Protocol

from .errors import AuthenticationError, MetadataFieldTooLongError
from .metadata import Metadata
from .protocol import (
    COUNTER_MAX,
    EPOCH_ID_LENGTH,
    EPOCH_LENGTH,
    LABEL_MESSAGE_AUTH,
    AESGCMPersonalizedSignatureData,
    Domain,
    HMACPersonalizedSignatureData,
    MessageFault,
    RoutableMessage,
    SignatureType,
    Tag,
)
from .session import NativeSession


class _SessionInfoLike(Protocol):
    counter: int
    epoch: bytes | None
    expires_at: int


@dataclass(eq=False)
class Peer:
    """Session state common to both ends of an authenticated channel."""

    session: NativeSession
    verifier_name: bytes = b""
    domain: int = Domain.BROADCAST
    counter: int = 0
    epoch: bytearray = field(default_factory=lambda: bytearray(EPOCH_ID_LENGTH))
    time_zero: float | None = None

    def timestamp(self) -> int:
        """Whole seconds elapsed since the start of the current epoch."""
        start = self.time_zero if self.time_zero is not None else 0.0
        return int(time.time() - start) & COUNTER_MAX

    def _extract_metadata(
        self,
        meta: Metadata,
        message: RoutableMessage,
        info: _SessionInfoLike,
        method: SignatureType,
    ) -> None:
        meta.add(Tag.SIGNATURE_TYPE, bytes((int(method),)))

        # The destination domain is taken from the message, since the sender may broadcast.
        destination = message.to_destination
        if destination is None or destination.domain is None:
            raise AuthenticationError(MessageFault.INVALID_DOMAINS, "domain missing")
        domain = int(destination.domain)
        if not 0 <= domain <= 255:
            raise AuthenticationError(MessageFault.INVALID_DOMAINS, "domain out of range")
        meta.add(Tag.DOMAIN, bytes((domain,)))

        try:
            meta.add(Tag.PERSONALIZATION, self.verifier_name)
        except MetadataFieldTooLongError as exc:
            raise AuthenticationError(
                MessageFault.WRONG_PERSONALIZATION, "recipient name too long"
            ) from exc

        if not 0 <= info.expires_at <= EPOCH_LENGTH:
            raise AuthenticationError(MessageFault.BAD_PARAMETER, "out of bounds expiration time")

        meta.add(Tag.EPOCH, bytes(self.epoch))
        meta.add_uint32(Tag.EXPIRES_AT, info.expires_at)
        meta.add_uint32(Tag.COUNTER, info.counter)

        # Flags are only authenticated when set, for compatibility with older peers.
        if message.flags > 0:
            meta.add_uint32(Tag.FLAGS, message.flags)

    def _hmac_tag(self, message: RoutableMessage, hmac_data: HMACPersonalizedSignatureData) -> bytes:
        meta = Metadata(self.session.new_hmac(LABEL_MESSAGE_AUTH))
        self._extract_metadata(meta, message, hmac_data, SignatureType.HMAC_PERSONALIZED)
        return meta.checksum(message.protobuf_message_as_bytes or b"")

    def _response_metadata(self, message: RoutableMessage, request_id: bytes | None, counter: int) -> bytes:
        meta = Metadata()
        meta.add(Tag.SIGNATURE_TYPE, bytes((SignatureType.AES_GCM_RESPONSE,)))
        source = message.from_destination
        domain = int(source.domain) if source is not None and source.domain is not None else 0
        meta.add(Tag.DOMAIN, bytes((domain & 0xFF,)))
        meta.add(Tag.PERSONALIZATION, self.verifier_name)
        meta.add_uint32(Tag.COUNTER, counter)
        meta.add_uint32(Tag.FLAGS, message.flags)
        with suppress(MetadataFieldTooLongError):
            meta.add(Tag.REQUEST_HASH, request_id)
        meta.add_uint32(Tag.FAULT, int(message.signed_message_fault))
        return meta.checksum(None)


def request_id(message: RoutableMessage) -> bytes | None:
    """Identifier that a response uses to refer to the request ``message``."""
    signature = message.signature_data
    if signature is None or signature.sig_type is None:
        return None
    sig_type = signature.sig_type
    if isinstance(sig_type, AESGCMPersonalizedSignatureData):
        return bytes((SignatureType.AES_GCM_PERSONALIZED,)) + bytes(sig_type.tag)
    if isinstance(sig_type, HMACPersonalizedSignatureData):
        tag = bytes(sig_type.tag)
        destination = message.to_destination
        if destination is not None and destination.domain == Domain.VEHICLE_SECURITY:
            tag = tag[:16]
        return bytes((SignatureType.HMAC_PERSONALIZED,)) + tag
    return None