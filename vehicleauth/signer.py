"""Client end of an authenticated channel: encrypts and tags commands for a Verifier."""

from __future__ import annotations

import hmac
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol, Union

from .errors import AuthenticationError, MetadataFieldTooLongError
from .metadata import Metadata
from .peer import Peer
from .protocol import (
    COUNTER_MAX,
    EPOCH_ID_LENGTH,
    AESGCMPersonalizedSignatureData,
    AESGCMResponseSignatureData,
    HMACPersonalizedSignatureData,
    MessageFault,
    RoutableMessage,
    SessionInfo,
    SignatureData,
    SignatureType,
    parse_session_info,
)
from .session import NativeSession

Duration = Union[int, float, timedelta]
Instant = Union[int, float, datetime]


class ECDHPrivateKey(Protocol):
    """A local private key able to agree on a session with a remote public key."""

    def exchange(self, remote_public_bytes: bytes) -> NativeSession: ...

    def public_bytes(self) -> bytes: ...


def _seconds(duration: Duration) -> float:
    if isinstance(duration, timedelta):
        return duration.total_seconds()
    return float(duration)


def _instant(moment: Instant) -> float:
    if isinstance(moment, datetime):
        return moment.timestamp()
    return float(moment)


def _epoch_start_time(epoch_time: int) -> float:
    """Local wall-clock time at which an epoch now ``epoch_time`` seconds old began."""
    return time.time() - epoch_time


def _decode_session_info(encoded_info: bytes) -> SessionInfo:
    try:
        return parse_session_info(bytes(encoded_info))
    except ValueError as exc:
        raise AuthenticationError(MessageFault.DECODING, "invalid session info protobuf") from exc


@dataclass(eq=False)
class Signer(Peer):
    """Sends messages that only the designated Verifier can decrypt and authenticate.

    ``set_time`` is the Verifier-clock transmission time of the newest session info seen.
    """

    verifier_public_bytes: bytes = b""
    set_time: int = 0

    def _copy_epoch(self, epoch: bytes | None) -> None:
        data = bytes(epoch or b"")[:EPOCH_ID_LENGTH]
        self.epoch[: len(data)] = data

    def _expiry(self, expires_in: Duration) -> int:
        start = self.time_zero if self.time_zero is not None else 0.0
        return int(time.time() + _seconds(expires_in) - start) & COUNTER_MAX

    def _check_session_info_tag(self, challenge: bytes, encoded_info: bytes, tag: bytes) -> None:
        valid_tag = self.session.session_info_hmac(self.verifier_name, challenge, encoded_info)
        if not hmac.compare_digest(valid_tag, bytes(tag)):
            raise AuthenticationError(MessageFault.INVALID_SIGNATURE, "session info hmac invalid")

    def remote_public_key_bytes(self) -> bytes:
        """The Verifier's public key, encoded without point compression."""
        return bytes(self.verifier_public_bytes)

    def export_session_info(self) -> bytes:
        """Encode the session state so it can be resumed with :func:`import_session_info`."""
        info = SessionInfo(
            counter=self.counter,
            public_key=bytes(self.verifier_public_bytes),
            epoch=bytes(self.epoch),
            clock_time=self.timestamp(),
        )
        return info.to_bytes()

    def update_session_info(self, info: SessionInfo) -> None:
        """Resync with session info sent by the Verifier, never rolling the counter back."""
        if bytes(info.public_key) != bytes(self.verifier_public_bytes):
            raise AuthenticationError(
                MessageFault.UNKNOWN_KEY_ID,
                "public key in SessionInfo doesn't match value used to initialize Signer",
            )
        if bytes(self.epoch) != bytes(info.epoch) or self.set_time <= info.clock_time:
            if self.counter < info.counter:
                self.counter = info.counter
            self._copy_epoch(info.epoch)
            self.set_time = info.clock_time
            self.time_zero = _epoch_start_time(info.clock_time)

    def update_signed_session_info(self, challenge: bytes, encoded_info: bytes, tag: bytes) -> None:
        """Resync with encoded session info after checking its authentication tag."""
        self._check_session_info_tag(challenge, encoded_info, tag)
        self.update_session_info(_decode_session_info(encoded_info))

    def _encrypt_with_counter(self, message: RoutableMessage, expires_in: Duration, counter: int) -> None:
        gcm_data = AESGCMPersonalizedSignatureData(
            epoch=bytes(self.epoch),
            counter=counter,
            expires_at=self._expiry(expires_in),
        )
        message.signature_data = SignatureData(
            signer_public_key=self.session.local_public_bytes(),
            sig_type=gcm_data,
        )
        meta = Metadata()
        self._extract_metadata(meta, message, gcm_data, SignatureType.AES_GCM_PERSONALIZED)
        if message.protobuf_message_as_bytes is None:
            raise AuthenticationError(MessageFault.BAD_PARAMETER, "Missing protobuf message")
        nonce, ciphertext, tag = self.session.encrypt(
            message.protobuf_message_as_bytes, meta.checksum(None)
        )
        gcm_data.nonce = nonce
        gcm_data.tag = tag
        message.protobuf_message_as_bytes = ciphertext

    def encrypt(self, message: RoutableMessage, expires_in: Duration) -> None:
        """Encrypt the payload of ``message`` in place and attach authenticated metadata."""
        if self.counter == COUNTER_MAX:
            raise AuthenticationError(MessageFault.INVALID_TOKEN_OR_COUNTER, "counter rollover")
        self.counter += 1
        self._encrypt_with_counter(message, expires_in, self.counter)

    def authorize_hmac(self, message: RoutableMessage, expires_in: Duration) -> None:
        """Attach an HMAC tag to ``message`` without encrypting its payload."""
        self.counter = (self.counter + 1) & COUNTER_MAX
        hmac_data = HMACPersonalizedSignatureData(
            epoch=bytes(self.epoch),
            counter=self.counter,
            expires_at=self._expiry(expires_in),
        )
        message.signature_data = SignatureData(
            signer_public_key=self.session.local_public_bytes(),
            sig_type=hmac_data,
        )
        hmac_data.tag = self._hmac_tag(message, hmac_data)

    def decrypt(self, message: RoutableMessage, request_id: bytes | None) -> int:
        """Decrypt a Verifier response in place and return its anti-replay counter.

        The caller must check that the counter increases for a given ``request_id``.
        """
        signature = message.signature_data
        gcm_info = signature.sig_type if signature is not None else None
        if not isinstance(gcm_info, AESGCMResponseSignatureData):
            raise AuthenticationError(MessageFault.BAD_PARAMETER, "missing AES-GCM data")
        try:
            authenticated_data = self._response_metadata(message, request_id, gcm_info.counter)
        except MetadataFieldTooLongError:
            return 0
        plaintext = self.session.decrypt(
            gcm_info.nonce,
            message.protobuf_message_as_bytes or b"",
            authenticated_data,
            gcm_info.tag,
        )
        message.protobuf_message_as_bytes = plaintext
        message.session_info = None
        message.signature_data = None
        return gcm_info.counter


def new_signer(
    private_key: ECDHPrivateKey,
    verifier_name: bytes,
    verifier_info: SessionInfo | None,
) -> Signer:
    """Create a Signer for the Verifier named ``verifier_name`` from its session info."""
    if len(verifier_name) > 255:
        raise MetadataFieldTooLongError()
    info = verifier_info if verifier_info is not None else SessionInfo()
    session = private_key.exchange(info.public_key)
    signer = Signer(
        session=session,
        verifier_name=bytes(verifier_name),
        counter=info.counter,
        time_zero=_epoch_start_time(info.clock_time),
        verifier_public_bytes=bytes(info.public_key),
        set_time=info.clock_time,
    )
    signer._copy_epoch(info.epoch)
    return signer


def import_session_info(
    private_key: ECDHPrivateKey,
    verifier_name: bytes,
    encoded_info: bytes,
    generated_at: Instant,
) -> Signer:
    """Create a Signer from cached session info, avoiding a round trip to the Verifier."""
    info = _decode_session_info(encoded_info)
    signer = new_signer(private_key, verifier_name, info)
    signer.time_zero = _instant(generated_at) - info.clock_time
    return signer


def new_authenticated_signer(
    private_key: ECDHPrivateKey,
    verifier_name: bytes,
    challenge: bytes,
    encoded_info: bytes,
    tag: bytes,
) -> Signer:
    """Create a Signer from encoded session info whose tag is checked first."""
    signer = import_session_info(private_key, verifier_name, encoded_info, time.time())
    signer._check_session_info_tag(challenge, encoded_info, tag)
    return signer