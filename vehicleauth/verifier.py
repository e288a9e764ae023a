"""Vehicle end of an authenticated channel: checks and decrypts commands from a Signer."""

from __future__ import annotations

import hmac
import os
import threading
import time

from .errors import AuthenticationError, InvalidSignatureError, MetadataFieldTooLongError
from .metadata import Metadata
from .peer import Peer
from .protocol import (
    COUNTER_MAX,
    EPOCH_ID_LENGTH,
    EPOCH_LENGTH,
    MAX_SECONDS_WITHOUT_COUNTER,
    AESGCMPersonalizedSignatureData,
    AESGCMResponseSignatureData,
    Domain,
    HMACPersonalizedSignatureData,
    HMACSignatureData,
    MessageFault,
    RoutableMessage,
    SessionInfo,
    SignatureData,
    SignatureType,
)
from .signer import ECDHPrivateKey
from .window import update_sliding_window

_YEAR_IN_SECONDS = 365 * 24 * 60 * 60


class Verifier(Peer):
    """Checks the authenticity of commands sent by a Signer.

    Use ``Domain.BROADCAST`` as the domain to disable domain checking.
    """

    def __init__(
        self,
        private_key: ECDHPrivateKey,
        verifier_name: bytes,
        domain: int,
        signer_public_bytes: bytes,
    ) -> None:
        session = private_key.exchange(signer_public_bytes)
        super().__init__(session=session, verifier_name=bytes(verifier_name), domain=domain)
        self.window = 0
        self.handle = 0
        self._lock = threading.Lock()
        if len(verifier_name) > 255:
            raise MetadataFieldTooLongError()
        self._rotate_epoch_if_needed(force=False)

    def _rotate_epoch_if_needed(self, force: bool) -> None:
        if (
            force
            or self.time_zero is None
            or self.counter == COUNTER_MAX
            or self.timestamp() > EPOCH_LENGTH
        ):
            try:
                fresh_epoch = os.urandom(EPOCH_ID_LENGTH)
            except OSError as exc:
                self.counter = COUNTER_MAX
                raise AuthenticationError(MessageFault.INTERNAL, "RNG failure") from exc
            self.epoch[:] = fresh_epoch
            self.time_zero = time.time()
            self.counter = 0

    def _adjust_clock(self) -> None:
        # The epoch start is kept on the wall clock, so only values that would
        # overflow the epoch arithmetic need correcting here.
        if self.time_zero is not None:
            now = int(time.time())
            start = int(self.time_zero)
            if start > now or now - start > _YEAR_IN_SECONDS:
                self._rotate_epoch_if_needed(force=True)
                return
        self._rotate_epoch_if_needed(force=False)

    def assign_handle(self, handle: int) -> None:
        """Set the handle reported in session info."""
        with self._lock:
            self.handle = handle

    def _session_info(self) -> SessionInfo:
        self._adjust_clock()
        return SessionInfo(
            counter=self.counter,
            public_key=self.session.local_public_bytes(),
            epoch=bytes(self.epoch),
            clock_time=self.timestamp(),
            handle=self.handle,
        )

    def session_info(self) -> SessionInfo:
        """Anti-replay state a Signer needs before it can send commands."""
        with self._lock:
            return self._session_info()

    def _signed_session_info(self, challenge: bytes) -> tuple[bytes, bytes]:
        encoded_info = self._session_info().to_bytes()
        tag = self.session.session_info_hmac(self.verifier_name, challenge, encoded_info)
        return encoded_info, tag

    def signed_session_info(self, challenge: bytes) -> tuple[bytes, bytes]:
        """Encoded session info and a tag binding it to ``challenge``."""
        with self._lock:
            return self._signed_session_info(challenge)

    def set_session_info(self, challenge: bytes, message: RoutableMessage) -> None:
        """Attach tagged, up-to-date session info to ``message`` so the Signer can resync."""
        encoded_info, tag = self.signed_session_info(challenge)
        message.protobuf_message_as_bytes = None
        message.session_info = encoded_info
        message.signature_data = SignatureData(sig_type=HMACSignatureData(tag=tag))

    def _signature_error(self, code: MessageFault, challenge: bytes) -> AuthenticationError:
        try:
            encoded_info, tag = self._signed_session_info(challenge)
        except (AuthenticationError, ValueError):
            return AuthenticationError(
                MessageFault.INTERNAL,
                f"Error collecting session info after encountering {code}",
            )
        return InvalidSignatureError(code, encoded_info, tag)

    def verify(self, message: RoutableMessage) -> bytes:
        """Authenticate ``message`` and return its payload, decrypted if it was encrypted."""
        with self._lock:
            self._adjust_clock()
            signature = message.signature_data
            if signature is None:
                raise AuthenticationError(MessageFault.BAD_PARAMETER, "signature data missing")
            sig_data = signature.sig_type
            if isinstance(sig_data, AESGCMPersonalizedSignatureData):
                plaintext = self._verify_gcm(message, sig_data)
            elif isinstance(sig_data, HMACPersonalizedSignatureData):
                plaintext = self._verify_hmac(message, sig_data)
            else:
                raise AuthenticationError(
                    MessageFault.BAD_PARAMETER, "unrecognized authentication method"
                )

            if sig_data.counter > 0:
                update = update_sliding_window(self.counter, self.window, sig_data.counter)
                if not update.accepted:
                    raise self._signature_error(
                        MessageFault.INVALID_TOKEN_OR_COUNTER, message.uuid
                    )
                self.counter, self.window = update.counter, update.window
            return plaintext

    def _verify_gcm(
        self, message: RoutableMessage, gcm_data: AESGCMPersonalizedSignatureData
    ) -> bytes:
        self._verify_session_info(message, gcm_data)
        meta = Metadata()
        self._extract_metadata(meta, message, gcm_data, SignatureType.AES_GCM_PERSONALIZED)
        try:
            return self.session.decrypt(
                gcm_data.nonce,
                message.protobuf_message_as_bytes or b"",
                meta.checksum(None),
                gcm_data.tag,
            )
        except ValueError:
            raise self._signature_error(MessageFault.INVALID_SIGNATURE, message.uuid) from None

    def _verify_hmac(
        self, message: RoutableMessage, hmac_data: HMACPersonalizedSignatureData
    ) -> bytes:
        self._verify_session_info(message, hmac_data)
        expected_tag = self._hmac_tag(message, hmac_data)
        if not hmac.compare_digest(bytes(hmac_data.tag), expected_tag):
            raise self._signature_error(MessageFault.INVALID_SIGNATURE, message.uuid)
        return message.protobuf_message_as_bytes or b""

    def _verify_session_info(
        self,
        message: RoutableMessage,
        info: AESGCMPersonalizedSignatureData | HMACPersonalizedSignatureData,
    ) -> None:
        destination = message.to_destination
        domain = 0
        if destination is not None and destination.domain is not None:
            domain = int(destination.domain)
        if domain != int(self.domain) and int(self.domain) != Domain.BROADCAST:
            raise AuthenticationError(MessageFault.INVALID_DOMAINS, "wrong domain")

        if info.epoch is not None and bytes(info.epoch) != bytes(self.epoch):
            raise self._signature_error(MessageFault.INCORRECT_EPOCH, message.uuid)

        expires_at = info.expires_at
        if expires_at != 0 and expires_at < self.timestamp():
            raise self._signature_error(MessageFault.TIME_EXPIRED, message.uuid)

        if expires_at > EPOCH_LENGTH:
            raise self._signature_error(MessageFault.BAD_PARAMETER, message.uuid)

        # A zero counter disables replay protection; such messages, like those
        # arriving out of order, must expire soon.
        counter = info.counter
        if counter == 0 or counter < self.counter:
            remaining = (expires_at - self.timestamp()) & COUNTER_MAX
            if expires_at == 0 or remaining > MAX_SECONDS_WITHOUT_COUNTER:
                raise self._signature_error(MessageFault.TIME_TO_LIVE_TOO_LONG, message.uuid)

    def encrypt(self, message: RoutableMessage, request_id: bytes | None, counter: int) -> None:
        """Encrypt a response in place.

        ``request_id`` must identify the request being answered and ``counter``
        must increase for a given ``request_id``.
        """
        plaintext = message.protobuf_message_as_bytes or b""
        authenticated_data = self._response_metadata(message, request_id, counter)
        nonce, ciphertext, tag = self.session.encrypt(plaintext, authenticated_data)
        message.signature_data = SignatureData(
            sig_type=AESGCMResponseSignatureData(nonce=nonce, counter=counter, tag=tag)
        )
        message.session_info = None
        message.protobuf_message_as_bytes = ciphertext