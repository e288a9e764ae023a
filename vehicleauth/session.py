"""ECDH key agreement over NIST P-256 and the AES-GCM/HMAC session derived from it."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import os
import re
from pathlib import Path
from typing import Iterator

from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import InvalidPrivateKeyError, InvalidPublicKeyError
from .metadata import Metadata
from .protocol import LABEL_SESSION_INFO, SignatureType, Tag

SHARED_KEY_SIZE_BYTES = 16

_NONCE_SIZE = 12
_TAG_SIZE = 16
_SCALAR_SIZE = 32
_CURVE_ORDER = 0xFFFFFFFF00000000FFFFFFFFFFFFFFFFBCE6FAADA7179E84F3B9CAC2FC632551
_UNCOMPRESSED_POINT_SIZE = 1 + 2 * _SCALAR_SIZE

_PEM_BLOCK = re.compile(
    rb"-----BEGIN ([^\r\n-]+)-----\r?\n(.*?)-----END \1-----", re.DOTALL
)


class NativeSession:
    """Symmetric session keyed by the digest of an ECDH shared secret."""

    def __init__(self, key: bytes, local_public: bytes) -> None:
        self.key = bytes(key)
        self._gcm = AESGCM(self.key)
        self._local_public = bytes(local_public)

    def local_public_bytes(self) -> bytes:
        """The encoded public key of the local party."""
        return self._local_public

    def encrypt(self, plaintext: bytes, associated_data: bytes | None) -> tuple[bytes, bytes, bytes]:
        """Encrypt under a fresh random nonce; returns ``(nonce, ciphertext, tag)``."""
        nonce = os.urandom(_NONCE_SIZE)
        aad = bytes(associated_data) if associated_data is not None else None
        sealed = self._gcm.encrypt(nonce, bytes(plaintext), aad)
        return nonce, sealed[:-_TAG_SIZE], sealed[-_TAG_SIZE:]

    def decrypt(
        self,
        nonce: bytes,
        ciphertext: bytes,
        associated_data: bytes | None,
        tag: bytes,
    ) -> bytes:
        """Authenticate and decrypt; raises ValueError if authentication fails."""
        aad = bytes(associated_data) if associated_data is not None else None
        try:
            return self._gcm.decrypt(bytes(nonce), bytes(ciphertext) + bytes(tag), aad)
        except InvalidTag as exc:
            raise ValueError("message authentication failed") from exc

    def _subkey(self, label: bytes) -> bytes:
        return hmac.new(self.key, label, hashlib.sha256).digest()

    def new_hmac(self, label: str) -> "hmac.HMAC":
        """An HMAC-SHA256 context keyed by a label-specific subkey."""
        return hmac.new(self._subkey(label.encode()), digestmod=hashlib.sha256)

    def session_info_hmac(self, verifier_name: bytes, challenge: bytes, encoded_info: bytes) -> bytes:
        """Tag binding encoded session info to a verifier name and a challenge."""
        meta = Metadata(self.new_hmac(LABEL_SESSION_INFO))
        meta.add(Tag.SIGNATURE_TYPE, bytes((SignatureType.HMAC,)))
        meta.add(Tag.PERSONALIZATION, verifier_name)
        meta.add(Tag.CHALLENGE, challenge)
        return meta.checksum(encoded_info)


def _parse_public_point(encoded: bytes) -> ec.EllipticCurvePublicKey:
    encoded = bytes(encoded or b"")
    if len(encoded) != _UNCOMPRESSED_POINT_SIZE or encoded[0] != 0x04:
        raise InvalidPublicKeyError()
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), encoded)
    except ValueError as exc:
        raise InvalidPublicKeyError() from exc


class NativeECDHKey:
    """A static P-256 private key used for ECDH key agreement."""

    def __init__(self, scalar: int) -> None:
        if not 0 <= scalar < _CURVE_ORDER:
            raise InvalidPrivateKeyError("scalar out of range")
        self.scalar = scalar
        self._key = ec.derive_private_key(scalar, ec.SECP256R1()) if scalar else None

    def public_bytes(self) -> bytes:
        """The public key as an uncompressed SEC1 point."""
        if self._key is None:
            return b"\x04" + bytes(2 * _SCALAR_SIZE)
        return self._key.public_key().public_bytes(
            serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint
        )

    def exchange(self, remote_public_bytes: bytes) -> NativeSession:
        """Agree on a session key with the owner of ``remote_public_bytes``."""
        remote = _parse_public_point(remote_public_bytes)
        if self._key is None:
            raise InvalidPrivateKeyError()
        shared_x = self._key.exchange(ec.ECDH(), remote)
        # SHA-1 only maps a pseudo-random point to a bit string; collisions don't matter here.
        digest = hashlib.sha1(shared_x).digest()
        return NativeSession(digest[:SHARED_KEY_SIZE_BYTES], self.public_bytes())


def new_ecdh_private_key() -> NativeECDHKey:
    """Generate a random P-256 key."""
    key = ec.generate_private_key(ec.SECP256R1())
    return NativeECDHKey(key.private_numbers().private_value)


def _pem_blocks(data: bytes) -> Iterator[tuple[str, bytes]]:
    for match in _PEM_BLOCK.finditer(data):
        lines = [line.strip() for line in match.group(2).splitlines()]
        body = b"".join(line for line in lines if b":" not in line)
        try:
            der = base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError):
            continue
        yield match.group(1).decode("ascii", "replace"), der


def private_key_from_string(pem_block: str | bytes) -> NativeECDHKey:
    """Load a P-256 private key from SEC1 or PKCS#8 PEM text."""
    data = pem_block.encode() if isinstance(pem_block, str) else bytes(pem_block)
    block = next(_pem_blocks(data), None)
    if block is None:
        raise InvalidPrivateKeyError("expected PEM encoding")
    _, der = block
    try:
        key = serialization.load_der_private_key(der, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise InvalidPrivateKeyError(f"malformed key: {exc}") from exc
    if not isinstance(key, ec.EllipticCurvePrivateKey):
        raise InvalidPrivateKeyError("only elliptic curve keys supported")
    if not isinstance(key.curve, ec.SECP256R1):
        raise InvalidPrivateKeyError("only NIST-P256 keys supported")
    return NativeECDHKey(key.private_numbers().private_value)


def load_external_ecdh_key(filename: str | os.PathLike[str]) -> NativeECDHKey:
    """Load a P-256 private key from a PEM file."""
    return private_key_from_string(Path(filename).read_bytes())


def unmarshal_ecdh_private_key(private_scalar: bytes) -> NativeECDHKey | None:
    """Build a key from a 32-byte big-endian scalar, or None if it is invalid."""
    if len(private_scalar) != _SCALAR_SIZE:
        return None
    scalar = int.from_bytes(private_scalar, "big")
    if scalar >= _CURVE_ORDER:
        return None
    return NativeECDHKey(scalar)