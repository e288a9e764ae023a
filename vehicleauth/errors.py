"""Exceptions raised while authenticating vehicle commands."""

from __future__ import annotations

from .protocol import MessageFault


class AuthenticationError(Exception):
    """A failure carrying a protocol fault code that can be reported to the peer."""

    def __init__(self, code: MessageFault, info: str) -> None:
        super().__init__(code, info)
        self.code = code
        self.info = info

    def __str__(self) -> str:
        label = self.code.label if isinstance(self.code, MessageFault) else str(self.code)
        return f"{label}: {self.info}"


class InvalidSignatureError(AuthenticationError):
    """Authentication failed; carries fresh session info so the Signer can resync."""

    def __init__(self, code: MessageFault, encoded_info: bytes, tag: bytes) -> None:
        super().__init__(code, "invalid signature")
        self.encoded_info = encoded_info
        self.tag = tag

    def __str__(self) -> str:
        name = self.code.name if isinstance(self.code, MessageFault) else str(self.code)
        return f"Invalid signature: MESSAGEFAULT_ERROR_{name}"


class InvalidPublicKeyError(AuthenticationError):
    """A remote peer provided an invalid public key."""

    def __init__(self) -> None:
        super().__init__(MessageFault.BAD_PARAMETER, "invalid public key")


class InvalidPrivateKeyError(ValueError):
    """A local private key is unsupported or malformed."""

    def __init__(self, detail: str | None = None) -> None:
        message = "invalid private key" if detail is None else f"invalid private key: {detail}"
        super().__init__(message)
        self.detail = detail


class MetadataFieldTooLongError(ValueError):
    """An authenticated metadata field does not fit the serialization format."""

    def __init__(self) -> None:
        super().__init__("metadata fields can't be more than 255 bytes long")