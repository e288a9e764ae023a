"""Connect to many Verifiers with one private key."""

from __future__ import annotations

from dataclasses import dataclass

from .protocol import SessionInfo
from .session import NativeSession
from .signer import ECDHPrivateKey, Signer, new_authenticated_signer, new_signer


@dataclass
class Dispatcher:
    """Creates Signers for multiple vehicles sharing the same private key."""

    private_key: ECDHPrivateKey

    def public_bytes(self) -> bytes:
        return self.private_key.public_bytes()

    def exchange(self, remote_public_bytes: bytes) -> NativeSession:
        return self.private_key.exchange(remote_public_bytes)

    def connect(self, verifier_name: bytes, session_info: SessionInfo | None) -> Signer:
        """Open a channel to a Verifier using unauthenticated session info."""
        return new_signer(self.private_key, verifier_name, session_info)

    def connect_authenticated(
        self,
        verifier_name: bytes,
        challenge: bytes,
        encoded_session_info: bytes,
        tag: bytes,
    ) -> Signer:
        """Open a channel to a Verifier using tagged, encoded session info."""
        return new_authenticated_signer(
            self.private_key, verifier_name, challenge, encoded_session_info, tag
        )