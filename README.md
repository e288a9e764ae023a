# vehicleauth

Authenticated and encrypted command sessions between a **signer** (a client
that sends commands) and a **verifier** (the device that executes them).

The two sides agree on a shared key through static NIST P-256 ECDH. The session
key is the first 16 bytes of the SHA-1 digest of the shared x-coordinate. From
then on every command is either encrypted with AES-GCM or authenticated with
HMAC-SHA256. Either way it is bound to metadata: domain, verifier name, epoch,
expiry time, counter and, when set, flags. The verifier rejects replays using a
monotonic counter with a 32-message sliding window. It also rejects expired
messages and messages from a stale epoch.

## Installation

```
pip install vehicleauth
```

To run the test suite:

```
pip install "vehicleauth[test]"
pytest
```

## Quick start

```python
from datetime import timedelta

from vehicleauth.protocol import Destination, Domain, RoutableMessage
from vehicleauth.session import new_ecdh_private_key
from vehicleauth.signer import new_authenticated_signer
from vehicleauth.verifier import Verifier

# One-time setup: each side creates a key pair.
verifier_key = new_ecdh_private_key()
signer_key = new_ecdh_private_key()

domain = Domain.VEHICLE_SECURITY
verifier_name = b"example-verifier-0001"

# Once per session (usually until either side restarts).
verifier = Verifier(verifier_key, verifier_name, domain, signer_key.public_bytes())

challenge = bytes(range(8))
encoded_info, tag = verifier.signed_session_info(challenge)
signer = new_authenticated_signer(signer_key, verifier_name, challenge, encoded_info, tag)

# Once per message.
message = RoutableMessage(
    to_destination=Destination(domain=domain),
    protobuf_message_as_bytes=b"hello world",
)
signer.encrypt(message, timedelta(minutes=1))
assert verifier.verify(message) == b"hello world"
```

Expiry times may be given as a `timedelta` or as a number of seconds.

## Main pieces

- `vehicleauth.session`: `NativeECDHKey` and `NativeSession`. Use
  `new_ecdh_private_key()` to create a key. Use `load_external_ecdh_key(filename)`
  or `private_key_from_string(pem_block)` to load one from PEM (SEC 1 or PKCS #8,
  P-256 only). Use `unmarshal_ecdh_private_key(private_scalar)` to build one from a
  raw 32-byte big-endian scalar; it returns `None` if the scalar has the wrong
  length or is not below the curve order. `NativeECDHKey.exchange` returns a
  `NativeSession`, which offers `encrypt`, `decrypt`, `new_hmac`,
  `session_info_hmac` and `local_public_bytes`.
- `vehicleauth.signer`: `Signer`, together with `new_signer`,
  `new_authenticated_signer` and `import_session_info`. A signer can
  `encrypt` or `authorize_hmac` outgoing messages and `decrypt` responses. It
  can also resynchronise with `update_session_info` or
  `update_signed_session_info`; its counter never moves backwards. Use
  `export_session_info` to cache its state and `remote_public_key_bytes` to
  read the verifier's public key.
- `vehicleauth.verifier`: `Verifier`. It can `verify` incoming messages and
  hand out `session_info()` or `signed_session_info(challenge)`.
  `set_session_info(challenge, message)` attaches tagged session info to an
  error response. `encrypt(message, request_id, counter)` encrypts responses.
  `assign_handle` sets the handle reported in session info. Pass
  `Domain.BROADCAST` as the domain to turn off domain checking.
- `vehicleauth.dispatcher`: `Dispatcher` holds one private key and connects
  to many verifiers (`connect`, `connect_authenticated`).
- `vehicleauth.peer`: `Peer`, the state shared by signers and verifiers, and
  `request_id(message)`, which gives the identifier a response uses to refer
  to its request.
- `vehicleauth.window`: `SlidingWindow` and `update_sliding_window` for
  anti-replay checks.
- `vehicleauth.metadata`: `Metadata`, the injective tag-length-value encoding
  that is hashed into every authentication tag.
- `vehicleauth.protocol`: message types (`RoutableMessage`, `Destination`,
  `SessionInfo`, `SignatureData` and the signature data classes) and
  enumerations (`Tag`, `SignatureType`, `Domain`, `MessageFault`). It also has
  the protobuf wire encoding: `SessionInfo.to_bytes()`, `parse_session_info`,
  `RoutableMessage.to_bytes()` and `parse_routable_message`.
- `vehicleauth.errors`: `AuthenticationError` carries a `MessageFault` code.
  `InvalidSignatureError` also carries fresh signed session info, so that the
  signer can resync. `InvalidPublicKeyError` is an `AuthenticationError` with
  the `BAD_PARAMETER` code. `InvalidPrivateKeyError` and
  `MetadataFieldTooLongError` are `ValueError` subclasses.

## Errors

Failures raise exceptions. When verification fails in a way that a resync
could fix (wrong epoch, expired message, bad counter, bad signature), the
verifier raises `InvalidSignatureError`. Its `encoded_info` and `tag` can be
passed straight to `Signer.update_signed_session_info`.

AES-GCM authentication failures in `NativeSession.decrypt`, and so in
`Signer.decrypt`, raise `ValueError`. `Signer.decrypt` has one exception: if
the verifier name is too long to build the response metadata, it returns `0`
and leaves the message untouched.

## What this package does not do

It only provides the cryptographic session layer and the message types it
needs. It does not send or receive messages over any transport, has no
command-line tool, does not store keys in a keyring, and does not produce
Schnorr signatures or signed tokens.