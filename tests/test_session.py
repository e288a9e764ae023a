import hashlib

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from vehicleauth.errors import (
    InvalidPrivateKeyError,
    InvalidPublicKeyError,
    MetadataFieldTooLongError,
)
from vehicleauth.session import (
    NativeECDHKey,
    NativeSession,
    load_external_ecdh_key,
    new_ecdh_private_key,
    private_key_from_string,
    unmarshal_ecdh_private_key,
)


def phone_public_test_key() -> bytearray:
    return bytearray([
        0x04, 0x07, 0xfb, 0x60, 0xb6, 0x5b, 0x94, 0xe0, 0xde, 0x4a, 0x95,
        0x4c, 0x53, 0xbe, 0x10, 0x00, 0x3d, 0x9e, 0x69, 0x91, 0x8d, 0xed,
        0xfd, 0xa5, 0xf4, 0xe9, 0xef, 0xb9, 0xeb, 0xd8, 0xc5, 0xbd, 0x67,
        0x2a, 0x53, 0x99, 0x1c, 0x40, 0x68, 0x86, 0x5d, 0x5f, 0xb4, 0x4f,
        0x97, 0xf6, 0xce, 0xcf, 0x83, 0x98, 0xf2, 0x61, 0xdd, 0x1d, 0x7b,
        0xc6, 0x9b, 0xe6, 0x76, 0xaf, 0xdc, 0x8f, 0xfa, 0xcb, 0xcc,
    ])


SHARED_TEST_PRIVATE = bytes([
    0x52, 0x60, 0xf8, 0xd6, 0x11, 0x38, 0x75, 0xd8, 0x6f, 0x8e, 0xe8,
    0xfe, 0xa3, 0x40, 0xdf, 0x1f, 0xfb, 0x40, 0xc6, 0x58, 0xb5, 0x45,
    0x5e, 0x8c, 0x33, 0xd7, 0x97, 0xc5, 0x3a, 0x41, 0xaf, 0xd3,
])

CORRECT_SHARED_SECRET = bytes([
    0x00, 0x72, 0xd5, 0xb8, 0x15, 0x20, 0x7a, 0x04, 0xf0, 0xc7, 0x95, 0xfb,
    0xa0, 0xba, 0x9e, 0x8a, 0xdd, 0x3f, 0x1f, 0x57, 0x14, 0x8c, 0x51, 0xff,
    0xac, 0xe2, 0x2c, 0xa1, 0x5e, 0x6f, 0xd8, 0x45,
])

P256_GENERATOR = bytes.fromhex(
    "04"
    "6B17D1F2E12C4247F8BCE6E563A440F277037D812DEB33A0F4A13945D898C296"
    "4FE342E2FE1A7F9B8EE7EB4A7C0F9E162BCE33576B315ECECBB6406837BF51F5"
)


def _uncompressed(key) -> bytes:
    return key.public_key().public_bytes(
        serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint
    )


@pytest.fixture
def key_files(tmp_path):
    p256 = ec.generate_private_key(ec.SECP256R1())
    p384 = ec.generate_private_key(ec.SECP384R1())
    rsa_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    no_enc = serialization.NoEncryption()
    pkcs8 = serialization.PrivateFormat.PKCS8
    pem = serialization.Encoding.PEM
    files = {
        "invalid_rsa.pem": rsa_key.private_bytes(pem, pkcs8, no_enc),
        "valid_private_key.pem": p256.private_bytes(pem, pkcs8, no_enc),
        "invalid_curve.pem": p384.private_bytes(pem, pkcs8, no_enc),
        "empty.pem": b"",
        "public_key.pem": p256.public_key().public_bytes(
            pem, serialization.PublicFormat.SubjectPublicKeyInfo
        ),
        "not_pem.pem": b"this is not a PEM file\n",
        "not_pkcs8.pem": p256.private_bytes(
            pem, serialization.PrivateFormat.TraditionalOpenSSL, no_enc
        ),
    }
    for name, content in files.items():
        (tmp_path / name).write_bytes(content)
    return tmp_path, p256


@pytest.mark.parametrize(
    "filename, ok",
    [
        ("invalid_rsa.pem", False),
        ("valid_private_key.pem", True),
        ("invalid_curve.pem", False),
        ("empty.pem", False),
        ("public_key.pem", False),
        ("not_pem.pem", False),
        ("not_pkcs8.pem", True),
    ],
)
def test_load_external_ecc_key(key_files, filename, ok):
    directory, p256 = key_files
    if ok:
        key = load_external_ecdh_key(directory / filename)
        assert key.public_bytes() == _uncompressed(p256)
    else:
        with pytest.raises(InvalidPrivateKeyError):
            load_external_ecdh_key(directory / filename)


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_external_ecdh_key(tmp_path / "does_not_exist.pem")


def test_private_key_from_string_round_trip():
    source = ec.generate_private_key(ec.SECP256R1())
    text = source.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    key = private_key_from_string(text)
    assert key.scalar == source.private_numbers().private_value
    assert key.public_bytes() == _uncompressed(source)


def test_private_key_from_string_rejects_non_pem():
    with pytest.raises(InvalidPrivateKeyError, match="expected PEM encoding"):
        private_key_from_string("plain text")


def test_shared_key():
    phone_public = phone_public_test_key()
    vehicle_key = unmarshal_ecdh_private_key(SHARED_TEST_PRIVATE)
    assert vehicle_key is not None
    session = vehicle_key.exchange(bytes(phone_public))
    assert session.key == hashlib.sha1(CORRECT_SHARED_SECRET).digest()[:16]

    phone_public[1] ^= 1
    with pytest.raises(InvalidPublicKeyError):
        vehicle_key.exchange(bytes(phone_public))

    zero = b"\x04" + bytes(64)
    with pytest.raises(InvalidPublicKeyError):
        vehicle_key.exchange(zero)


def test_zero_private_key():
    vehicle_key = unmarshal_ecdh_private_key(bytes(32))
    assert vehicle_key is not None
    with pytest.raises(InvalidPrivateKeyError):
        vehicle_key.exchange(bytes(phone_public_test_key()))


def test_compressed_public_key_rejected():
    vehicle_key = unmarshal_ecdh_private_key(SHARED_TEST_PRIVATE)
    compressed = bytes([0x02]) + bytes(phone_public_test_key()[1:33])
    with pytest.raises(InvalidPublicKeyError):
        vehicle_key.exchange(compressed)


def test_unmarshal_invalid_scalars():
    assert unmarshal_ecdh_private_key(bytes(31)) is None
    assert unmarshal_ecdh_private_key(bytes(33)) is None
    assert unmarshal_ecdh_private_key(b"\xff" * 32) is None


def test_unmarshal_scalar_one_gives_generator():
    key = unmarshal_ecdh_private_key(bytes(31) + b"\x01")
    assert key.public_bytes() == P256_GENERATOR


def test_native_key_rejects_out_of_range_scalar():
    with pytest.raises(InvalidPrivateKeyError):
        NativeECDHKey(-1)


def test_new_key_public_bytes_shape():
    key = new_ecdh_private_key()
    public = key.public_bytes()
    assert len(public) == 65
    assert public[0] == 0x04
    assert new_ecdh_private_key().public_bytes() != public


@pytest.fixture
def session_pair():
    alice, bob = new_ecdh_private_key(), new_ecdh_private_key()
    return alice, bob, alice.exchange(bob.public_bytes()), bob.exchange(alice.public_bytes())


def test_both_sides_agree(session_pair):
    alice, bob, alice_session, bob_session = session_pair
    assert alice_session.key == bob_session.key
    assert len(alice_session.key) == 16
    assert alice_session.local_public_bytes() == alice.public_bytes()
    assert bob_session.local_public_bytes() == bob.public_bytes()


def test_encrypt_decrypt_round_trip(session_pair):
    _, _, alice_session, bob_session = session_pair
    nonce, ciphertext, tag = alice_session.encrypt(b"hello world", b"metadata")
    assert len(nonce) == 12
    assert len(tag) == 16
    assert len(ciphertext) == len(b"hello world")
    assert ciphertext != b"hello world"
    assert bob_session.decrypt(nonce, ciphertext, b"metadata", tag) == b"hello world"


def test_decrypt_rejects_tampering(session_pair):
    _, _, alice_session, bob_session = session_pair
    nonce, ciphertext, tag = alice_session.encrypt(b"hello world", b"metadata")
    corrupted = bytes([ciphertext[0] ^ 1]) + ciphertext[1:]
    with pytest.raises(ValueError):
        bob_session.decrypt(nonce, corrupted, b"metadata", tag)
    with pytest.raises(ValueError):
        bob_session.decrypt(nonce, ciphertext, b"other", tag)
    bad_tag = bytes([tag[0] ^ 1]) + tag[1:]
    with pytest.raises(ValueError):
        bob_session.decrypt(nonce, ciphertext, b"metadata", bad_tag)


def test_encrypt_uses_fresh_nonces(session_pair):
    _, _, alice_session, _ = session_pair
    first = alice_session.encrypt(b"data", None)
    second = alice_session.encrypt(b"data", None)
    assert first[0] != second[0]


def test_new_hmac_depends_on_label(session_pair):
    _, _, alice_session, bob_session = session_pair
    a = alice_session.new_hmac("label one")
    b = bob_session.new_hmac("label one")
    c = alice_session.new_hmac("label two")
    for ctx in (a, b, c):
        ctx.update(b"payload")
    assert a.digest() == b.digest()
    assert a.digest() != c.digest()
    assert len(a.digest()) == 32


def test_session_info_hmac(session_pair):
    _, _, alice_session, bob_session = session_pair
    tag = alice_session.session_info_hmac(b"verifier", b"challenge", b"info")
    assert tag == bob_session.session_info_hmac(b"verifier", b"challenge", b"info")
    assert tag != bob_session.session_info_hmac(b"verifier", b"challengf", b"info")
    assert tag != bob_session.session_info_hmac(b"verifiex", b"challenge", b"info")
    assert tag != bob_session.session_info_hmac(b"verifier", b"challenge", b"infx")


def test_session_info_hmac_rejects_long_challenge(session_pair):
    _, _, alice_session, _ = session_pair
    with pytest.raises(MetadataFieldTooLongError):
        alice_session.session_info_hmac(b"verifier", bytes(500), b"info")


def test_session_built_from_key_directly():
    session = NativeSession(bytes(16), b"\x04public")
    nonce, ciphertext, tag = session.encrypt(b"abc", b"")
    assert session.decrypt(nonce, ciphertext, b"", tag) == b"abc"
    assert session.local_public_bytes() == b"\x04public"