from vehicleauth.errors import (
    AuthenticationError,
    InvalidPrivateKeyError,
    InvalidPublicKeyError,
    InvalidSignatureError,
    MetadataFieldTooLongError,
)
from vehicleauth.protocol import MessageFault


def test_error_code_string():
    err = AuthenticationError(MessageFault.KEYCHAIN_IS_FULL, "foobar")
    assert str(err) == "KeychainIsFull: foobar"
    assert err.code is MessageFault.KEYCHAIN_IS_FULL


def test_invalid_signature_error_carries_session_info():
    err = InvalidSignatureError(MessageFault.INCORRECT_EPOCH, b"info", b"tag")
    assert err.encoded_info == b"info"
    assert err.tag == b"tag"
    assert err.code is MessageFault.INCORRECT_EPOCH
    assert str(err).startswith("Invalid signature: ")
    assert str(err).endswith("INCORRECT_EPOCH")


def test_invalid_signature_error_is_an_authentication_error():
    err = InvalidSignatureError(MessageFault.INVALID_SIGNATURE, b"", b"")
    assert isinstance(err, AuthenticationError)
    assert err.code is MessageFault.INVALID_SIGNATURE
    assert str(err).endswith("INVALID_SIGNATURE")


def test_invalid_public_key_is_bad_parameter():
    err = InvalidPublicKeyError()
    assert err.code is MessageFault.BAD_PARAMETER
    assert "invalid public key" in str(err)


def test_invalid_private_key_message():
    assert str(InvalidPrivateKeyError()) == "invalid private key"
    assert str(InvalidPrivateKeyError("expected PEM encoding")) == "invalid private key: expected PEM encoding"


def test_metadata_field_too_long_message():
    err = MetadataFieldTooLongError()
    assert isinstance(err, ValueError)
    assert "metadata fields can't be more than 255 bytes long" in str(err)