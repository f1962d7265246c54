from __future__ import annotations

import base64

import pytest

from u2fserver import Base64Error, Client, ContextClosedError, FormatError, InvalidPublicKeyError
from u2fserver.models import (
    KeyHandle,
    PublicKey,
    std_decode,
    std_encode,
    websafe_decode,
    websafe_encode,
)

VALID_KEY = b"\x04" + bytes(range(64))


def test_websafe_decode_accepts_padding_and_both_alphabets():
    data = b"\xfb\xff\xfe-data"
    assert websafe_decode(websafe_encode(data)) == data
    assert websafe_decode(base64.urlsafe_b64encode(data).decode()) == data
    assert websafe_decode(base64.b64encode(data).decode()) == data


@pytest.mark.parametrize("value", ["a", "ab$c", "€€€€"])
def test_websafe_decode_rejects_garbage(value):
    with pytest.raises(Base64Error):
        websafe_decode(value)


def test_std_decode_is_strict():
    assert std_decode(std_encode(VALID_KEY)) == VALID_KEY
    with pytest.raises(Base64Error):
        std_decode("####")


@pytest.mark.parametrize("length", [64, 66])
def test_public_key_length_must_be_65(length):
    with pytest.raises(InvalidPublicKeyError):
        PublicKey.from_base64(std_encode(b"\x04" * length))


def test_public_key_requires_uncompressed_prefix():
    with pytest.raises(InvalidPublicKeyError):
        PublicKey(b"\x02" + bytes(64))


def test_public_key_of_65_bytes_is_accepted():
    key = PublicKey.from_base64(std_encode(VALID_KEY))
    assert key.raw == VALID_KEY
    assert key.encode() == std_encode(VALID_KEY)


def test_key_handle_bounds():
    with pytest.raises(FormatError):
        KeyHandle(b"")
    with pytest.raises(FormatError):
        KeyHandle(b"\x00" * 256)
    handle = KeyHandle(b"\x00" * 255)
    assert KeyHandle.from_base64(handle.encode()) == handle


def test_client_is_validated_and_serialisable():
    client = Client(handle=websafe_encode(b"handle"), public_key=std_encode(VALID_KEY))

    assert client.key_handle.raw == b"handle"
    assert client.key.raw == VALID_KEY
    assert Client.from_dict(client.to_dict()) == client
    with pytest.raises(InvalidPublicKeyError):
        Client(handle=client.handle, public_key=std_encode(VALID_KEY[:-1]))
    with pytest.raises(Base64Error):
        Client(handle="***", public_key=client.public_key)
    with pytest.raises(FormatError):
        Client.from_dict({"handle": client.handle})


def test_client_is_immutable():
    client = Client(handle=websafe_encode(b"handle"), public_key=std_encode(VALID_KEY))
    with pytest.raises(AttributeError):
        client.handle = "other"


def test_context_closed_error_is_not_a_protocol_error():
    assert issubclass(ContextClosedError, RuntimeError)
