from __future__ import annotations

import json

import pytest

from u2fserver import Base64Error, CryptoError, FormatError, JSONError
from u2fserver.codec import (
    decode_client_data,
    parse_registration_data,
    parse_response,
    parse_signature_data,
)
from u2fserver.models import RegisterResponse, SignResponse, websafe_encode

PUBLIC_KEY = b"\x04" + b"\x11" * 64
KEY_HANDLE = b"\x22" * 64
CERT = bytes([0x30, 0x03, 0x02, 0x01, 0x05])
LONG_CERT = bytes([0x30, 0x82, 0x01, 0x00]) + b"\x33" * 256
SIGNATURE = b"\x30\x06\x02\x01\x01\x02\x01\x01"


def registration_data(
    reserved: int = 0x05,
    public_key: bytes = PUBLIC_KEY,
    key_handle: bytes = KEY_HANDLE,
    cert: bytes = CERT,
    signature: bytes = SIGNATURE,
) -> bytes:
    return bytes([reserved]) + public_key + bytes([len(key_handle)]) + key_handle + cert + signature


def test_parse_registration_data_splits_fields():
    result = parse_registration_data(registration_data())

    assert result.public_key.raw == PUBLIC_KEY
    assert result.key_handle.raw == KEY_HANDLE
    assert result.certificate == CERT
    assert result.signature == SIGNATURE


def test_parse_registration_data_reads_long_form_certificate_length():
    result = parse_registration_data(registration_data(cert=LONG_CERT))

    assert result.certificate == LONG_CERT
    assert result.signature == SIGNATURE


@pytest.mark.parametrize(
    "data",
    [
        b"",
        registration_data(reserved=0x04),
        registration_data(public_key=b"\x02" + b"\x11" * 64),
        registration_data(key_handle=b""),
        registration_data(signature=b""),
        bytes([0x05]) + PUBLIC_KEY + bytes([200]) + b"\x22" * 10,
    ],
)
def test_parse_registration_data_rejects_malformed_layouts(data):
    with pytest.raises(FormatError):
        parse_registration_data(data)


@pytest.mark.parametrize(
    "data",
    [
        registration_data(cert=b"\x31\x03\x02\x01\x05"),
        registration_data(cert=bytes([0x30, 0x80])),
        registration_data(cert=bytes([0x30, 0x85, 0x01])),
        registration_data(cert=LONG_CERT[:100], signature=b""),
    ],
)
def test_parse_registration_data_rejects_unreadable_certificate(data):
    with pytest.raises(CryptoError):
        parse_registration_data(data)


def test_parse_signature_data():
    presence, counter, signature = parse_signature_data(b"\x01\x00\x00\x01\x02" + SIGNATURE)

    assert presence == 1
    assert counter == 258
    assert signature == SIGNATURE


@pytest.mark.parametrize("data", [b"", b"\x01", b"\x01\x00\x00\x00\x01"])
def test_parse_signature_data_rejects_short_input(data):
    with pytest.raises(FormatError):
        parse_signature_data(data)


def test_decode_client_data_returns_signed_bytes():
    raw = b'{"typ": "navigator.id.getAssertion", "challenge": "abc", "origin": "https://a.b"}'
    client_data, signed = decode_client_data(websafe_encode(raw))

    assert signed == raw
    assert client_data.challenge == "abc"
    assert client_data.origin == "https://a.b"


def test_decode_client_data_errors():
    with pytest.raises(Base64Error):
        decode_client_data("%%%")
    with pytest.raises(JSONError):
        decode_client_data(websafe_encode(b"not json"))
    with pytest.raises(JSONError):
        decode_client_data(websafe_encode(b'{"typ": "x"}'))
    with pytest.raises(JSONError):
        decode_client_data(websafe_encode(b"[1, 2]"))


def test_parse_response_ignores_extra_keys():
    message = parse_response(
        SignResponse,
        json.dumps({"signatureData": "a", "clientData": "b", "errorCode": 0}),
    )
    assert message.keyHandle is None


@pytest.mark.parametrize("payload", ["", "[]", '{"registrationData": 5, "clientData": "x"}'])
def test_parse_response_rejects_bad_payloads(payload):
    with pytest.raises(JSONError):
        parse_response(RegisterResponse, payload)
