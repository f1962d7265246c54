"""Parsers for the binary and JSON messages produced by U2F devices."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .errors import CryptoError, FormatError, JSONError
from .models import (
    PUBLIC_KEY_LEN,
    ClientData,
    KeyHandle,
    PublicKey,
    websafe_decode,
)

LOGGER = logging.getLogger(__name__)

REGISTRATION_RESERVED_BYTE = 0x05
COUNTER_LEN = 4
DER_SEQUENCE = 0x30

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class RegistrationResult:
    public_key: PublicKey
    key_handle: KeyHandle
    certificate: bytes
    signature: bytes


def parse_response(model: Type[ModelT], response: str | bytes) -> ModelT:
    try:
        return model.model_validate_json(response)
    except ValidationError as exc:
        LOGGER.debug("Rejected %s payload: %s", model.__name__, exc)
        raise JSONError(f"Malformed {model.__name__} message") from exc


def decode_client_data(value: str) -> Tuple[ClientData, bytes]:
    """Return the parsed client data together with the exact bytes that were signed."""
    raw = websafe_decode(value)
    try:
        parsed = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as exc:
        raise JSONError("Client data is not valid JSON") from exc
    try:
        return ClientData.model_validate(parsed), raw
    except ValidationError as exc:
        raise JSONError("Client data is missing required fields") from exc


def _der_length(data: bytes) -> int:
    if len(data) < 2 or data[0] != DER_SEQUENCE:
        raise CryptoError("Attestation certificate is not a DER sequence")
    first = data[1]
    if first < 0x80:
        return 2 + first
    count = first & 0x7F
    if count == 0 or count > 4 or len(data) < 2 + count:
        raise CryptoError("Attestation certificate has an invalid length header")
    return 2 + count + int.from_bytes(data[2 : 2 + count], "big")


def parse_registration_data(data: bytes) -> RegistrationResult:
    if len(data) < 1 + PUBLIC_KEY_LEN + 1:
        raise FormatError("Registration data too short")
    if data[0] != REGISTRATION_RESERVED_BYTE:
        raise FormatError("Registration data reserved byte does not match")
    idx = 1

    public_key_bytes = data[idx : idx + PUBLIC_KEY_LEN]
    if public_key_bytes[0] != 0x04:
        raise FormatError("Registered public key is not an uncompressed EC point")
    public_key = PublicKey(public_key_bytes)
    idx += PUBLIC_KEY_LEN

    key_handle_len = data[idx]
    idx += 1
    key_handle_bytes = data[idx : idx + key_handle_len]
    if key_handle_len == 0 or len(key_handle_bytes) < key_handle_len:
        raise FormatError("Registration data key handle truncated")
    idx += key_handle_len

    cert_len = _der_length(data[idx:])
    certificate = data[idx : idx + cert_len]
    if len(certificate) < cert_len:
        raise CryptoError("Attestation certificate truncated")
    idx += cert_len

    signature = data[idx:]
    if not signature:
        raise FormatError("Registration data carries no signature")

    return RegistrationResult(
        public_key=public_key,
        key_handle=KeyHandle(key_handle_bytes),
        certificate=certificate,
        signature=signature,
    )


def parse_signature_data(data: bytes) -> Tuple[int, int, bytes]:
    """Split signature data into ``(user_presence, counter, signature)``."""
    if len(data) < 1 + COUNTER_LEN + 1:
        raise FormatError("Signature data too short")
    user_presence = data[0]
    counter = int.from_bytes(data[1 : 1 + COUNTER_LEN], "big")
    signature = data[1 + COUNTER_LEN :]
    return user_presence, counter, signature
