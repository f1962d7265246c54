"""Value types and JSON message models shared across the U2F server."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any, Dict, NamedTuple, Optional

from pydantic import BaseModel

from .errors import Base64Error, FormatError, InvalidPublicKeyError

PUBLIC_KEY_LEN = 65
MAX_KEY_HANDLE_LEN = 255

TYP_REGISTRATION = "navigator.id.finishEnrollment"
TYP_AUTHENTICATION = "navigator.id.getAssertion"


def websafe_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def websafe_decode(data: str) -> bytes:
    """Decode base64 text, accepting either alphabet with or without padding."""
    if not isinstance(data, str):
        raise Base64Error(f"Expected base64 text, got {type(data).__name__}")
    value = data.strip().rstrip("=").replace("+", "-").replace("/", "_")
    padding = "=" * (-len(value) % 4)
    try:
        return base64.b64decode(value + padding, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as exc:
        raise Base64Error("Invalid websafe base64 value") from exc


def std_encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def std_decode(data: str) -> bytes:
    if not isinstance(data, str):
        raise Base64Error(f"Expected base64 text, got {type(data).__name__}")
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise Base64Error("Invalid base64 value") from exc


@dataclass(frozen=True)
class KeyHandle:
    """Opaque credential identifier issued by the device."""

    raw: bytes

    def __post_init__(self) -> None:
        if not self.raw:
            raise FormatError("Key handle is empty")
        if len(self.raw) > MAX_KEY_HANDLE_LEN:
            raise FormatError(f"Key handle longer than {MAX_KEY_HANDLE_LEN} bytes")

    @classmethod
    def from_base64(cls, value: str) -> "KeyHandle":
        return cls(websafe_decode(value))

    def encode(self) -> str:
        return websafe_encode(self.raw)


@dataclass(frozen=True)
class PublicKey:
    """Uncompressed P-256 point: ``0x04 || X(32) || Y(32)``."""

    raw: bytes

    def __post_init__(self) -> None:
        if len(self.raw) != PUBLIC_KEY_LEN:
            raise InvalidPublicKeyError(
                f"Public key must be {PUBLIC_KEY_LEN} bytes, got {len(self.raw)}"
            )
        if self.raw[0] != 0x04:
            raise InvalidPublicKeyError("Public key is not an uncompressed EC point")

    @classmethod
    def from_base64(cls, value: str) -> "PublicKey":
        return cls(std_decode(value))

    def encode(self) -> str:
        return std_encode(self.raw)


@dataclass(frozen=True)
class Client:
    """A registered credential; the caller is responsible for persisting it."""

    handle: str
    public_key: str

    def __post_init__(self) -> None:
        KeyHandle.from_base64(self.handle)
        PublicKey.from_base64(self.public_key)

    @property
    def key_handle(self) -> KeyHandle:
        return KeyHandle.from_base64(self.handle)

    @property
    def key(self) -> PublicKey:
        return PublicKey.from_base64(self.public_key)

    def to_dict(self) -> Dict[str, str]:
        return {"handle": self.handle, "public_key": self.public_key}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Client":
        try:
            return cls(handle=data["handle"], public_key=data["public_key"])
        except (KeyError, TypeError) as exc:
            raise FormatError("Client record requires 'handle' and 'public_key'") from exc


class Assertion(NamedTuple):
    """Outcome of a verified authentication.

    The caller must reject ``counter`` values that are not strictly greater
    than the last one stored for the same :class:`Client`.
    """

    counter: int
    user_present: bool


class RegisterRequest(BaseModel):
    version: str
    challenge: str
    appId: str


class SignRequest(BaseModel):
    version: str
    challenge: str
    keyHandle: str
    appId: str


class RegisterResponse(BaseModel):
    registrationData: str
    clientData: str


class SignResponse(BaseModel):
    signatureData: str
    clientData: str
    keyHandle: Optional[str] = None


class ClientData(BaseModel):
    typ: str
    challenge: str
    origin: str
    cid_pubkey: Optional[Any] = None
