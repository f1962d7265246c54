"""Error kinds and exceptions raised by the U2F server."""

from __future__ import annotations

from enum import IntEnum
from typing import Dict, Optional, Type


class ErrorKind(IntEnum):
    """Status codes reported by the verification backend.

    Any value outside the documented set resolves to ``UNKNOWN``.
    """

    OK = 0
    MEMORY = -1
    JSON = -2
    BASE64 = -3
    CRYPTO = -4
    ORIGIN = -5
    CHALLENGE = -6
    SIGNATURE = -7
    FORMAT = -8
    INVALID_PUBLIC_KEY = -100
    UNKNOWN = -255

    @classmethod
    def _missing_(cls, value: object) -> "ErrorKind":
        return cls.UNKNOWN


class ContextClosedError(RuntimeError):
    pass


class U2FError(Exception):
    kind: ErrorKind = ErrorKind.UNKNOWN
    default_message = "Unknown error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def code(self) -> int:
        return int(self.kind)

    @property
    def is_security_event(self) -> bool:
        return self.kind in (ErrorKind.CRYPTO, ErrorKind.SIGNATURE)

    @classmethod
    def from_code(cls, code: int, message: Optional[str] = None) -> Optional["U2FError"]:
        kind = ErrorKind(code)
        if kind is ErrorKind.OK:
            return None
        return _ERRORS_BY_KIND.get(kind, UnknownError)(message)


class OutOfMemoryError(U2FError):
    kind = ErrorKind.MEMORY
    default_message = "Memory error"


class JSONError(U2FError):
    kind = ErrorKind.JSON
    default_message = "Json error"


class Base64Error(U2FError):
    kind = ErrorKind.BASE64
    default_message = "Base64 error"


class CryptoError(U2FError):
    kind = ErrorKind.CRYPTO
    default_message = "Cryptographic error"


class OriginError(U2FError):
    kind = ErrorKind.ORIGIN
    default_message = "Origin mismatch"


class ChallengeError(U2FError):
    kind = ErrorKind.CHALLENGE
    default_message = "Challenge error"


class SignatureError(U2FError):
    kind = ErrorKind.SIGNATURE
    default_message = "Signature mismatch"


class FormatError(U2FError):
    kind = ErrorKind.FORMAT
    default_message = "Message format error"


class InvalidPublicKeyError(U2FError):
    kind = ErrorKind.INVALID_PUBLIC_KEY
    default_message = "Invalid PubKey format"


class UnknownError(U2FError):
    kind = ErrorKind.UNKNOWN
    default_message = "Unknown error"


_ERRORS_BY_KIND: Dict[ErrorKind, Type[U2FError]] = {
    error.kind: error
    for error in (
        OutOfMemoryError,
        JSONError,
        Base64Error,
        CryptoError,
        OriginError,
        ChallengeError,
        SignatureError,
        FormatError,
        InvalidPublicKeyError,
        UnknownError,
    )
}
