"""Server side of the FIDO U2F challenge/response protocol."""

from .config import ServerSettings
from .context import Context
from .crypto import AttestationPolicy
from .errors import (
    Base64Error,
    ChallengeError,
    ContextClosedError,
    CryptoError,
    ErrorKind,
    FormatError,
    InvalidPublicKeyError,
    JSONError,
    OriginError,
    OutOfMemoryError,
    SignatureError,
    U2FError,
    UnknownError,
)
from .models import Assertion, Client
from .server import Mode, Server, start

__all__ = [
    "Assertion",
    "AttestationPolicy",
    "Base64Error",
    "ChallengeError",
    "Client",
    "Context",
    "ContextClosedError",
    "CryptoError",
    "ErrorKind",
    "FormatError",
    "InvalidPublicKeyError",
    "JSONError",
    "Mode",
    "OriginError",
    "OutOfMemoryError",
    "Server",
    "ServerSettings",
    "SignatureError",
    "U2FError",
    "UnknownError",
    "start",
]
