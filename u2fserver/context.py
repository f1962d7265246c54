"""Protocol context driving the U2F registration and authentication flows."""

from __future__ import annotations

import hmac
import logging
import secrets
from typing import Callable, Optional, TypeVar
from urllib.parse import urlparse

from .codec import (
    decode_client_data,
    parse_registration_data,
    parse_response,
    parse_signature_data,
)
from .config import ServerSettings
from .crypto import (
    AttestationPolicy,
    load_attestation_certificate,
    load_public_key,
    sha256,
    verify_authentication_signature,
    verify_registration_signature,
)
from .errors import (
    Base64Error,
    ChallengeError,
    ContextClosedError,
    FormatError,
    InvalidPublicKeyError,
    OriginError,
    OutOfMemoryError,
    U2FError,
)
from .logs import EventLogger
from .models import (
    TYP_AUTHENTICATION,
    TYP_REGISTRATION,
    Assertion,
    Client,
    KeyHandle,
    PublicKey,
    RegisterRequest,
    RegisterResponse,
    SignRequest,
    SignResponse,
    websafe_decode,
    websafe_encode,
)

LOGGER = logging.getLogger(__name__)

STAGE_LABELS = {"register": "Register", "authn": "Authenticate"}
EVENT_LABELS = {
    ("register", "challenge"): "Issued registration challenge",
    ("register", "verify.start"): "Verifying registration response",
    ("register", "verify.rejected"): "Registration response rejected",
    ("register", "verify.security"): "Registration response failed cryptographic checks",
    ("register", "verify.memory"): "Registration verification ran out of memory",
    ("register", "verify.success"): "Registration completed",
    ("authn", "challenge"): "Issued authentication challenge",
    ("authn", "verify.start"): "Verifying authentication response",
    ("authn", "verify.rejected"): "Authentication response rejected",
    ("authn", "verify.security"): "Authentication response failed cryptographic checks",
    ("authn", "verify.memory"): "Authentication verification ran out of memory",
    ("authn", "verify.success"): "Authentication completed",
}

ResultT = TypeVar("ResultT")


_log = EventLogger(LOGGER, "U2F Server", STAGE_LABELS, EVENT_LABELS)


def _check_url(value: str, name: str) -> str:
    if not isinstance(value, str) or not value:
        raise FormatError(f"{name} must be a non-empty string")
    try:
        parsed = urlparse(value)
    except ValueError as exc:
        raise FormatError(f"{name} is not a valid URL") from exc
    if not parsed.scheme or not parsed.netloc:
        raise FormatError(f"{name} is not a valid URL")
    return value


class Context:
    """Parameters and state of one U2F challenge/response operation.

    A context is meant for a single logical operation: issue one challenge,
    verify the matching response, then close it. Verifying the same response
    again is allowed and yields the same result, so replay protection rests on
    the caller comparing authentication counters. Issuing another challenge on
    the same context replaces the previous one.
    """

    def __init__(
        self,
        settings: Optional[ServerSettings] = None,
        policy: Optional[AttestationPolicy] = None,
    ) -> None:
        self.settings = settings or ServerSettings()
        self.policy = policy or AttestationPolicy.from_files(
            self.settings.attestation_policy, self.settings.attestation_roots
        )
        self.request_id = secrets.token_hex(4)
        self.origin: Optional[str] = None
        self.app_id: Optional[str] = None
        self.challenge: Optional[str] = None
        self.key_handle: Optional[KeyHandle] = None
        self.public_key: Optional[PublicKey] = None
        self._closed = False

    def __enter__(self) -> "Context":
        self._ensure_open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self.origin = None
        self.app_id = None
        self.challenge = None
        self.key_handle = None
        self.public_key = None
        self._closed = True

    def _ensure_open(self) -> None:
        if self._closed:
            raise ContextClosedError("Context has been closed")

    # Parameters --------------------------------------------------------
    def set_origin(self, origin: str) -> None:
        self._ensure_open()
        self.origin = _check_url(origin, "origin")

    def set_app_id(self, app_id: str) -> None:
        self._ensure_open()
        self.app_id = _check_url(app_id, "appId")

    def set_key_handle(self, handle: str) -> None:
        self._ensure_open()
        self.key_handle = KeyHandle.from_base64(handle)

    def set_public_key(self, public_key: str) -> None:
        self._ensure_open()
        self.public_key = PublicKey.from_base64(public_key)

    def set_challenge(self, challenge: str) -> None:
        self._ensure_open()
        raw = websafe_decode(challenge)
        if len(raw) != self.settings.challenge_size:
            raise ChallengeError(
                f"Challenge must be {self.settings.challenge_size} bytes, got {len(raw)}"
            )
        self.challenge = websafe_encode(raw)

    def _new_challenge(self) -> str:
        self.challenge = websafe_encode(secrets.token_bytes(self.settings.challenge_size))
        return self.challenge

    # Registration ------------------------------------------------------
    def registration_challenge(self, origin: str, app_id: str) -> str:
        self._ensure_open()
        self.challenge = None
        app_id = _check_url(app_id, "appId")
        origin = _check_url(origin, "origin")
        self.app_id, self.origin = app_id, origin
        self.key_handle = self.public_key = None
        challenge = self._new_challenge()
        _log("register", "challenge", self.request_id, origin=origin, app_id=app_id)
        return RegisterRequest(
            version=self.settings.version,
            challenge=challenge,
            appId=self.app_id,
        ).model_dump_json()

    def registration_verify(self, response: str | bytes) -> Client:
        self._ensure_open()
        _log("register", "verify.start", self.request_id, origin=self.origin)
        client = self._guarded("register", self._verify_registration, response)
        _log(
            "register",
            "verify.success",
            self.request_id,
            key_handle=client.handle,
        )
        return client

    def _verify_registration(self, response: str | bytes) -> Client:
        message = parse_response(RegisterResponse, response)
        client_param = self._check_client_data(message.clientData, TYP_REGISTRATION)
        registration = parse_registration_data(websafe_decode(message.registrationData))

        cert = load_attestation_certificate(registration.certificate)
        self.policy.check(cert)
        load_public_key(registration.public_key)
        verify_registration_signature(
            cert,
            self._app_param(),
            client_param,
            registration.key_handle,
            registration.public_key,
            registration.signature,
        )
        return Client(
            handle=registration.key_handle.encode(),
            public_key=registration.public_key.encode(),
        )

    # Authentication ----------------------------------------------------
    def authentication_challenge(self, origin: str, app_id: str, client: Client) -> str:
        self._ensure_open()
        self.challenge = None
        app_id = _check_url(app_id, "appId")
        origin = _check_url(origin, "origin")
        key_handle = KeyHandle.from_base64(client.handle)
        public_key = PublicKey.from_base64(client.public_key)
        self.app_id, self.origin = app_id, origin
        self.key_handle, self.public_key = key_handle, public_key
        challenge = self._new_challenge()
        _log(
            "authn",
            "challenge",
            self.request_id,
            origin=origin,
            app_id=app_id,
            key_handle=client.handle,
        )
        return SignRequest(
            version=self.settings.version,
            challenge=challenge,
            keyHandle=self.key_handle.encode(),
            appId=self.app_id,
        ).model_dump_json()

    def authentication_verify(self, response: str | bytes) -> Assertion:
        self._ensure_open()
        _log("authn", "verify.start", self.request_id, origin=self.origin)
        assertion = self._guarded("authn", self._verify_authentication, response)
        _log(
            "authn",
            "verify.success",
            self.request_id,
            counter=assertion.counter,
            user_present=assertion.user_present,
        )
        return assertion

    def _verify_authentication(self, response: str | bytes) -> Assertion:
        if self.key_handle is None or self.public_key is None:
            raise InvalidPublicKeyError("Key handle and public key must be set")
        message = parse_response(SignResponse, response)
        client_param = self._check_client_data(message.clientData, TYP_AUTHENTICATION)
        if message.keyHandle is not None and websafe_decode(message.keyHandle) != self.key_handle.raw:
            raise FormatError("Response key handle does not match the challenged key handle")

        user_presence, counter, signature = parse_signature_data(
            websafe_decode(message.signatureData)
        )
        verify_authentication_signature(
            self.public_key,
            self._app_param(),
            user_presence,
            counter,
            client_param,
            signature,
        )
        return Assertion(counter=counter, user_present=bool(user_presence & 0x01))

    # Helpers -----------------------------------------------------------
    def _guarded(
        self,
        stage: str,
        verify: Callable[[str | bytes], ResultT],
        response: str | bytes,
    ) -> ResultT:
        if self.challenge is None:
            raise ChallengeError("No challenge has been issued on this context")
        try:
            return verify(response)
        except MemoryError as exc:
            _log(stage, "verify.memory", self.request_id, level=logging.ERROR)
            raise OutOfMemoryError() from exc
        except U2FError as exc:
            if exc.is_security_event:
                event, level = "verify.security", logging.WARNING
            else:
                event, level = "verify.rejected", logging.INFO
            _log(
                stage,
                event,
                self.request_id,
                level=level,
                error=exc.kind.name,
                reason=str(exc),
                origin=self.origin,
            )
            raise

    def _app_param(self) -> bytes:
        return sha256(self.app_id.encode("utf-8"))

    def _check_client_data(self, value: str, typ: str) -> bytes:
        """Validate client data against this context and return its hash."""
        client_data, raw = decode_client_data(value)
        if client_data.typ != typ:
            raise FormatError(f"Unexpected client data type {client_data.typ!r}")
        try:
            received = websafe_decode(client_data.challenge)
        except Base64Error as exc:
            raise ChallengeError("Client data challenge is not valid base64") from exc
        if not hmac.compare_digest(received, websafe_decode(self.challenge)):
            raise ChallengeError("Challenge mismatch")
        if client_data.origin != self.origin:
            raise OriginError(f"Origin mismatch: {client_data.origin!r}")
        return sha256(raw)
