from __future__ import annotations

import datetime
import hashlib
import json
import os
import sys
from pathlib import Path
from typing import Dict, Optional, Tuple

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from u2fserver import Mode, ServerSettings, start
from u2fserver.models import TYP_AUTHENTICATION, TYP_REGISTRATION, websafe_decode, websafe_encode

ORIGIN = "https://example.com"
APP_ID = "https://example.com"


def make_certificate(
    key: ec.EllipticCurvePrivateKey,
    common_name: str,
    issuer: Optional[Tuple[x509.Certificate, ec.EllipticCurvePrivateKey]] = None,
) -> x509.Certificate:
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    issuer_name, signing_key = (issuer[0].subject, issuer[1]) if issuer else (subject, key)
    now = datetime.datetime.now(datetime.timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer_name)
        .public_key(key.public_key())
        .serial_number(int.from_bytes(os.urandom(16), "big") >> 1)
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=365))
    )
    if issuer is None:
        builder = builder.add_extension(x509.BasicConstraints(ca=True, path_length=None), True)
    return builder.sign(signing_key, hashes.SHA256())


class SoftKey:
    """Software U2F device producing registration and sign responses."""

    def __init__(
        self,
        issuer: Optional[Tuple[x509.Certificate, ec.EllipticCurvePrivateKey]] = None,
    ) -> None:
        self.attestation_key = ec.generate_private_key(ec.SECP256R1())
        self.certificate = make_certificate(self.attestation_key, "Soft U2F Attestation", issuer)
        self.credentials: Dict[bytes, ec.EllipticCurvePrivateKey] = {}
        self.counter = 0

    @staticmethod
    def _client_data(typ: str, challenge: str, origin: str) -> bytes:
        return json.dumps({"typ": typ, "challenge": challenge, "origin": origin}).encode("utf-8")

    def register(
        self,
        request: str | dict,
        origin: str = ORIGIN,
        challenge: Optional[str] = None,
        typ: str = TYP_REGISTRATION,
        tamper: bool = False,
    ) -> str:
        request = json.loads(request) if isinstance(request, str) else request
        client_data = self._client_data(typ, challenge or request["challenge"], origin)
        key_handle = os.urandom(64)
        credential = ec.generate_private_key(ec.SECP256R1())
        self.credentials[key_handle] = credential
        public_key = credential.public_key().public_bytes(
            serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint
        )
        message = (
            b"\x00"
            + hashlib.sha256(request["appId"].encode("utf-8")).digest()
            + hashlib.sha256(client_data).digest()
            + key_handle
            + public_key
        )
        signature = self.attestation_key.sign(message, ec.ECDSA(hashes.SHA256()))
        if tamper:
            signature = signature[:-1]
        registration_data = (
            b"\x05"
            + public_key
            + bytes([len(key_handle)])
            + key_handle
            + self.certificate.public_bytes(serialization.Encoding.DER)
            + signature
        )
        return json.dumps(
            {
                "registrationData": websafe_encode(registration_data),
                "clientData": websafe_encode(client_data),
            }
        )

    def authenticate(
        self,
        request: str | dict,
        origin: str = ORIGIN,
        challenge: Optional[str] = None,
        counter: Optional[int] = None,
        user_presence: int = 0x01,
        tamper: bool = False,
    ) -> str:
        request = json.loads(request) if isinstance(request, str) else request
        key_handle = websafe_decode(request["keyHandle"])
        credential = self.credentials[key_handle]
        if counter is None:
            self.counter += 1
            counter = self.counter
        client_data = self._client_data(
            TYP_AUTHENTICATION, challenge or request["challenge"], origin
        )
        message = (
            hashlib.sha256(request["appId"].encode("utf-8")).digest()
            + bytes([user_presence])
            + counter.to_bytes(4, "big")
            + hashlib.sha256(client_data).digest()
        )
        signature = credential.sign(message, ec.ECDSA(hashes.SHA256()))
        if tamper:
            signature = signature[:-1]
        signature_data = bytes([user_presence]) + counter.to_bytes(4, "big") + signature
        return json.dumps(
            {
                "keyHandle": request["keyHandle"],
                "signatureData": websafe_encode(signature_data),
                "clientData": websafe_encode(client_data),
            }
        )


@pytest.fixture
def softkey() -> SoftKey:
    return SoftKey()


@pytest.fixture
def attestation_ca() -> Tuple[x509.Certificate, ec.EllipticCurvePrivateKey]:
    key = ec.generate_private_key(ec.SECP256R1())
    return make_certificate(key, "Soft U2F Root CA"), key


@pytest.fixture
def ca_softkey(attestation_ca) -> SoftKey:
    return SoftKey(issuer=attestation_ca)


@pytest.fixture
def settings() -> ServerSettings:
    return ServerSettings()


@pytest.fixture
def server(settings):
    u2f = start(Mode.PRODUCTION, settings)
    yield u2f
    u2f.stop()


@pytest.fixture
def ctx(server):
    with server.open() as context:
        yield context


@pytest.fixture
def registered(server, softkey):
    """A Client obtained through a full registration round trip."""
    with server.open() as context:
        request = context.registration_challenge(ORIGIN, APP_ID)
        return context.registration_verify(softkey.register(request))
