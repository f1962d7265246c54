"""ECDSA verification and attestation certificate handling built on cryptography."""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Iterable, List, Optional

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from .errors import CryptoError, SignatureError
from .models import KeyHandle, PublicKey

LOGGER = logging.getLogger(__name__)

_ECDSA_SHA256 = ec.ECDSA(hashes.SHA256())


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def load_attestation_certificate(der: bytes) -> x509.Certificate:
    try:
        return x509.load_der_x509_certificate(der)
    except ValueError as exc:
        raise CryptoError("Could not parse the attestation certificate") from exc


def load_public_key(public_key: PublicKey) -> ec.EllipticCurvePublicKey:
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), public_key.raw)
    except ValueError as exc:
        raise CryptoError("Public key is not a valid P-256 point") from exc


def _load_roots(paths: Iterable[str]) -> List[x509.Certificate]:
    roots: List[x509.Certificate] = []
    for path in paths:
        data = Path(path).expanduser().read_bytes()
        roots.extend(x509.load_pem_x509_certificates(data))
    return roots


class AttestationPolicy:
    """Trust decision applied to attestation certificates during registration.

    ``any`` accepts every certificate carrying a P-256 key, self-signed ones
    included. ``trusted`` also requires the certificate to be, or to be directly
    issued by, one of the configured roots.
    """

    def __init__(
        self,
        mode: str = "any",
        roots: Optional[List[x509.Certificate]] = None,
    ) -> None:
        if mode not in ("any", "trusted"):
            raise ValueError(f"Unsupported attestation policy: {mode}")
        self.mode = mode
        self.roots = list(roots or [])

    @classmethod
    def from_files(cls, mode: str, paths: Iterable[str]) -> "AttestationPolicy":
        return cls(mode, _load_roots(paths))

    def check(self, cert: x509.Certificate) -> None:
        key = cert.public_key()
        if not isinstance(key, ec.EllipticCurvePublicKey) or not isinstance(
            key.curve, ec.SECP256R1
        ):
            raise CryptoError("Attestation certificate does not carry a P-256 key")
        if self.mode == "any":
            return
        for root in self.roots:
            if cert == root:
                return
            try:
                cert.verify_directly_issued_by(root)
            except (ValueError, TypeError, InvalidSignature):
                continue
            return
        raise CryptoError(
            f"Attestation certificate issuer {cert.issuer.rfc4514_string()} is not trusted"
        )


def _verify(key: ec.EllipticCurvePublicKey, signature: bytes, message: bytes) -> None:
    try:
        key.verify(signature, message, _ECDSA_SHA256)
    except InvalidSignature as exc:
        raise SignatureError() from exc


def verify_registration_signature(
    cert: x509.Certificate,
    app_param: bytes,
    client_param: bytes,
    key_handle: KeyHandle,
    public_key: PublicKey,
    signature: bytes,
) -> None:
    key = cert.public_key()
    if not isinstance(key, ec.EllipticCurvePublicKey):
        raise CryptoError("Attestation certificate key is not an EC key")
    message = b"\x00" + app_param + client_param + key_handle.raw + public_key.raw
    _verify(key, signature, message)


def verify_authentication_signature(
    public_key: PublicKey,
    app_param: bytes,
    user_presence: int,
    counter: int,
    client_param: bytes,
    signature: bytes,
) -> None:
    key = load_public_key(public_key)
    message = (
        app_param
        + bytes([user_presence])
        + counter.to_bytes(4, "big")
        + client_param
    )
    _verify(key, signature, message)
