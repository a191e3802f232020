"""
trustplane.crypto
-----------------
Thin adapter over the `cryptography` package for the trust plane:

- Ed448: root and intermediate CA keys
- Ed25519: leaf certificate keys
- X25519: static key-exchange keys (IPSECKEY)
- Derived encodings: PEM/DER, SPKI-SHA256 for TLSA, raw X25519 extraction
  (SubjectPublicKeyInfo parsed with asn1crypto),
  the Web Key Directory hash of an OpenPGP local part

Every derivation here is a pure function of its input. Library failures are
translated into trust plane errors at this seam.
"""

from __future__ import annotations
from typing import Union
import base64, hashlib

from asn1crypto import keys
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed448, ed25519, x25519

from .errors import KeyGenerationError, SigningError
from .utils import split_email

PrivateKey = Union[ed448.Ed448PrivateKey, ed25519.Ed25519PrivateKey, x25519.X25519PrivateKey]

ALGORITHMS = {
    "ed448": ed448.Ed448PrivateKey,
    "ed25519": ed25519.Ed25519PrivateKey,
    "x25519": x25519.X25519PrivateKey,
}

_STD_B32 = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
_ZBASE32 = "ybndrfg8ejkmcpqxot1uwisza345h769"


# --------- key generation ----------
def generate_key(algorithm: str) -> PrivateKey:
    try:
        cls = ALGORITHMS[algorithm]
    except KeyError:
        raise KeyGenerationError(f"unsupported key algorithm: {algorithm}") from None
    try:
        return cls.generate()
    except UnsupportedAlgorithm as exc:
        raise KeyGenerationError(f"crypto backend cannot generate {algorithm} keys: {exc}") from exc

def private_key_pem(key: PrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )

def public_key_pem(key: PrivateKey) -> bytes:
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )

def public_key_der(public_key) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )

def load_private_key(data: bytes, expected: str, what: str) -> PrivateKey:
    """Load a PEM private key and insist on the algorithm family the role needs."""
    try:
        key = serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise SigningError(f"{what}: private key is unreadable: {exc}") from exc
    if not isinstance(key, ALGORITHMS[expected]):
        raise SigningError(f"{what}: expected an {expected} key, found {type(key).__name__}")
    return key

def key_matches_certificate(key: PrivateKey, cert: x509.Certificate) -> bool:
    raw = serialization.Encoding.Raw, serialization.PublicFormat.Raw
    try:
        return key.public_key().public_bytes(*raw) == cert.public_key().public_bytes(*raw)
    except (ValueError, TypeError):
        return False


# --------- certificate encodings ----------
def cert_pem(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.PEM)

def cert_der(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.DER)

def cert_b64(cert: x509.Certificate) -> str:
    return base64.b64encode(cert_der(cert)).decode("ascii")

def spki_sha256(cert: x509.Certificate) -> str:
    """SHA-256 over the DER SubjectPublicKeyInfo: the TLSA 3 1 1 payload."""
    return hashlib.sha256(public_key_der(cert.public_key())).hexdigest()

def cert_fingerprint(cert: x509.Certificate) -> str:
    return hashlib.sha256(cert_der(cert)).hexdigest()

def load_pem_chain(data: bytes) -> list[x509.Certificate]:
    try:
        return x509.load_pem_x509_certificates(data)
    except ValueError as exc:
        raise SigningError(f"certificate chain is unreadable: {exc}") from exc


# --------- X25519 raw public key ----------
def spki_raw_key(spki_der: bytes) -> bytes:
    """Key bits of a DER SubjectPublicKeyInfo, without the AlgorithmIdentifier header."""
    try:
        info = keys.PublicKeyInfo.load(spki_der, strict=True)
        raw = info["public_key"].native
    except (ValueError, KeyError, TypeError) as exc:
        raise ValueError(f"not a DER SubjectPublicKeyInfo: {exc}") from exc
    if not isinstance(raw, bytes):
        raise ValueError(f"unexpected {info.algorithm} public key structure")
    return raw

def x25519_raw_public(key: x25519.X25519PrivateKey) -> bytes:
    der = public_key_der(key.public_key())
    raw = spki_raw_key(der)
    if len(raw) != 32:
        raise KeyGenerationError(f"X25519 public key is {len(raw)} bytes, expected 32")
    if raw != key.public_key().public_bytes_raw():
        raise KeyGenerationError("X25519 SPKI contents do not match the raw public key")
    return raw


# --------- WKD ----------
def zbase32(data: bytes) -> str:
    """z-base-32: RFC 4648 bit grouping, human-oriented lowercase alphabet, no padding."""
    std = base64.b32encode(data).decode("ascii").rstrip("=")
    return std.translate(str.maketrans(_STD_B32, _ZBASE32))

def wkd_hash(identity: str) -> str:
    """
    Web Key Directory hash: SHA-1 of the lower-cased local part, z-base-32.
    Accepts a bare local part or a full address; the domain never matters.
    """
    local = split_email(identity)[0] if "@" in identity else identity
    return zbase32(hashlib.sha1(local.lower().encode("utf-8")).digest())
