"""
trustplane.issuance
-------------------
Ed25519 server certificates, signed by the intermediate CA or self-signed.

The signing decision is explicit: `Issued(mode)` when the requested mode is
honoured, `Downgraded(requested, reason)` when a CA-signed request had to fall
back to self-signing because no intermediate CA exists. Operator intent
(mode=SELF_SIGNED) and environment state (missing CA) stay distinguishable.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Dict, Optional, Tuple, Union
import re

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from . import crypto
from .ca import ROLE_INTERMEDIATE, ROLE_ROOT, CertificateAuthority, load_ca, load_signing_key, verify_chain
from .constants import DEFAULT_CERT_VALIDITY_DAYS, KIND_SERVER_CERT
from .errors import CSRError, ExtensionError, MissingDependencyError, SigningError
from .logger import get_logger
from .storage import ArtifactRecord, ManifestProvider
from .store import ArtifactStore
from .utils import safe_domain, utcnow

log = get_logger("Issuance")

_LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")


class IssuanceMode(str, Enum):
    SELF_SIGNED = "self-signed"
    CA_SIGNED = "ca-signed"


@dataclass(frozen=True)
class Issued:
    mode: IssuanceMode
    downgraded = False


@dataclass(frozen=True)
class Downgraded:
    requested: IssuanceMode
    reason: str
    mode: IssuanceMode = IssuanceMode.SELF_SIGNED
    downgraded = True


Decision = Union[Issued, Downgraded]


@dataclass
class LeafCertificate:
    domain: str
    certificate: x509.Certificate
    decision: Decision
    paths: Dict[str, str] = field(default_factory=dict)

    @property
    def mode(self) -> IssuanceMode:
        return self.decision.mode

    @property
    def fullchain_path(self) -> Optional[str]:
        return self.paths.get("fullchain")

    @property
    def b64(self) -> str:
        return crypto.cert_b64(self.certificate)

    @property
    def spki_sha256(self) -> str:
        return crypto.spki_sha256(self.certificate)


def leaf_paths(store: ArtifactStore, domain: str) -> Dict[str, str]:
    name = safe_domain(domain)
    return {
        "key": store.cert_file(name, ".key"),
        "csr": store.cert_file(name, ".csr"),
        "cert": store.cert_file(name, ".crt"),
        "der": store.cert_file(name, ".crt.der"),
        "b64": store.cert_file(name, ".crt.b64"),
        "spki": store.cert_file(name, ".spki.sha256"),
        "fullchain": store.cert_file(name, ".fullchain.crt"),
    }


def validate_domain(domain: str) -> None:
    if not domain or any(c.isspace() for c in domain):
        raise CSRError(f"malformed subject domain {domain!r}")
    if "*" in domain:
        raise ExtensionError(f"{domain!r} already contains a wildcard; SAN *.{domain} cannot be formed")
    if len(domain) > 253:
        raise CSRError(f"subject domain is longer than 253 characters: {domain[:32]}...")
    for label in domain.split("."):
        if not _LABEL.match(label):
            raise CSRError(f"malformed label {label!r} in subject domain {domain!r}")


def decide_mode(store: ArtifactStore, requested: IssuanceMode,
                allow_fallback: bool = True) -> Tuple[Decision, Optional[CertificateAuthority]]:
    if requested is IssuanceMode.SELF_SIGNED:
        return Issued(IssuanceMode.SELF_SIGNED), None
    ca = load_ca(store, ROLE_INTERMEDIATE)
    if ca is not None:
        return Issued(IssuanceMode.CA_SIGNED), ca
    reason = "no intermediate CA material present"
    if not allow_fallback:
        raise MissingDependencyError(f"CA-signed issuance requested but {reason}")
    return Downgraded(requested, reason), None


def build_csr(key, domain: str) -> x509.CertificateSigningRequest:
    try:
        subject = x509.Name([
            x509.NameAttribute(NameOID.COMMON_NAME, domain),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, domain),
        ])
        csr = x509.CertificateSigningRequestBuilder().subject_name(subject).sign(key, algorithm=None)
    except ValueError as exc:
        raise CSRError(f"cannot build a request for {domain!r}: {exc}") from exc
    if not csr.is_signature_valid:
        raise CSRError(f"request for {domain!r} failed its self-signature check")
    return csr


def _leaf_builder(csr: x509.CertificateSigningRequest, domain: str, issuer: x509.Name,
                  validity_days: int) -> x509.CertificateBuilder:
    try:
        san = x509.SubjectAlternativeName([x509.DNSName(domain), x509.DNSName(f"*.{domain}")])
    except ValueError as exc:
        raise ExtensionError(f"subjectAltName for {domain!r} is inconsistent: {exc}") from exc
    now = utcnow()
    return (
        x509.CertificateBuilder()
        .subject_name(csr.subject)
        .issuer_name(issuer)
        .public_key(csr.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=validity_days))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(san, critical=False)
        .add_extension(x509.KeyUsage(
            digital_signature=True, content_commitment=False, key_encipherment=False,
            data_encipherment=False, key_agreement=False, key_cert_sign=False,
            crl_sign=False, encipher_only=False, decipher_only=False), critical=True)
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH]),
                       critical=False)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(csr.public_key()), critical=False)
    )


def _chain_pem(store: ArtifactStore, ca: CertificateAuthority) -> bytes:
    if ca.chain_path and store.exists(ca.chain_path):
        return store.read_bytes(ca.chain_path)
    chain = crypto.cert_pem(ca.certificate)
    root = load_ca(store, ROLE_ROOT)
    if root is not None:
        chain += crypto.cert_pem(root.certificate)
    return chain


def issue_certificate(store: ArtifactStore, manifest: ManifestProvider, domain: str,
                      validity_days: int = DEFAULT_CERT_VALIDITY_DAYS,
                      mode: IssuanceMode = IssuanceMode.CA_SIGNED,
                      allow_fallback: bool = True) -> LeafCertificate:
    validate_domain(domain)
    paths = leaf_paths(store, domain)

    with store.locked(safe_domain(domain)):
        decision, ca = decide_mode(store, IssuanceMode(mode), allow_fallback)
        if isinstance(decision, Downgraded):
            log.warning(f"[CERT] {domain}: {decision.reason}; self-signing instead of CA signing")

        log.info(f"[CERT] generating Ed25519 key and request for {domain}")
        key = crypto.generate_key("ed25519")
        csr = build_csr(key, domain)

        if ca is not None:
            builder = _leaf_builder(csr, domain, ca.subject, validity_days).add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_subject_key_identifier(
                    ca.certificate.extensions.get_extension_for_class(x509.SubjectKeyIdentifier).value),
                critical=False)
            ca_key = load_signing_key(store, ca)
            try:
                cert = builder.sign(private_key=ca_key, algorithm=None)
            except (ValueError, TypeError) as exc:
                raise SigningError(f"intermediate CA could not sign {domain}: {exc}") from exc
            finally:
                del ca_key
            verify_chain([cert, ca.certificate])
        else:
            cert = _leaf_builder(csr, domain, csr.subject, validity_days).sign(private_key=key, algorithm=None)

        with store.stage() as staging:
            staging.write_private(paths["key"], crypto.private_key_pem(key))
            staging.write_public(paths["csr"], csr.public_bytes(serialization.Encoding.PEM))
            staging.write_public(paths["cert"], crypto.cert_pem(cert))
            staging.write_public(paths["der"], crypto.cert_der(cert))
            staging.write_public(paths["b64"], crypto.cert_b64(cert))
            staging.write_public(paths["spki"], crypto.spki_sha256(cert) + "\n")
            if ca is not None:
                chain_pem = _chain_pem(store, ca)
                verify_chain([cert] + crypto.load_pem_chain(chain_pem))
                staging.write_public(paths["fullchain"], crypto.cert_pem(cert) + chain_pem)
            else:
                staging.remove(paths["fullchain"])
        del key

        if ca is None:
            paths.pop("fullchain")
        manifest.upsert_artifact(ArtifactRecord(
            kind=KIND_SERVER_CERT,
            name=domain,
            path=paths["cert"],
            files=list(paths.values()),
            source=decision.mode.value,
            fingerprint=crypto.cert_fingerprint(cert),
            meta={
                "spki_sha256": crypto.spki_sha256(cert),
                "issuer": cert.issuer.rfc4514_string(),
                "not_after": cert.not_valid_after_utc.isoformat(),
            },
        ))
        event = {"domain": domain, "mode": decision.mode.value, "fingerprint": crypto.cert_fingerprint(cert)}
        if isinstance(decision, Downgraded):
            event.update(requested=decision.requested.value, reason=decision.reason)
            manifest.log_event("cert.downgraded", event)
        manifest.log_event("cert.issued", event)
        log.info(f"[CERT] {domain} issued ({decision.mode.value}), TLSA 3 1 1 {crypto.spki_sha256(cert)}")

    return LeafCertificate(domain=domain, certificate=cert, decision=decision, paths=paths)
