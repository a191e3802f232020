"""
trustplane.ca
-------------
Two-tier Ed448 certificate authority hierarchy.

    root CA          self-issued, CA:true pathlen:1, keyCertSign+cRLSign
      intermediate   issued by root, CA:true pathlen:0, AKI = root SKI

The root key belongs offline once the intermediate exists; the intermediate
signs server certificates (see trustplane.issuance).
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import NameOID

from . import crypto
from .constants import (
    ROOT_CA_DIR, INTERMEDIATE_CA_DIR, ROOT_CA_STEM, INTERMEDIATE_CA_STEM, CHAIN_FILE,
    KIND_ROOT_CA, KIND_INTERMEDIATE_CA,
    DEFAULT_ROOT_VALIDITY_DAYS, DEFAULT_INTERMEDIATE_VALIDITY_DAYS,
)
from .errors import CSRError, FilesystemError, SigningError
from .logger import get_logger
from .storage import ArtifactRecord, ManifestProvider
from .store import ArtifactStore
from .utils import utcnow

log = get_logger("CA")

ROLE_ROOT = "root"
ROLE_INTERMEDIATE = "intermediate"

_LAYOUT = {
    ROLE_ROOT: (ROOT_CA_DIR, ROOT_CA_STEM, KIND_ROOT_CA),
    ROLE_INTERMEDIATE: (INTERMEDIATE_CA_DIR, INTERMEDIATE_CA_STEM, KIND_INTERMEDIATE_CA),
}

CA_LOCK = "ca"


@dataclass
class CertificateAuthority:
    """A CA certificate plus where its material lives. Never holds the private key."""
    role: str
    certificate: x509.Certificate
    key_path: str
    cert_path: str
    der_path: str
    b64_path: str
    chain_path: Optional[str] = None

    @property
    def subject(self) -> x509.Name:
        return self.certificate.subject

    @property
    def subject_key_identifier(self) -> bytes:
        return self.certificate.extensions.get_extension_for_class(x509.SubjectKeyIdentifier).value.digest

    @property
    def path_length(self) -> Optional[int]:
        return self.certificate.extensions.get_extension_for_class(x509.BasicConstraints).value.path_length


def ca_paths(role: str) -> dict:
    directory, stem, _ = _LAYOUT[role]
    paths = {
        "key": f"{directory}/{stem}.key",
        "cert": f"{directory}/{stem}.crt",
        "der": f"{directory}/{stem}.crt.der",
        "b64": f"{directory}/{stem}.crt.b64",
    }
    if role == ROLE_INTERMEDIATE:
        paths["csr"] = f"{directory}/{stem}.csr"
        paths["chain"] = f"{directory}/{CHAIN_FILE}"
    return paths


def _ca_name(domain: str, label: str) -> x509.Name:
    try:
        return x509.Name([
            x509.NameAttribute(NameOID.COMMON_NAME, f"{domain} {label}"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, domain),
            x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
        ])
    except ValueError as exc:
        raise CSRError(f"invalid CA subject for {domain!r}: {exc}") from exc


def _ca_key_usage() -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=False,
        content_commitment=False,
        key_encipherment=False,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=True,
        crl_sign=True,
        encipher_only=False,
        decipher_only=False,
    )


def load_ca(store: ArtifactStore, role: str) -> Optional[CertificateAuthority]:
    """Load CA certificate metadata if both its certificate and key file are present."""
    paths = ca_paths(role)
    if not (store.exists(paths["cert"]) and store.exists(paths["key"])):
        return None
    try:
        cert = x509.load_pem_x509_certificate(store.read_bytes(paths["cert"]))
    except ValueError as exc:
        raise SigningError(f"{role} CA certificate {paths['cert']} is unreadable: {exc}") from exc
    return CertificateAuthority(
        role=role,
        certificate=cert,
        key_path=paths["key"],
        cert_path=paths["cert"],
        der_path=paths["der"],
        b64_path=paths["b64"],
        chain_path=paths.get("chain"),
    )


def load_signing_key(store: ArtifactStore, ca: CertificateAuthority):
    """Read the CA key for one signing call; callers drop it right after."""
    try:
        data = store.read_bytes(ca.key_path)
    except FilesystemError as exc:
        raise SigningError(f"{ca.role} CA key {ca.key_path} is absent or unreadable") from exc
    key = crypto.load_private_key(data, "ed448", f"{ca.role} CA key {ca.key_path}")
    if not crypto.key_matches_certificate(key, ca.certificate):
        raise SigningError(f"{ca.role} CA key {ca.key_path} does not match {ca.cert_path}")
    return key


def verify_chain(chain: List[x509.Certificate]) -> None:
    """
    Check a leaf-to-root ordered chain: issuer/subject linkage, signatures,
    AKI == issuer SKI and strictly decreasing CA path lengths.
    """
    for child, issuer in zip(chain, chain[1:]):
        if child.issuer != issuer.subject:
            raise SigningError(f"chain broken: {child.subject.rfc4514_string()} not issued by "
                               f"{issuer.subject.rfc4514_string()}")
        try:
            child.verify_directly_issued_by(issuer)
        except (ValueError, TypeError, InvalidSignature) as exc:
            raise SigningError(f"signature of {child.subject.rfc4514_string()} does not verify: {exc}") from exc
        try:
            aki = child.extensions.get_extension_for_class(x509.AuthorityKeyIdentifier).value.key_identifier
            ski = issuer.extensions.get_extension_for_class(x509.SubjectKeyIdentifier).value.digest
        except x509.ExtensionNotFound as exc:
            raise SigningError(f"key identifier missing in chain: {exc}") from exc
        if aki != ski:
            raise SigningError(f"AKI of {child.subject.rfc4514_string()} does not match issuer SKI")
        child_bc = child.extensions.get_extension_for_class(x509.BasicConstraints).value
        issuer_bc = issuer.extensions.get_extension_for_class(x509.BasicConstraints).value
        if not issuer_bc.ca:
            raise SigningError(f"{issuer.subject.rfc4514_string()} is not a CA")
        if child_bc.ca and issuer_bc.path_length is not None:
            if child_bc.path_length is None or child_bc.path_length >= issuer_bc.path_length:
                raise SigningError("CA path length does not decrease along the chain")


def _stage_ca(staging, paths: dict, key_pem: bytes, cert: x509.Certificate) -> None:
    staging.write_private(paths["key"], key_pem)
    staging.write_public(paths["cert"], crypto.cert_pem(cert))
    staging.write_public(paths["der"], crypto.cert_der(cert))
    staging.write_public(paths["b64"], crypto.cert_b64(cert))


def _record(role: str, domain: str, paths: dict, cert: x509.Certificate, source: str) -> ArtifactRecord:
    return ArtifactRecord(
        kind=_LAYOUT[role][2],
        name=role,
        path=paths["cert"],
        files=list(paths.values()),
        source=source,
        fingerprint=crypto.cert_fingerprint(cert),
        meta={"domain": domain, "subject": cert.subject.rfc4514_string(), "not_after": cert.not_valid_after_utc.isoformat()},
    )


def _backup_existing(store: ArtifactStore, manifest: ManifestProvider, role: str) -> None:
    # a new root also invalidates the intermediate it signed
    roles = (ROLE_ROOT, ROLE_INTERMEDIATE) if role == ROLE_ROOT else (role,)
    if not any(store.exists(ca_paths(r)["key"]) or store.exists(ca_paths(r)["cert"]) for r in roles):
        return
    dest = store.new_snapshot_dir()
    copied = store.snapshot(["ca"], dest)
    manifest.log_event("ca.backup", {"role": role, "backup": store.relpath(dest), "copied": copied})
    log.info(f"[CA] existing {role} CA backed up to {store.relpath(dest)}")


def create_root_ca(store: ArtifactStore, manifest: ManifestProvider, domain: str,
                   validity_days: int = DEFAULT_ROOT_VALIDITY_DAYS) -> CertificateAuthority:
    paths = ca_paths(ROLE_ROOT)
    with store.locked(CA_LOCK):
        _backup_existing(store, manifest, ROLE_ROOT)

        log.info(f"[CA] generating Ed448 root CA for {domain} ({validity_days} days)")
        key = crypto.generate_key("ed448")
        name = _ca_name(domain, "Root CA")
        ski = x509.SubjectKeyIdentifier.from_public_key(key.public_key())
        now = utcnow()
        cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now)
            .not_valid_after(now + timedelta(days=validity_days))
            .add_extension(x509.BasicConstraints(ca=True, path_length=1), critical=True)
            .add_extension(_ca_key_usage(), critical=True)
            .add_extension(ski, critical=False)
            .sign(private_key=key, algorithm=None)
        )

        stale = [rel for rel in ca_paths(ROLE_INTERMEDIATE).values() if store.exists(rel)]
        with store.stage() as staging:
            _stage_ca(staging, paths, crypto.private_key_pem(key), cert)
            for rel in stale:
                staging.remove(rel)
        del key

        manifest.upsert_artifact(_record(ROLE_ROOT, domain, paths, cert, "self-signed"))
        if stale or manifest.get_artifact(KIND_INTERMEDIATE_CA, ROLE_INTERMEDIATE) is not None:
            manifest.remove_artifact(KIND_INTERMEDIATE_CA, ROLE_INTERMEDIATE)
            manifest.log_event("ca.intermediate.retired", {"domain": domain, "removed": stale})
            log.warning("[CA] intermediate CA no longer chains to the new root and was removed; "
                        "create a new intermediate and re-issue server certificates")
        manifest.log_event("ca.root.created", {"domain": domain, "fingerprint": crypto.cert_fingerprint(cert)})
        log.info(f"[CA] root CA written to {paths['cert']} (keep {paths['key']} offline)")
    return load_ca(store, ROLE_ROOT)


def create_intermediate_ca(store: ArtifactStore, manifest: ManifestProvider, root: Optional[CertificateAuthority],
                           domain: str, validity_days: int = DEFAULT_INTERMEDIATE_VALIDITY_DAYS) -> CertificateAuthority:
    if root is None:
        raise SigningError("root CA material is absent; create the root CA first")
    paths = ca_paths(ROLE_INTERMEDIATE)
    with store.locked(CA_LOCK):
        root_key = load_signing_key(store, root)
        _backup_existing(store, manifest, ROLE_INTERMEDIATE)

        log.info(f"[CA] generating Ed448 intermediate CA for {domain} ({validity_days} days)")
        key = crypto.generate_key("ed448")
        csr = (
            x509.CertificateSigningRequestBuilder()
            .subject_name(_ca_name(domain, "Intermediate CA"))
            .sign(key, algorithm=None)
        )
        root_ski = root.certificate.extensions.get_extension_for_class(x509.SubjectKeyIdentifier).value
        now = utcnow()
        try:
            cert = (
                x509.CertificateBuilder()
                .subject_name(csr.subject)
                .issuer_name(root.subject)
                .public_key(csr.public_key())
                .serial_number(x509.random_serial_number())
                .not_valid_before(now)
                .not_valid_after(now + timedelta(days=validity_days))
                .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
                .add_extension(_ca_key_usage(), critical=True)
                .add_extension(x509.SubjectKeyIdentifier.from_public_key(csr.public_key()), critical=False)
                .add_extension(x509.AuthorityKeyIdentifier.from_issuer_subject_key_identifier(root_ski),
                               critical=False)
                .sign(private_key=root_key, algorithm=None)
            )
        except (ValueError, TypeError) as exc:
            raise SigningError(f"root CA could not sign the intermediate: {exc}") from exc
        finally:
            del root_key

        verify_chain([cert, root.certificate])
        chain_pem = crypto.cert_pem(cert) + crypto.cert_pem(root.certificate)

        with store.stage() as staging:
            _stage_ca(staging, paths, crypto.private_key_pem(key), cert)
            staging.write_public(paths["csr"], csr.public_bytes(serialization.Encoding.PEM))
            staging.write_public(paths["chain"], chain_pem)
        del key

        manifest.upsert_artifact(_record(ROLE_INTERMEDIATE, domain, paths, cert, "root-signed"))
        manifest.log_event("ca.intermediate.created", {
            "domain": domain,
            "fingerprint": crypto.cert_fingerprint(cert),
            "issuer": crypto.cert_fingerprint(root.certificate),
        })
        log.info(f"[CA] intermediate CA written to {paths['cert']}, chain {paths['chain']}")
    return load_ca(store, ROLE_INTERMEDIATE)
