"""
trustplane.zone
---------------
Renders the trust material of one domain as BIND zone-file text.

Records come from whatever the manifest lists and the store still holds:

    _ca._cert / _intermediate._cert / _server._cert   CERT PKIX 0 0
    _pgp                                               CERT PGP 0 0   (one per OpenPGP key)
    <wkd-hash>._openpgpkey                             OPENPGPKEY     (keys of this domain)
    _ipsec                                             IPSECKEY 10 0 2 .
    _443._tcp                                          TLSA 3 1 1
    @                                                  CAA policy block

Missing artifacts are skipped, never reported as errors. Every rdata string
is parsed with dnspython before it is emitted so a corrupt artifact cannot
produce an unparsable zone.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import dns.exception
import dns.rdata
import dns.rdataclass
import dns.rdatatype
from cryptography import x509

from . import crypto
from .constants import (
    ZONE_TTL, B64_FOLD_WIDTH, OWNER_COLUMN_WIDTH,
    CERT_TYPE_PKIX, CERT_TYPE_PGP, CERT_KEY_TAG, CERT_ALGORITHM,
    IPSECKEY_PRECEDENCE, IPSECKEY_GATEWAY_TYPE, IPSECKEY_ALGORITHM,
    TLSA_PORT, TLSA_USAGE, TLSA_SELECTOR, TLSA_MATCHING_TYPE,
    CAA_ISSUER, CAA_ISSUEWILD, CAA_IODEF_LOCALPART,
    KIND_ROOT_CA, KIND_INTERMEDIATE_CA, KIND_SERVER_CERT, KIND_KEX, KIND_PGP, KIND_ZONE,
)
from .crypto import wkd_hash
from .errors import EncodingError
from .logger import get_logger
from .storage import ArtifactRecord, ManifestProvider
from .store import ArtifactStore
from .utils import b64e, fold, now_ts, safe_domain, sha256

log = get_logger("Zone")

SECTION_PKIX = "X.509 Certificates (CERT PKIX)"
SECTION_PGP = "OpenPGP Keys (CERT PGP)"
SECTION_OPENPGPKEY = "OpenPGP Keys (OPENPGPKEY, RFC 7929)"
SECTION_IPSECKEY = "Key Exchange (IPSECKEY)"
SECTION_TLSA = "DANE/TLSA Records"
SECTION_CAA = "Certificate Authority Authorization (CAA)"

SECTIONS = (SECTION_PKIX, SECTION_PGP, SECTION_OPENPGPKEY, SECTION_IPSECKEY, SECTION_TLSA, SECTION_CAA)

_BANNER = "; " + "=" * 78


@dataclass
class ZoneRecord:
    owner: str
    rtype: str
    rdata: str
    comment: str = ""
    folded: Optional[Tuple[str, str]] = None   # (fixed fields, base64 payload) rendered across lines

    def validate(self) -> None:
        try:
            dns.rdata.from_text(dns.rdataclass.IN, dns.rdatatype.from_text(self.rtype), self.rdata)
        except (dns.exception.DNSException, ValueError) as exc:
            raise EncodingError(f"{self.rtype} record for {self.owner} is not valid rdata: {exc}") from exc

    def lines(self) -> List[str]:
        out = [f"; {self.comment}"] if self.comment else []
        head = f"{self.owner:<{OWNER_COLUMN_WIDTH}} IN  {self.rtype}"
        if self.folded is None:
            out.append(f"{head}  {self.rdata}")
            return out
        fixed, payload = self.folded
        out.append(f"{head}  {fixed} (" if fixed else f"{head} (")
        out.extend(f"    {chunk}" for chunk in fold(payload, B64_FOLD_WIDTH))
        out.append(")")
        return out


# --------- record builders ----------
def cert_record(owner: str, cert_type: str, payload_b64: str, comment: str) -> ZoneRecord:
    fixed = f"{cert_type} {CERT_KEY_TAG} {CERT_ALGORITHM}"
    return ZoneRecord(owner, "CERT", f"{fixed} {payload_b64}", comment, folded=(fixed, payload_b64))

def openpgpkey_record(local_or_email: str, payload_b64: str, comment: str) -> ZoneRecord:
    return ZoneRecord(f"{wkd_hash(local_or_email)}._openpgpkey", "OPENPGPKEY", payload_b64, comment,
                      folded=("", payload_b64))

def ipseckey_record(raw_public: bytes) -> ZoneRecord:
    if len(raw_public) != 32:
        raise EncodingError(f"X25519 public key is {len(raw_public)} bytes, expected 32")
    rdata = f"{IPSECKEY_PRECEDENCE} {IPSECKEY_GATEWAY_TYPE} {IPSECKEY_ALGORITHM} . {b64e(raw_public)}"
    return ZoneRecord("_ipsec", "IPSECKEY", rdata, "X25519 Key Exchange")

def tlsa_record(cert: x509.Certificate, port: int = TLSA_PORT) -> ZoneRecord:
    rdata = f"{TLSA_USAGE} {TLSA_SELECTOR} {TLSA_MATCHING_TYPE} {crypto.spki_sha256(cert)}"
    return ZoneRecord(f"_{port}._tcp", "TLSA", rdata, f"DANE-EE TLSA for HTTPS (port {port})")

def caa_records(domain: str) -> List[ZoneRecord]:
    return [
        ZoneRecord("@", "CAA", f'0 issue "{CAA_ISSUER}"'),
        ZoneRecord("@", "CAA", f'0 issuewild "{CAA_ISSUEWILD}"'),
        ZoneRecord("@", "CAA", f'0 iodef "mailto:{CAA_IODEF_LOCALPART}@{domain}"'),
    ]


# --------- artifact lookup ----------
def _file(rec: ArtifactRecord, suffix: str) -> str:
    for f in rec.files:
        if f.endswith(suffix):
            return f
    return rec.path

def _locate(store: ArtifactStore, rec: Optional[ArtifactRecord], suffix: Optional[str] = None) -> Optional[str]:
    if rec is None:
        return None
    rel = _file(rec, suffix) if suffix else rec.path
    if store.exists(rel):
        return rel
    log.warning(f"[ZONE] manifest lists {rec.kind}/{rec.name} but {rel} is gone; skipping")
    return None

def _load_cert(store: ArtifactStore, rel: str) -> x509.Certificate:
    try:
        return x509.load_pem_x509_certificate(store.read_bytes(rel))
    except ValueError as exc:
        raise EncodingError(f"{rel} is not a PEM certificate: {exc}") from exc


def collect_records(store: ArtifactStore, manifest: ManifestProvider, domain: str) -> List[Tuple[str, ZoneRecord]]:
    records: List[Tuple[str, ZoneRecord]] = []

    for kind, name, owner, label in (
        (KIND_ROOT_CA, "root", "_ca._cert", "Root CA Certificate (Ed448)"),
        (KIND_INTERMEDIATE_CA, "intermediate", "_intermediate._cert", "Intermediate CA Certificate (Ed448)"),
    ):
        rel = _locate(store, manifest.get_artifact(kind, name))
        if rel:
            cert = _load_cert(store, rel)
            records.append((SECTION_PKIX, cert_record(owner, CERT_TYPE_PKIX, crypto.cert_b64(cert), label)))

    server_cert = None
    rel = _locate(store, manifest.get_artifact(KIND_SERVER_CERT, domain))
    if rel:
        server_cert = _load_cert(store, rel)
        records.append((SECTION_PKIX, cert_record("_server._cert", CERT_TYPE_PKIX,
                                                  crypto.cert_b64(server_cert), "Server Certificate (Ed25519)")))

    for rec in manifest.list_artifacts(KIND_PGP):
        binary = _locate(store, rec, ".pgp")
        if not binary:
            continue
        payload = b64e(store.read_bytes(binary))
        records.append((SECTION_PGP, cert_record("_pgp", CERT_TYPE_PGP, payload, f"PGP Key: {rec.name}")))
        if rec.meta.get("domain", rec.name.rpartition("@")[2].lower()) == domain.lower():
            records.append((SECTION_OPENPGPKEY, openpgpkey_record(rec.name, payload, f"OPENPGPKEY: {rec.name}")))

    raw = _locate(store, manifest.get_artifact(KIND_KEX, domain), ".x25519.pub.raw")
    if raw:
        records.append((SECTION_IPSECKEY, ipseckey_record(store.read_bytes(raw))))

    if server_cert is not None:
        records.append((SECTION_TLSA, tlsa_record(server_cert)))

    records.extend((SECTION_CAA, r) for r in caa_records(domain))

    for _, rec in records:
        rec.validate()
    return records


def render_zone(domain: str, records: List[Tuple[str, ZoneRecord]], generated_at: str) -> str:
    lines = [
        f"; Explicit Trust Plane - DNS Records for {domain}",
        f"; Generated: {generated_at}",
        ";",
        "; IMPORTANT: These records require DNSSEC to be secure!",
        ";",
        "; Include this file in your zone or copy records to your DNS provider.",
        "",
        f"$ORIGIN {domain}.",
        f"$TTL {ZONE_TTL}",
        "",
    ]
    for section in SECTIONS:
        members = [r for s, r in records if s == section]
        if not members and section == SECTION_OPENPGPKEY:
            continue
        lines += [_BANNER, f"; {section}", _BANNER, ""]
        if section == SECTION_CAA:
            lines += [line for r in members for line in r.lines()] + [""]
            continue
        for r in members:
            lines += r.lines() + [""]
    return "\n".join(lines)


def export_zone(store: ArtifactStore, manifest: ManifestProvider, domain: str,
                generated_at: Optional[str] = None) -> str:
    """Zone text for `domain`; identical output for identical artifacts and timestamp."""
    records = collect_records(store, manifest, domain)
    return render_zone(domain, records, generated_at or now_ts())


def write_zone(store: ArtifactStore, manifest: ManifestProvider, domain: str,
               generated_at: Optional[str] = None) -> str:
    text = export_zone(store, manifest, domain, generated_at)
    rel = store.zone_file(safe_domain(domain))
    with store.locked(safe_domain(domain)):
        with store.stage() as staging:
            staging.write_public(rel, text)
        manifest.upsert_artifact(ArtifactRecord(
            kind=KIND_ZONE, name=domain, path=rel, files=[rel], source="export", fingerprint=sha256(text.encode()),
        ))
        manifest.log_event("zone.exported", {"domain": domain, "path": rel, "records": count_records(text)})
    log.info(f"[ZONE] {domain} written to {rel}")
    return rel


def count_records(text: str) -> Dict[str, int]:
    counts = {t: 0 for t in ("CERT", "OPENPGPKEY", "IPSECKEY", "TLSA", "CAA")}
    for line in text.splitlines():
        if line.startswith(";"):
            continue
        parts = line.split()
        if len(parts) >= 3 and parts[1] == "IN" and parts[2] in counts:
            counts[parts[2]] += 1
    return counts

