import dns.rdatatype
import dns.zone
import pytest

from trustplane import crypto
from trustplane.constants import KIND_ZONE
from trustplane.errors import EncodingError
from trustplane.issuance import IssuanceMode, issue_certificate
from trustplane.kex import generate_kex_key, kex_paths
from trustplane.pgp import generate_pgp_key
from trustplane.zone import count_records, export_zone, ipseckey_record, write_zone

STAMP = "2026-01-01T00:00:00Z"


def parse(text):
    return dns.zone.from_text(text, origin="example.com.", check_origin=False)


def test_server_only_export(store, manifest):
    issue_certificate(store, manifest, "example.com", mode=IssuanceMode.SELF_SIGNED)
    text = export_zone(store, manifest, "example.com", generated_at=STAMP)

    assert "$ORIGIN example.com." in text
    assert "$TTL 3600" in text
    assert "_server._cert        IN  CERT  PKIX 0 0 (" in text
    assert "CERT  PGP" not in text
    assert "IPSECKEY  " not in text
    assert "OPENPGPKEY" not in text
    assert count_records(text) == {"CERT": 1, "OPENPGPKEY": 0, "IPSECKEY": 0, "TLSA": 1, "CAA": 3}

    zone = parse(text)
    (tlsa,) = zone.find_rdataset("_443._tcp", dns.rdatatype.TLSA)
    leaf_cert = manifest.get_artifact("server_cert", "example.com")
    assert tlsa.cert.hex() == leaf_cert.meta["spki_sha256"]
    assert (tlsa.usage, tlsa.selector, tlsa.mtype) == (3, 1, 1)


def test_full_export_parses(store, manifest, hierarchy, gpg):
    issue_certificate(store, manifest, "example.com")
    pair = generate_kex_key(store, manifest, "example.com")
    generate_pgp_key(store, manifest, "Alice", "alice@example.com", engine=gpg)
    generate_pgp_key(store, manifest, "Bob", "bob@elsewhere.org", engine=gpg)

    text = export_zone(store, manifest, "example.com", generated_at=STAMP)
    assert count_records(text) == {"CERT": 5, "OPENPGPKEY": 1, "IPSECKEY": 1, "TLSA": 1, "CAA": 3}

    zone = parse(text)
    root = hierarchy[0].certificate
    (ca_cert,) = zone.find_rdataset("_ca._cert", dns.rdatatype.CERT)
    assert ca_cert.certificate == crypto.cert_der(root)

    (ipsec,) = zone.find_rdataset("_ipsec", dns.rdatatype.IPSECKEY)
    assert ipsec.key == pair.public_raw
    assert (ipsec.precedence, ipsec.gateway_type, ipsec.algorithm) == (10, 0, 2)

    owner = crypto.wkd_hash("alice") + "._openpgpkey"
    (opk,) = zone.find_rdataset(owner, dns.rdatatype.OPENPGPKEY)
    assert opk.key == gpg.export(gpg.keys["alice@example.com"][0], armor=False)
    assert len(zone.find_rdataset("_pgp", dns.rdatatype.CERT)) == 2

    caa = {(r.tag.decode(), r.value.decode()) for r in zone.find_rdataset("@", dns.rdatatype.CAA)}
    assert caa == {("issue", "letsencrypt.org"), ("issuewild", ";"), ("iodef", "mailto:security@example.com")}


def test_export_is_deterministic(store, manifest, hierarchy):
    issue_certificate(store, manifest, "example.com")
    generate_kex_key(store, manifest, "example.com")
    first = export_zone(store, manifest, "example.com", generated_at=STAMP)
    second = export_zone(store, manifest, "example.com", generated_at=STAMP)
    assert first == second
    assert f"; Generated: {STAMP}" in first


def test_base64_folded_at_64(store, manifest, hierarchy):
    text = export_zone(store, manifest, "example.com", generated_at=STAMP)
    body = [line.strip() for line in text.splitlines() if line.startswith("    ")]
    assert body
    assert all(len(chunk) <= 64 for chunk in body)
    assert len(body) > 2


def test_missing_files_are_skipped(store, manifest):
    generate_kex_key(store, manifest, "example.com")
    store.path(kex_paths(store, "example.com")["raw"]).unlink()
    text = export_zone(store, manifest, "example.com", generated_at=STAMP)
    assert count_records(text)["IPSECKEY"] == 0
    assert count_records(text)["CAA"] == 3


def test_corrupt_kex_key_raises(store, manifest):
    generate_kex_key(store, manifest, "example.com")
    store.path(kex_paths(store, "example.com")["raw"]).write_bytes(b"\x01" * 31)
    with pytest.raises(EncodingError):
        export_zone(store, manifest, "example.com")
    with pytest.raises(EncodingError):
        ipseckey_record(b"\x00" * 33)


def test_write_zone(store, manifest):
    issue_certificate(store, manifest, "example.com")
    rel = write_zone(store, manifest, "example.com", generated_at=STAMP)
    assert rel == "dns/records/example.com.zone"
    assert store.read_text(rel) == export_zone(store, manifest, "example.com", generated_at=STAMP).strip()
    rec = manifest.get_artifact(KIND_ZONE, "example.com")
    assert rec.path == rel
    (event,) = manifest.list_events("zone.exported")
    assert event[2]["records"]["TLSA"] == 1
