"""Command line surface for the trust plane (`trustplane` console script)."""
from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from . import crypto, zone
from .constants import (
    DEFAULT_DOMAIN, DEFAULT_CERT_VALIDITY_DAYS, DEFAULT_ROOT_VALIDITY_DAYS,
    DEFAULT_INTERMEDIATE_VALIDITY_DAYS, DEFAULT_PGP_NAME, DEFAULT_PGP_EMAIL, DEFAULT_PGP_EXPIRY,
)
from .errors import RotationError, TrustPlaneError
from .issuance import IssuanceMode, LeafCertificate
from .plane import TrustPlane


def _show(*records: zone.ZoneRecord) -> None:
    for rec in records:
        for line in rec.lines():
            print(line)


def _announce_downgrade(leaf: LeafCertificate) -> None:
    if leaf.decision.downgraded:
        print(f"[!] {leaf.decision.reason}: certificate is SELF-SIGNED, run `trustplane ca` first for CA signing")


def cmd_ca(plane: TrustPlane, args) -> None:
    root, intermediate = plane.create_hierarchy(args.domain, args.root_days, args.intermediate_days)
    print(f"[+] Root CA: {root.cert_path} (move {root.key_path} offline)")
    print(f"[+] Intermediate CA: {intermediate.cert_path}")
    print(f"[+] Chain: {intermediate.chain_path}")
    print()
    _show(
        zone.cert_record("_ca._cert", "PKIX", crypto.cert_b64(root.certificate), "Root CA Certificate (Ed448)"),
        zone.cert_record("_intermediate._cert", "PKIX", crypto.cert_b64(intermediate.certificate),
                         "Intermediate CA Certificate (Ed448)"),
    )


def cmd_cert(plane: TrustPlane, args) -> None:
    mode = IssuanceMode.SELF_SIGNED if args.self_signed else IssuanceMode.CA_SIGNED
    leaf = plane.issue_certificate(args.domain, args.days, mode=mode, allow_fallback=not args.no_fallback)
    _announce_downgrade(leaf)
    print(f"[+] Certificate ({leaf.mode.value}): {leaf.paths['cert']}")
    if leaf.fullchain_path:
        print(f"[+] Full chain: {leaf.fullchain_path}")
    print()
    _show(zone.tlsa_record(leaf.certificate),
          zone.cert_record("_server._cert", "PKIX", leaf.b64, "Server Certificate (Ed25519)"))


def cmd_kex(plane: TrustPlane, args) -> None:
    pair = plane.generate_kex_key(args.domain)
    print(f"[+] X25519 public key: {pair.paths['pub']}")
    print(f"[+] Hex: {pair.public_hex}")
    print("[!] Static key: for discovery and bootstrap, not per-session key exchange")
    print()
    _show(zone.ipseckey_record(pair.public_raw))


def cmd_pgp(plane: TrustPlane, args) -> None:
    key = plane.generate_pgp_key(args.name, args.email, args.expiry)
    print(f"[+] Fingerprint: {key.fingerprint}")
    print(f"[+] Public key: {key.paths['asc']}")
    print(f"[+] WKD hash: {key.wkd_hash}")
    print(f"[+] WKD URL: {key.wkd_url}")
    print(f"[+] WKD URL (advanced): {key.wkd_advanced_url}")
    print()
    _show(zone.cert_record("_pgp", "PGP", key.b64, f"PGP Key: {key.email}"),
          zone.openpgpkey_record(key.email, key.b64, f"OPENPGPKEY: {key.email}"))


def cmd_export(plane: TrustPlane, args) -> None:
    if args.stdout:
        sys.stdout.write(plane.export_zone(args.domain))
        sys.stdout.write("\n")
        return
    rel = plane.write_zone(args.domain)
    counts = zone.count_records(plane.store.read_text(rel))
    print(f"[+] Zone file: {plane.store.path(rel)}")
    for rtype, n in counts.items():
        print(f"    {rtype:<11} {n}")
    print("[!] Sign the zone with DNSSEC before publishing these records")


def cmd_rotate(plane: TrustPlane, args) -> None:
    report = plane.rotate(args.domain, args.scope)
    if report.backup_path:
        print(f"[+] Backup: {report.backup_path}")
    for step in report.steps:
        print(f"[+] {step.target}: {step.state.value}")
        if isinstance(step.result, LeafCertificate):
            _announce_downgrade(step.result)
    print(f"[!] Re-export the zone: trustplane export {args.domain}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="trustplane", description="Explicit Trust Plane")
    parser.add_argument("--home", default=None, help="Artifact store root (default: $TRUSTPLANE_HOME or .)")
    parser.add_argument("--log-level", default=None, help="Log level (default: $TRUSTPLANE_LOG_LEVEL or INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("ca", help="Create the Ed448 root and intermediate CA")
    p.add_argument("domain", nargs="?", default=DEFAULT_DOMAIN)
    p.add_argument("root_days", nargs="?", type=int, default=DEFAULT_ROOT_VALIDITY_DAYS)
    p.add_argument("intermediate_days", nargs="?", type=int, default=DEFAULT_INTERMEDIATE_VALIDITY_DAYS)
    p.set_defaults(func=cmd_ca)

    p = sub.add_parser("cert", help="Issue an Ed25519 server certificate")
    p.add_argument("domain", nargs="?", default=DEFAULT_DOMAIN)
    p.add_argument("days", nargs="?", type=int, default=DEFAULT_CERT_VALIDITY_DAYS)
    p.add_argument("--self-signed", action="store_true", help="Self-sign even if an intermediate CA exists")
    p.add_argument("--no-fallback", action="store_true", help="Fail instead of self-signing when no CA exists")
    p.set_defaults(func=cmd_cert)

    p = sub.add_parser("kex", help="Generate a static X25519 key-exchange key")
    p.add_argument("domain", nargs="?", default=DEFAULT_DOMAIN)
    p.set_defaults(func=cmd_kex)

    p = sub.add_parser("pgp", help="Generate an Ed25519/Cv25519 OpenPGP key with GnuPG")
    p.add_argument("name", nargs="?", default=DEFAULT_PGP_NAME)
    p.add_argument("email", nargs="?", default=DEFAULT_PGP_EMAIL)
    p.add_argument("expiry", nargs="?", default=DEFAULT_PGP_EXPIRY)
    p.set_defaults(func=cmd_pgp)

    p = sub.add_parser("export", help="Export DNS records as a zone file")
    p.add_argument("domain", nargs="?", default=DEFAULT_DOMAIN)
    p.add_argument("--stdout", action="store_true", help="Print the zone instead of writing it")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("rotate", help="Back up and regenerate keys (cert, kex or all)")
    p.add_argument("domain", nargs="?", default=DEFAULT_DOMAIN)
    p.add_argument("scope", nargs="?", default="all")
    p.set_defaults(func=cmd_rotate)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    overrides = {"home": args.home, "log_level": args.log_level}
    try:
        plane = TrustPlane({k: v for k, v in overrides.items() if v is not None})
    except ValueError as exc:
        print(f"[x] {exc}", file=sys.stderr)
        return 2
    try:
        args.func(plane, args)
    except RotationError as exc:
        print(f"[x] {exc}", file=sys.stderr)
        if exc.report is not None and exc.report.backup_path:
            print(f"[x] Backup kept at {exc.report.backup_path}", file=sys.stderr)
        return 1
    except TrustPlaneError as exc:
        print(f"[x] {type(exc).__name__}: {exc}", file=sys.stderr)
        return 1
    finally:
        plane.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
