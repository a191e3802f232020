"""
trustplane.pgp
--------------
OpenPGP keys for the trust plane, generated by GnuPG through python-gnupg.

Key shape: Ed25519 primary (sign, cert) + Curve25519 encryption subkey,
then an extra Ed25519 signing subkey so the primary can stay offline.
Public keys are exported armored and binary; the binary form feeds the
CERT PGP / OPENPGPKEY records and the Web Key Directory.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Optional

import gnupg

from .constants import DEFAULT_PGP_EXPIRY, KIND_PGP, WKD_ADVANCED_URL, WKD_DIRECT_URL
from .crypto import wkd_hash
from .errors import KeyGenerationError, TrustPlaneError
from .logger import get_logger
from .storage import ArtifactRecord, ManifestProvider
from .store import ArtifactStore
from .utils import b64e, safe_email, split_email

log = get_logger("PGP")


def wkd_url(email: str, advanced: bool = False) -> str:
    local, domain = split_email(email)
    template = WKD_ADVANCED_URL if advanced else WKD_DIRECT_URL
    return template.format(domain=domain.lower(), hash=wkd_hash(local), local=local)


class GnuPGEngine:
    """The slice of GnuPG the trust plane needs."""

    def __init__(self, gnupg_home: Optional[str] = None):
        try:
            self.gpg = gnupg.GPG(gnupghome=gnupg_home)
        except (OSError, ValueError) as exc:
            raise KeyGenerationError(f"GnuPG is not available: {exc}") from exc

    def has_key(self, email: str) -> bool:
        return bool(self.gpg.list_keys(keys=[email]))

    def generate(self, name: str, email: str, expiry: str) -> str:
        params = self.gpg.gen_key_input(
            key_type="EDDSA",
            key_curve="ed25519",
            key_usage="sign,cert",
            subkey_type="ECDH",
            subkey_curve="cv25519",
            subkey_usage="encrypt",
            name_real=name,
            name_email=email,
            expire_date=expiry,
            no_protection=True,
        )
        result = self.gpg.gen_key(params)
        if not result.fingerprint:
            raise KeyGenerationError(f"GnuPG key generation for {email} failed: {result.stderr.strip()}")
        # the key has no passphrase; "" selects loopback pinentry
        sub = self.gpg.add_subkey(result.fingerprint, master_passphrase="",
                                  algorithm="ed25519", usage="sign", expire=expiry)
        if not getattr(sub, "fingerprint", None):
            self.delete(result.fingerprint)
            raise KeyGenerationError(f"adding the signing subkey for {email} failed: {sub.stderr.strip()}")
        return result.fingerprint

    def delete(self, fingerprint: str) -> None:
        """Remove a key (secret part first) so a failed generation can be retried."""
        self.gpg.delete_keys(fingerprint, secret=True, passphrase="")
        self.gpg.delete_keys(fingerprint)

    def export(self, fingerprint: str, armor: bool) -> bytes:
        data = self.gpg.export_keys(fingerprint, armor=armor)
        if isinstance(data, str):
            data = data.encode("ascii")
        if not data:
            raise KeyGenerationError(f"GnuPG exported nothing for {fingerprint}")
        return data


@dataclass
class PGPKey:
    name: str
    email: str
    fingerprint: str
    binary: bytes
    paths: Dict[str, str] = field(default_factory=dict)

    @property
    def b64(self) -> str:
        return b64e(self.binary)

    @property
    def wkd_hash(self) -> str:
        return wkd_hash(self.email)

    @property
    def wkd_url(self) -> str:
        return wkd_url(self.email)

    @property
    def wkd_advanced_url(self) -> str:
        return wkd_url(self.email, advanced=True)


def pgp_paths(store: ArtifactStore, email: str) -> Dict[str, str]:
    name = safe_email(email)
    return {
        "asc": store.pgp_file(name, ".asc"),
        "pgp": store.pgp_file(name, ".pgp"),
        "b64": store.pgp_file(name, ".pgp.b64"),
    }


def generate_pgp_key(store: ArtifactStore, manifest: ManifestProvider, name: str, email: str,
                     expiry: str = DEFAULT_PGP_EXPIRY, engine: Optional[GnuPGEngine] = None) -> PGPKey:
    try:
        _, domain = split_email(email)
    except ValueError as exc:
        raise KeyGenerationError(str(exc)) from exc
    engine = engine or GnuPGEngine()
    paths = pgp_paths(store, email)

    with store.locked(safe_email(email)):
        if engine.has_key(email):
            raise KeyGenerationError(f"the keyring already holds a key for {email}; delete it first")

        log.info(f"[PGP] generating Ed25519/Cv25519 key for {email} (expires {expiry})")
        fingerprint = engine.generate(name, email, expiry)
        try:
            armored = engine.export(fingerprint, armor=True)
            binary = engine.export(fingerprint, armor=False)

            with store.stage() as staging:
                staging.write_public(paths["asc"], armored)
                staging.write_public(paths["pgp"], binary)
                staging.write_public(paths["b64"], b64e(binary))
        except TrustPlaneError:
            log.warning(f"[PGP] export of {fingerprint} failed; removing it from the keyring")
            engine.delete(fingerprint)
            raise

        manifest.upsert_artifact(ArtifactRecord(
            kind=KIND_PGP,
            name=email,
            path=paths["b64"],
            files=list(paths.values()),
            source="gnupg",
            fingerprint=fingerprint,
            meta={"domain": domain.lower(), "wkd_hash": wkd_hash(email), "expiry": expiry},
        ))
        manifest.log_event("pgp.generated", {"email": email, "fingerprint": fingerprint})
        log.info(f"[PGP] {email} fingerprint {fingerprint}, WKD {wkd_url(email)}")

    return PGPKey(name=name, email=email, fingerprint=fingerprint, binary=binary, paths=paths)
