"""
trustplane.kex
--------------
Static X25519 key-exchange keys published through IPSECKEY.

The key is long-lived by construction. It suits IPsec gateway discovery,
bootstrap key agreement and out-of-band verification; it is not a stand-in
for the per-session ephemeral X25519 exchange TLS 1.3 performs. Nothing here
enforces that policy.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict

from . import crypto
from .constants import KIND_KEX
from .logger import get_logger
from .storage import ArtifactRecord, ManifestProvider
from .store import ArtifactStore
from .utils import b64e, safe_domain, sha256

log = get_logger("Kex")


@dataclass
class KexKeyPair:
    domain: str
    public_raw: bytes
    paths: Dict[str, str] = field(default_factory=dict)

    @property
    def public_b64(self) -> str:
        return b64e(self.public_raw)

    @property
    def public_hex(self) -> str:
        return self.public_raw.hex()


def kex_paths(store: ArtifactStore, domain: str) -> Dict[str, str]:
    name = safe_domain(domain)
    return {
        "key": store.kex_file(name, ".x25519.key"),
        "pub": store.kex_file(name, ".x25519.pub"),
        "raw": store.kex_file(name, ".x25519.pub.raw"),
        "b64": store.kex_file(name, ".x25519.pub.b64"),
        "hex": store.kex_file(name, ".x25519.pub.hex"),
    }


def generate_kex_key(store: ArtifactStore, manifest: ManifestProvider, domain: str) -> KexKeyPair:
    paths = kex_paths(store, domain)
    with store.locked(safe_domain(domain)):
        log.info(f"[KEX] generating X25519 key for {domain}")
        key = crypto.generate_key("x25519")
        raw = crypto.x25519_raw_public(key)

        with store.stage() as staging:
            staging.write_private(paths["key"], crypto.private_key_pem(key))
            staging.write_public(paths["pub"], crypto.public_key_pem(key))
            staging.write_public(paths["raw"], raw)
            staging.write_public(paths["b64"], b64e(raw))
            staging.write_public(paths["hex"], raw.hex())
        del key

        manifest.upsert_artifact(ArtifactRecord(
            kind=KIND_KEX,
            name=domain,
            path=paths["b64"],
            files=list(paths.values()),
            source="generated",
            fingerprint=sha256(raw),
        ))
        manifest.log_event("kex.generated", {"domain": domain, "fingerprint": sha256(raw)})
        log.info(f"[KEX] {domain} public key {b64e(raw)} (static; not for ephemeral use)")

    return KexKeyPair(domain=domain, public_raw=raw, paths=paths)
