# trustplane/plane.py
from __future__ import annotations
from typing import Optional

from . import ca, issuance, kex, pgp, zone
from .config import TrustPlaneConfig, load_config
from .logger import configure
from .rotation import RotationOrchestrator, RotationReport
from .storage import ManifestProvider, load_manifest_provider
from .store import ArtifactStore


class TrustPlane:
    """
    One artifact store, its manifest and logging, wired from configuration.
    Every public method is one unit of work.
    """

    def __init__(self, config: TrustPlaneConfig | dict | None = None,
                 manifest: Optional[ManifestProvider] = None,
                 pgp_engine: Optional[pgp.GnuPGEngine] = None):
        self.config = config if isinstance(config, TrustPlaneConfig) else load_config(config)
        self.log = configure(self.config.log_level, self.config.log_file)
        self.store = ArtifactStore(self.config.home, lock_timeout=self.config.lock_timeout)
        self.manifest = manifest or load_manifest_provider({
            "provider": self.config.manifest_provider,
            "sqlite_path": self.config.resolved_manifest_path,
        })
        self._pgp_engine = pgp_engine

    # --------- CA hierarchy ----------
    def create_root_ca(self, domain: str, validity_days: Optional[int] = None) -> ca.CertificateAuthority:
        return ca.create_root_ca(self.store, self.manifest, domain,
                                 validity_days or self.config.root_validity_days)

    def create_intermediate_ca(self, domain: str, validity_days: Optional[int] = None,
                               root: Optional[ca.CertificateAuthority] = None) -> ca.CertificateAuthority:
        root = root or ca.load_ca(self.store, ca.ROLE_ROOT)
        return ca.create_intermediate_ca(self.store, self.manifest, root, domain,
                                         validity_days or self.config.intermediate_validity_days)

    def create_hierarchy(self, domain: str, root_days: Optional[int] = None,
                         intermediate_days: Optional[int] = None):
        root = self.create_root_ca(domain, root_days)
        return root, self.create_intermediate_ca(domain, intermediate_days, root=root)

    # --------- leaf material ----------
    def issue_certificate(self, domain: str, validity_days: Optional[int] = None,
                          mode: issuance.IssuanceMode = issuance.IssuanceMode.CA_SIGNED,
                          allow_fallback: bool = True) -> issuance.LeafCertificate:
        return issuance.issue_certificate(self.store, self.manifest, domain,
                                          validity_days or self.config.cert_validity_days,
                                          mode=mode, allow_fallback=allow_fallback)

    def generate_kex_key(self, domain: str) -> kex.KexKeyPair:
        return kex.generate_kex_key(self.store, self.manifest, domain)

    def generate_pgp_key(self, name: str, email: str, expiry: Optional[str] = None) -> pgp.PGPKey:
        if self._pgp_engine is None:
            self._pgp_engine = pgp.GnuPGEngine(self.config.gnupg_home)
        return pgp.generate_pgp_key(self.store, self.manifest, name, email,
                                    expiry or self.config.pgp_expiry, engine=self._pgp_engine)

    # --------- publication ----------
    def export_zone(self, domain: str, generated_at: Optional[str] = None) -> str:
        return zone.export_zone(self.store, self.manifest, domain, generated_at)

    def write_zone(self, domain: str, generated_at: Optional[str] = None) -> str:
        return zone.write_zone(self.store, self.manifest, domain, generated_at)

    # --------- rotation ----------
    def rotate(self, domain: str, scope: str = "all") -> RotationReport:
        orchestrator = RotationOrchestrator(self.store, self.manifest,
                                            cert_validity_days=self.config.cert_validity_days)
        return orchestrator.rotate(domain, scope)

    def close(self) -> None:
        self.manifest.close()
