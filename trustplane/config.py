# trustplane/config.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
import os

from .constants import (
    DEFAULT_CERT_VALIDITY_DAYS, DEFAULT_ROOT_VALIDITY_DAYS,
    DEFAULT_INTERMEDIATE_VALIDITY_DAYS, DEFAULT_PGP_EXPIRY, DEFAULT_LOCK_TIMEOUT,
)

MANIFEST_PROVIDERS = ("sqlite", "memory")


@dataclass
class TrustPlaneConfig:
    home: str = "."
    manifest_provider: str = "sqlite"
    manifest_path: Optional[str] = None
    gnupg_home: Optional[str] = None
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT
    log_level: str = "INFO"
    log_file: Optional[str] = None
    cert_validity_days: int = DEFAULT_CERT_VALIDITY_DAYS
    root_validity_days: int = DEFAULT_ROOT_VALIDITY_DAYS
    intermediate_validity_days: int = DEFAULT_INTERMEDIATE_VALIDITY_DAYS
    pgp_expiry: str = DEFAULT_PGP_EXPIRY

    @property
    def resolved_manifest_path(self) -> str:
        return self.manifest_path or os.path.join(self.home, "manifest.db")


def load_config(config: dict | None = None) -> TrustPlaneConfig:
    """
    Resolve runtime configuration.

    Explicit dict keys win, then TRUSTPLANE_* environment variables,
    then the built-in defaults.
    """
    config = config or {}

    def pick(key: str, env: str, default):
        value = config.get(key)
        if value is None:
            value = os.getenv(env)
        return default if value is None or value == "" else value

    provider = str(pick("manifest_provider", "TRUSTPLANE_MANIFEST", "sqlite")).lower()
    if provider not in MANIFEST_PROVIDERS:
        raise ValueError(f"Unknown manifest provider: {provider}")

    return TrustPlaneConfig(
        home=str(pick("home", "TRUSTPLANE_HOME", ".")),
        manifest_provider=provider,
        manifest_path=pick("manifest_path", "TRUSTPLANE_MANIFEST_PATH", None),
        gnupg_home=pick("gnupg_home", "TRUSTPLANE_GNUPGHOME", None),
        lock_timeout=float(pick("lock_timeout", "TRUSTPLANE_LOCK_TIMEOUT", DEFAULT_LOCK_TIMEOUT)),
        log_level=str(pick("log_level", "TRUSTPLANE_LOG_LEVEL", "INFO")).upper(),
        log_file=pick("log_file", "TRUSTPLANE_LOG_FILE", None),
        cert_validity_days=int(pick("cert_validity_days", "TRUSTPLANE_CERT_DAYS", DEFAULT_CERT_VALIDITY_DAYS)),
        root_validity_days=int(pick("root_validity_days", "TRUSTPLANE_ROOT_DAYS", DEFAULT_ROOT_VALIDITY_DAYS)),
        intermediate_validity_days=int(pick("intermediate_validity_days", "TRUSTPLANE_INTERMEDIATE_DAYS",
                                            DEFAULT_INTERMEDIATE_VALIDITY_DAYS)),
        pgp_expiry=str(pick("pgp_expiry", "TRUSTPLANE_PGP_EXPIRY", DEFAULT_PGP_EXPIRY)),
    )
