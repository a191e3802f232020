"""
Explicit Trust Plane
====================
DNS-anchored trust material without the commercial CA ecosystem.

Provides:
- Ed448 root/intermediate CA hierarchy and Ed25519 server certificates
- Static X25519 key-exchange keys and Ed25519/Cv25519 OpenPGP keys
- Zone-file export (CERT, TLSA, IPSECKEY, OPENPGPKEY, CAA)
- Backup-first key rotation, tracked in a per-store manifest
"""

from .errors import (
    TrustPlaneError, KeyGenerationError, SigningError, CSRError, ExtensionError,
    FilesystemError, BackupError, UnknownScopeError, MissingDependencyError,
    EncodingError, RotationError,
)
from .issuance import IssuanceMode, Issued, Downgraded
from .plane import TrustPlane
from .rotation import RotationScope, RotationOutcome

__version__ = "0.1.0"
