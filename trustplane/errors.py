# trustplane/errors.py
from __future__ import annotations
from typing import Any, Optional


class TrustPlaneError(Exception):
    """Base for every failure surfaced by the trust plane engine."""


class KeyGenerationError(TrustPlaneError):
    pass


class SigningError(TrustPlaneError):
    pass


class CSRError(TrustPlaneError):
    pass


class ExtensionError(TrustPlaneError):
    pass


class FilesystemError(TrustPlaneError):
    """Permission problem, missing path or a conflicting existing artifact."""


class BackupError(TrustPlaneError):
    """Snapshot failed before any live artifact was touched."""


class UnknownScopeError(TrustPlaneError):
    pass


class MissingDependencyError(TrustPlaneError):
    """An operation explicitly required an artifact that does not exist."""


class EncodingError(TrustPlaneError):
    """An artifact exists but cannot be rendered as a DNS record."""


class RotationError(TrustPlaneError):
    """
    Raised when a rotation request does not finish cleanly.
    `report` holds the per-target states so callers can tell a partial
    `all` rotation from a total failure.
    """

    def __init__(self, message: str, report: Optional[Any] = None):
        super().__init__(message)
        self.report = report

    @property
    def partial(self) -> bool:
        return bool(self.report is not None and self.report.outcome.value == "partial")
