"""
trustplane.rotation
-------------------
Backup-then-replace rotation of server certificates and key-exchange keys.

Each target walks IDLE -> BACKING_UP -> GENERATING -> DONE, or ends in
FAILED. A failed snapshot stops the request before anything is generated;
a failed generator leaves the live files untouched (generators stage their
writes and commit only on success) and the snapshot in place.

scope=all rotates cert, then kex. If kex fails after cert succeeded the
report outcome is PARTIAL, not FAILED.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .constants import DEFAULT_CERT_VALIDITY_DAYS, KIND_KEX, KIND_SERVER_CERT, CERTS_DIR, KEX_DIR
from .errors import RotationError, TrustPlaneError, UnknownScopeError
from .issuance import IssuanceMode, issue_certificate, leaf_paths
from .kex import generate_kex_key, kex_paths
from .logger import get_logger
from .storage import ManifestProvider
from .store import ArtifactStore
from .utils import safe_domain

log = get_logger("Rotation")


class RotationScope(str, Enum):
    CERT = "cert"
    KEX = "kex"
    ALL = "all"


class RotationState(str, Enum):
    IDLE = "idle"
    BACKING_UP = "backing-up"
    GENERATING = "generating"
    DONE = "done"
    FAILED = "failed"


class RotationOutcome(str, Enum):
    DONE = "done"
    PARTIAL = "partial"
    FAILED = "failed"


TARGETS = {
    RotationScope.CERT: ["cert"],
    RotationScope.KEX: ["kex"],
    RotationScope.ALL: ["cert", "kex"],
}


@dataclass
class RotationStep:
    target: str
    state: RotationState = RotationState.IDLE
    backed_up: List[str] = field(default_factory=list)
    error: Optional[str] = None
    result: Any = None


@dataclass
class RotationReport:
    domain: str
    scope: RotationScope
    steps: List[RotationStep] = field(default_factory=list)
    backup_path: Optional[str] = None

    @property
    def completed(self) -> List[str]:
        return [s.target for s in self.steps if s.state is RotationState.DONE]

    @property
    def outcome(self) -> RotationOutcome:
        done = len(self.completed)
        if done == len(self.steps):
            return RotationOutcome.DONE
        return RotationOutcome.PARTIAL if done else RotationOutcome.FAILED


def parse_scope(scope) -> RotationScope:
    try:
        return RotationScope(scope)
    except ValueError:
        raise UnknownScopeError(f"unknown rotation scope {scope!r}; expected one of cert, kex, all") from None


class RotationOrchestrator:
    def __init__(self, store: ArtifactStore, manifest: ManifestProvider,
                 generators: Optional[Dict[str, Callable[[str], Any]]] = None,
                 cert_validity_days: int = DEFAULT_CERT_VALIDITY_DAYS):
        self.store = store
        self.manifest = manifest
        self.cert_validity_days = cert_validity_days
        self.generators = {"cert": self._rotate_cert, "kex": self._rotate_kex}
        self.generators.update(generators or {})

    # --------- default generators ----------
    def _rotate_cert(self, domain: str):
        return issue_certificate(self.store, self.manifest, domain, self.cert_validity_days,
                                 mode=IssuanceMode.CA_SIGNED, allow_fallback=True)

    def _rotate_kex(self, domain: str):
        return generate_kex_key(self.store, self.manifest, domain)

    # --------- what a target owns ----------
    def _has_live(self, target: str, domain: str) -> bool:
        if target == "cert":
            return (self.manifest.get_artifact(KIND_SERVER_CERT, domain) is not None
                    or self.store.exists(leaf_paths(self.store, domain)["key"]))
        return (self.manifest.get_artifact(KIND_KEX, domain) is not None
                or self.store.exists(kex_paths(self.store, domain)["key"]))

    def _subtrees(self, target: str, domain: str) -> List[str]:
        return [CERTS_DIR if target == "cert" else KEX_DIR, self.store.zone_file(safe_domain(domain))]

    def rotate(self, domain: str, scope="all") -> RotationReport:
        scope = parse_scope(scope)
        report = RotationReport(domain=domain, scope=scope, steps=[RotationStep(t) for t in TARGETS[scope]])
        log.info(f"[ROTATE] {domain}: rotating {scope.value}")

        with self.store.locked(safe_domain(domain)):
            snapshot = None
            for step in report.steps:
                try:
                    step.state = RotationState.BACKING_UP
                    if self._has_live(step.target, domain):
                        if snapshot is None:
                            snapshot = self.store.new_snapshot_dir()
                            report.backup_path = self.store.relpath(snapshot)
                        step.backed_up = self.store.snapshot(self._subtrees(step.target, domain), snapshot)
                        self.manifest.log_event("rotation.backup", {
                            "domain": domain, "target": step.target,
                            "backup": report.backup_path, "copied": step.backed_up,
                        })

                    step.state = RotationState.GENERATING
                    step.result = self.generators[step.target](domain)
                    step.state = RotationState.DONE
                    log.info(f"[ROTATE] {domain}: {step.target} rotated")
                except (TrustPlaneError, OSError) as exc:
                    failed_in = step.state.value
                    step.state = RotationState.FAILED
                    step.error = f"{type(exc).__name__}: {exc}"
                    self.manifest.log_event("rotation.failed", {
                        "domain": domain, "target": step.target, "phase": failed_in,
                        "error": step.error, "completed": report.completed,
                    })
                    if report.outcome is RotationOutcome.PARTIAL:
                        msg = (f"rotation of {domain} partially completed: {', '.join(report.completed)} rotated, "
                               f"{step.target} failed while {failed_in}: {exc}")
                    else:
                        msg = f"rotation of {domain} failed at {step.target} while {failed_in}: {exc}"
                    log.error(f"[ROTATE] {msg}")
                    raise RotationError(msg, report) from exc

        self.manifest.log_event("rotation.done", {
            "domain": domain, "scope": scope.value, "backup": report.backup_path,
        })
        log.info(f"[ROTATE] {domain}: done; re-export the zone to publish the new records")
        return report
