# trustplane/storage/provider.py
from __future__ import annotations
from typing import Any, Dict, List, Optional, Tuple

from trustplane.storage.models import ArtifactRecord


class ManifestProvider:
    """Contract every manifest backend implements."""

    def upsert_artifact(self, rec: ArtifactRecord) -> None:
        raise NotImplementedError

    def get_artifact(self, kind: str, name: str) -> Optional[ArtifactRecord]:
        raise NotImplementedError

    def list_artifacts(self, kind: Optional[str] = None) -> List[ArtifactRecord]:
        raise NotImplementedError

    def remove_artifact(self, kind: str, name: str) -> None:
        raise NotImplementedError

    # audit
    def log_event(self, event_type: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError

    def list_events(self, event_type: Optional[str] = None) -> List[Tuple[str, str, Dict[str, Any]]]:
        raise NotImplementedError

    def close(self) -> None:
        return
