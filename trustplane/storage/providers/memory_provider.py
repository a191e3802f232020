from typing import Optional, Dict, Any, List
from trustplane.storage.models import ArtifactRecord
from trustplane.storage.provider import ManifestProvider
from trustplane.utils import now_ts

class InMemoryManifest(ManifestProvider):
    def __init__(self):
        self.artifacts = {}
        self.audit = []

    def upsert_artifact(self, rec: ArtifactRecord):
        self.artifacts[(rec.kind, rec.name)] = rec

    def get_artifact(self, kind: str, name: str):
        return self.artifacts.get((kind, name))

    def list_artifacts(self, kind: Optional[str] = None) -> List[ArtifactRecord]:
        recs = [rec for (k, _), rec in sorted(self.artifacts.items()) if kind is None or k == kind]
        return recs

    def remove_artifact(self, kind: str, name: str):
        self.artifacts.pop((kind, name), None)

    # audit
    def log_event(self, event_type: str, payload: Dict[str, Any]):
        self.audit.append((now_ts(), event_type, dict(payload)))

    def list_events(self, event_type: Optional[str] = None):
        return [e for e in self.audit if event_type is None or e[1] == event_type]
