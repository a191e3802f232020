from __future__ import annotations
from typing import Optional, Dict, Any, List
import json, sqlite3, os
from trustplane.storage.provider import ManifestProvider
from trustplane.storage.models import ArtifactRecord
from trustplane.utils import now_ts

_COLUMNS = "kind,name,path,files,source,fingerprint,created_at,meta"


class SQLiteManifest(ManifestProvider):
    def __init__(self, path="manifest.db"):
        # If no directory, default to current working directory
        dir_path = os.path.dirname(path) or "."
        os.makedirs(dir_path, exist_ok=True)
        self.db = sqlite3.connect(path)
        self._init()

    def _init(self) -> None:
        c = self.db.cursor()
        c.execute("""CREATE TABLE IF NOT EXISTS artifacts(
            kind TEXT NOT NULL,
            name TEXT NOT NULL,
            path TEXT NOT NULL,
            files TEXT NOT NULL,
            source TEXT,
            fingerprint TEXT,
            created_at TEXT NOT NULL,
            meta TEXT,
            PRIMARY KEY (kind, name)
        )""")
        c.execute("""CREATE TABLE IF NOT EXISTS audit(
            ts TEXT,
            event_type TEXT,
            payload TEXT
        )""")
        self.db.commit()

    @staticmethod
    def _row(row) -> ArtifactRecord:
        kind, name, path, files, source, fingerprint, created_at, meta = row
        return ArtifactRecord(
            kind=kind,
            name=name,
            path=path,
            files=json.loads(files),
            source=source or "generated",
            fingerprint=fingerprint or "",
            created_at=created_at,
            meta=json.loads(meta) if meta else {},
        )

    def upsert_artifact(self, rec: ArtifactRecord) -> None:
        self.db.execute(
            f"INSERT INTO artifacts({_COLUMNS}) VALUES(?,?,?,?,?,?,?,?) "
            "ON CONFLICT(kind,name) DO UPDATE SET path=excluded.path, files=excluded.files, "
            "source=excluded.source, fingerprint=excluded.fingerprint, "
            "created_at=excluded.created_at, meta=excluded.meta",
            (rec.kind, rec.name, rec.path, json.dumps(rec.files), rec.source,
             rec.fingerprint, rec.created_at, json.dumps(rec.meta, sort_keys=True))
        )
        self.db.commit()

    def get_artifact(self, kind: str, name: str) -> Optional[ArtifactRecord]:
        cur = self.db.execute(f"SELECT {_COLUMNS} FROM artifacts WHERE kind=? AND name=?", (kind, name))
        row = cur.fetchone()
        if not row: return None
        return self._row(row)

    def list_artifacts(self, kind: Optional[str] = None) -> List[ArtifactRecord]:
        if kind is None:
            cur = self.db.execute(f"SELECT {_COLUMNS} FROM artifacts ORDER BY kind, name")
        else:
            cur = self.db.execute(f"SELECT {_COLUMNS} FROM artifacts WHERE kind=? ORDER BY name", (kind,))
        return [self._row(r) for r in cur.fetchall()]

    def remove_artifact(self, kind: str, name: str) -> None:
        self.db.execute("DELETE FROM artifacts WHERE kind=? AND name=?", (kind, name))
        self.db.commit()

    def log_event(self, event_type: str, payload: Dict[str, Any]) -> None:
        self.db.execute("INSERT INTO audit(ts,event_type,payload) VALUES(?,?,?)",
                        (now_ts(), event_type, json.dumps(payload, separators=(",", ":"), sort_keys=True)))
        self.db.commit()

    def list_events(self, event_type: Optional[str] = None):
        if event_type is None:
            cur = self.db.execute("SELECT ts,event_type,payload FROM audit ORDER BY rowid")
        else:
            cur = self.db.execute("SELECT ts,event_type,payload FROM audit WHERE event_type=? ORDER BY rowid",
                                  (event_type,))
        return [(ts, et, json.loads(p)) for ts, et, p in cur.fetchall()]

    def close(self):
        self.db.close()
