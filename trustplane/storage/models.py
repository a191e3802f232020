# trustplane/storage/models.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List

from trustplane.utils import now_ts


@dataclass
class ArtifactRecord:
    """
    Manifest entry for one artifact set (a CA, a server cert, a kex key, ...).

    `path` is the primary public file relative to the store root; `files`
    lists every file the set consists of so backups and exports never have
    to rediscover state by scanning directories.
    """
    kind: str
    name: str
    path: str
    files: List[str] = field(default_factory=list)
    source: str = "generated"   # self-signed | ca-signed | root-signed | generated | gnupg | export
    fingerprint: str = ""
    created_at: str = field(default_factory=now_ts)
    meta: Dict[str, Any] = field(default_factory=dict)
