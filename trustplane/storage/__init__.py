# trustplane/storage/__init__.py

from .models import ArtifactRecord
from .provider import ManifestProvider
from .providers.memory_provider import InMemoryManifest
from .providers.sqlite_provider import SQLiteManifest
import os


def load_manifest_provider(config: dict | None = None) -> ManifestProvider:
    """
    Factory resolver for selecting the manifest backend.

        - sqlite (default), persisted next to the artifact store
        - memory, for tests and dry runs
    """
    config = config or {}
    provider = config.get("provider") or os.getenv("TRUSTPLANE_MANIFEST", "sqlite")

    if provider == "memory":
        return InMemoryManifest()

    if provider == "sqlite":
        db_path = config.get("sqlite_path") or os.getenv("TRUSTPLANE_MANIFEST_PATH", "manifest.db")
        return SQLiteManifest(db_path)
    raise ValueError(f"Unknown manifest provider: {provider}")


__all__ = [
    "ArtifactRecord",
    "ManifestProvider",
    "InMemoryManifest",
    "SQLiteManifest",
    "load_manifest_provider",
]
