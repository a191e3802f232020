"""
trustplane.store
----------------
Filesystem-backed artifact store.

Layout under the store root:

    ca/root/  ca/intermediate/  certs/  kex/  pgp/  dns/records/  backup/<stamp>/

Writes never land directly on live paths: an operation collects its whole
artifact set in a `Staging` area under `.staging/` and commits it with
`os.replace` once generation has fully succeeded. Private files are created
owner read/write only. Mutating operations hold an advisory `filelock`
lock on the subtree they touch.
"""

from __future__ import annotations
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple
import filecmp, os, shutil, tempfile

from filelock import FileLock, Timeout

from .constants import (
    CERTS_DIR, KEX_DIR, PGP_DIR, RECORDS_DIR,
    BACKUP_DIR, LOCKS_DIR, STAGING_DIR, PRIVATE_FILE_MODE, PUBLIC_FILE_MODE,
    DEFAULT_LOCK_TIMEOUT,
)
from .errors import BackupError, FilesystemError
from .logger import get_logger
from .utils import backup_stamp

log = get_logger("Store")


class Staging:
    """Files written for one operation, invisible until `commit()`."""

    def __init__(self, store: "ArtifactStore", workdir: Path):
        self.store = store
        self.workdir = workdir
        self._pending: List[Tuple[Path, Path]] = []
        self._removals: List[Path] = []

    def _write(self, rel: str, data: bytes, mode: int) -> None:
        dest = self.store.path(rel)
        self.store.check_replaceable(dest)
        tmp = self.workdir / f"{len(self._pending):03d}-{dest.name}"
        try:
            fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.chmod(tmp, mode)
        except OSError as exc:
            raise FilesystemError(f"cannot stage {rel}: {exc}") from exc
        self._pending.append((tmp, dest))

    def write_private(self, rel: str, data: bytes) -> None:
        self._write(rel, data, PRIVATE_FILE_MODE)

    def write_public(self, rel: str, data: bytes | str) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._write(rel, data, PUBLIC_FILE_MODE)

    def remove(self, rel: str) -> None:
        """Drop a live file as part of the commit (e.g. a stale fullchain)."""
        self._removals.append(self.store.path(rel))

    @property
    def targets(self) -> List[str]:
        return [self.store.relpath(dest) for _, dest in self._pending]

    def commit(self) -> List[str]:
        try:
            for _, dest in self._pending:
                dest.parent.mkdir(parents=True, exist_ok=True)
            for tmp, dest in self._pending:
                os.replace(tmp, dest)
            for path in self._removals:
                if path.exists():
                    path.unlink()
        except OSError as exc:
            raise FilesystemError(f"cannot commit artifacts into {self.store.root}: {exc}") from exc
        committed = self.targets
        self._pending = []
        return committed


class ArtifactStore:
    def __init__(self, root: str | os.PathLike = ".", lock_timeout: float = DEFAULT_LOCK_TIMEOUT):
        self.root = Path(root)
        self.lock_timeout = lock_timeout
        self._locks = {}

    # --------- layout ----------
    def path(self, *parts: str) -> Path:
        return self.root.joinpath(*parts)

    def relpath(self, path: Path) -> str:
        return Path(path).relative_to(self.root).as_posix()

    def cert_file(self, name: str, suffix: str) -> str:
        return f"{CERTS_DIR}/{name}{suffix}"

    def kex_file(self, name: str, suffix: str) -> str:
        return f"{KEX_DIR}/{name}{suffix}"

    def pgp_file(self, name: str, suffix: str) -> str:
        return f"{PGP_DIR}/{name}{suffix}"

    def zone_file(self, name: str) -> str:
        return f"{RECORDS_DIR}/{name}.zone"

    # --------- reads ----------
    def exists(self, rel: str) -> bool:
        return self.path(rel).is_file()

    def read_bytes(self, rel: str) -> bytes:
        try:
            return self.path(rel).read_bytes()
        except OSError as exc:
            raise FilesystemError(f"cannot read {rel}: {exc}") from exc

    def read_text(self, rel: str) -> str:
        return self.read_bytes(rel).decode("utf-8").strip()

    # --------- guards ----------
    def check_replaceable(self, dest: Path) -> None:
        """Refuse to replace a protected file that belongs to somebody else."""
        try:
            st = dest.stat()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise FilesystemError(f"cannot inspect {dest}: {exc}") from exc
        if hasattr(os, "getuid") and st.st_uid != os.getuid() and not st.st_mode & 0o077:
            raise FilesystemError(f"{self.relpath(dest)} is a protected file owned by uid {st.st_uid}")

    # --------- writes ----------
    @contextmanager
    def stage(self) -> Iterator[Staging]:
        """
        Collect writes; commit only if the body finishes without raising.
        On any failure the staged files are discarded and live paths are untouched.
        """
        try:
            base = self.path(STAGING_DIR)
            base.mkdir(parents=True, exist_ok=True)
            workdir = Path(tempfile.mkdtemp(dir=base))
        except OSError as exc:
            raise FilesystemError(f"cannot create staging area under {self.root}: {exc}") from exc
        staging = Staging(self, workdir)
        try:
            yield staging
            staging.commit()
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

    def lock(self, name: str) -> FileLock:
        """Advisory lock for one subtree; reentrant within this store instance."""
        lk = self._locks.get(name)
        if lk is None:
            lock_dir = self.path(LOCKS_DIR)
            try:
                lock_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise FilesystemError(f"cannot create lock directory {lock_dir}: {exc}") from exc
            lk = FileLock(str(lock_dir / f"{name}.lock"), timeout=self.lock_timeout)
            self._locks[name] = lk
        return lk

    @contextmanager
    def locked(self, name: str) -> Iterator[None]:
        lk = self.lock(name)
        try:
            lk.acquire()
        except Timeout as exc:
            raise FilesystemError(f"another operation holds the lock for {name!r}") from exc
        try:
            yield
        finally:
            lk.release()

    # --------- backups ----------
    def new_snapshot_dir(self, stamp: Optional[str] = None) -> Path:
        stamp = stamp or backup_stamp()
        base = self.path(BACKUP_DIR)
        try:
            base.mkdir(parents=True, exist_ok=True)
            candidate, n = base / stamp, 0
            while True:
                try:
                    candidate.mkdir()
                    return candidate
                except FileExistsError:
                    n += 1
                    candidate = base / f"{stamp}_{n}"
        except OSError as exc:
            raise BackupError(f"cannot create backup directory under {base}: {exc}") from exc

    def snapshot(self, rels: Iterable[str], dest: Path) -> List[str]:
        """
        Copy each subtree or file in `rels` into `dest` and verify the copy
        byte for byte. Missing sources are skipped; anything else aborts.
        """
        copied = []
        for rel in rels:
            src = self.path(rel)
            if not src.exists():
                continue
            target = dest / rel
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                if src.is_dir():
                    shutil.copytree(src, target, dirs_exist_ok=True)
                else:
                    shutil.copy2(src, target)
            except (OSError, shutil.Error) as exc:
                raise BackupError(f"backup of {rel} into {dest} failed: {exc}") from exc
            _verify_copy(src, target, rel)
            copied.append(rel)
            log.info(f"[BACKUP] {rel} -> {self.relpath(dest)}")
        return copied


def _verify_copy(src: Path, target: Path, rel: str) -> None:
    if src.is_file():
        if not filecmp.cmp(src, target, shallow=False):
            raise BackupError(f"backup of {rel} does not match the live file")
        return
    for path in src.rglob("*"):
        if path.is_file():
            copy = target / path.relative_to(src)
            if not copy.is_file() or not filecmp.cmp(path, copy, shallow=False):
                raise BackupError(f"backup of {rel} is missing or differs at {path.relative_to(src)}")
