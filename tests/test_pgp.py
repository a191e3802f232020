import shutil

import pytest

from trustplane.constants import KIND_PGP
from trustplane.crypto import wkd_hash
from trustplane.errors import KeyGenerationError
from trustplane.pgp import GnuPGEngine, generate_pgp_key, pgp_paths, wkd_url
from trustplane.utils import b64e


def test_wkd_urls():
    h = wkd_hash("alice")
    assert wkd_url("alice@Example.com") == f"https://example.com/.well-known/openpgpkey/hu/{h}"
    assert wkd_url("alice@example.com", advanced=True) == (
        f"https://openpgpkey.example.com/.well-known/openpgpkey/example.com/hu/{h}?l=alice")


def test_generate_with_engine(store, manifest, gpg):
    key = generate_pgp_key(store, manifest, "Alice", "alice@example.com", expiry="1y", engine=gpg)
    paths = pgp_paths(store, "alice@example.com")

    assert paths["pgp"] == "pgp/alice_at_example_com.pgp"
    assert store.read_bytes(paths["pgp"]) == key.binary
    assert store.read_bytes(paths["b64"]).decode() == b64e(key.binary) == key.b64
    assert store.read_bytes(paths["asc"]).startswith(b"-----BEGIN PGP PUBLIC KEY BLOCK-----")
    assert key.wkd_hash == wkd_hash("alice")

    rec = manifest.get_artifact(KIND_PGP, "alice@example.com")
    assert rec.fingerprint == key.fingerprint
    assert rec.meta == {"domain": "example.com", "wkd_hash": key.wkd_hash, "expiry": "1y"}
    assert gpg.keys["alice@example.com"][2] == "1y"


def test_existing_key_is_refused(store, manifest, gpg):
    generate_pgp_key(store, manifest, "Alice", "alice@example.com", engine=gpg)
    with pytest.raises(KeyGenerationError):
        generate_pgp_key(store, manifest, "Alice", "alice@example.com", engine=gpg)


def test_invalid_email(store, manifest, gpg):
    with pytest.raises(KeyGenerationError):
        generate_pgp_key(store, manifest, "Nobody", "not-an-address", engine=gpg)
    assert gpg.keys == {}


@pytest.mark.skipif(shutil.which("gpg") is None, reason="gpg binary not installed")
def test_gnupg_roundtrip(store, manifest, tmp_path):
    home = tmp_path / "gh"
    home.mkdir(mode=0o700)
    engine = GnuPGEngine(str(home))
    key = generate_pgp_key(store, manifest, "Test User", "test@example.com", expiry="1y", engine=engine)

    assert len(key.fingerprint) == 40
    assert engine.has_key("test@example.com")
    assert store.exists(pgp_paths(store, "test@example.com")["asc"])
    assert key.binary


class _Result:
    def __init__(self, fingerprint=None, stderr=""):
        self.fingerprint = fingerprint
        self.stderr = stderr


class RecordingGPG:
    """Records the python-gnupg calls GnuPGEngine makes."""

    def __init__(self, subkey_ok=True):
        self.subkey_ok = subkey_ok
        self.calls = []

    def gen_key_input(self, **kwargs):
        return kwargs

    def gen_key(self, params):
        self.calls.append(("gen_key", params["name_email"]))
        return _Result("A" * 40)

    def add_subkey(self, master_key, master_passphrase=None, algorithm="rsa", usage="encrypt", expire="-"):
        self.calls.append(("add_subkey", master_key, master_passphrase, algorithm, usage))
        if self.subkey_ok:
            return _Result("B" * 40)
        return _Result(None, "gpg: agent_genkey failed: Inappropriate ioctl for device\n")

    def delete_keys(self, fingerprints, secret=False, passphrase=None):
        self.calls.append(("delete_keys", fingerprints, secret, passphrase))


def _engine(gpg):
    engine = GnuPGEngine.__new__(GnuPGEngine)
    engine.gpg = gpg
    return engine


def test_signing_subkey_uses_loopback_passphrase():
    gpg = RecordingGPG()
    assert _engine(gpg).generate("Alice", "alice@example.com", "1y") == "A" * 40
    assert ("add_subkey", "A" * 40, "", "ed25519", "sign") in gpg.calls
    assert not [c for c in gpg.calls if c[0] == "delete_keys"]


def test_failed_subkey_removes_primary():
    gpg = RecordingGPG(subkey_ok=False)
    with pytest.raises(KeyGenerationError, match="agent_genkey failed"):
        _engine(gpg).generate("Alice", "alice@example.com", "1y")
    deletes = [c for c in gpg.calls if c[0] == "delete_keys"]
    assert deletes == [("delete_keys", "A" * 40, True, ""), ("delete_keys", "A" * 40, False, None)]


def test_failed_export_leaves_keyring_retryable(store, manifest, gpg, monkeypatch):
    def no_export(fingerprint, armor):
        raise KeyGenerationError(f"GnuPG exported nothing for {fingerprint}")

    monkeypatch.setattr(gpg, "export", no_export)
    with pytest.raises(KeyGenerationError):
        generate_pgp_key(store, manifest, "Alice", "alice@example.com", engine=gpg)
    assert gpg.keys == {}
    assert not store.exists(pgp_paths(store, "alice@example.com")["pgp"])
    assert manifest.get_artifact(KIND_PGP, "alice@example.com") is None

    monkeypatch.undo()
    key = generate_pgp_key(store, manifest, "Alice", "alice@example.com", engine=gpg)
    assert store.read_bytes(pgp_paths(store, "alice@example.com")["pgp"]) == key.binary
