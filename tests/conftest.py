import hashlib

import pytest

from trustplane.ca import create_intermediate_ca, create_root_ca
from trustplane.storage import InMemoryManifest
from trustplane.store import ArtifactStore


class FakeGnuPG:
    """Stands in for GnuPGEngine so PGP flows run without a gpg binary."""

    def __init__(self):
        self.keys = {}

    def has_key(self, email):
        return email in self.keys

    def generate(self, name, email, expiry):
        fp = hashlib.sha1(email.encode()).hexdigest().upper()
        self.keys[email] = (fp, name, expiry)
        return fp

    def export(self, fingerprint, armor):
        email = next(e for e, (fp, _, _) in self.keys.items() if fp == fingerprint)
        body = b"\x98\x33\x04" + email.encode()
        if armor:
            return b"-----BEGIN PGP PUBLIC KEY BLOCK-----\n\n" + body.hex().encode() + b"\n-----END PGP PUBLIC KEY BLOCK-----\n"
        return body

    def delete(self, fingerprint):
        self.keys = {e: v for e, v in self.keys.items() if v[0] != fingerprint}


@pytest.fixture
def store(tmp_path):
    return ArtifactStore(tmp_path / "plane", lock_timeout=1.0)


@pytest.fixture
def manifest():
    return InMemoryManifest()


@pytest.fixture
def hierarchy(store, manifest):
    root = create_root_ca(store, manifest, "example.com")
    intermediate = create_intermediate_ca(store, manifest, root, "example.com")
    return root, intermediate


@pytest.fixture
def gpg():
    return FakeGnuPG()
