import pytest

from trustplane.cli import main
from trustplane.plane import TrustPlane


@pytest.fixture
def home(tmp_path, monkeypatch):
    monkeypatch.delenv("TRUSTPLANE_MANIFEST", raising=False)
    monkeypatch.delenv("TRUSTPLANE_MANIFEST_PATH", raising=False)
    return tmp_path / "plane"


def run(home, *argv):
    return main(["--home", str(home), "--log-level", "ERROR", *argv])


def test_ca_cert_kex_export(home, capsys):
    assert run(home, "ca", "example.org", "100", "50") == 0
    out = capsys.readouterr().out
    assert "_ca._cert" in out and "_intermediate._cert" in out

    assert run(home, "cert", "example.org", "30") == 0
    out = capsys.readouterr().out
    assert "(ca-signed)" in out
    assert "_443._tcp" in out and "TLSA  3 1 1" in out

    assert run(home, "kex", "example.org") == 0
    assert "IPSECKEY  10 0 2 ." in capsys.readouterr().out

    assert run(home, "export", "example.org") == 0
    out = capsys.readouterr().out
    assert "dns/records/example.org.zone" in out
    assert (home / "dns" / "records" / "example.org.zone").is_file()
    assert (home / "manifest.db").is_file()


def test_cert_downgrade_is_announced(home, capsys):
    assert run(home, "cert") == 0
    out = capsys.readouterr().out
    assert "SELF-SIGNED" in out
    assert (home / "certs" / "example.com.crt").is_file()


def test_no_fallback_exits_one(home, capsys):
    assert run(home, "cert", "example.com", "--no-fallback") == 1
    assert "MissingDependencyError" in capsys.readouterr().err


def test_export_stdout(home, capsys):
    assert run(home, "export", "example.net", "--stdout") == 0
    out = capsys.readouterr().out
    assert "$ORIGIN example.net." in out
    assert 'iodef "mailto:security@example.net"' in out
    assert not (home / "dns").exists()


def test_rotate_unknown_scope(home, capsys):
    assert run(home, "rotate", "example.com", "everything") == 1
    assert "unknown rotation scope" in capsys.readouterr().err


def test_rotate(home, capsys):
    run(home, "cert", "example.com", "--self-signed")
    capsys.readouterr()
    assert run(home, "rotate", "example.com", "cert") == 0
    out = capsys.readouterr().out
    assert "Backup: backup/" in out
    assert "cert: done" in out
    assert "[!] no intermediate CA material present: certificate is SELF-SIGNED" in out


def test_usage_error_exits_two(home):
    with pytest.raises(SystemExit) as info:
        run(home, "cert", "example.com", "not-a-number")
    assert info.value.code == 2


def test_facade_with_memory_manifest(tmp_path, gpg):
    plane = TrustPlane({"home": str(tmp_path), "manifest_provider": "memory", "log_level": "WARNING"},
                       pgp_engine=gpg)
    plane.create_hierarchy("example.com")
    leaf = plane.issue_certificate("example.com")
    plane.generate_pgp_key("Alice", "alice@example.com")
    assert not leaf.decision.downgraded
    text = plane.export_zone("example.com", generated_at="2026-01-01T00:00:00Z")
    assert "_openpgpkey" in text
    report = plane.rotate("example.com", "cert")
    assert report.completed == ["cert"]
    plane.close()
