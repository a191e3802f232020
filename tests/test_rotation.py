import pytest

from trustplane.errors import BackupError, KeyGenerationError, RotationError, UnknownScopeError
from trustplane.issuance import issue_certificate, leaf_paths
from trustplane.kex import generate_kex_key, kex_paths
from trustplane.rotation import RotationOrchestrator, RotationOutcome, RotationState
from trustplane.zone import write_zone


def snapshot_bytes(store, paths):
    return {rel: store.read_bytes(rel) for rel in paths.values()}


@pytest.fixture
def live(store, manifest, hierarchy):
    issue_certificate(store, manifest, "example.com")
    generate_kex_key(store, manifest, "example.com")
    write_zone(store, manifest, "example.com")
    return store


def test_rotate_all(live, manifest):
    store = live
    before_cert = snapshot_bytes(store, leaf_paths(store, "example.com"))
    before_kex = snapshot_bytes(store, kex_paths(store, "example.com"))

    report = RotationOrchestrator(store, manifest).rotate("example.com", "all")

    assert report.outcome is RotationOutcome.DONE
    assert report.completed == ["cert", "kex"]
    backup = store.path(report.backup_path)
    for rel, data in {**before_cert, **before_kex}.items():
        assert (backup / rel).read_bytes() == data
    assert (backup / "dns/records/example.com.zone").is_file()
    assert store.read_bytes(kex_paths(store, "example.com")["raw"]) != before_kex[kex_paths(store, "example.com")["raw"]]
    assert [e[1] for e in manifest.list_events()][-3:] == ["rotation.backup", "kex.generated", "rotation.done"]


def test_failed_generator_leaves_live_files(live, manifest):
    store = live
    paths = kex_paths(store, "example.com")
    before = snapshot_bytes(store, paths)

    def half_written(domain):
        with store.stage() as staging:
            staging.write_public(paths["b64"], "garbage")
            raise KeyGenerationError("entropy source went away")

    orchestrator = RotationOrchestrator(store, manifest, generators={"kex": half_written})
    with pytest.raises(RotationError) as info:
        orchestrator.rotate("example.com", "kex")

    report = info.value.report
    assert not info.value.partial
    assert report.outcome is RotationOutcome.FAILED
    assert report.steps[0].state is RotationState.FAILED
    assert "KeyGenerationError" in report.steps[0].error
    assert snapshot_bytes(store, paths) == before
    backup = store.path(report.backup_path)
    assert {rel: (backup / rel).read_bytes() for rel in paths.values()} == before
    (event,) = manifest.list_events("rotation.failed")
    assert event[2]["phase"] == "generating"


def test_partial_rotation_is_reported(live, manifest):
    store = live
    old_cert = store.read_bytes(leaf_paths(store, "example.com")["cert"])

    def broken(domain):
        raise KeyGenerationError("no X25519 support")

    orchestrator = RotationOrchestrator(store, manifest, generators={"kex": broken})
    with pytest.raises(RotationError, match="partially completed") as info:
        orchestrator.rotate("example.com", "all")

    assert info.value.partial
    report = info.value.report
    assert report.outcome is RotationOutcome.PARTIAL
    assert report.completed == ["cert"]
    assert store.read_bytes(leaf_paths(store, "example.com")["cert"]) != old_cert
    backup = store.path(report.backup_path)
    assert (backup / leaf_paths(store, "example.com")["cert"]).read_bytes() == old_cert


def test_failed_backup_stops_before_generation(live, manifest, monkeypatch):
    store = live
    before = snapshot_bytes(store, leaf_paths(store, "example.com"))
    calls = []

    def refuse(rels, dest):
        raise BackupError("disk full")

    monkeypatch.setattr(store, "snapshot", refuse)
    orchestrator = RotationOrchestrator(store, manifest, generators={"cert": calls.append})
    with pytest.raises(RotationError) as info:
        orchestrator.rotate("example.com", "cert")

    assert calls == []
    assert info.value.report.steps[0].state is RotationState.FAILED
    assert snapshot_bytes(store, leaf_paths(store, "example.com")) == before
    (event,) = manifest.list_events("rotation.failed")
    assert event[2]["phase"] == "backing-up"


def test_first_rotation_needs_no_backup(store, manifest):
    report = RotationOrchestrator(store, manifest).rotate("example.com", "kex")
    assert report.backup_path is None
    assert report.outcome is RotationOutcome.DONE
    assert store.exists(kex_paths(store, "example.com")["key"])


@pytest.mark.parametrize("scope", ["certs", "ALL", "", "pgp"])
def test_unknown_scope(store, manifest, scope):
    with pytest.raises(UnknownScopeError):
        RotationOrchestrator(store, manifest).rotate("example.com", scope)
    assert not store.path("backup").exists()
