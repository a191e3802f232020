import logging
import os

import pytest

from trustplane.config import load_config
from trustplane.logger import configure, get_logger


def test_defaults(monkeypatch):
    for var in [v for v in os.environ if v.startswith("TRUSTPLANE_")]:
        monkeypatch.delenv(var)
    cfg = load_config()
    assert cfg.home == "."
    assert cfg.manifest_provider == "sqlite"
    assert cfg.resolved_manifest_path == os.path.join(".", "manifest.db")
    assert cfg.cert_validity_days == 365
    assert cfg.root_validity_days == 3650
    assert cfg.intermediate_validity_days == 1825
    assert cfg.pgp_expiry == "2y"
    assert cfg.lock_timeout == 10.0


def test_env_and_dict_precedence(monkeypatch, tmp_path):
    monkeypatch.setenv("TRUSTPLANE_HOME", str(tmp_path))
    monkeypatch.setenv("TRUSTPLANE_CERT_DAYS", "90")
    monkeypatch.setenv("TRUSTPLANE_LOG_LEVEL", "debug")
    cfg = load_config({"cert_validity_days": 30})
    assert cfg.home == str(tmp_path)
    assert cfg.cert_validity_days == 30
    assert cfg.log_level == "DEBUG"
    assert cfg.resolved_manifest_path == os.path.join(str(tmp_path), "manifest.db")


def test_unknown_provider():
    with pytest.raises(ValueError):
        load_config({"manifest_provider": "postgres"})


def test_component_logs_reach_json_file(tmp_path):
    log_file = tmp_path / "logs" / "plane.log"
    root = configure("INFO", to_file=str(log_file))
    configure("INFO", to_file=str(log_file))
    file_handlers = [h for h in root.handlers if isinstance(h, logging.FileHandler)]
    assert len(file_handlers) == 1
    try:
        get_logger("Zone").info("hello")
        file_handlers[0].flush()
        line = log_file.read_text().strip()
        assert '"level": "INFO"' in line and '"name": "TrustPlane.Zone"' in line and '"msg": "hello"' in line
        assert line.split('"ts": "')[1][19] == "Z"
    finally:
        root.removeHandler(file_handlers[0])
        file_handlers[0].close()


def test_configure_sets_level():
    logger = configure("warning")
    assert logger.name == "TrustPlane"
    assert logger.level == logging.WARNING
    configure("not-a-level")
    assert logger.level == logging.INFO
