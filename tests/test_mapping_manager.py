"""
Test the offline mapping management CLI and configuration loading
"""

import pytest
from pydantic import ValidationError

from mimic.cli.mapping_manager import MappingManager
from mimic.core.config import ApplicationConfig, HTTPProxyConfig
from mimic.mappings.service import MappingService
from mimic.mappings.storage import MappingStore


def test_cli_add_set_show_delete(tmp_path, storage_dir):
    manager = MappingManager(storage_dir)
    assert manager.add_mapping(pattern="https://a.example.com/") is True
    mapping_id = manager.service.list_with_metadata()[0]["id"]

    content_file = tmp_path / "page.html"
    content_file.write_bytes(b"<html>hi</html>")
    assert manager.set_content(mapping_id, content_file) is True

    # A fresh manager reads what the first one persisted
    reopened = MappingManager(storage_dir)
    assert reopened.show_mapping(mapping_id) is True
    assert reopened.list_mappings() is True
    assert reopened.delete_mapping(mapping_id) is True
    assert reopened.delete_mapping(mapping_id) is False


def test_cli_works_on_empty_store(storage_dir):
    """An initialized store with no mappings is still usable"""
    manager = MappingManager(storage_dir)

    assert manager.service is not None
    assert len(manager.service) == 0
    assert manager.list_mappings() is True, "Listing an empty store should succeed"
    assert manager.add_mapping(regex_pattern=r"cdn\.example\.com") is True, "First mapping must be accepted"
    assert len(manager.service) == 1


def test_cli_rejects_bad_input(tmp_path, storage_dir):
    manager = MappingManager(storage_dir)

    assert manager.add_mapping() is False
    assert manager.add_mapping(regex_pattern="(") is False
    assert manager.set_content("missing", tmp_path / "nope.txt") is False
    assert manager.show_mapping("missing") is False


def test_cli_reports_corrupt_storage(storage_dir):
    storage_dir.mkdir(parents=True)
    (storage_dir / "index.json").write_text("{broken", encoding="utf-8")

    manager = MappingManager(storage_dir)

    assert manager.service is None
    assert manager.list_mappings() is False


def test_yaml_overlay(tmp_path):
    config_file = tmp_path / "custom.yaml"
    config_file.write_text(
        f"storage:\n  storage_dir: {tmp_path / 'yaml-store'}\n"
        "http_proxy:\n  forward_timeout_seconds: 5\n",
        encoding="utf-8"
    )

    config = ApplicationConfig(config_file=config_file, proxy={"ca_cert_dir": tmp_path / "certs"})

    assert config.storage.storage_dir == tmp_path / "yaml-store"
    assert config.storage.storage_dir.is_dir(), "Storage directory should be created"
    assert config.http_proxy.forward_timeout_seconds == 5.0

    service = MappingService(MappingStore(config.storage.storage_dir))
    assert service.initialize() == 0


def test_forward_timeout_must_be_positive():
    with pytest.raises(ValidationError):
        HTTPProxyConfig(forward_timeout_seconds=0)
