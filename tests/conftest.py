"""
Shared fixtures: every test gets its own storage directory under tmp_path
"""

import pytest

from mimic.core.config import ApplicationConfig
from mimic.mappings.service import MappingService
from mimic.mappings.storage import MappingStore
from mimic.interception.decision import InterceptDecisionEngine


@pytest.fixture
def storage_dir(tmp_path):
    return tmp_path / "mimic"


@pytest.fixture
def store(storage_dir):
    store = MappingStore(storage_dir)
    store.initialize()
    return store


@pytest.fixture
def service(store):
    return MappingService(store)


@pytest.fixture
def engine(service):
    return InterceptDecisionEngine(service)


@pytest.fixture
def app_config(tmp_path, storage_dir):
    """Configuration isolated to tmp_path with both proxies disabled"""
    return ApplicationConfig(
        config_file=tmp_path / "missing.yaml",
        storage={"storage_dir": storage_dir},
        proxy={"proxy_enabled": False, "ca_cert_dir": tmp_path / "certs"},
        http_proxy={"http_proxy_enabled": False, "forward_timeout_seconds": 0.5},
        logging={"log_dir": tmp_path / "logs"},
    )
