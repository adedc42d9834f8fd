"""Shared pytest fixtures for vault-sync tests."""

import os
import time
from pathlib import Path

import pytest

from vault_sync.config_schema import (
    MappingConfig,
    SyncPolicyConfig,
    UnifiedConfig,
    VaultConfig,
)
from vault_sync.stores import ProjectStore, VaultStore
from vault_sync.sync.engine import SyncEngine
from vault_sync.sync.state import SnapshotStore


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: tests that wait on real filesystem notifications"
    )


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep the developer's vault-sync environment out of the tests."""
    for key in (
        "VAULT_SYNC_CONFIG",
        "VAULT_SYNC_VAULT_PATH",
        "VAULT_SYNC_STATE_FILE",
        "VAULT_SYNC_SYNC_DELETIONS",
        "LOG_LEVEL",
        "LOG_FILE",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def project_dir(tmp_path) -> Path:
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def vault_dir(tmp_path) -> Path:
    path = tmp_path / "vault"
    path.mkdir()
    return path


@pytest.fixture
def state_file(tmp_path) -> Path:
    return tmp_path / "state" / "sync-state.json"


@pytest.fixture
def make_file():
    """Factory fixture writing a file with an optional fixed mtime (ms)."""

    def _make(path: Path, content: str = "", mtime_ms: int | None = None) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        if mtime_ms is not None:
            ns = mtime_ms * 1_000_000
            os.utime(path, ns=(ns, ns))
        return path

    return _make


@pytest.fixture
def base_time() -> int:
    """A fixed mtime well in the past, in epoch ms."""
    return (int(time.time()) - 3600) * 1000


@pytest.fixture
def mapping(project_dir) -> MappingConfig:
    return MappingConfig(
        id="docs",
        name="Docs",
        project_root=str(project_dir),
        vault_root="Projects/demo",
    )


@pytest.fixture
def make_config(vault_dir, state_file, mapping):
    """Factory fixture building a UnifiedConfig over the tmp dirs."""

    def _make(mappings: list[MappingConfig] | None = None, **sync) -> UnifiedConfig:
        return UnifiedConfig(
            vault=VaultConfig(path=str(vault_dir)),
            sync=SyncPolicyConfig(state_file=str(state_file), **sync),
            mappings=[mapping] if mappings is None else mappings,
        )

    return _make


@pytest.fixture
def engine_factory(vault_dir, state_file):
    """Factory fixture building a SyncEngine over the tmp vault."""

    def _make(**policy_overrides) -> SyncEngine:
        conflict_handler = policy_overrides.pop("conflict_handler", None)
        deletion_confirmer = policy_overrides.pop("deletion_confirmer", None)
        return SyncEngine(
            project_store=ProjectStore(),
            vault_store=VaultStore(vault_dir),
            snapshots=SnapshotStore(state_file),
            policy=SyncPolicyConfig(**policy_overrides),
            conflict_handler=conflict_handler,
            deletion_confirmer=deletion_confirmer,
        )

    return _make
