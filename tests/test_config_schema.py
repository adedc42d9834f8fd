"""Tests for the unified configuration schema.

Covers:
- Zero-config defaults
- Mapping direction defaulting and path helpers
- Duplicate mapping ids
- resolve_policy override merging
- Unknown conflict strategies are accepted with a warning
"""

import pytest
from pydantic import ValidationError

from vault_sync.config_schema import (
    DEFAULT_FILE_TYPES,
    MappingConfig,
    SyncPolicyConfig,
    UnifiedConfig,
    build_config,
    describe_custom_settings,
    has_custom_settings,
    resolve_policy,
)


def _make_mapping(**overrides) -> MappingConfig:
    data = {"id": "docs", "name": "Docs", "project_root": "/p"}
    data.update(overrides)
    return MappingConfig(**data)


class TestDefaults:
    def test_zero_config(self):
        config = build_config({})
        assert config == UnifiedConfig()
        assert config.vault.path is None
        assert config.vault.config_dir == ".obsidian"
        assert config.vault.trash_dir == ".trash"
        assert config.sync.mode == "manual"
        assert config.sync.debounce_ms == 3000
        assert config.sync.conflict_strategy == "newer-wins"
        assert config.sync.file_types == DEFAULT_FILE_TYPES
        assert config.sync.create_backups is True
        assert config.sync.sync_deletions is False
        assert config.sync.confirm_deletions is True
        assert config.sync.on_busy == "queue"
        assert config.logging.level is None
        assert config.mappings == []

    def test_frozen(self):
        config = UnifiedConfig()
        with pytest.raises(ValidationError):
            config.sync.mode = "scheduled"

    def test_invalid_mode_rejected(self):
        with pytest.raises(ValidationError):
            build_config({"sync": {"mode": "hourly"}})

    def test_unknown_strategy_warns(self, caplog):
        policy = SyncPolicyConfig(conflict_strategy="coin-toss")
        assert policy.conflict_strategy == "coin-toss"
        assert "Unknown conflict_strategy" in caplog.text

    def test_duplicate_mapping_ids(self):
        raw = {
            "mappings": [
                {"id": "a", "name": "A", "project_root": "/a"},
                {"id": "a", "name": "B", "project_root": "/b"},
            ]
        }
        with pytest.raises(ValidationError, match="Duplicate mapping id"):
            build_config(raw)

    def test_get_mapping(self):
        config = build_config(
            {"mappings": [{"id": "a", "name": "A", "project_root": "/a"}]}
        )
        assert config.get_mapping("a").name == "A"
        assert config.get_mapping("b") is None


class TestMappingConfig:
    def test_bidirectional_direction(self):
        assert _make_mapping().effective_direction == "bidirectional"

    def test_one_way_without_direction_defaults(self, caplog):
        mapping = _make_mapping(bidirectional=False)
        assert mapping.direction == "project-to-vault"
        assert mapping.effective_direction == "project-to-vault"
        assert "defaulting to project-to-vault" in caplog.text

    def test_one_way_vault_to_project(self):
        mapping = _make_mapping(bidirectional=False, direction="vault-to-project")
        assert mapping.effective_direction == "vault-to-project"

    def test_docs_subpath_applies_to_both_sides(self, tmp_path):
        mapping = _make_mapping(
            project_root=str(tmp_path), vault_root="Projects/x/", docs_subpath="/docs"
        )
        assert mapping.project_docs_path() == tmp_path / "docs"
        assert mapping.vault_docs_path() == "Projects/x/docs"

    def test_vault_root_defaults_to_vault_base(self):
        assert _make_mapping().vault_docs_path() == ""
        assert _make_mapping(docs_subpath="docs").vault_docs_path() == "docs"

    def test_project_root_expands_home(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        assert _make_mapping(project_root="~/proj").project_docs_path() == tmp_path / "proj"


class TestResolvePolicy:
    def test_global_values_without_overrides(self):
        policy = SyncPolicyConfig(conflict_strategy="vault-wins", create_backups=False)
        effective = resolve_policy(_make_mapping(), policy)

        assert effective.conflict_strategy == "vault-wins"
        assert effective.file_types == tuple(DEFAULT_FILE_TYPES)
        assert effective.create_backups is False
        assert effective.bidirectional

    def test_overrides_win(self):
        mapping = _make_mapping(
            conflict_strategy_override="project-wins",
            file_types_override=[".txt"],
            exclude_patterns_override=[],
        )
        effective = resolve_policy(mapping, SyncPolicyConfig())

        assert effective.conflict_strategy == "project-wins"
        assert effective.file_types == (".txt",)
        assert effective.exclude_patterns == ()

    def test_direction_from_mapping(self):
        mapping = _make_mapping(bidirectional=False, direction="vault-to-project")
        effective = resolve_policy(mapping, SyncPolicyConfig())
        assert effective.direction == "vault-to-project"
        assert not effective.bidirectional


class TestCustomSettings:
    def test_none(self):
        mapping = _make_mapping()
        assert not has_custom_settings(mapping)
        assert describe_custom_settings(mapping) == "Using global settings"

    def test_described(self):
        mapping = _make_mapping(
            conflict_strategy_override="always-ask", file_types_override=[".md"]
        )
        assert has_custom_settings(mapping)
        assert describe_custom_settings(mapping) == "conflict: always-ask, 1 file types"
