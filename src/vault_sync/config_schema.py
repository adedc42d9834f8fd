"""Unified configuration schema for vault_sync.

Defines Pydantic models for the unified config structure with dedicated
sections for the vault, the global sync policy, the list of mappings and
logging. Also provides ``EffectivePolicy``: the immutable merge of the
global policy with one mapping's overrides, computed once per sync run.

Usage:
    from vault_sync.config_schema import build_config, resolve_policy

    raw = load_hierarchical_config()
    unified = build_config(raw)
    policy = resolve_policy(unified.mappings[0], unified.sync)
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

DEFAULT_FILE_TYPES = [".md", ".canvas", ".excalidraw.md"]
DEFAULT_EXCLUDE_PATTERNS = ["node_modules", ".git", ".DS_Store", ".space"]

# Strategies understood by the resolver. ``conflict_strategy`` fields are
# plain strings so that an unknown value degrades to newer-wins at sync
# time instead of rejecting the whole configuration.
KNOWN_STRATEGIES = ("newer-wins", "always-ask", "project-wins", "vault-wins")


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class VaultConfig(BaseModel):
    """Vault store settings.

    Attributes:
        path: Base directory of the vault. May be supplied later via
            ``VAULT_SYNC_VAULT_PATH`` or ``--vault``.
        config_dir: The vault application's own configuration folder,
            never synced.
        trash_dir: Folder (relative to the vault) receiving deleted files.
    """

    path: str | None = Field(default=None, description="Vault base path")
    config_dir: str = Field(
        default=".obsidian",
        description="Vault configuration directory (always excluded)",
    )
    trash_dir: str = Field(
        default=".trash",
        description="Vault-relative folder that receives deleted files",
    )

    model_config = {"frozen": True}


class SyncPolicyConfig(BaseModel):
    """Global sync policy shared by every mapping."""

    mode: Literal["manual", "on-change", "on-startup", "scheduled"] = Field(
        default="manual", description="When syncs are triggered"
    )
    debounce_ms: int = Field(
        default=3000,
        ge=0,
        description="Idle window used to coalesce file change events",
    )
    scheduled_interval_minutes: int = Field(
        default=5, ge=1, description="Interval for scheduled mode"
    )
    conflict_strategy: str = Field(
        default="newer-wins",
        description=f"One of {', '.join(KNOWN_STRATEGIES)}",
    )
    file_types: list[str] = Field(
        default_factory=lambda: list(DEFAULT_FILE_TYPES),
        description="Suffixes of files to sync (simple or compound)",
    )
    exclude_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS),
        description="Path segments to skip (exact or substring match)",
    )
    follow_symlinks: bool = Field(default=False)
    create_backups: bool = Field(
        default=True,
        description="Back up a destination file before overwriting it",
    )
    sync_deletions: bool = Field(
        default=False,
        description="Propagate deletions detected against the snapshot",
    )
    confirm_deletions: bool = Field(
        default=True,
        description="Ask before applying detected deletions",
    )
    on_busy: Literal["queue", "skip"] = Field(
        default="queue",
        description="What a trigger does while the same mapping is syncing",
    )
    state_file: str = Field(
        default=".vault_sync/sync-state.json",
        description="Snapshot store location",
    )

    model_config = {"frozen": True}

    @field_validator("conflict_strategy")
    @classmethod
    def _warn_unknown_strategy(cls, value: str) -> str:
        if value not in KNOWN_STRATEGIES:
            logger.warning(
                "Unknown conflict_strategy '%s'; newer-wins will be used",
                value,
            )
        return value


class MappingConfig(BaseModel):
    """A configured project/vault sync pair.

    Override fields are ``None`` when unset so that an explicitly empty
    list (``exclude_patterns_override: []``) still overrides the global
    default.
    """

    id: str
    name: str
    project_root: str = Field(description="Project-side root directory")
    vault_root: str = Field(
        default="",
        description="Vault-relative folder ('' for the vault root)",
    )
    docs_subpath: str | None = Field(
        default=None,
        description="Sub-path appended to both roots",
    )
    enabled: bool = True
    bidirectional: bool = True
    direction: Literal["project-to-vault", "vault-to-project"] | None = None
    conflict_strategy_override: str | None = None
    file_types_override: list[str] | None = None
    exclude_patterns_override: list[str] | None = None

    model_config = {"frozen": True}

    @model_validator(mode="before")
    @classmethod
    def _default_direction(cls, data):
        if (
            isinstance(data, dict)
            and not data.get("bidirectional", True)
            and data.get("direction") is None
        ):
            logger.warning(
                "Mapping '%s' is one-way without a direction; "
                "defaulting to project-to-vault",
                data.get("id"),
            )
            data = {**data, "direction": "project-to-vault"}
        return data

    @property
    def effective_direction(self) -> str:
        """``bidirectional``, ``project-to-vault`` or ``vault-to-project``."""
        if self.bidirectional:
            return "bidirectional"
        return self.direction or "project-to-vault"

    def project_docs_path(self) -> Path:
        """Absolute project-side directory, with ``~`` expanded."""
        root = Path(self.project_root).expanduser()
        if self.docs_subpath:
            root = root / self.docs_subpath.strip("/")
        return root

    def vault_docs_path(self) -> str:
        """Vault-relative POSIX folder for this mapping ('' = vault root)."""
        parts = [
            p
            for p in (self.vault_root, self.docs_subpath or "")
            if p and p.strip("/")
        ]
        if not parts:
            return ""
        return str(PurePosixPath(*(p.strip("/") for p in parts)))


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            ``None`` keeps the mode default (WARNING for MCP, INFO for CLI).
        file: Optional log file path.
    """

    level: str | None = Field(default=None, description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid; it simply has no mappings.
    """

    vault: VaultConfig = Field(default_factory=VaultConfig)
    sync: SyncPolicyConfig = Field(default_factory=SyncPolicyConfig)
    mappings: list[MappingConfig] = Field(default_factory=list)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}

    @field_validator("mappings")
    @classmethod
    def _unique_ids(cls, mappings: list[MappingConfig]) -> list[MappingConfig]:
        seen: set[str] = set()
        for mapping in mappings:
            if mapping.id in seen:
                raise ValueError(f"Duplicate mapping id: '{mapping.id}'")
            seen.add(mapping.id)
        return mappings

    def get_mapping(self, mapping_id: str) -> MappingConfig | None:
        """Return the mapping with *mapping_id*, or ``None``."""
        for mapping in self.mappings:
            if mapping.id == mapping_id:
                return mapping
        return None


# ---------------------------------------------------------------------------
# Effective policy
# ---------------------------------------------------------------------------


class EffectivePolicy(BaseModel):
    """Global policy merged with one mapping's overrides.

    Passed explicitly into every engine step so that nothing reads ambient
    configuration mid-run.
    """

    conflict_strategy: str
    file_types: tuple[str, ...]
    exclude_patterns: tuple[str, ...]
    follow_symlinks: bool
    create_backups: bool
    sync_deletions: bool
    confirm_deletions: bool
    direction: str

    model_config = {"frozen": True}

    @property
    def bidirectional(self) -> bool:
        return self.direction == "bidirectional"


def resolve_policy(
    mapping: MappingConfig, policy: SyncPolicyConfig
) -> EffectivePolicy:
    """Merge *policy* with the overrides set on *mapping*."""
    strategy = mapping.conflict_strategy_override
    file_types = mapping.file_types_override
    excludes = mapping.exclude_patterns_override
    return EffectivePolicy(
        conflict_strategy=(
            strategy if strategy is not None else policy.conflict_strategy
        ),
        file_types=tuple(
            file_types if file_types is not None else policy.file_types
        ),
        exclude_patterns=tuple(
            excludes if excludes is not None else policy.exclude_patterns
        ),
        follow_symlinks=policy.follow_symlinks,
        create_backups=policy.create_backups,
        sync_deletions=policy.sync_deletions,
        confirm_deletions=policy.confirm_deletions,
        direction=mapping.effective_direction,
    )


def has_custom_settings(mapping: MappingConfig) -> bool:
    """True if *mapping* overrides any global setting."""
    return any(
        value is not None
        for value in (
            mapping.conflict_strategy_override,
            mapping.file_types_override,
            mapping.exclude_patterns_override,
        )
    )


def describe_custom_settings(mapping: MappingConfig) -> str:
    """Short human-readable list of the overrides on *mapping*."""
    parts: list[str] = []
    if mapping.conflict_strategy_override is not None:
        parts.append(f"conflict: {mapping.conflict_strategy_override}")
    if mapping.file_types_override is not None:
        parts.append(f"{len(mapping.file_types_override)} file types")
    if mapping.exclude_patterns_override is not None:
        parts.append(
            f"{len(mapping.exclude_patterns_override)} exclude patterns"
        )
    return ", ".join(parts) if parts else "Using global settings"


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)
