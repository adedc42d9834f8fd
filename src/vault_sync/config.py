"""Runtime configuration for the CLI and the MCP server.

Combines the YAML configuration with environment variables, ``.env``
files and command-line overrides.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    VAULT_SYNC_VAULT_PATH: Vault base directory (required unless set in YAML)
    VAULT_SYNC_STATE_FILE: Snapshot store location (optional)
    VAULT_SYNC_SYNC_DELETIONS: Propagate deletions (optional, default: false)
"""

import logging
import os
from pathlib import Path

import yaml
from dotenv import load_dotenv

from .config_loader import (
    discover_config_files,
    load_config_file,
    load_hierarchical_config,
)
from .config_schema import UnifiedConfig, build_config

logger = logging.getLogger(__name__)


def get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def validate_config(config: UnifiedConfig) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the vault path is missing or not a directory.
    """
    if not config.vault.path or not config.vault.path.strip():
        raise ValueError(
            "Vault path not found. Set VAULT_SYNC_VAULT_PATH environment "
            "variable, pass --vault CLI argument, or add 'vault.path' to "
            "config.yml."
        )

    vault = Path(config.vault.path).expanduser()
    if vault.exists() and not vault.is_dir():
        raise ValueError(f"Vault path '{vault}' is not a directory")
    if not vault.exists():
        logger.warning("Vault path %s does not exist yet", vault)

    if not config.mappings:
        logger.warning("No mappings configured; nothing will be synced")


def load_config(
    vault_path: str | None = None,
    state_file: str | None = None,
    sync_deletions: bool | None = None,
    yaml_raw: dict | None = None,
) -> UnifiedConfig:
    """Load configuration with unified precedence.

    Resolution order for each overridable field (highest to lowest):
        CLI arg > env var / .env > YAML > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        vault_path: Override vault base directory.
        state_file: Override snapshot store location.
        sync_deletions: Override deletion propagation.
        yaml_raw: Merged dict from ``load_hierarchical_config()``.

    Returns:
        Validated ``UnifiedConfig`` instance.

    Raises:
        ValueError: If the YAML is invalid or the vault path is missing.
    """
    base = build_config(yaml_raw or {})

    final_vault = (
        vault_path or os.getenv("VAULT_SYNC_VAULT_PATH") or base.vault.path
    )
    final_state = (
        state_file or os.getenv("VAULT_SYNC_STATE_FILE") or base.sync.state_file
    )
    if sync_deletions is not None:
        final_deletions = sync_deletions
    else:
        env_deletions = get_bool_env("VAULT_SYNC_SYNC_DELETIONS")
        if env_deletions is not None:
            final_deletions = env_deletions
        else:
            final_deletions = base.sync.sync_deletions

    config = base.model_copy(
        update={
            "vault": base.vault.model_copy(
                update={"path": final_vault.strip() if final_vault else None}
            ),
            "sync": base.sync.model_copy(
                update={
                    "state_file": final_state,
                    "sync_deletions": final_deletions,
                }
            ),
        }
    )

    validate_config(config)

    return config


def load_runtime_config(
    overrides: dict | None = None,
) -> tuple[UnifiedConfig, list[str]]:
    """Load ``.env``, the YAML config files and *overrides* in one step.

    Args:
        overrides: Optional CLI values: ``config`` (explicit config file,
            bypasses discovery), ``vault``, ``state_file`` and
            ``sync_deletions``.

    Returns:
        The validated config and a list describing the sources used.

    Raises:
        ValueError: If any source is invalid or the vault path is missing.
    """
    # .env first, so ${VAR} interpolation in YAML can use its values
    load_dotenv()

    overrides = overrides or {}
    sources: list[str] = []
    explicit = overrides.get("config")
    try:
        if explicit:
            raw = load_config_file(Path(explicit))
            sources.append(f"config file: {explicit}")
        else:
            config_files = discover_config_files()
            raw = load_hierarchical_config() if config_files else {}
            if config_files:
                sources.append(f"config file: {config_files[0]}")
    except (yaml.YAMLError, OSError) as e:
        raise ValueError(f"Cannot read config file: {e}") from e

    config = load_config(
        vault_path=overrides.get("vault"),
        state_file=overrides.get("state_file"),
        sync_deletions=overrides.get("sync_deletions"),
        yaml_raw=raw,
    )

    if any(k != "config" for k in overrides):
        sources.append("CLI arguments")
    sources.append("environment variables")
    return config, sources
