"""
Configuration module for Vault Bridge MCP Server.

Uses pydantic-settings for configuration management with environment variable support.
Environment variables use VAULT_BRIDGE_ prefix (e.g., VAULT_BRIDGE_VAULT_PATH).
"""

from pathlib import Path

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import PathACL

# Protocol constants
MCP_VERSION = "2024-11-05"
SERVER_NAME = "vault-bridge"
SERVER_VERSION = "0.1.0"

# Embed expansion
MAX_EMBED_DEPTH = 2
EMBED_SEPARATOR = "\n----- EMBEDDED/LINKED CONTENT -----\n"
ENTRY_BEGIN = "===== BEGIN ENTRY: {key} ====="
ENTRY_END = "===== END ENTRY ====="


def _get_default_vault_path() -> Path:
    """Get default vault path."""
    return Path.home() / "Documents" / "Vault"


class Settings(BaseSettings):
    """Application settings with environment variable support.

    Environment variables:
    - VAULT_BRIDGE_VAULT_PATH: Path to the vault root
    - VAULT_BRIDGE_ACL_FORBIDDEN: JSON array of globs that can never be read or written
    - VAULT_BRIDGE_ACL_READ_ONLY: JSON array of globs that can be read but not written
    - VAULT_BRIDGE_ACL_WRITABLE: JSON array of globs that may be written (empty = everything)
    - VAULT_BRIDGE_ACL_FILE: Optional YAML file overriding the three lists above
    - VAULT_BRIDGE_TRASH_FOLDER: Vault-relative folder receiving deleted notes
    - VAULT_BRIDGE_LOG_LEVEL: Log level name
    - VAULT_BRIDGE_METADATA_CACHE_SIZE: Maximum number of parsed metadata entries kept
    - VAULT_BRIDGE_INDEX_TTL: Seconds before the vault file index is rescanned
    """

    vault_path: Path = Field(default_factory=_get_default_vault_path)
    acl_forbidden: list[str] = Field(default_factory=list)
    acl_read_only: list[str] = Field(default_factory=list)
    acl_writable: list[str] = Field(default_factory=list)
    acl_file: Path | None = None
    trash_folder: str = ".trash"
    log_level: str = "INFO"
    metadata_cache_size: int = 2048
    index_ttl: float = 5.0

    model_config = SettingsConfigDict(env_prefix="VAULT_BRIDGE_")

    def path_acl(self) -> PathACL:
        """Build the effective ACL, preferring the YAML file when configured."""
        if self.acl_file is not None:
            return load_acl_file(self.acl_file)
        return PathACL(
            forbidden=self.acl_forbidden,
            read_only=self.acl_read_only,
            writable=self.acl_writable,
        )


def load_acl_file(acl_path: Path) -> PathACL:
    """Load ACL glob lists from a YAML file.

    The file is a mapping with optional ``forbidden``, ``readOnly`` (or
    ``read_only``) and ``writable`` keys, each a list of glob strings.

    Raises:
        FileNotFoundError: If the file is missing.
        ValueError: If the file does not have the expected structure.
    """
    if not acl_path.exists():
        raise FileNotFoundError(f"ACL file not found at {acl_path}")

    raw = yaml.safe_load(acl_path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError("ACL file must contain a mapping")

    if "read_only" in raw and "readOnly" not in raw:
        raw["readOnly"] = raw.pop("read_only")

    for key in ("forbidden", "readOnly", "writable"):
        value = raw.get(key, [])
        if value is None:
            raw[key] = []
        elif not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ValueError(f"ACL '{key}' must be a list of glob strings")

    return PathACL.model_validate(raw)


# Global settings instance
settings = Settings()
