"""
Configuration loader — reads execsafe.yml into a ``Settings`` model.

Lookup order: explicit path (``--config``), ``EXECSAFE_CONFIG``, then
``execsafe.yml`` found by walking up from the cwd.  No file at all is
fine: every setting has a default.  A file that exists but cannot be
parsed or validated is a ``ConfigError``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from execsafe.core.models.capability import CapabilityDescriptor, TrustPolicy

logger = logging.getLogger(__name__)

# Default config filename
SETTINGS_FILE = "execsafe.yml"
DEFAULT_STATE_DIRNAME = ".state"
USER_STATE_DIR = Path("~/.execsafe")


class ConfigError(Exception):
    """Raised when the settings file is invalid or unreadable."""


class Settings(BaseModel):
    """Validated platform settings."""

    allowed_roots: list[str] | None = None      # None → home + tempdir
    autonomy_mode: str | None = None            # safe | guided | unrestricted
    trust_policy: TrustPolicy | None = None     # explicit override
    checkpoint_root: str | None = None
    scratch_roots: list[str] | None = None      # None → tempdir
    state_dir: str | None = None
    max_install_workers: int = 1
    capabilities: list[CapabilityDescriptor] = Field(default_factory=list)
    mcp_servers: list[dict[str, Any]] = Field(default_factory=list)
    flags: dict[str, Any] = Field(default_factory=dict)

    # Where the settings came from (None → defaults).
    source_path: str | None = None

    @field_validator("max_install_workers")
    @classmethod
    def _positive_workers(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_install_workers must be >= 1")
        return value

    def resolved_state_dir(self) -> Path:
        """Directory for flags and other persisted state."""
        if self.state_dir:
            return Path(self.state_dir).expanduser()
        if self.source_path:
            return Path(self.source_path).parent / DEFAULT_STATE_DIRNAME
        return USER_STATE_DIR.expanduser()


def find_settings_file(start_dir: Path | None = None) -> Path | None:
    """Search for execsafe.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to execsafe.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / SETTINGS_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_settings(path: Path | str | None = None) -> Settings:
    """Load and validate settings.

    Args:
        path: Explicit settings file.  If None, ``EXECSAFE_CONFIG`` is
            consulted, then the cwd and its parents.

    Returns:
        Validated ``Settings`` (defaults when no file is found).

    Raises:
        ConfigError: An explicit file is missing, or any file is invalid.
    """
    explicit = path or os.environ.get("EXECSAFE_CONFIG") or None
    if explicit is not None:
        config_path = Path(explicit).expanduser()
        if not config_path.is_file():
            raise ConfigError(f"Config file not found: {config_path}")
    else:
        config_path = find_settings_file()
        if config_path is None:
            logger.debug("No %s found, using defaults", SETTINGS_FILE)
            return Settings()

    logger.debug("Loading settings from %s", config_path)

    try:
        raw = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {config_path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {config_path}, got {type(data).__name__}")

    # The YAML may wrap everything under an "execsafe" key or be flat
    settings_data = data.get("execsafe", data) if isinstance(data.get("execsafe"), dict) else data

    try:
        settings = Settings.model_validate({**settings_data, "source_path": str(config_path)})
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {config_path}: {e}") from e

    logger.info(
        "Loaded settings from %s (%d extra capabilities, %d MCP servers)",
        config_path, len(settings.capabilities), len(settings.mcp_servers),
    )
    return settings
