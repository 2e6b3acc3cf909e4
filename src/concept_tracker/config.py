"""Configuration management for concept_tracker.

This module contains all configurable constants for the concept store.
Magic numbers are documented here rather than scattered throughout the codebase.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


class ConfigurationError(Exception):
    """Raised when configuration cannot be loaded."""

    pass


def get_storage_root() -> Path:
    """Get the directory holding the concept store(s).

    Discovery order:
    1. CONCEPT_TRACKER_STORAGE_PATH environment variable
    2. STORAGE_PATH environment variable (legacy name)
    3. ~/.concept-tracker/
    """
    root = os.environ.get("CONCEPT_TRACKER_STORAGE_PATH") or os.environ.get("STORAGE_PATH")
    if root:
        return Path(root).expanduser()
    return Path.home() / ".concept-tracker"


def get_default_namespace() -> str | None:
    """Get the tenant namespace used when the caller does not pass one."""
    return os.environ.get("CONCEPT_TRACKER_NAMESPACE") or None


# =============================================================================
# Store Document
# =============================================================================

# Schema tag written into every persisted store document
STORE_VERSION = "1.0.0"

# File name of a store document inside its namespace directory
STORE_FILENAME = "concepts.json"

# Sub-directory of the storage root holding non-default namespaces
NAMESPACES_DIRNAME = "namespaces"

# Optional YAML config file inside the storage root
CONFIG_FILENAME = "config.yaml"


# =============================================================================
# Listing
# =============================================================================

# Default number of concepts returned by `ct list`
DEFAULT_LIST_LIMIT = 50


# =============================================================================
# Codebase Scanner
# =============================================================================

# File extensions scanned when the caller gives none
DEFAULT_INCLUDE_EXTENSIONS = ("ts", "tsx", "js", "jsx", "py", "go", "rs", "java", "cpp", "c", "h")

# Directory and file names never descended into: build output,
# dependency trees and version-control metadata
DEFAULT_EXCLUDE_NAMES = ("node_modules", "dist", "build", ".git", "__pycache__", "target", "vendor")

# Matched line text is trimmed and cut to this many characters
SCAN_CONTEXT_MAX_CHARS = 100

# Locations per concept shown in scan summaries
SCAN_SUMMARY_LOCATIONS = 5


# =============================================================================
# Extraction
# =============================================================================

# Conversation text kept as a provenance snippet is cut to this length
CONTEXT_SNIPPET_LIMIT = 500

# Conversations shorter than this are not sent for extraction (0 = no minimum)
MIN_CONVERSATION_LENGTH = 0


# =============================================================================
# Narrative Export
# =============================================================================

# Markdown supports six heading levels; deeper tree levels reuse the last one
MAX_HEADING_LEVEL = 6

# Root concepts render at this level (## is used for category sections)
NARRATIVE_ROOT_HEADING_LEVEL = 3

# Most recent provenance snippets shown per concept
NARRATIVE_SNIPPET_LIMIT = 3

# Snippet text longer than this is truncated with "..."
NARRATIVE_SNIPPET_CHARS = 100

# Code locations listed per concept before "...and N more"
NARRATIVE_LOCATION_LIMIT = 10


# =============================================================================
# Config File
# =============================================================================


@dataclass
class TrackerConfig:
    """Settings loaded from <storage root>/config.yaml.

    Example:
        scan:
          include_extensions: [py, ts]
          exclude_names: [node_modules, .venv]
        extraction:
          min_conversation_length: 100
          context_limit: 500
    """

    include_extensions: list[str] = field(default_factory=lambda: list(DEFAULT_INCLUDE_EXTENSIONS))
    exclude_names: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_NAMES))
    min_conversation_length: int = MIN_CONVERSATION_LENGTH
    context_limit: int = CONTEXT_SNIPPET_LIMIT
    source_file: Path | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], source_file: Path | None = None) -> "TrackerConfig":
        """Build a config from parsed YAML, falling back to defaults per key."""
        scan = data.get("scan") or {}
        extraction = data.get("extraction") or {}
        if not isinstance(scan, dict) or not isinstance(extraction, dict):
            raise ConfigurationError(f"{source_file}: 'scan' and 'extraction' must be mappings")

        config = cls(source_file=source_file)
        if "include_extensions" in scan:
            config.include_extensions = _string_list(scan["include_extensions"], "scan.include_extensions")
        if "exclude_names" in scan:
            config.exclude_names = _string_list(scan["exclude_names"], "scan.exclude_names")
        if "min_conversation_length" in extraction:
            config.min_conversation_length = int(extraction["min_conversation_length"])
        if "context_limit" in extraction:
            config.context_limit = int(extraction["context_limit"])
        return config


def _string_list(value: Any, key: str) -> list[str]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if not isinstance(value, list):
        raise ConfigurationError(f"{key} must be a list of strings")
    return [str(item) for item in value]


def load_config(root: Path | None = None) -> TrackerConfig:
    """Load config.yaml from the storage root.

    Returns defaults when the file does not exist.

    Raises:
        ConfigurationError: If the file exists but cannot be read or parsed.
    """
    import yaml

    config_file = (root or get_storage_root()) / CONFIG_FILENAME
    if not config_file.exists():
        return TrackerConfig()

    try:
        data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load {config_file}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_file}: expected a mapping at top level")

    try:
        return TrackerConfig.from_dict(data, source_file=config_file)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{config_file}: {e}") from e
