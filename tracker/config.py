"""
Configuration

Settings are read from an optional YAML file (path in TRACKER_CONFIG) and
then overridden by environment variables.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger("config")

# -----------------------------------------------------------------------------
# Defaults
# -----------------------------------------------------------------------------
DEFAULT_DATA_DIR = "data/tracker"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_ADMIN_PRINCIPALS = ["admin"]
DEFAULT_ADMIN_GROUP = "admin"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """Runtime settings for the tracker service."""
    data_dir: Path = Path(DEFAULT_DATA_DIR)
    log_level: str = DEFAULT_LOG_LEVEL
    admin_principals: List[str] = field(default_factory=lambda: list(DEFAULT_ADMIN_PRINCIPALS))
    admin_group: str = DEFAULT_ADMIN_GROUP
    # Whether admin principals also bypass group checks on task workflow
    admin_override_workflow: bool = False
    memberships_file: Optional[Path] = None

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        if self.memberships_file is None:
            self.memberships_file = self.data_dir / "memberships.yaml"
        else:
            self.memberships_file = Path(self.memberships_file)


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


def _parse_list(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [v.strip() for v in str(value).split(",") if v.strip()]


def _read_config_file(path: Path) -> Dict[str, Any]:
    """Read the YAML config file. A missing file yields no overrides."""
    if not path.exists():
        logger.warning(f"Config file {path} does not exist, using defaults")
        return {}
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return data


def load_settings(config_path: Optional[Path] = None) -> Settings:
    """
    Build settings from the YAML file (if any) and the environment.

    Environment variables win over file values.
    """
    values: Dict[str, Any] = {}

    path = config_path or (Path(os.environ["TRACKER_CONFIG"]) if os.getenv("TRACKER_CONFIG") else None)
    if path is not None:
        values.update(_read_config_file(Path(path)))

    env_map = {
        "TRACKER_DATA_DIR": "data_dir",
        "TRACKER_LOG_LEVEL": "log_level",
        "TRACKER_ADMIN_PRINCIPALS": "admin_principals",
        "TRACKER_ADMIN_GROUP": "admin_group",
        "TRACKER_ADMIN_OVERRIDE_WORKFLOW": "admin_override_workflow",
        "TRACKER_MEMBERSHIPS_FILE": "memberships_file",
    }
    for env_key, name in env_map.items():
        raw = os.getenv(env_key)
        if raw is not None and raw != "":
            values[name] = raw

    if "admin_principals" in values:
        values["admin_principals"] = _parse_list(values["admin_principals"])
    if "admin_override_workflow" in values:
        values["admin_override_workflow"] = _parse_bool(values["admin_override_workflow"])
    if "log_level" in values:
        values["log_level"] = str(values["log_level"]).upper()

    unknown = set(values) - set(Settings.__dataclass_fields__)
    if unknown:
        logger.warning(f"Ignoring unknown settings: {sorted(unknown)}")
        for key in unknown:
            values.pop(key)

    return Settings(**values)


# -----------------------------------------------------------------------------
# Global Settings Instance
# -----------------------------------------------------------------------------
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the cached settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop cached settings so the next call re-reads file and environment."""
    global _settings
    _settings = None
