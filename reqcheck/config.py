"""
Audit settings.

Values are layered, later sources winning: built-in defaults, the project's
``.env`` and ``.env.local`` files, the process environment, an optional YAML
file and finally explicit overrides (usually CLI flags).
"""

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from dotenv import dotenv_values

from reqcheck.exceptions import SettingsError

logger = logging.getLogger(__name__)

ENV_FILES = (".env", ".env.local")

# Environment variable -> settings field
ENV_KEYS = {
    "APP_ENV": "app_env",
    "DATABASE_URL": "database_url",
    "REQCHECK_PHP_BINARY": "php_binary",
}


@dataclass
class AuditSettings:
    """Everything the audit needs to know besides the runtime itself."""

    root_dir: Path = field(default_factory=Path.cwd)
    app_env: str = "dev"
    database_url: Optional[str] = None
    php_binary: str = "php"
    min_php_version: str = "7.2.8"
    min_mysql_version: str = "5.7.0"
    min_mariadb_version: str = "10.2.7"
    min_memory_limit: int = 134217728

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, hiding the database password."""
        data = asdict(self)
        data["root_dir"] = str(self.root_dir)
        if self.database_url:
            data["database_url"] = "***"
        return data


def read_yaml_document(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load a YAML (or JSON) mapping.

    Raises:
        SettingsError: If the file cannot be read or is not a mapping
    """
    try:
        with open(path, encoding="utf-8") as f:
            document = yaml.safe_load(f)
    except OSError as e:
        raise SettingsError(f"Cannot read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise SettingsError(f"Invalid YAML in {path}: {e}") from e

    if document is None:
        return {}
    if not isinstance(document, dict):
        raise SettingsError(f"{path} must contain a mapping, got {type(document).__name__}")
    return document


def read_env_files(root_dir: Path) -> Dict[str, str]:
    """Merge the project's dotenv files without touching os.environ."""
    values: Dict[str, str] = {}
    for name in ENV_FILES:
        path = root_dir / name
        if path.is_file():
            logger.debug(f"Reading {path}")
            values.update({k: v for k, v in dotenv_values(path).items() if v is not None})
    return values


def load_settings(
    root_dir: Union[str, Path],
    config_file: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> AuditSettings:
    """
    Build AuditSettings for a project.

    Args:
        root_dir: Discovered project root
        config_file: Optional YAML file with settings fields as keys
        environ: Process environment (defaults to os.environ)
        overrides: Final values; None entries are ignored

    Raises:
        SettingsError: If the config file is invalid or names unknown settings
    """
    root_dir = Path(root_dir)
    environ = os.environ if environ is None else environ
    values: Dict[str, Any] = {}

    dotenv = read_env_files(root_dir)
    for source in (dotenv, environ):
        for env_key, field_name in ENV_KEYS.items():
            if source.get(env_key):
                values[field_name] = source[env_key]

    if config_file:
        document = read_yaml_document(config_file)
        known = {f.name for f in fields(AuditSettings)} - {"root_dir"}
        unknown = sorted(set(document) - known)
        if unknown:
            raise SettingsError(f"Unknown settings in {config_file}: {', '.join(unknown)}")
        values.update(document)

    values.update({k: v for k, v in (overrides or {}).items() if v is not None})

    try:
        values["min_memory_limit"] = int(values.get("min_memory_limit", AuditSettings.min_memory_limit))
    except (TypeError, ValueError) as e:
        raise SettingsError(f"min_memory_limit must be an integer: {e}") from e
    for name in ("min_php_version", "min_mysql_version", "min_mariadb_version"):
        if name in values:
            values[name] = str(values[name])

    return AuditSettings(root_dir=root_dir, **values)
