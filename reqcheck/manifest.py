"""Project root discovery and directory layout from composer.json."""

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Union

logger = logging.getLogger(__name__)

MANIFEST_NAME = "composer.json"


@dataclass(frozen=True)
class DirectoryLayout:
    """Directory names of a project, relative to its root."""

    bin_dir: str = "bin"
    conf_dir: str = "conf"
    etc_dir: str = "etc"
    src_dir: str = "src"
    var_dir: str = "var"
    public_dir: str = "public"
    vendor_dir: str = "vendor"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)


def find_project_root(start: Union[str, Path]) -> Path:
    """
    Walk up from ``start`` to the first directory holding composer.json.

    Returns ``start`` itself when no manifest is found before the
    filesystem root.
    """
    start = Path(start).absolute()
    directory = start
    while not (directory / MANIFEST_NAME).is_file():
        if directory.parent == directory:
            logger.debug(f"No {MANIFEST_NAME} above {start}, using it as project root")
            return start
        directory = directory.parent
    return directory


def read_manifest(root: Union[str, Path]) -> Dict[str, Any]:
    """Load composer.json as a dict; an unreadable or malformed file yields {}."""
    path = Path(root) / MANIFEST_NAME
    try:
        with path.open(encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable {path}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def read_layout(root: Union[str, Path]) -> DirectoryLayout:
    """
    Resolve the directory layout of a project.

    Each ``<name>-dir`` is taken from ``extra.<name>-dir`` or, failing that,
    ``extra.symfony-<name>-dir``; the vendor directory comes from
    ``config.vendor-dir``.
    """
    manifest = read_manifest(root)
    extra = manifest.get("extra")
    extra = extra if isinstance(extra, dict) else {}
    config = manifest.get("config")
    config = config if isinstance(config, dict) else {}

    values = DirectoryLayout().to_dict()
    for field_name in values:
        if field_name == "vendor_dir":
            continue
        key = field_name.replace("_", "-")
        if extra.get(key):
            values[field_name] = str(extra[key])
        elif extra.get(f"symfony-{key}"):
            values[field_name] = str(extra[f"symfony-{key}"])

    if config.get("vendor-dir"):
        values["vendor_dir"] = str(config["vendor-dir"])

    return DirectoryLayout(**values)
