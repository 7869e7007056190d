"""
Version comparison for runtime and database servers.

Comparison is numeric per segment, so ``10.2.7`` sorts after ``9.9.9``.
Development tags (``dev``, ``alpha``, ``beta``, ``RC``) rank below the
release they precede; any other suffix, such as a distribution build
(``-0ubuntu0.18.04.1``) or a vendor name (``-MariaDB``), does not affect
ordering.
"""

import logging
import re
from typing import Optional, Tuple

import semantic_version as sv

logger = logging.getLogger(__name__)

MYSQL = "mysql"
MARIADB = "mariadb"

_VERSION_RE = re.compile(r"^\s*v?(?P<release>\d+(?:\.\d+)*)(?P<rest>.*)$", re.DOTALL)
_PRERELEASE_RE = re.compile(r"^[-_.+]?(?P<tag>dev|alpha|beta|rc|a|b)(?P<number>\d*)(?![a-z])", re.IGNORECASE)

# Numeric identifiers so semver ordering gives dev < alpha < beta < RC
_PRERELEASE_RANK = {
    "dev": "0",
    "alpha": "1",
    "a": "1",
    "beta": "2",
    "b": "2",
    "rc": "3",
}


def _split_version(raw: Optional[str]) -> Optional[Tuple[Tuple[int, ...], Tuple[str, ...]]]:
    match = _VERSION_RE.match(raw or "")
    if not match:
        return None

    release = tuple(int(part) for part in match.group("release").split("."))

    prerelease: Tuple[str, ...] = ()
    tag = _PRERELEASE_RE.match(match.group("rest"))
    if tag:
        prerelease = (_PRERELEASE_RANK[tag.group("tag").lower()],)
        if tag.group("number"):
            prerelease += (str(int(tag.group("number"))),)

    return release, prerelease


def parse_version(raw: Optional[str]) -> Optional[sv.Version]:
    """
    Parse a loosely formatted version string.

    Segments after the third are kept as build metadata (``4.8.1.1`` gives
    ``4.8.1+1``); compare_at_least still orders on them.

    Returns:
        A semantic_version.Version, or None when no leading number exists
    """
    parsed = _split_version(raw)
    if parsed is None:
        return None

    release, prerelease = parsed
    major, minor, patch = (release + (0, 0))[:3]
    build = tuple(str(part) for part in release[3:])

    return sv.Version(major=major, minor=minor, patch=patch, prerelease=prerelease, build=build)


def compare_at_least(installed: Optional[str], required: str) -> bool:
    """Return True if ``installed`` is the same as or newer than ``required``."""
    installed_parsed = _split_version(installed)
    required_parsed = _split_version(required)

    if installed_parsed is None or required_parsed is None:
        logger.debug(f"Unparseable version in comparison: {installed!r} >= {required!r}")
        return False

    # Every numeric segment counts, missing ones are zero
    width = max(len(installed_parsed[0]), len(required_parsed[0]))
    installed_release = installed_parsed[0] + (0,) * (width - len(installed_parsed[0]))
    required_release = required_parsed[0] + (0,) * (width - len(required_parsed[0]))
    if installed_release != required_release:
        return installed_release > required_release

    # Same release: semver ranks development tags below the final release
    return parse_version(installed) >= parse_version(required)


def detect_database_product(version: Optional[str]) -> str:
    """Tell MariaDB and MySQL apart from a server version string."""
    if version and MARIADB in version.lower():
        return MARIADB
    return MYSQL


def is_database_version_supported(installed: Optional[str], min_mysql: str, min_mariadb: str) -> bool:
    """
    Check a MySQL or MariaDB server version against the product's minimum.

    MariaDB strings also pass when they contain the minimum literally, which
    covers vendor strings that embed the version in an unparseable form.
    """
    installed = installed or ""

    if detect_database_product(installed) == MARIADB:
        return min_mariadb in installed or compare_at_least(installed, min_mariadb)

    return compare_at_least(installed, min_mysql)
