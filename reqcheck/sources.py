"""
Runtime introspection for the audited PHP installation.

The audit never talks to the interpreter directly: it asks a ConfigSource.
``SnapshotConfigSource`` answers from a RuntimeSnapshot, which is either
collected from a live ``php`` binary by ``collect_php_snapshot`` or loaded
from a YAML/JSON file.
"""

import json
import logging
import re
import subprocess
import zoneinfo
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from reqcheck.exceptions import ProbeUnavailable

logger = logging.getLogger(__name__)

PROBED_FUNCTIONS = [
    "iconv",
    "json_encode",
    "session_start",
    "ctype_alpha",
    "token_get_all",
    "simplexml_import_dom",
    "apc_store",
    "mb_strlen",
    "utf8_decode",
    "filter_var",
    "posix_isatty",
]

PROBED_CLASSES = ["DomDocument", "PDO", "Collator"]

PROBED_CONSTANTS = ["PCRE_VERSION", "INTL_ICU_VERSION", "PHP_WINDOWS_VERSION_BUILD"]

PROBED_DIRECTIVES = [
    "date.timezone",
    "apc.enabled",
    "detect_unicode",
    "suhosin.executor.include.whitelist",
    "xdebug.show_exception_trace",
    "xdebug.scream",
    "xdebug.max_nesting_level",
    "mbstring.func_overload",
    "intl.error_level",
    "eaccelerator.enable",
    "zend_optimizerplus.enable",
    "opcache.enable",
    "xcache.cacher",
    "wincache.ocenabled",
    "realpath_cache_size",
    "short_open_tag",
    "magic_quotes_gpc",
    "register_globals",
    "session.auto_start",
    "memory_limit",
    "post_max_size",
    "upload_max_filesize",
]

_ICU_INFO_RE = re.compile(r"^ICU version +(?:=> )?(.*)$", re.MULTILINE)

_PROBE_SCRIPT = r"""
$q = json_decode($argv[1], true);
if ($q['autoload'] && is_file($q['autoload'])) {
    @include_once $q['autoload'];
}
$extensions = array();
foreach (get_loaded_extensions() as $name) {
    $extensions[$name] = (string) phpversion($name);
}
$ini = array();
foreach ($q['directives'] as $key) {
    $value = ini_get($key);
    $ini[$key] = false === $value ? null : $value;
}
$constants = array();
foreach ($q['constants'] as $name) {
    $constants[$name] = defined($name) ? (string) constant($name) : null;
}
$intlInfo = null;
$collator = false;
if (extension_loaded('intl')) {
    $collator = null !== @new \Collator('fr_FR');
    if (!defined('INTL_ICU_VERSION')) {
        $reflector = new \ReflectionExtension('intl');
        ob_start();
        $reflector->info();
        $intlInfo = strip_tags(ob_get_clean());
    }
}
$icuData = null;
if (class_exists('Symfony\Component\Intl\Intl')) {
    $icuData = \Symfony\Component\Intl\Intl::getIcuDataVersion();
}
echo json_encode(array(
    'version' => PHP_VERSION,
    'os' => PHP_OS,
    'extensions' => $extensions,
    'functions' => array_values(array_filter($q['functions'], 'function_exists')),
    'classes' => array_values(array_filter($q['classes'], 'class_exists')),
    'constants' => $constants,
    'ini' => $ini,
    'default_timezone' => @date_default_timezone_get(),
    'timezones' => \DateTimeZone::listIdentifiers(),
    'pdo_drivers' => class_exists('PDO') ? \PDO::getAvailableDrivers() : array(),
    'intl_info' => $intlInfo,
    'collator_available' => $collator,
    'icu_data_version' => $icuData,
    'php_ini' => php_ini_loaded_file() ?: null,
));
"""


@dataclass
class RuntimeSnapshot:
    """Facts about a PHP runtime, as seen by the audit."""

    version: str = ""
    os: str = "Linux"
    extensions: Dict[str, str] = field(default_factory=dict)
    functions: List[str] = field(default_factory=list)
    classes: List[str] = field(default_factory=list)
    constants: Dict[str, Optional[str]] = field(default_factory=dict)
    ini: Dict[str, Optional[str]] = field(default_factory=dict)
    default_timezone: Optional[str] = None
    timezones: Optional[List[str]] = None
    pdo_drivers: List[str] = field(default_factory=list)
    icu_version: Optional[str] = None
    icu_data_version: Optional[str] = None
    collator_available: bool = False
    php_ini: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RuntimeSnapshot":
        """Create from dictionary, ignoring unknown keys."""
        known = {name for name in cls.__dataclass_fields__}
        values = {key: value for key, value in data.items() if key in known}
        for name in ("functions", "classes", "pdo_drivers"):
            if name in values:
                values[name] = [str(item) for item in values[name] or []]
        # json_encode() turns an empty PHP map into []; snapshot files may list extension names only
        for name in ("extensions", "constants", "ini"):
            if name in values and not isinstance(values[name], dict):
                values[name] = {key: "" for key in values[name] or []} if name == "extensions" else {}
        if "extensions" in values:
            values["extensions"] = {key: str(value or "") for key, value in values["extensions"].items()}
        # ini values are strings in PHP; YAML may hand back ints and bools
        if "ini" in values:
            values["ini"] = {key: _ini_string(value) for key, value in (values["ini"] or {}).items()}
        if "constants" in values:
            values["constants"] = {key: _optional_string(value) for key, value in values["constants"].items()}
        # Hand-written YAML reads 70.1 or 7.4 as floats
        for name in ("version", "os"):
            if name in values:
                values[name] = str(values[name])
        for name in ("default_timezone", "icu_version", "icu_data_version", "php_ini"):
            if name in values:
                values[name] = _optional_string(values[name])
        if values.get("timezones") is not None:
            values["timezones"] = [str(item) for item in values["timezones"]]
        return cls(**values)


def _optional_string(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _ini_string(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "1" if value else ""
    return str(value)


class ConfigSource:
    """Read-only view of the runtime the application will run on."""

    def runtime_version(self) -> str:
        raise NotImplementedError

    def os_family(self) -> str:
        raise NotImplementedError

    def extension_loaded(self, name: str) -> bool:
        raise NotImplementedError

    def extension_version(self, name: str) -> Optional[str]:
        raise NotImplementedError

    def function_exists(self, name: str) -> bool:
        raise NotImplementedError

    def class_exists(self, name: str) -> bool:
        raise NotImplementedError

    def constant(self, name: str) -> Optional[str]:
        raise NotImplementedError

    def ini_get(self, directive: str) -> Optional[str]:
        """Raw directive value, None when the directive does not exist."""
        raise NotImplementedError

    def default_timezone(self) -> Optional[str]:
        raise NotImplementedError

    def timezone_identifiers(self) -> Set[str]:
        raise NotImplementedError

    def pdo_drivers(self) -> List[str]:
        raise NotImplementedError

    def icu_version(self) -> Optional[str]:
        raise NotImplementedError

    def icu_data_version(self) -> Optional[str]:
        raise NotImplementedError

    def collator_available(self) -> bool:
        raise NotImplementedError

    def php_ini_path(self) -> Optional[str]:
        raise NotImplementedError


class SnapshotConfigSource(ConfigSource):
    """ConfigSource backed by a RuntimeSnapshot."""

    def __init__(self, snapshot: RuntimeSnapshot):
        self.snapshot = snapshot
        # Extension and function names are case-insensitive in PHP
        self._extensions = {name.lower(): version for name, version in snapshot.extensions.items()}
        self._functions = {name.lower() for name in snapshot.functions}
        self._classes = {name.lower() for name in snapshot.classes}

    def runtime_version(self) -> str:
        return self.snapshot.version

    def os_family(self) -> str:
        return self.snapshot.os

    def extension_loaded(self, name: str) -> bool:
        return name.lower() in self._extensions

    def extension_version(self, name: str) -> Optional[str]:
        return self._extensions.get(name.lower())

    def function_exists(self, name: str) -> bool:
        return name.lower() in self._functions

    def class_exists(self, name: str) -> bool:
        return name.lower() in self._classes

    def constant(self, name: str) -> Optional[str]:
        return self.snapshot.constants.get(name)

    def ini_get(self, directive: str) -> Optional[str]:
        return self.snapshot.ini.get(directive)

    def default_timezone(self) -> Optional[str]:
        return self.snapshot.default_timezone

    def timezone_identifiers(self) -> Set[str]:
        if self.snapshot.timezones is None:
            return set(zoneinfo.available_timezones())
        return set(self.snapshot.timezones)

    def pdo_drivers(self) -> List[str]:
        return list(self.snapshot.pdo_drivers)

    def icu_version(self) -> Optional[str]:
        return self.snapshot.icu_version

    def icu_data_version(self) -> Optional[str]:
        return self.snapshot.icu_data_version

    def collator_available(self) -> bool:
        return self.snapshot.collator_available

    def php_ini_path(self) -> Optional[str]:
        return self.snapshot.php_ini


def parse_icu_version(intl_info: Optional[str]) -> Optional[str]:
    """Extract the ICU version from the intl extension info text."""
    if not intl_info:
        return None
    match = _ICU_INFO_RE.search(intl_info)
    return match.group(1).strip() if match else None


def collect_php_snapshot(php_binary: str = "php", project_root: Optional[Path] = None, timeout: int = 30) -> RuntimeSnapshot:
    """
    Run the PHP interpreter once and capture everything the audit needs.

    Args:
        php_binary: Interpreter to execute
        project_root: Project whose vendor/autoload.php should be loaded
        timeout: Seconds to wait for the interpreter

    Returns:
        RuntimeSnapshot of the interpreter

    Raises:
        ProbeUnavailable: If the interpreter cannot be run or its output is unusable
    """
    autoload = str(project_root / "vendor" / "autoload.php") if project_root else ""
    query = {
        "autoload": autoload,
        "functions": PROBED_FUNCTIONS,
        "classes": PROBED_CLASSES,
        "constants": PROBED_CONSTANTS,
        "directives": PROBED_DIRECTIVES,
    }

    logger.debug(f"Collecting runtime snapshot with {php_binary}")
    try:
        result = subprocess.run(
            [php_binary, "-r", _PROBE_SCRIPT, "--", json.dumps(query)],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise ProbeUnavailable(f"PHP interpreter not found: {php_binary}") from e
    except subprocess.TimeoutExpired as e:
        raise ProbeUnavailable(f"PHP interpreter did not answer within {timeout}s") from e

    if result.returncode != 0:
        raise ProbeUnavailable(f"PHP interpreter exited with {result.returncode}: {result.stderr.strip()}")

    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise ProbeUnavailable(f"PHP interpreter returned invalid output: {e}") from e
    if not isinstance(data, dict):
        raise ProbeUnavailable("PHP interpreter returned invalid output: expected a JSON object")

    constants = data.get("constants")
    if not isinstance(constants, dict):
        constants = {}
    data["icu_version"] = constants.get("INTL_ICU_VERSION") or parse_icu_version(data.pop("intl_info", None))

    return RuntimeSnapshot.from_dict(data)
