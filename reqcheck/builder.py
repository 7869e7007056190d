"""
Environment audit for a PHP application.

RequirementSetBuilder asks the ConfigSource and DatabaseProbe for raw facts,
runs them through the size and version helpers and records one Requirement
per rule. Each step of the plan is isolated: a probe that fails only affects
the entries of its own step, and the builder always returns a complete
registry.
"""

import html
import logging
import os
import re
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from reqcheck.config import AuditSettings
from reqcheck.database import DatabaseProbe, DatabaseStatus, split_database_url
from reqcheck.exceptions import MalformedConnectionString
from reqcheck.manifest import DirectoryLayout, find_project_root, read_layout
from reqcheck.requirements import RequirementRegistry, Severity, normalize_flag
from reqcheck.sizes import format_byte_size, leading_int, parse_shorthand_size
from reqcheck.sources import ConfigSource
from reqcheck.versions import compare_at_least, is_database_version_supported

logger = logging.getLogger(__name__)

# Runtimes older than this need an explicit date.timezone
TIMEZONE_DIRECTIVE_REQUIRED_BEFORE = "7.0.0"

MIN_PCRE_VERSION = 8.0
MIN_ICU_VERSION = "4.0"
MIN_REALPATH_CACHE_SIZE = 5 * 1024 * 1024

# (function, extension that provides it)
REQUIRED_FUNCTIONS = [
    ("iconv", "iconv"),
    ("json_encode", "JSON"),
    ("session_start", "session"),
    ("ctype_alpha", "ctype"),
    ("token_get_all", "Tokenizer"),
    ("simplexml_import_dom", "SimpleXML"),
]

RECOMMENDED_FUNCTIONS = [
    ("mb_strlen", "mbstring"),
    ("utf8_decode", "XML"),
    ("filter_var", "filter"),
]

# (extension, directive that switches it on)
ACCELERATORS = [
    ("eaccelerator", "eaccelerator.enable"),
    ("apc", "apc.enabled"),
    ("Zend Optimizer+", "zend_optimizerplus.enable"),
    ("Zend OPcache", "opcache.enable"),
    ("xcache", "xcache.cacher"),
    ("wincache", "wincache.ocenabled"),
]

WRITABLE_VAR_SUBDIRS = ("cache", "log")

_LEADING_FLOAT = re.compile(r"^\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+))")


def _leading_float(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    match = _LEADING_FLOAT.match(value)
    return float(match.group(1)) if match else 0.0


class RequirementSetBuilder:
    """
    Runs the full environment audit.

    Features:
    - Runtime and database server versions
    - Database connectivity from DATABASE_URL
    - Vendor libraries and writable var directories
    - Timezone, extensions and php.ini directives
    - Memory and upload size limits
    - Accelerator, intl and PDO recommendations
    """

    def __init__(
        self,
        settings: AuditSettings,
        config_source: ConfigSource,
        database_probe: DatabaseProbe,
        layout: Optional[DirectoryLayout] = None,
    ):
        """
        Initialize the builder.

        Args:
            settings: Audit settings (project root, environment, minimums)
            config_source: Runtime facts
            database_probe: Database connectivity probe
            layout: Directory layout; read from composer.json if None
        """
        self.settings = settings
        self.config = config_source
        self.database_probe = database_probe
        self.root_dir: Path = find_project_root(settings.root_dir)
        self.layout = layout or read_layout(self.root_dir)

    def plan(self) -> List[Tuple[str, Severity, Callable[[RequirementRegistry], None]]]:
        """The audit steps in report order, each with the severity of a step that crashes."""
        mandatory = Severity.MANDATORY_REQUIREMENT
        advisory = Severity.RECOMMENDATION
        return [
            ("PHP version", mandatory, self.check_runtime_version),
            ("Database", mandatory, self.check_database),
            ("Vendor libraries", mandatory, self.check_vendor_libraries),
            ("Writable directories", mandatory, self.check_writable_directories),
            ("Timezone", mandatory, self.check_timezone),
            ("Required extensions", mandatory, self.check_required_extensions),
            ("Runtime configuration", mandatory, self.check_runtime_configuration),
            ("Memory limits", mandatory, self.check_size_limits),
            ("Optional extensions", advisory, self.check_optional_extensions),
            ("Internationalization", advisory, self.check_intl),
            ("Database drivers", advisory, self.check_pdo),
        ]

    def build(self) -> RequirementRegistry:
        """Run every step and return the populated registry."""
        registry = RequirementRegistry(config_source=self.config)
        logger.info(f"Auditing {self.root_dir} (env={self.settings.app_env})")

        for title, severity, step in self.plan():
            try:
                step(registry)
            except Exception as e:
                logger.exception(f"Audit step {title!r} crashed")
                registry.check(
                    False,
                    severity,
                    f"{title} could not be checked: {e}",
                    f"An unexpected error occurred while checking <strong>{title}</strong>: {html.escape(str(e))}",
                )

        logger.info(
            f"Audit finished: {len(registry.failed_mandatory_requirements())} failed requirements, "
            f"{len(registry.failed_recommendations())} failed recommendations"
        )
        return registry

    def check_runtime_version(self, registry: RequirementRegistry) -> None:
        installed = self.config.runtime_version()
        required = self.settings.min_php_version

        registry.require(
            compare_at_least(installed, required),
            f"PHP version must be at least {required} ({installed} installed)",
            f'You are running PHP version "<strong>{installed}</strong>", but the application needs at least '
            f'PHP "<strong>{required}</strong>" to run. Before using the application, upgrade your PHP '
            "installation, preferably to the latest version.",
            f"Install PHP {required} or newer (installed version is {installed})",
        )

    def probe_database(self, registry: RequirementRegistry) -> DatabaseStatus:
        """Connect once; a malformed DATABASE_URL is kept as a registry fault."""
        try:
            identifiers = split_database_url(self.settings.database_url)
        except MalformedConnectionString as e:
            registry.record_fault(e)
            return DatabaseStatus(connected=False, error=str(e))

        logger.debug(f"Probing database {identifiers!r}")
        return self.database_probe.inspect(identifiers)

    def check_database(self, registry: RequirementRegistry) -> None:
        status = self.probe_database(registry)
        min_mysql = self.settings.min_mysql_version
        min_mariadb = self.settings.min_mariadb_version
        installed = status.version or "unknown"

        help_html = "Using the <strong>DATABASE_URL</strong> identifiers from .env, the application must be able to connect to the database."
        if status.error:
            help_html += f" The connection failed with: {html.escape(status.error)}"
        registry.require(
            status.connected,
            "Application must be able to connect to the MySQL database",
            help_html,
        )

        registry.require(
            is_database_version_supported(status.version, min_mysql, min_mariadb),
            f"MySQL version must be at least {min_mysql} for MySQL or at least {min_mariadb} for MariaDB ({installed} installed)",
            f'You are running MySQL version "<strong>{installed}</strong>", but the application needs at least '
            f'MySQL "<strong>{min_mysql}</strong>" or MariaDB "<strong>{min_mariadb}</strong>" to run. '
            "Before using the application, upgrade your database server, preferably to the latest version.",
            f"Install MySQL {min_mysql} or MariaDB {min_mariadb} or newer (installed version is {installed})",
        )

    def check_vendor_libraries(self, registry: RequirementRegistry) -> None:
        vendor_dir = self.root_dir / self.layout.vendor_dir / "composer"

        registry.require(
            vendor_dir.is_dir(),
            "Vendor libraries must be installed",
            'Vendor libraries are missing. Install composer following instructions from '
            '<a href="https://getcomposer.org/">https://getcomposer.org/</a>. '
            'Then run "<strong>php composer.phar install</strong>" to install them.',
        )

    def check_writable_directories(self, registry: RequirementRegistry) -> None:
        var_dir = self.layout.var_dir

        for name in WRITABLE_VAR_SUBDIRS:
            directory = self.root_dir / var_dir / name
            # A directory that does not exist yet will be created by the application
            if not directory.is_dir():
                continue
            registry.require(
                os.access(directory, os.W_OK),
                f"{var_dir}/{name}/ directory must be writable",
                f'Change the permissions of "<strong>{var_dir}/{name}/</strong>" directory so that the web server can write into it.',
            )

    def check_timezone(self, registry: RequirementRegistry) -> None:
        if not compare_at_least(self.config.runtime_version(), TIMEZONE_DIRECTIVE_REQUIRED_BEFORE):
            registry.check_php_config(
                "date.timezone",
                True,
                Severity.PHP_CONFIG_REQUIREMENT,
                "date.timezone setting must be set",
                'Set the "<strong>date.timezone</strong>" setting in php.ini<a href="#phpini">*</a> (like Europe/Paris).',
            )

        timezone = self.config.default_timezone()
        registry.require(
            timezone in self.config.timezone_identifiers(),
            f'Configured default timezone "{timezone}" must be supported by your installation of PHP',
            "Your default timezone is not supported by PHP. Check for typos in your <strong>php.ini</strong> file "
            "and have a look at the list of deprecated timezones at "
            '<a href="https://www.php.net/manual/en/timezones.others.php">https://www.php.net/manual/en/timezones.others.php</a>.',
        )

    def check_required_extensions(self, registry: RequirementRegistry) -> None:
        for function, extension in REQUIRED_FUNCTIONS:
            registry.require(
                self.config.function_exists(function),
                f"{function}() must be available",
                f"Install and enable the <strong>{extension}</strong> extension.",
            )

        registry.require(
            self.config.constant("PCRE_VERSION") is not None,
            "PCRE extension must be available",
            "Install the <strong>PCRE</strong> extension (version 8.0+).",
        )

    def check_runtime_configuration(self, registry: RequirementRegistry) -> None:
        config = self.config
        installed = config.runtime_version()

        if config.function_exists("apc_store") and normalize_flag(config.ini_get("apc.enabled")):
            apc_version = config.extension_version("apc")
            if compare_at_least(installed, "5.4.0"):
                registry.require(
                    compare_at_least(apc_version, "3.1.13"),
                    "APC version must be at least 3.1.13 when using PHP 5.4",
                    "Upgrade your <strong>APC</strong> extension (3.1.13+).",
                )
            else:
                registry.require(
                    compare_at_least(apc_version, "3.0.17"),
                    "APC version must be at least 3.0.17",
                    "Upgrade your <strong>APC</strong> extension (3.0.17+).",
                )

        registry.check_php_config("detect_unicode", False)

        if config.extension_loaded("suhosin"):
            registry.check_php_config(
                "suhosin.executor.include.whitelist",
                lambda value: "phar" in (value or "").lower(),
                Severity.PHP_CONFIG_REQUIREMENT,
                "suhosin.executor.include.whitelist must be configured correctly in php.ini",
                'Add "<strong>phar</strong>" to <strong>suhosin.executor.include.whitelist</strong> in php.ini<a href="#phpini">*</a>.',
            )

        if config.extension_loaded("mbstring"):
            registry.check_php_config(
                "mbstring.func_overload",
                lambda value: leading_int(value) == 0,
                Severity.PHP_CONFIG_REQUIREMENT,
                "string functions should not be overloaded",
                'Set "<strong>mbstring.func_overload</strong>" to <strong>0</strong> in php.ini<a href="#phpini">*</a> '
                "to disable function overloading by the mbstring extension.",
                approve_absence=True,
            )

        if not self.settings.is_production and config.extension_loaded("xdebug"):
            registry.check_php_config("xdebug.show_exception_trace", False, approve_absence=True)
            registry.check_php_config("xdebug.scream", False, approve_absence=True)

    def check_size_limits(self, registry: RequirementRegistry) -> None:
        required = self.settings.min_memory_limit
        memory_limit = parse_shorthand_size(self.config.ini_get("memory_limit"))
        raw_post_max_size = self.config.ini_get("post_max_size")
        post_max_size = parse_shorthand_size(raw_post_max_size)

        registry.check(
            memory_limit >= required,
            Severity.PHP_CONFIG_REQUIREMENT,
            f"php.ini memory_limit value must be at least {format_byte_size(required)} ({format_byte_size(memory_limit)} set)",
            f"Set <strong>memory_limit</strong> in your php.ini file to at least {format_byte_size(required)}.",
        )

        # Orderings are not checked against a directive the runtime does not define
        registry.check_php_config(
            "post_max_size",
            lambda value: parse_shorthand_size(value) < memory_limit,
            Severity.PHP_CONFIG_RECOMMENDATION,
            '"memory_limit" should be greater than "post_max_size".',
            'Set "<strong>memory_limit</strong>" to be greater than "<strong>post_max_size</strong>".',
            approve_absence=True,
        )

        registry.check_php_config(
            "upload_max_filesize",
            lambda value: raw_post_max_size is None or parse_shorthand_size(value) < post_max_size,
            Severity.PHP_CONFIG_RECOMMENDATION,
            '"post_max_size" should be greater than "upload_max_filesize".',
            'Set "<strong>post_max_size</strong>" to be greater than "<strong>upload_max_filesize</strong>".',
            approve_absence=True,
        )

    def check_optional_extensions(self, registry: RequirementRegistry) -> None:
        config = self.config

        pcre_version = _leading_float(config.constant("PCRE_VERSION"))
        if pcre_version is not None:
            registry.recommend(
                pcre_version >= MIN_PCRE_VERSION,
                f"PCRE extension should be at least version 8.0 ({pcre_version:g} installed)",
                "<strong>PCRE 8.0+</strong> is preconfigured in PHP since 5.3.2 but you are using an outdated version of it. "
                "The application probably works anyway but it is recommended to upgrade your PCRE extension.",
            )

        registry.recommend(
            config.class_exists("DomDocument"),
            "PHP-DOM and PHP-XML modules should be installed",
            "Install and enable the <strong>PHP-DOM</strong> and the <strong>PHP-XML</strong> modules.",
        )

        for function, extension in RECOMMENDED_FUNCTIONS:
            registry.recommend(
                config.function_exists(function),
                f"{function}() should be available",
                f"Install and enable the <strong>{extension}</strong> extension.",
            )

        if config.constant("PHP_WINDOWS_VERSION_BUILD") is None:
            registry.recommend(
                config.function_exists("posix_isatty"),
                "posix_isatty() should be available",
                "Install and enable the <strong>php_posix</strong> extension (used to colorize the CLI output).",
            )

        accelerator = any(
            config.extension_loaded(extension) and normalize_flag(config.ini_get(directive))
            for extension, directive in ACCELERATORS
        )
        registry.recommend(
            accelerator,
            "a PHP accelerator should be installed",
            "Install and/or enable a <strong>PHP accelerator</strong> (highly recommended).",
        )

        if config.os_family().upper().startswith("WIN"):
            registry.check(
                parse_shorthand_size(config.ini_get("realpath_cache_size")) >= MIN_REALPATH_CACHE_SIZE,
                Severity.PHP_CONFIG_RECOMMENDATION,
                "realpath_cache_size should be at least 5M in php.ini",
                'Setting "<strong>realpath_cache_size</strong>" to e.g. "<strong>5242880</strong>" or "<strong>5M</strong>" '
                'in php.ini<a href="#phpini">*</a> may improve performance on Windows significantly in some cases.',
            )

        recommendation = Severity.PHP_CONFIG_RECOMMENDATION
        registry.check_php_config("short_open_tag", False, recommendation)
        registry.check_php_config("magic_quotes_gpc", False, recommendation, approve_absence=True)
        registry.check_php_config("register_globals", False, recommendation, approve_absence=True)
        registry.check_php_config("session.auto_start", False, recommendation)

        if self.settings.is_production:
            registry.check(
                not config.extension_loaded("xdebug"),
                recommendation,
                "xdebug should be disabled",
                "To increase platform performances, <strong>xdebug</strong> should be disabled in production mode.",
            )
        elif config.extension_loaded("xdebug"):
            registry.check_php_config(
                "xdebug.max_nesting_level",
                lambda value: leading_int(value) > 100,
                recommendation,
                "xdebug.max_nesting_level should be above 100 in php.ini",
                'Set "<strong>xdebug.max_nesting_level</strong>" to e.g. "<strong>250</strong>" in php.ini<a href="#phpini">*</a> '
                "to stop Xdebug's infinite recursion protection erroneously throwing a fatal error in your project.",
                approve_absence=True,
            )

    def check_intl(self, registry: RequirementRegistry) -> None:
        config = self.config
        intl_loaded = config.extension_loaded("intl")

        registry.recommend(
            intl_loaded,
            "intl extension should be available",
            "Install and enable the <strong>intl</strong> extension (used for validators).",
        )
        if not intl_loaded:
            return

        registry.recommend(
            config.collator_available(),
            "intl extension should be correctly configured",
            "The intl extension does not behave properly. This problem is typical on PHP 5.3.X x64 WIN builds.",
        )

        icu_version = config.icu_version()
        registry.recommend(
            compare_at_least(icu_version, MIN_ICU_VERSION),
            "intl ICU version should be at least 4+",
            "Upgrade your <strong>intl</strong> extension with a newer ICU version (4+).",
        )

        icu_data_version = config.icu_data_version()
        if icu_data_version is not None:
            data_not_newer = compare_at_least(icu_version, icu_data_version)
            registry.recommend(
                data_not_newer,
                f"intl ICU version installed on your system is outdated ({icu_version}) and does not match "
                f"the ICU data bundled with the application ({icu_data_version})",
                "To get the latest internationalization data upgrade the ICU system package and the intl PHP extension.",
            )
            # Only meaningful once the system ICU is known not to be older than the data
            if data_not_newer:
                registry.recommend(
                    icu_version == icu_data_version,
                    f"intl ICU version installed on your system ({icu_version}) does not match "
                    f"the ICU data bundled with the application ({icu_data_version})",
                    "To avoid internationalization data inconsistencies upgrade the symfony/intl component.",
                )

        registry.check_php_config(
            "intl.error_level",
            lambda value: leading_int(value) == 0,
            Severity.PHP_CONFIG_RECOMMENDATION,
            "intl.error_level should be 0 in php.ini",
            'Set "<strong>intl.error_level</strong>" to "<strong>0</strong>" in php.ini<a href="#phpini">*</a> '
            "to inhibit the messages when an error occurs in ICU functions.",
            approve_absence=True,
        )

    def check_pdo(self, registry: RequirementRegistry) -> None:
        pdo_available = self.config.class_exists("PDO")

        registry.recommend(
            pdo_available,
            "PDO should be installed",
            "Install <strong>PDO</strong> (mandatory for Doctrine).",
        )
        if not pdo_available:
            return

        drivers = self.config.pdo_drivers()
        registry.recommend(
            len(drivers) > 0,
            f"PDO should have some drivers installed (currently available: {', '.join(drivers) if drivers else 'none'})",
            "Install <strong>PDO drivers</strong> (mandatory for Doctrine).",
        )


def run_audit(settings: AuditSettings, config_source: ConfigSource, database_probe: DatabaseProbe) -> RequirementRegistry:
    """Audit an environment with a fresh builder and registry."""
    return RequirementSetBuilder(settings, config_source, database_probe).build()
