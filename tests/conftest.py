"""Shared fixtures: a healthy project tree and runtime snapshot factory."""

import pytest

from reqcheck.sources import RuntimeSnapshot

HEALTHY_FUNCTIONS = [
    "iconv",
    "json_encode",
    "session_start",
    "ctype_alpha",
    "token_get_all",
    "simplexml_import_dom",
    "mb_strlen",
    "utf8_decode",
    "filter_var",
    "posix_isatty",
]


def _healthy_snapshot_data():
    return {
        "version": "8.1.2",
        "os": "Linux",
        "extensions": {
            "Core": "8.1.2",
            "intl": "8.1.2",
            "mbstring": "8.1.2",
            "Zend OPcache": "8.1.2",
            "PDO": "8.1.2",
        },
        "functions": list(HEALTHY_FUNCTIONS),
        "classes": ["DomDocument", "PDO", "Collator"],
        "constants": {
            "PCRE_VERSION": "10.39 2021-10-29",
            "INTL_ICU_VERSION": "70.1",
            "PHP_WINDOWS_VERSION_BUILD": None,
        },
        "ini": {
            "memory_limit": "256M",
            "post_max_size": "8M",
            "upload_max_filesize": "2M",
            "opcache.enable": "1",
            "short_open_tag": "",
            "session.auto_start": "0",
            "mbstring.func_overload": "0",
            "intl.error_level": "0",
        },
        "default_timezone": "Europe/Paris",
        "timezones": ["Europe/Paris", "UTC"],
        "pdo_drivers": ["mysql", "sqlite"],
        "icu_version": "70.1",
        "icu_data_version": "70.1",
        "collator_available": True,
        "php_ini": "/etc/php/8.1/cli/php.ini",
    }


@pytest.fixture
def make_snapshot():
    """Factory for a runtime that meets every requirement, with overrides."""

    def factory(ini=None, **overrides):
        data = _healthy_snapshot_data()
        data["ini"].update(ini or {})
        data.update(overrides)
        return RuntimeSnapshot(**data)

    return factory


@pytest.fixture
def project_dir(tmp_path):
    """A project with composer.json, installed vendors and writable var dirs."""
    (tmp_path / "composer.json").write_text("{}", encoding="utf-8")
    (tmp_path / "vendor" / "composer").mkdir(parents=True)
    (tmp_path / "var" / "cache").mkdir(parents=True)
    (tmp_path / "var" / "log").mkdir(parents=True)
    return tmp_path
