"""
Requirement model and registry.

A Requirement is a check that has already been evaluated: the outcome is
captured when the entry is created and never recomputed. The registry keeps
entries in insertion order and splits failures by severity.
"""

import html
import logging
import re
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from reqcheck.exceptions import ReqcheckError

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]*>")

_FALSY_FLAGS = {"", "0", "off", "false", "no", "none"}

DirectivePredicate = Callable[[Optional[str]], bool]


class Severity(Enum):
    """How a failed requirement affects the audit."""

    MANDATORY_REQUIREMENT = "mandatory_requirement"
    PHP_CONFIG_REQUIREMENT = "php_config_requirement"
    RECOMMENDATION = "recommendation"
    PHP_CONFIG_RECOMMENDATION = "php_config_recommendation"

    @property
    def is_mandatory(self) -> bool:
        return self in (Severity.MANDATORY_REQUIREMENT, Severity.PHP_CONFIG_REQUIREMENT)

    @property
    def is_php_config(self) -> bool:
        return self in (Severity.PHP_CONFIG_REQUIREMENT, Severity.PHP_CONFIG_RECOMMENDATION)


def strip_tags(markup: str) -> str:
    """Turn help markup into plain text."""
    return html.unescape(_TAG_RE.sub("", markup))


def normalize_flag(raw: Optional[str]) -> bool:
    """
    Interpret a php.ini directive value as a boolean.

    An absent directive, an empty string, ``0``, ``off``, ``false``, ``no``
    and ``none`` are false; every other value is true.
    """
    if raw is None:
        return False
    return raw.strip().lower() not in _FALSY_FLAGS


@dataclass(frozen=True)
class Requirement:
    """A single evaluated check with its guidance text."""

    satisfied: bool
    severity: Severity
    test_message: str
    help_html: str
    help_text: str = ""

    def __post_init__(self):
        if not self.help_text:
            object.__setattr__(self, "help_text", strip_tags(self.help_html))

    @property
    def is_mandatory(self) -> bool:
        return self.severity.is_mandatory

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = asdict(self)
        data["severity"] = self.severity.value
        return data


class RequirementRegistry:
    """Ordered collection of evaluated requirements for one audit run."""

    def __init__(self, config_source: Optional[Any] = None):
        """
        Args:
            config_source: ConfigSource used by check_php_config
        """
        self.config_source = config_source
        self._requirements: List[Requirement] = []
        self.faults: List[ReqcheckError] = []

    def __iter__(self) -> Iterator[Requirement]:
        return iter(self._requirements)

    def __len__(self) -> int:
        return len(self._requirements)

    def check(
        self,
        condition: bool,
        severity: Severity,
        test_message: str,
        help_html: str,
        help_text: Optional[str] = None,
    ) -> Requirement:
        """Record the outcome of a check."""
        requirement = Requirement(
            satisfied=bool(condition),
            severity=severity,
            test_message=test_message,
            help_html=help_html,
            help_text=help_text or "",
        )
        self._requirements.append(requirement)

        if not requirement.satisfied:
            logger.debug(f"Failed {severity.value}: {test_message}")
        return requirement

    def require(self, condition: bool, test_message: str, help_html: str, help_text: Optional[str] = None) -> Requirement:
        return self.check(condition, Severity.MANDATORY_REQUIREMENT, test_message, help_html, help_text)

    def recommend(self, condition: bool, test_message: str, help_html: str, help_text: Optional[str] = None) -> Requirement:
        return self.check(condition, Severity.RECOMMENDATION, test_message, help_html, help_text)

    def check_php_config(
        self,
        directive: str,
        expected: Union[bool, DirectivePredicate],
        severity: Severity = Severity.PHP_CONFIG_REQUIREMENT,
        test_message: Optional[str] = None,
        help_html: Optional[str] = None,
        help_text: Optional[str] = None,
        approve_absence: bool = False,
    ) -> Requirement:
        """
        Check a php.ini directive read through the config source.

        Args:
            directive: Directive name, e.g. ``session.auto_start``
            expected: Literal flag the directive must equal, or a predicate
                over its raw value (``None`` when the directive is absent)
            severity: One of the severities; defaults to a mandatory config check
            approve_absence: Pass when the directive does not exist at all
        """
        value = self.config_source.ini_get(directive) if self.config_source is not None else None
        verb = "must" if severity.is_mandatory else "should"

        if callable(expected):
            satisfied = bool(expected(value))
            if test_message is None:
                test_message = f"{directive} {verb} be correctly configured in php.ini"
            if help_html is None:
                help_html = f'Review the "<strong>{directive}</strong>" setting in php.ini<a href="#phpini">*</a>.'
        else:
            satisfied = normalize_flag(value) == bool(expected)
            if test_message is None:
                state = "enabled" if expected else "disabled"
                test_message = f"{directive} {verb} be {state} in php.ini"
            if help_html is None:
                switch = "on" if expected else "off"
                help_html = f'Set <strong>{directive}</strong> to <strong>{switch}</strong> in php.ini<a href="#phpini">*</a>.'

        if approve_absence and value is None:
            satisfied = True

        return self.check(satisfied, severity, test_message, help_html, help_text)

    def record_fault(self, fault: ReqcheckError) -> None:
        """Keep a structural error that the caller must be able to see."""
        logger.warning(str(fault))
        self.faults.append(fault)

    def all(self) -> List[Requirement]:
        return list(self._requirements)

    def requirements(self) -> List[Requirement]:
        """All mandatory entries, passed or failed."""
        return [r for r in self._requirements if r.is_mandatory]

    def recommendations(self) -> List[Requirement]:
        """All advisory entries, passed or failed."""
        return [r for r in self._requirements if not r.is_mandatory]

    def failed_mandatory_requirements(self) -> List[Requirement]:
        return [r for r in self._requirements if r.is_mandatory and not r.satisfied]

    def failed_recommendations(self) -> List[Requirement]:
        return [r for r in self._requirements if not r.is_mandatory and not r.satisfied]

    def has_php_config_issue(self) -> bool:
        return any(r.severity.is_php_config and not r.satisfied for r in self._requirements)

    def is_fully_satisfied(self) -> bool:
        return not self.failed_mandatory_requirements()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "requirements": [r.to_dict() for r in self._requirements],
            "faults": [str(f) for f in self.faults],
            "fully_satisfied": self.is_fully_satisfied(),
        }
