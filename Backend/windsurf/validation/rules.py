"""
Input validation with a closed set of rule variants.

A field's rules are a list evaluated in order; every failure is collected.
``validate`` returns a ``ValidationResult``; ``validate_or_raise`` is the thin
wrapper for callers that want an exception instead.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from email_validator import EmailNotValidError, validate_email


@dataclass(frozen=True)
class Required:
    message: str = "This field is required."


@dataclass(frozen=True)
class Length:
    min: Optional[int] = None
    max: Optional[int] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class Email:
    message: str = "Must be a valid email address."


@dataclass(frozen=True)
class Pattern:
    regex: str
    message: str = "Has an invalid format."


@dataclass(frozen=True)
class Predicate:
    check: Callable[[Any], bool]
    message: str = "Is invalid."


@dataclass(frozen=True)
class AllOf:
    rules: Sequence["Rule"] = ()


Rule = Union[Required, Length, Email, Pattern, Predicate, AllOf]


@dataclass
class ValidationResult:
    errors: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def first_errors(self) -> Dict[str, str]:
        return {name: messages[0] for name, messages in self.errors.items() if messages}

    def field_errors(self, name: str) -> List[str]:
        return self.errors.get(name, [])

    def has_error(self, name: str) -> bool:
        return bool(self.errors.get(name))


class ValidationError(Exception):
    def __init__(self, result: ValidationResult, message: str = "Validation failed"):
        super().__init__(message)
        self.result = result

    @property
    def errors(self) -> Dict[str, List[str]]:
        return self.result.errors


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _length_message(rule: Length) -> str:
    if rule.message:
        return rule.message
    if rule.min is not None and rule.max is not None:
        return f"Must be between {rule.min} and {rule.max} characters."
    if rule.min is not None:
        return f"Must be at least {rule.min} characters."
    return f"Must be at most {rule.max} characters."


def check_rule(rule: Rule, value: Any) -> List[str]:
    """Messages for every way ``value`` fails ``rule``. Empty optional values pass everything but Required."""
    if isinstance(rule, Required):
        return [rule.message] if _is_empty(value) else []

    if isinstance(rule, AllOf):
        messages: List[str] = []
        for inner in rule.rules:
            messages.extend(check_rule(inner, value))
        return messages

    if _is_empty(value):
        return []

    if isinstance(rule, Length):
        size = len(value) if isinstance(value, (str, list, tuple)) else len(str(value))
        too_short = rule.min is not None and size < rule.min
        too_long = rule.max is not None and size > rule.max
        return [_length_message(rule)] if too_short or too_long else []

    if isinstance(rule, Email):
        try:
            validate_email(str(value), check_deliverability=False)
        except EmailNotValidError:
            return [rule.message]
        return []

    if isinstance(rule, Pattern):
        return [] if re.fullmatch(rule.regex, str(value)) else [rule.message]

    if isinstance(rule, Predicate):
        try:
            ok = bool(rule.check(value))
        except (TypeError, ValueError):
            ok = False
        return [] if ok else [rule.message]

    raise TypeError(f"Unknown validation rule: {rule!r}")


def validate(data: Mapping[str, Any], rules: Mapping[str, Sequence[Rule]]) -> ValidationResult:
    result = ValidationResult()
    for name, field_rules in rules.items():
        value = data.get(name)
        messages: List[str] = []
        for rule in field_rules:
            messages.extend(check_rule(rule, value))
        if messages:
            result.errors[name] = messages
    return result


def validate_or_raise(data: Mapping[str, Any], rules: Mapping[str, Sequence[Rule]]) -> Dict[str, Any]:
    """Validated subset of ``data`` (only ruled fields), or ValidationError."""
    result = validate(data, rules)
    if not result.is_valid:
        raise ValidationError(result)
    return {name: data.get(name) for name in rules}
