from windsurf.validation.rules import (
    AllOf,
    Email,
    Length,
    Pattern,
    Predicate,
    Required,
    Rule,
    ValidationError,
    ValidationResult,
    check_rule,
    validate,
    validate_or_raise,
)

__all__ = [
    "AllOf",
    "Email",
    "Length",
    "Pattern",
    "Predicate",
    "Required",
    "Rule",
    "ValidationError",
    "ValidationResult",
    "check_rule",
    "validate",
    "validate_or_raise",
]
