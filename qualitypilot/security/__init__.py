"""
Security components for QualityPilot.

Credential placeholder substitution and redaction of sensitive values from
logs, errors and events.
"""

from .credentials import (
    PLACEHOLDER_PATTERN,
    find_placeholders,
    missing_credentials,
    substitute_credentials,
    substitute_value,
)
from .sanitizer import (
    SECRET_PLACEHOLDER,
    DataSanitizer,
    RedactionMethod,
    SensitiveDataPattern,
    get_sanitizer,
    sanitize_dict,
    sanitize_string,
)

__all__ = [
    # Credentials
    "PLACEHOLDER_PATTERN",
    "find_placeholders",
    "missing_credentials",
    "substitute_credentials",
    "substitute_value",

    # Data sanitization
    "SECRET_PLACEHOLDER",
    "DataSanitizer",
    "RedactionMethod",
    "SensitiveDataPattern",
    "get_sanitizer",
    "sanitize_dict",
    "sanitize_string",
]
