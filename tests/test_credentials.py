"""
Tests for credential placeholder substitution.
"""

from qualitypilot.core.types import StepDefinition
from qualitypilot.security.credentials import (
    find_placeholders,
    missing_credentials,
    substitute_credentials,
    substitute_value,
)

STEPS = [
    StepDefinition(action="fill", target="Email", value="{{email}}"),
    StepDefinition(action="fill", target="Password", value="{{ password }}"),
    StepDefinition(action="fill", target="Code", value="otp-{{otp}}"),
    StepDefinition(action="click", target="{{email}}"),
]


def test_find_placeholders():
    assert find_placeholders(STEPS) == {"email", "password", "otp"}


def test_targets_are_not_placeholders():
    assert find_placeholders([StepDefinition(action="click", target="{{x}}")]) == set()


def test_missing_credentials():
    assert missing_credentials(STEPS, {"email": "a@b.c"}) == ["otp", "password"]
    assert missing_credentials(STEPS, None) == ["email", "otp", "password"]


def test_substitute_value_keeps_unknown():
    assert substitute_value("{{a}}-{{b}}", {"a": "1"}) == "1-{{b}}"


def test_substitute_credentials():
    result = substitute_credentials(STEPS, {"email": "me@example.com", "password": "pw", "otp": "42"})

    assert [s.value for s in result] == ["me@example.com", "pw", "otp-42", None]
    assert result[3].target == "{{email}}"


def test_originals_untouched():
    substitute_credentials(STEPS, {"email": "me@example.com"})

    assert STEPS[0].value == "{{email}}"


def test_no_credentials_returns_copy():
    result = substitute_credentials(STEPS, {})

    assert result == STEPS
    assert result is not STEPS
