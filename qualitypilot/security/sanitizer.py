"""
Data sanitization for sensitive information protection.

Redacts credential values registered by active runs, plus common secret
shapes (bearer tokens, API keys, password assignments, JWTs), from log
records, error messages and event payloads.
"""

import hashlib
import logging
import re
import threading
from collections import Counter
from copy import deepcopy
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Dict, Iterable, List, Optional, Pattern

logger = logging.getLogger(__name__)

SECRET_PLACEHOLDER = "[REDACTED]"


class RedactionMethod(Enum):
    """Methods for redacting sensitive data."""
    MASK = auto()          # Replace with asterisks
    HASH = auto()          # Replace with hash
    PLACEHOLDER = auto()   # Replace with placeholder text


@dataclass
class SensitiveDataPattern:
    """Pattern for identifying sensitive data."""

    name: str
    pattern: Pattern[str]
    redaction_method: RedactionMethod = RedactionMethod.PLACEHOLDER
    placeholder: str = SECRET_PLACEHOLDER
    description: str = ""
    enabled: bool = True

    def matches(self, text: str) -> List[re.Match]:
        """Find all matches in text."""
        if not self.enabled:
            return []
        return list(self.pattern.finditer(text))


class DataSanitizer:
    """Sanitizer for logs, messages and payloads."""

    def __init__(self):
        self.patterns: List[SensitiveDataPattern] = []
        self._secrets: Counter = Counter()
        self._lock = threading.Lock()
        self._setup_default_patterns()

    def _setup_default_patterns(self) -> None:
        self.patterns.extend([
            SensitiveDataPattern(
                name="bearer_token",
                pattern=re.compile(r'Bearer\s+[A-Za-z0-9\-._~+/]+=*', re.IGNORECASE),
                description="Bearer authentication tokens"
            ),
            SensitiveDataPattern(
                name="api_key_prefix",
                pattern=re.compile(
                    r'(api[_-]?key|apikey|api_secret|access[_-]?token)\s*[:=]\s*["\']?([^"\'\s]+)["\']?',
                    re.IGNORECASE,
                ),
                description="API key with common prefixes"
            ),
            SensitiveDataPattern(
                name="openai_key",
                pattern=re.compile(r'\bsk-[A-Za-z0-9_-]{16,}\b'),
                description="OpenAI style secret keys"
            ),
            SensitiveDataPattern(
                name="password_field",
                pattern=re.compile(
                    r'(password|passwd|pwd)\s*[:=]\s*["\']?([^"\'\s]+)["\']?',
                    re.IGNORECASE,
                ),
                placeholder="[PASSWORD]",
                description="Password assignments"
            ),
            SensitiveDataPattern(
                name="jwt_token",
                pattern=re.compile(r'eyJ[A-Za-z0-9_-]+\.eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+'),
                redaction_method=RedactionMethod.HASH,
                description="JWT tokens"
            ),
        ])

    def add_pattern(self, pattern: SensitiveDataPattern) -> None:
        """Add a custom pattern."""
        self.patterns.append(pattern)

    def register_secrets(self, values: Iterable[str]) -> None:
        """Start redacting exact occurrences of these values."""
        with self._lock:
            for value in values:
                if value:
                    self._secrets[value] += 1

    def unregister_secrets(self, values: Iterable[str]) -> None:
        """Stop redacting values registered by a finished run."""
        with self._lock:
            for value in values:
                if not value or value not in self._secrets:
                    continue
                self._secrets[value] -= 1
                if self._secrets[value] <= 0:
                    del self._secrets[value]

    def redact_secrets(self, text: str, secrets: Optional[Iterable[str]] = None) -> str:
        """Replace registered (or explicitly given) secret values."""
        if not text:
            return text
        if secrets is None:
            with self._lock:
                secrets = list(self._secrets)
        # Longest first so a secret containing another is masked whole
        for secret in sorted((s for s in secrets if s), key=len, reverse=True):
            text = text.replace(secret, SECRET_PLACEHOLDER)
        return text

    def sanitize_string(
        self,
        text: str,
        patterns: Optional[List[SensitiveDataPattern]] = None
    ) -> str:
        """
        Sanitize a string: registered secrets first, then patterns.

        Args:
            text: Text to sanitize
            patterns: Patterns to use (defaults to all enabled patterns)

        Returns:
            Sanitized text
        """
        if not text:
            return text

        result = self.redact_secrets(text)
        patterns = patterns or [p for p in self.patterns if p.enabled]

        all_matches = []
        for pattern in patterns:
            for match in pattern.matches(result):
                all_matches.append((match, pattern))

        # Process from the end so earlier spans stay valid
        all_matches.sort(key=lambda x: x[0].start(), reverse=True)
        last_start = None
        for match, pattern in all_matches:
            if last_start is not None and match.end() > last_start:
                continue
            result = self._apply_redaction(result, match, pattern)
            last_start = match.start()

        return result

    def _apply_redaction(
        self,
        text: str,
        match: re.Match,
        pattern: SensitiveDataPattern
    ) -> str:
        start, end = match.span()
        matched_text = match.group()

        if pattern.redaction_method == RedactionMethod.MASK:
            replacement = "*" * len(matched_text)
        elif pattern.redaction_method == RedactionMethod.HASH:
            hash_val = hashlib.sha256(matched_text.encode()).hexdigest()[:8]
            replacement = f"[HASH:{hash_val}]"
        else:
            replacement = pattern.placeholder

        return text[:start] + replacement + text[end:]

    def sanitize_dict(self, data: Dict[str, Any], max_depth: int = 10) -> Dict[str, Any]:
        """Sanitize every string value of a dictionary recursively (copy)."""
        if max_depth <= 0:
            logger.warning("Max recursion depth reached in sanitize_dict")
            return data

        result = deepcopy(data)

        def _sanitize_value(value: Any) -> Any:
            if isinstance(value, str):
                return self.sanitize_string(value)
            if isinstance(value, dict):
                return self.sanitize_dict(value, max_depth - 1)
            if isinstance(value, list):
                return [_sanitize_value(item) for item in value]
            return value

        for key, value in result.items():
            result[key] = _sanitize_value(value)

        return result

    def sanitize_log_record(self, record: logging.LogRecord) -> logging.LogRecord:
        """Sanitize a log record's message and arguments in place."""
        if hasattr(record, 'msg'):
            record.msg = self.sanitize_string(str(record.msg))

        if hasattr(record, 'args') and record.args:
            if isinstance(record.args, dict):
                record.args = self.sanitize_dict(record.args)
            else:
                record.args = tuple(
                    self.sanitize_string(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        return record


_default_sanitizer = DataSanitizer()


def get_sanitizer() -> DataSanitizer:
    """Process wide sanitizer shared by logging and the step runner."""
    return _default_sanitizer


def sanitize_string(text: str) -> str:
    """Sanitize a string using the process wide sanitizer."""
    return _default_sanitizer.sanitize_string(text)


def sanitize_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """Sanitize a dictionary using the process wide sanitizer."""
    return _default_sanitizer.sanitize_dict(data)
