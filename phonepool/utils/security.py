"""
Security Utilities
==================

Secure handling of provider credentials and payment secrets.
Ensures tokens and API keys are never logged or exposed, and provides
the HMAC helpers used to authenticate payment webhooks.

Usage:
    from phonepool.utils.security import SecureString, mask_sensitive

    token = SecureString("my-api-token")
    print(token)  # Outputs: ********
    token.get_secret()  # Returns actual value

    masked = mask_sensitive("user@example.com")  # use***@example.com
"""

import hashlib
import hmac
import re
import secrets
from typing import Any


class SecureString:
    """
    A string wrapper that prevents accidental exposure of sensitive values.

    The actual value never shows up in ``str``/``repr`` output, so it is
    safe to pass around in objects that end up in log lines.
    """

    __slots__ = ("_secret_value", "_length")

    def __init__(self, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError("SecureString value must be a string")
        self._secret_value = value
        self._length = len(value)

    def get_secret(self) -> str:
        """
        Get the actual secret value.

        Returns:
            The unmasked secret string. Never log the result.
        """
        return self._secret_value

    def __str__(self) -> str:
        return "*" * min(self._length, 8)

    def __repr__(self) -> str:
        return f"SecureString('{self}')"

    def __len__(self) -> int:
        return self._length

    def __bool__(self) -> bool:
        return self._length > 0

    def __eq__(self, other: Any) -> bool:
        """Constant-time comparison to prevent timing attacks."""
        if isinstance(other, SecureString):
            return secrets.compare_digest(self._secret_value, other._secret_value)
        if isinstance(other, str):
            return secrets.compare_digest(self._secret_value, other)
        return False

    def __hash__(self) -> int:
        return hash(self._secret_value)


def mask_sensitive(value: str, visible_chars: int = 3) -> str:
    """
    Mask a sensitive string, showing only first few characters.

    Args:
        value: The string to mask.
        visible_chars: Number of characters to show at start.

    Returns:
        Masked string with asterisks.

    Examples:
        >>> mask_sensitive("password123")
        'pas********'
        >>> mask_sensitive("user@example.com")
        'use***@example.com'
    """
    if not value:
        return ""

    # For emails, preserve domain
    if "@" in value:
        local, domain = value.split("@", 1)
        if len(local) <= visible_chars:
            return f"{local[0]}***@{domain}"
        return f"{local[:visible_chars]}***@{domain}"

    if len(value) <= visible_chars:
        return "*" * len(value)
    return f"{value[:visible_chars]}{'*' * 8}"


_SENSITIVE_KEY = re.compile(
    r"password|secret|token|api[_-]?key|access[_-]?key|auth|credential|signature",
    re.IGNORECASE,
)


def sanitize_for_logging(data: dict[str, Any]) -> dict[str, Any]:
    """
    Sanitize a dictionary for safe logging.

    Masks common sensitive fields like passwords, tokens, and keys.
    Nested dictionaries are sanitized recursively.

    Args:
        data: Dictionary that may contain sensitive data.

    Returns:
        New dictionary with sensitive values masked.
    """
    result: dict[str, Any] = {}
    for key, value in data.items():
        if _SENSITIVE_KEY.search(key):
            if isinstance(value, str):
                result[key] = mask_sensitive(value)
            else:
                result[key] = "********"
        elif isinstance(value, dict):
            result[key] = sanitize_for_logging(value)
        elif isinstance(value, SecureString):
            result[key] = str(value)
        else:
            result[key] = value
    return result


def hmac_sha256(key: bytes, message: bytes) -> bytes:
    """Raw HMAC-SHA256 digest of ``message`` under ``key``."""
    return hmac.new(key, message, hashlib.sha256).digest()


def signatures_match(expected: str, provided: str) -> bool:
    """Constant-time comparison of two hex signatures (case-insensitive)."""
    return hmac.compare_digest(expected.lower(), provided.strip().lower())
