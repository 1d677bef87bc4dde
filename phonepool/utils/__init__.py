"""
Utility modules for PhonePool.

This package contains:
    - logger: Structured logging with structlog
    - security: Credential masking and signature helpers
"""

from phonepool.utils.logger import LogContext, get_logger, setup_logging
from phonepool.utils.security import SecureString, mask_sensitive, sanitize_for_logging

__all__ = [
    "LogContext",
    "get_logger",
    "setup_logging",
    "SecureString",
    "mask_sensitive",
    "sanitize_for_logging",
]
