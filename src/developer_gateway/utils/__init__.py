"""Utility functions and classes."""

from .credentials import (
    generate_key_pair,
    hash_secret,
    is_valid_key_format,
    is_valid_secret_format,
    mask_credential,
    verify_secret,
)
from .logging import get_logger, setup_logging
from .tokens import SessionTokenManager, SessionUser

__all__ = [
    "generate_key_pair",
    "hash_secret",
    "is_valid_key_format",
    "is_valid_secret_format",
    "mask_credential",
    "verify_secret",
    "get_logger",
    "setup_logging",
    "SessionTokenManager",
    "SessionUser",
]
