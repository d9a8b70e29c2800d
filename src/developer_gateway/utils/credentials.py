"""
API credential generation, hashing and format validation.

Keys look like ``pk_live_<32 alphanumerics>`` and secrets like
``sk_live_<48 alphanumerics>`` (``test`` instead of ``live`` for sandbox
credentials). Secrets are stored as a SHA-256 digest: they carry enough
entropy of their own that a salted slow hash adds nothing.
"""

import base64
import hashlib
import hmac
import re
import secrets
from enum import Enum
from typing import NamedTuple, Optional

API_KEY_LENGTH = 32
API_SECRET_LENGTH = 48

_API_KEY_PATTERN = re.compile(r"^pk_(live|test)_[A-Za-z0-9]{32}$")
_API_SECRET_PATTERN = re.compile(r"^sk_(live|test)_[A-Za-z0-9]{48}$")


class Environment(str, Enum):
    LIVE = "live"
    TEST = "test"


class KeyPair(NamedTuple):
    api_key: str
    api_secret: str


def _random_alphanumeric(num_bytes: int, length: int) -> str:
    """Base64 of fresh random bytes with ``+``, ``/`` and ``=`` stripped."""
    text = ""
    while len(text) < length:
        chunk = base64.b64encode(secrets.token_bytes(num_bytes)).decode("ascii")
        text += chunk.replace("+", "").replace("/", "").replace("=", "")
    return text[:length]


def generate_api_key(environment: str = Environment.LIVE) -> str:
    """Generate a public API key from 32 random bytes."""
    env = Environment(environment)
    return f"pk_{env.value}_{_random_alphanumeric(32, API_KEY_LENGTH)}"


def generate_api_secret(environment: str = Environment.LIVE) -> str:
    """Generate a private API secret from 48 random bytes."""
    env = Environment(environment)
    return f"sk_{env.value}_{_random_alphanumeric(48, API_SECRET_LENGTH)}"


def generate_key_pair(environment: str = Environment.LIVE) -> KeyPair:
    """Generate both API key and secret."""
    return KeyPair(generate_api_key(environment), generate_api_secret(environment))


def hash_secret(secret: str) -> str:
    """Hash an API secret for storage."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def verify_secret(candidate: Optional[str], stored_hash: Optional[str]) -> bool:
    """
    Verify a secret against its stored hash.

    The comparison goes through ``hmac.compare_digest`` so the time taken
    does not depend on where the digests first differ.
    """
    if not candidate or not stored_hash:
        return False
    candidate_hash = hash_secret(candidate)
    if len(candidate_hash) != len(stored_hash):
        return False
    return hmac.compare_digest(
        candidate_hash.encode("ascii"), stored_hash.encode("ascii", "replace")
    )


def is_valid_key_format(api_key: Optional[str]) -> bool:
    return bool(api_key) and _API_KEY_PATTERN.match(api_key) is not None


def is_valid_secret_format(api_secret: Optional[str]) -> bool:
    return bool(api_secret) and _API_SECRET_PATTERN.match(api_secret) is not None


def mask_credential(value: Optional[str]) -> str:
    """Display-safe form of an API key for logs, e.g. ``pk_live_abcd...wxyz``."""
    if not value:
        return "None"
    prefix, _, body = value.rpartition("_")
    if len(body) <= 8:
        return f"{prefix}_***" if prefix else "***"
    return f"{prefix}_{body[:4]}...{body[-4:]}"
