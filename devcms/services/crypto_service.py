"""Symmetric encryption and secret references for credentials stored at rest."""

from __future__ import annotations

import base64
import hashlib
import os

from cryptography.fernet import Fernet, InvalidToken

ENV_REFERENCE_PREFIX = "env:"


def _derive_key(secret_key: str) -> bytes:
    """Derive a Fernet key from the application secret using SHA-256."""
    digest = hashlib.sha256(secret_key.encode()).digest()
    return base64.urlsafe_b64encode(digest)


def encrypt_value(plaintext: str, secret_key: str) -> str:
    """Encrypt a string and return the ciphertext as a URL-safe string."""
    f = Fernet(_derive_key(secret_key))
    return f.encrypt(plaintext.encode()).decode()


def decrypt_value(ciphertext: str, secret_key: str) -> str:
    """Decrypt a ciphertext string. Raises ValueError on failure."""
    f = Fernet(_derive_key(secret_key))
    try:
        return f.decrypt(ciphertext.encode()).decode()
    except InvalidToken as exc:
        raise ValueError("Failed to decrypt credential data") from exc


def env_reference(variable: str) -> str:
    """Build a secret reference that resolves from an environment variable."""
    name = variable.strip()
    if not name:
        raise ValueError("Environment variable name must not be empty")
    return f"{ENV_REFERENCE_PREFIX}{name}"


def resolve_secret(reference: str, secret_key: str) -> str:
    """Resolve a stored secret reference to its plaintext value.

    ``env:NAME`` reads the environment; anything else is treated as a token
    produced by :func:`encrypt_value`. Raises ValueError when the reference
    cannot be resolved.
    """
    if not reference:
        raise ValueError("Secret reference is empty")
    if reference.startswith(ENV_REFERENCE_PREFIX):
        name = reference.removeprefix(ENV_REFERENCE_PREFIX)
        value = os.environ.get(name)
        if not value:
            raise ValueError(f"Environment variable {name!r} is not set")
        return value
    return decrypt_value(reference, secret_key)
