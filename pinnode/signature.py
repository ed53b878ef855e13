"""Credential proof sent with the AUTH message.

The coordination service recomputes the same digest from its copy of the secret,
so this must stay byte-for-byte stable.
"""
from __future__ import annotations

import hashlib
import time


def sign(client_id: str, timestamp: str, secret: str) -> str:
    """Return hex(sha256(client_id + timestamp + hex(sha256(secret))))."""
    secret_hash = hashlib.sha256(secret.encode("utf-8")).hexdigest()
    payload = f"{client_id}{timestamp}{secret_hash}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def current_timestamp() -> str:
    """Whole Unix seconds as a decimal string."""
    return str(int(time.time()))
