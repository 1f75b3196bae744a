"""Reversible encoding for stored provider credentials.

THIS IS NOT ENCRYPTION. Keys are base64-encoded so they never sit in the
database, logs, or a DB dump as a verbatim ``sk-...`` string. Anyone with
read access to the database can decode them. Protect the database file
itself (filesystem permissions) if that matters for your deployment.
"""

from __future__ import annotations

import base64
import binascii

from cortex.config import ConfigError


def encode_secret(plain: str) -> str:
    """Encode a cleartext credential for storage. Deterministic."""
    return base64.b64encode(plain.encode("utf-8")).decode("ascii")


def decode_secret(opaque: str) -> str:
    """Decode a stored credential back to cleartext.

    Raises:
        ConfigError: If *opaque* is not a value produced by encode_secret().
            A corrupt stored credential must surface, not silently degrade
            into an unauthenticated request.
    """
    try:
        return base64.b64decode(opaque.encode("ascii"), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise ConfigError(
            "Stored provider API key could not be decoded — the llm_config row "
            "looks corrupt. Re-enter it with:  cortex llm set --api-key ..."
        ) from exc
