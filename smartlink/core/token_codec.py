"""
Masked tokens: the public face of a short code.

Format:  base64(short_code), URL-safe alphabet, padding stripped.
  INS-7KQ2ZD  →  SU5TLTdLUTJaRA

Decoding is lenient: standard or URL-safe alphabet, with or without padding.
Anything that does not decode to a prefixed short code is treated as a raw
short code, so /l/INS-7KQ2ZD works as well as /l/SU5TLTdLUTJaRA.
"""

import base64
import binascii

from smartlink.config import get_settings


def mask_short_code(short_code: str) -> str:
    """Encode a short code into its public token."""
    return base64.urlsafe_b64encode(short_code.encode()).decode().rstrip("=")


def decode_token(token: str, prefix: str | None = None) -> str:
    """Return the short code a public token refers to. Never raises."""
    if prefix is None:
        prefix = get_settings().short_code_prefix

    padded = token + "=" * (-len(token) % 4)
    try:
        decoded = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError):
        return token

    if decoded.startswith(prefix):
        return decoded
    return token


def public_url(short_code: str, base_url: str | None = None) -> str:
    """Shareable redirect URL for a short code."""
    if base_url is None:
        base_url = get_settings().base_url
    return f"{base_url.rstrip('/')}/l/{mask_short_code(short_code)}"
