"""
Short code generation.

Codes look like INS-7KQ2ZD: a fixed prefix plus N characters drawn from
`secrets`. Randomness alone is not trusted for uniqueness; the store checks
every candidate and retries, see CampaignStore.create_links.
"""

import secrets
import string

ALPHABET = string.ascii_uppercase + string.digits


def generate_short_code(prefix: str = "INS-", length: int = 6) -> str:
    """Generate one candidate code like 'INS-7KQ2ZD'."""
    return prefix + "".join(secrets.choice(ALPHABET) for _ in range(length))
