"""
Short identifiers for shareable profile links.
"""

from __future__ import annotations

import random
import string
from typing import Collection, Optional

from treepage.errors import GenerationExhausted

ALPHABET = string.digits + string.ascii_lowercase
DEFAULT_LENGTH = 6
DEFAULT_MAX_ATTEMPTS = 1000

_system_random = random.SystemRandom()


def generate(
    existing: Collection[str],
    rng: Optional[random.Random] = None,
    *,
    length: int = DEFAULT_LENGTH,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> str:
    """
    Return a random lowercase alphanumeric token not present in ``existing``.

    ``rng`` only needs a ``choice`` method, so tests can pass a seeded
    ``random.Random``.
    """
    source = rng or _system_random
    for _ in range(max_attempts):
        candidate = "".join(source.choice(ALPHABET) for _ in range(length))
        if candidate not in existing:
            return candidate
    raise GenerationExhausted(
        f"Could not generate a unique short id after {max_attempts} attempts"
    )
