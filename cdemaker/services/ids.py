from __future__ import annotations
import random
import string
import time

_ALPHABET = string.digits + string.ascii_lowercase


def generate_finding_id() -> str:
    """Timestamp plus a short random suffix; unique enough for UI keys, nothing more."""
    suffix = "".join(random.choice(_ALPHABET) for _ in range(7))
    return f"finding_{int(time.time() * 1000)}_{suffix}"
