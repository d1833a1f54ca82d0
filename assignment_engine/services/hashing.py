"""Stable hashing used for bucketing.

The bucket for a given input never depends on process state, so an
assignment can be reproduced later from nothing but the subject key and the
experiment definition.
"""

import hashlib


def stable_hash(value: str) -> int:
    """Map a string to an unsigned 32-bit integer.

    SHA-256 of the UTF-8 encoded input; the first 8 hex characters of the
    digest are read as an unsigned integer.
    """
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()
    return int(digest[:8], 16)
