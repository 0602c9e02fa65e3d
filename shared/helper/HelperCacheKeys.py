"""Cache key derivation shared by the embedding and retrieval caches."""

import hashlib
import re

_WHITESPACE = re.compile(r"\s+")


def normalize_query(text: str) -> str:
    """Trim, lowercase and collapse internal whitespace to single spaces."""
    return _WHITESPACE.sub(" ", text.strip().lower())


def hash_query(text: str) -> str:
    """md5 hex digest of the normalized query. Not a security boundary, only a key."""
    return hashlib.md5(normalize_query(text).encode("utf-8")).hexdigest()
