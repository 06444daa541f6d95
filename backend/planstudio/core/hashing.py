"""Content fingerprints linking sessions and versions to the intent behind them."""

import hashlib


def fingerprint(text: str) -> str:
    """Return the SHA-256 hex digest of *text* (UTF-8 encoded).

    Stamped on each session as its ``intent_hash`` and echoed into the
    metadata of every version created under it.
    """
    return hashlib.sha256((text or "").encode("utf-8")).hexdigest()
