# services/correlation.py
import uuid
from typing import Optional


def new_correlation_key() -> str:
    """Mint a fresh key for one job. Keys are never reused."""
    return str(uuid.uuid4())


def parse_correlation_key(raw: Optional[str]) -> Optional[str]:
    """
    Normalize a key read off the queue. Returns None for anything that is not
    a UUID, since keys are also used as object names and directory names.
    """
    if not raw:
        return None
    try:
        return str(uuid.UUID(raw.strip()))
    except ValueError:
        return None
