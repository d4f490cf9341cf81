"""Identity format predicates used when partitioning invite batches.

Pure functions: no I/O, no normalization side effects.
"""

import re
import uuid

_EMAIL_RE = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")


def is_valid_email(value: str | None) -> bool:
    """Basic email format validation."""
    if not value:
        return False
    return _EMAIL_RE.fullmatch(value.strip()) is not None


def is_valid_identifier(value: str | None) -> bool:
    """True for a canonical UUID version 4 string."""
    if not value:
        return False
    try:
        parsed = uuid.UUID(value.strip())
    except ValueError:
        return False
    return parsed.version == 4 and str(parsed) == value.strip().lower()


def email_to_display_name(email: str) -> str:
    """Derive a display name from the local part of an email.

    ``john.smith-jr@example.com`` -> ``John Smith Jr``.
    """
    local = email.split("@", 1)[0]
    parts = [p for p in re.split(r"[._\-]+", local) if p]
    if not parts:
        return local
    return " ".join(p[:1].upper() + p[1:] for p in parts)
