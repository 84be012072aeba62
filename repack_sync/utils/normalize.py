"""
Text normalization helpers shared by every title comparison.
"""

import hashlib
import re
import unicodedata

_COMBINING_MARKS_REGEX = re.compile(r"[\u0300-\u036f]")
_NON_ALNUM_REGEX = re.compile(r"[^a-z0-9]")

# Language/region marker some repackers append to titles
REPACK_TAG = "[DL]"


def format_name(name: str) -> str:
    """
    Reduces a name to its comparable form: diacritics stripped, lowercased,
    and everything outside [a-z0-9] removed.
    """
    decomposed = unicodedata.normalize("NFD", name)
    without_marks = _COMBINING_MARKS_REGEX.sub("", decomposed)
    return _NON_ALNUM_REGEX.sub("", without_marks.lower())


def format_repack_name(name: str) -> str:
    """Like `format_name`, but drops the first repacker tag before normalizing."""
    return format_name(name.replace(REPACK_TAG, "", 1))


def hash_title(title: str) -> str:
    """Returns the sha256 hex digest of a raw, unnormalized title."""
    return hashlib.sha256(title.encode("utf-8")).hexdigest()
