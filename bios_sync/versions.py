"""
Version comparison for Dell package versions.

Dell publishes BIOS packages under two schemes: revision tags (A09, A12) for
older models and dotted versions (1.6.0) for newer ones. Strings that do not
share a scheme fall back to a plain string comparison.
"""

import functools
import logging
import re
from itertools import zip_longest

REVISION_PATTERN = re.compile(r"^[A-Za-z](\d+)$")
DOTTED_PATTERN = re.compile(r"^\d+(?:\.\d+)*$")

logger = logging.getLogger("bios_sync.versions")


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def compare_versions(a: str, b: str) -> int:
    """
    Order two version strings.

    Args:
        a: First version (e.g. "A10" or "1.2.0")
        b: Second version

    Returns:
        -1 if a < b, 0 if equal, 1 if a > b
    """
    rev_a = REVISION_PATTERN.match(a)
    rev_b = REVISION_PATTERN.match(b)
    if rev_a and rev_b:
        return _sign(int(rev_a.group(1)) - int(rev_b.group(1)))

    if DOTTED_PATTERN.match(a) and DOTTED_PATTERN.match(b):
        for left, right in zip_longest(a.split("."), b.split("."), fillvalue="0"):
            diff = int(left) - int(right)
            if diff:
                return _sign(diff)
        return 0

    # Mixed or malformed schemes. Likely a latent defect, kept for parity
    # with the scripts this replaces.
    logger.debug(f"Version schemes differ for '{a}' and '{b}', comparing as text")
    left, right = a.casefold(), b.casefold()
    return (left > right) - (left < right)


version_sort_key = functools.cmp_to_key(compare_versions)
