"""Parsing of <model>_<version>.<ext> package file names."""

import re
from typing import Iterable, Optional, Tuple

from .errors import ParseFailure

# Model may itself contain underscores (Latitude_7440); the version is the last segment
PACKAGE_NAME_PATTERN = re.compile(r"^(?P<model>.+)_(?P<version>[^_]+)\.(?P<ext>[A-Za-z0-9]+)$")


def parse_package_name(name: str, extensions: Optional[Iterable[str]] = None) -> Tuple[str, str]:
    """
    Split a package file name into model key and version.

    Args:
        name: File name or URL path (only the last path segment is used)
        extensions: Allowed extensions without the dot; any extension if None

    Returns:
        (model, version) tuple

    Raises:
        ParseFailure: If the name does not follow the pattern
    """
    base = name.replace("\\", "/").rsplit("/", 1)[-1]
    match = PACKAGE_NAME_PATTERN.match(base)
    if not match:
        raise ParseFailure(base, "expected <model>_<version>.<ext>")

    if extensions is not None:
        allowed = {ext.lower().lstrip(".") for ext in extensions}
        if match.group("ext").lower() not in allowed:
            raise ParseFailure(base, f"extension .{match.group('ext')} not in {sorted(allowed)}")

    return match.group("model"), match.group("version")

