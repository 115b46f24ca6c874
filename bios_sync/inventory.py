"""Local inventory scanning for <model>_<version>.<ext> update files."""

import logging
from pathlib import Path
from typing import Iterable, Optional

from .errors import ParseFailure
from .models import InventoryScan, LocalFile
from .naming import parse_package_name
from .versions import compare_versions, version_sort_key

PARTIAL_SUFFIX = ".part"


def scan_directory(
    directory: Path,
    extensions: Iterable[str] = ("exe",),
    logger: Optional[logging.Logger] = None,
) -> InventoryScan:
    """
    Scan the top level of a directory for update files.

    Every parseable file is grouped by model key and the highest version per
    key is kept in ``latest``. Files that do not follow the naming pattern are
    collected in ``unparsed`` for the orphan audit. A missing directory yields
    an empty scan.
    """
    logger = logger or logging.getLogger("bios_sync.inventory")
    directory = Path(directory)
    scan = InventoryScan()
    if not directory.is_dir():
        logger.warning(f"Target directory does not exist: {directory}")
        return scan

    extensions = list(extensions)
    for path in sorted(directory.iterdir()):
        if not path.is_file() or path.name.endswith(PARTIAL_SUFFIX):
            continue

        try:
            model, version = parse_package_name(path.name, extensions)
        except ParseFailure as e:
            logger.debug(f"Unrecognized local file: {e.message}")
            scan.unparsed.append(path)
            continue

        local = LocalFile(model=model, version=version, path=path)
        scan.by_model.setdefault(model, []).append(local)

        best = scan.latest.get(model)
        if best is None or compare_versions(version, best.version) > 0:
            scan.latest[model] = local

    for files in scan.by_model.values():
        files.sort(key=lambda f: version_sort_key(f.version))

    logger.info(
        f"Found {sum(len(f) for f in scan.by_model.values())} update files "
        f"for {len(scan.latest)} models in {directory}"
    )
    if scan.unparsed:
        logger.info(f"{len(scan.unparsed)} files do not match <model>_<version> naming")
    return scan
