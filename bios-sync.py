#!/usr/bin/env python3
"""
Dell BIOS Catalog Sync
======================

Keeps a folder of Dell BIOS update packages in sync with Dell's published
PC catalog (CatalogPC.cab). Outdated packages are downloaded, verified and
swapped in; superseded files are deleted or archived.

Requirements:
- Python 3.8+
- pip install requests pydantic pydantic-settings
- cabextract on PATH when running outside Windows

Usage:
    python bios-sync.py --target-dir D:\\BIOS [--dry-run] [--interactive]
"""

import sys
from pathlib import Path

# Ensure the bios_sync package is importable when this launcher is executed
# directly from a checkout.
SCRIPT_DIR = Path(__file__).resolve().parent
if str(SCRIPT_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPT_DIR))


def _require_support_package():
    """Fail fast with a helpful message if the package is missing."""

    package_dir = SCRIPT_DIR / "bios_sync"
    if not (package_dir / "__init__.py").exists():
        sys.stderr.write(
            "bios-sync.py depends on the bundled bios_sync package. Place the "
            "bios_sync folder next to bios-sync.py or install the project.\n"
        )
        raise SystemExit(1)


_require_support_package()

from bios_sync.cli import main

if __name__ == "__main__":
    sys.exit(main())
