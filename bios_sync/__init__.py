"""
Dell BIOS Catalog Sync

Keeps a directory of Dell BIOS update packages (offline deployment media,
WinPE shares) current against Dell's published PC catalog.
"""

__version__ = "1.0.0"

from .errors import (
    BiosSyncError,
    DownloadFailure,
    ExtractFailure,
    FetchFailure,
    HashMismatch,
    ParseFailure,
)
from .models import CatalogEntry, ItemState, LocalFile, PlanItem, PlanStatus, SyncSummary
from .sync import BiosSync
from .versions import compare_versions

__all__ = [
    "BiosSync",
    "BiosSyncError",
    "CatalogEntry",
    "DownloadFailure",
    "ExtractFailure",
    "FetchFailure",
    "HashMismatch",
    "ItemState",
    "LocalFile",
    "ParseFailure",
    "PlanItem",
    "PlanStatus",
    "SyncSummary",
    "compare_versions",
]
