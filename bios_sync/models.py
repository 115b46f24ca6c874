"""
Pydantic models for catalog entries, local files and the reconciliation plan.
"""

from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class PlanStatus(str, Enum):
    OUTDATED = "Outdated"
    CURRENT = "Current"
    NEWER_THAN_CATALOG = "NewerThanCatalog"
    MISSING = "Missing"
    UNKNOWN = "Unknown"


# Interactive listing order, highest priority first
STATUS_PRIORITY = {
    PlanStatus.OUTDATED: 0,
    PlanStatus.CURRENT: 1,
    PlanStatus.NEWER_THAN_CATALOG: 2,
    PlanStatus.MISSING: 3,
    PlanStatus.UNKNOWN: 4,
}


class ItemState(str, Enum):
    PLANNED = "Planned"
    DOWNLOADING = "Downloading"
    VERIFIED = "Verified"
    HASH_MISMATCH = "HashMismatch"
    APPLIED = "Applied"
    FAILED = "Failed"


class OrphanReason(str, Enum):
    UNPARSEABLE = "unparseable"
    NO_CATALOG_ENTRY = "no_catalog_entry"
    BELOW_CATALOG = "below_catalog"


class CatalogRecord(BaseModel):
    """Raw SoftwareComponent record as read from the manifest."""
    path: str
    download_url: str
    hash_md5: Optional[str] = None
    hash_sha1: Optional[str] = None
    display_name: Optional[str] = None
    release_date: Optional[str] = None
    systems: List[str] = []


class CatalogEntry(BaseModel):
    """Newest catalog package for one model key."""
    model_config = ConfigDict(frozen=True)

    model: str
    version: str
    file_name: str
    download_url: str
    hash_md5: Optional[str] = None
    hash_sha1: Optional[str] = None
    display_name: Optional[str] = None
    release_date: Optional[str] = None
    systems: List[str] = []

    @property
    def has_hash(self) -> bool:
        return bool(self.hash_md5 or self.hash_sha1)


class LocalFile(BaseModel):
    """Update file found in the target directory."""
    model: str
    version: str
    path: Path

    @property
    def name(self) -> str:
        return self.path.name


class InventoryScan(BaseModel):
    """Result of scanning the target directory."""
    latest: Dict[str, LocalFile] = {}
    by_model: Dict[str, List[LocalFile]] = {}
    unparsed: List[Path] = []

    def files_for(self, model: str) -> List[LocalFile]:
        return list(self.by_model.get(model, []))


class PlanItem(BaseModel):
    """Catalog entry paired with the best local file for the same model key."""
    entry: CatalogEntry
    local: Optional[LocalFile] = None
    status: PlanStatus

    @property
    def model(self) -> str:
        return self.entry.model


class OrphanRecord(BaseModel):
    """Local file that no catalog entry accounts for."""
    path: Path
    reason: OrphanReason
    model: Optional[str] = None
    version: Optional[str] = None
    suggested_model: Optional[str] = None


class ExecutionResult(BaseModel):
    """Outcome of driving one plan item through the executor."""
    model: str
    state: ItemState = ItemState.PLANNED
    transitions: List[ItemState] = [ItemState.PLANNED]
    actions: List[str] = []
    error: Optional[str] = None

    def advance(self, state: ItemState):
        self.state = state
        self.transitions.append(state)


class SyncSummary(BaseModel):
    """Counters reported at the end of every run."""
    updated: int = 0
    deleted: int = 0
    archived: int = 0
    failed: int = 0
    skipped: int = 0
    orphaned: int = 0
    dry_run: bool = False
    aborted: bool = False
    abort_reason: Optional[str] = None

    @property
    def success(self) -> bool:
        return not self.aborted and self.failed == 0
