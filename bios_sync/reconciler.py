"""
Reconciliation of the catalog index against the local inventory.

Builds the per-model plan, hands it to a CandidateSelector, and audits the
directory for orphaned files once the update pass has run.
"""

import logging
import os
from typing import Dict, Iterable, List, Optional, Tuple

from .models import (
    STATUS_PRIORITY,
    CatalogEntry,
    InventoryScan,
    LocalFile,
    OrphanReason,
    OrphanRecord,
    PlanItem,
    PlanStatus,
)
from .versions import compare_versions

# Shortest lower-cased common prefix accepted as an orphan match
MIN_MATCH_PREFIX = 3


def classify(local_version: Optional[str], catalog_version: str) -> PlanStatus:
    """Status of a model given its local version (None when absent) and catalog version."""
    if local_version is None:
        return PlanStatus.MISSING
    if not local_version.strip() or not catalog_version.strip():
        return PlanStatus.UNKNOWN

    order = compare_versions(local_version, catalog_version)
    if order == 0:
        return PlanStatus.CURRENT
    if order < 0:
        return PlanStatus.OUTDATED
    return PlanStatus.NEWER_THAN_CATALOG


def build_plan(index: Dict[str, CatalogEntry], latest: Dict[str, LocalFile]) -> List[PlanItem]:
    """One PlanItem per catalog entry, ordered by model key."""
    plan = []
    for model in sorted(index):
        entry = index[model]
        local = latest.get(model)
        plan.append(PlanItem(
            entry=entry,
            local=local,
            status=classify(local.version if local else None, entry.version),
        ))
    return plan


def sort_for_selection(plan: Iterable[PlanItem]) -> List[PlanItem]:
    """Outdated > Current > NewerThanCatalog > Missing > Unknown, then model key."""
    return sorted(plan, key=lambda item: (STATUS_PRIORITY[item.status], item.model))


def outdated_only(plan: Iterable[PlanItem]) -> List[PlanItem]:
    return [item for item in plan if item.status == PlanStatus.OUTDATED]


def common_prefix_length(a: str, b: str) -> int:
    return len(os.path.commonprefix([a.lower(), b.lower()]))


def closest_catalog_key(name: str, keys: Iterable[str], min_prefix: int = MIN_MATCH_PREFIX) -> Optional[str]:
    """
    Catalog key sharing the longest lower-cased prefix with name.

    Returns None when no key reaches min_prefix or the best score is shared.
    """
    best_key = None
    best_score = 0
    tied = False
    for key in keys:
        score = common_prefix_length(name, key)
        if score > best_score:
            best_key, best_score, tied = key, score, False
        elif score == best_score and score > 0:
            tied = True

    if best_key is None or best_score < min_prefix or tied:
        return None
    return best_key


def audit_orphans(
    scan: InventoryScan,
    index: Dict[str, CatalogEntry],
    skip_models: Iterable[str] = (),
) -> List[OrphanRecord]:
    """
    Tag local files that the catalog does not account for.

    A file is orphaned when its name cannot be parsed, its model key has no
    catalog entry, or its version is below the catalog version. Models in
    skip_models (filtered out for this run) are not audited.
    """
    orphans = []
    keys = sorted(index)
    skip = set(skip_models)

    for model in sorted(scan.by_model):
        if model in skip:
            continue
        entry = index.get(model)
        for local in scan.by_model[model]:
            if entry is None:
                orphans.append(OrphanRecord(
                    path=local.path,
                    reason=OrphanReason.NO_CATALOG_ENTRY,
                    model=model,
                    version=local.version,
                    suggested_model=closest_catalog_key(model, keys),
                ))
            elif compare_versions(local.version, entry.version) < 0:
                orphans.append(OrphanRecord(
                    path=local.path,
                    reason=OrphanReason.BELOW_CATALOG,
                    model=model,
                    version=local.version,
                    suggested_model=model,
                ))

    for path in scan.unparsed:
        orphans.append(OrphanRecord(
            path=path,
            reason=OrphanReason.UNPARSEABLE,
            suggested_model=closest_catalog_key(path.stem, keys),
        ))

    return orphans


class Reconciler:
    """Plans updates for one run and asks the selector which to apply"""

    def __init__(self, index: Dict[str, CatalogEntry], selector, logger: Optional[logging.Logger] = None):
        """
        Args:
            index: Model key -> newest CatalogEntry, already filtered
            selector: CandidateSelector deciding which items and orphan matches to act on
            logger: Logger instance for operation logging
        """
        self.index = index
        self.selector = selector
        self.logger = logger or logging.getLogger("bios_sync.reconciler")

    def plan(self, scan: InventoryScan) -> List[PlanItem]:
        plan = build_plan(self.index, scan.latest)
        counts: Dict[PlanStatus, int] = {}
        for item in plan:
            counts[item.status] = counts.get(item.status, 0) + 1
        summary = ", ".join(f"{status.value}={counts.get(status, 0)}" for status in PlanStatus)
        self.logger.info(f"Plan for {len(plan)} catalog models: {summary}")
        return plan

    def select(self, plan: List[PlanItem]) -> List[PlanItem]:
        selected = self.selector.select(plan)
        self.logger.info(f"{len(selected)} of {len(plan)} models selected for update")
        return selected

    def audit(self, scan: InventoryScan, full_index: Optional[Dict[str, CatalogEntry]] = None) -> List[OrphanRecord]:
        """Audit against the unfiltered index, ignoring models the filters excluded."""
        if full_index is None:
            orphans = audit_orphans(scan, self.index)
        else:
            excluded = [model for model in full_index if model not in self.index]
            orphans = audit_orphans(scan, full_index, skip_models=excluded)
        for orphan in orphans:
            hint = f" (closest catalog model: {orphan.suggested_model})" if orphan.suggested_model else ""
            self.logger.warning(f"Orphaned file {orphan.path.name}: {orphan.reason.value}{hint}")
        return orphans

    def confirmed_replacements(
        self,
        orphans: Iterable[OrphanRecord],
        skip_models: Iterable[str] = (),
    ) -> List[Tuple[OrphanRecord, CatalogEntry]]:
        """
        Orphans whose suggested catalog match (within the filtered index) the selector confirmed.

        Models in skip_models already failed this run and are not offered again.
        """
        index = self.index
        skip = set(skip_models)
        confirmed = []
        for orphan in orphans:
            entry = index.get(orphan.suggested_model) if orphan.suggested_model else None
            if entry is None:
                continue
            if entry.model in skip:
                self.logger.info(f"Not replacing {orphan.path.name}: {entry.model} already failed this run")
                continue
            if self.selector.confirm_orphan(orphan, entry):
                confirmed.append((orphan, entry))
        return confirmed
