"""
Dell BIOS Catalog Sync

Keeps a directory of Dell BIOS update packages in line with Dell's published
PC catalog:

    fetch catalog -> index newest package per model -> scan directory
    -> plan and select -> download/verify/retire -> orphan audit -> summary

A run never raises. Fatal problems (catalog unreachable or unreadable) abort
before anything is touched; everything else is counted and reported.
"""

import logging
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import requests
import urllib3

from .catalog import CatalogFetcher, build_catalog_index, filter_index, parse_catalog
from .config import Settings, settings as default_settings
from .errors import BiosSyncError, ExtractFailure, ParseFailure, get_user_friendly_message
from .executor import Executor
from .inventory import scan_directory
from .models import InventoryScan, SyncSummary
from .reconciler import Reconciler
from .selection import AutoSelector, CandidateSelector
from .utils import attach_action_log, detach_handler, get_logger, utc_now_iso
from .versions import compare_versions


def project_scan(scan: InventoryScan, executor: Executor) -> InventoryScan:
    """Directory contents as they would be after the executor's (dry-run) actions."""
    removed = set(executor.removed)
    projected = InventoryScan(unparsed=[p for p in scan.unparsed if p not in removed])

    files = [f for files in scan.by_model.values() for f in files if f.path not in removed]
    known = {f.path for f in files}
    files.extend(f for f in executor.added if f.path not in known)

    for local in files:
        projected.by_model.setdefault(local.model, []).append(local)
    for model, model_files in projected.by_model.items():
        best = model_files[0]
        for local in model_files[1:]:
            if compare_versions(local.version, best.version) > 0:
                best = local
        projected.latest[model] = best
    return projected


class BiosSync:
    """One synchronization run against a target directory"""

    def __init__(
        self,
        target_dir: str,
        catalog_url: Optional[str] = None,
        catalog_path: Optional[str] = None,
        cache_dir: Optional[str] = None,
        archive_dir: Optional[str] = None,
        log_file: Optional[str] = None,
        include: Iterable[str] = (),
        exclude: Iterable[str] = (),
        selector: Optional[CandidateSelector] = None,
        dry_run: bool = False,
        download_base_url: Optional[str] = None,
        file_extensions: Iterable[str] = ("exe",),
        component_type: str = "BIOS",
        timeout: Tuple[int, int] = (10, 300),
        chunk_size: int = 1024 * 1024,
        verify_ssl: bool = True,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.target_dir = Path(target_dir)
        self.catalog_url = catalog_url or default_settings.catalog_url
        self.catalog_path = catalog_path
        self.cache_dir = cache_dir or default_settings.cache_dir
        self.archive_dir = Path(archive_dir) if archive_dir else None
        self.log_file = log_file
        self.include: List[str] = list(include)
        self.exclude: List[str] = list(exclude)
        self.selector = selector or AutoSelector()
        self.dry_run = dry_run
        self.download_base_url = download_base_url
        self.file_extensions = list(file_extensions)
        self.component_type = component_type
        self.timeout = timeout
        self.chunk_size = chunk_size
        self._owns_session = session is None
        if session is None:
            session = requests.Session()
            session.verify = verify_ssl
            if not verify_ssl:
                urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
        self.session = session
        self.logger = logger or get_logger()

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "BiosSync":
        """Build a run from Settings; keyword overrides win over settings values."""
        options = {
            "target_dir": settings.target_dir,
            "catalog_url": settings.catalog_url,
            "catalog_path": settings.catalog_path,
            "cache_dir": settings.cache_dir,
            "archive_dir": settings.archive_dir,
            "log_file": settings.log_file,
            "include": settings.include,
            "exclude": settings.exclude,
            "download_base_url": settings.download_base_url,
            "file_extensions": settings.file_extensions,
            "component_type": settings.component_type,
            "timeout": (settings.connect_timeout, settings.read_timeout),
            "chunk_size": settings.chunk_size,
            "verify_ssl": settings.verify_ssl,
        }
        options.update({key: value for key, value in overrides.items() if value is not None})
        if not options.get("target_dir"):
            raise ValueError("A target directory is required (--target-dir or BIOS_SYNC_TARGET_DIR)")
        return cls(**options)

    @contextmanager
    def _catalog_cache(self):
        # Dry runs must not leave anything on disk, catalog included
        if self.dry_run:
            with tempfile.TemporaryDirectory(prefix="bios-sync-") as temp_dir:
                yield temp_dir
        else:
            yield self.cache_dir

    def run(self) -> SyncSummary:
        """Main execution flow"""
        log_handler = None
        if self.log_file and not self.dry_run:
            try:
                log_handler = attach_action_log(self.logger, self.log_file)
            except OSError as e:
                self.logger.warning(f"Cannot open log file {self.log_file}: {e}")

        self.logger.info("=" * 60)
        self.logger.info(f"Starting Dell BIOS catalog sync{' (DRY RUN)' if self.dry_run else ''}")
        self.logger.info("=" * 60)
        self.logger.info(f"Started: {utc_now_iso()}")
        self.logger.info(f"Target directory: {self.target_dir}")
        self.logger.info(f"Catalog: {self.catalog_path or self.catalog_url}")
        if self.archive_dir:
            self.logger.info(f"Archive directory: {self.archive_dir}")

        try:
            try:
                summary = self._run()
            except BiosSyncError as e:
                summary = self._aborted(e.message, e.error_code)
            except Exception as e:
                self.logger.exception(f"Unexpected error during sync: {e}")
                summary = self._aborted(str(e))
            self.report(summary)
        finally:
            if self._owns_session:
                self.session.close()
            if log_handler is not None:
                detach_handler(self.logger, log_handler)
        return summary

    def _aborted(self, reason: str, error_code: Optional[str] = None) -> SyncSummary:
        self.logger.error(f"Sync aborted: {reason}")
        if error_code:
            self.logger.error(get_user_friendly_message(error_code))
        return SyncSummary(dry_run=self.dry_run, aborted=True, abort_reason=reason)

    def _run(self) -> SyncSummary:
        # Step 1: Fetch and parse the catalog
        with self._catalog_cache() as cache_dir:
            fetcher = CatalogFetcher(
                self.session, cache_dir, self.logger,
                timeout=self.timeout, chunk_size=self.chunk_size,
            )
            xml_path = fetcher.fetch(url=self.catalog_url, local_path=self.catalog_path)
            try:
                records = parse_catalog(
                    xml_path,
                    component_type=self.component_type,
                    download_base_url=self.download_base_url,
                    logger=self.logger,
                )
            except ParseFailure as e:
                raise ExtractFailure(str(xml_path), e.message) from e

        # Step 2: Index
        full_index = build_catalog_index(records, logger=self.logger)
        index = filter_index(full_index, self.include, self.exclude)
        self.logger.info(f"Catalog index: {len(full_index)} models, {len(index)} after filters")

        # Step 3: Scan the target directory
        scan = scan_directory(self.target_dir, self.file_extensions, logger=self.logger)

        # Step 4: Plan and select
        reconciler = Reconciler(index, self.selector, logger=self.logger)
        plan = reconciler.plan(scan)
        selected = reconciler.select(plan)

        # Step 5: Execute
        executor = Executor(
            self.session,
            self.target_dir,
            self.logger,
            archive_dir=self.archive_dir,
            dry_run=self.dry_run,
            timeout=self.timeout,
            chunk_size=self.chunk_size,
        )
        for item in selected:
            executor.apply(item, scan)
        executor.summary.skipped = len(plan) - len(selected)

        # Step 6: Orphan audit against the refreshed directory
        if self.dry_run:
            post_scan = project_scan(scan, executor)
        else:
            post_scan = scan_directory(self.target_dir, self.file_extensions, logger=self.logger)
        orphans = reconciler.audit(post_scan, full_index)
        executor.summary.orphaned = len(orphans)

        for orphan, entry in reconciler.confirmed_replacements(orphans, skip_models=executor.failed_models):
            if entry.model in executor.failed_models:
                continue
            executor.replace_orphan(orphan, entry)

        return executor.summary

    def report(self, summary: SyncSummary):
        prefix = "[DRY RUN] " if summary.dry_run else ""
        self.logger.info("")
        self.logger.info("=" * 60)
        if summary.aborted:
            self.logger.info(f"{prefix}Sync aborted: {summary.abort_reason}")
        elif summary.failed:
            self.logger.info(f"{prefix}Sync completed with errors")
        else:
            self.logger.info(f"{prefix}Sync completed successfully")
        self.logger.info(f"  Updated:  {summary.updated}")
        self.logger.info(f"  Deleted:  {summary.deleted}")
        self.logger.info(f"  Archived: {summary.archived}")
        self.logger.info(f"  Failed:   {summary.failed}")
        self.logger.info(f"  Skipped:  {summary.skipped}")
        self.logger.info(f"  Orphaned: {summary.orphaned}")
        self.logger.info("=" * 60)
