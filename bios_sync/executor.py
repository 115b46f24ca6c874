"""
Plan execution: download, verify, install and clean up superseded files.

Each item moves through Planned -> Downloading -> [Verified | HashMismatch]
-> Applied | Failed. Failures leave the existing local files untouched. In
dry-run mode nothing is written; every action that would run is reported.
"""

import hashlib
import logging
import os
import shutil
from pathlib import Path
from typing import Iterable, List, Optional, Set, Tuple

import requests

from .errors import DownloadFailure, HashMismatch
from .inventory import PARTIAL_SUFFIX
from .models import (
    CatalogEntry,
    ExecutionResult,
    InventoryScan,
    ItemState,
    LocalFile,
    OrphanRecord,
    PlanItem,
    SyncSummary,
)


def file_digest(path: Path, algorithm: str, chunk_size: int = 65536) -> str:
    digest = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def verify_file_hash(path: Path, hash_md5: Optional[str] = None, hash_sha1: Optional[str] = None) -> Optional[str]:
    """
    Check a file against the catalog hash, MD5 first, SHA1 otherwise.

    Returns:
        Name of the algorithm used, or None if no hash was available

    Raises:
        HashMismatch: If the digest differs
    """
    if hash_md5:
        algorithm, expected = "md5", hash_md5
    elif hash_sha1:
        algorithm, expected = "sha1", hash_sha1
    else:
        return None

    actual = file_digest(path, algorithm)
    if actual.lower() != expected.strip().lower():
        raise HashMismatch(str(path), algorithm, expected, actual)
    return algorithm


class Executor:
    """Applies selected plan items to the target directory"""

    def __init__(
        self,
        session: requests.Session,
        target_dir: Path,
        logger: logging.Logger,
        archive_dir: Optional[Path] = None,
        dry_run: bool = False,
        timeout: Tuple[int, int] = (10, 300),
        chunk_size: int = 1024 * 1024,
    ):
        """
        Args:
            session: requests.Session used for package downloads
            target_dir: Directory holding the update files
            logger: Logger instance for operation logging
            archive_dir: Superseded files are moved here when set, deleted otherwise
            dry_run: Report actions without performing them
            timeout: Tuple of (connect_timeout, read_timeout)
            chunk_size: Streaming chunk size in bytes
        """
        self.session = session
        self.target_dir = Path(target_dir)
        self.logger = logger
        self.archive_dir = Path(archive_dir) if archive_dir else None
        self.dry_run = dry_run
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.summary = SyncSummary(dry_run=dry_run)
        self.results: List[ExecutionResult] = []
        # Files added/removed by this run, so a dry run can project the final directory
        self.added: List[LocalFile] = []
        self.removed: List[Path] = []
        self.failed_models: Set[str] = set()

    def apply(self, item: PlanItem, scan: InventoryScan) -> ExecutionResult:
        """Install the catalog package for a plan item and retire older files of the same model."""
        superseded = [
            local.path for local in scan.files_for(item.model)
            if local.path.name != item.entry.file_name
        ]
        local_version = item.local.version if item.local else "none"
        self.logger.info(
            f"{item.model}: {item.status.value} (local {local_version}, catalog {item.entry.version})"
        )
        return self._install(item.entry, superseded)

    def replace_orphan(self, orphan: OrphanRecord, entry: CatalogEntry) -> ExecutionResult:
        """Swap a confirmed orphan for its matched catalog package."""
        self.logger.info(f"Replacing orphan {orphan.path.name} with {entry.file_name}")
        final = self.target_dir / entry.file_name
        present = final.exists() or final in {local.path for local in self.added}
        if present and final != orphan.path:
            result = ExecutionResult(model=entry.model)
            self.results.append(result)
            result.actions.append(f"{entry.file_name} already present")
            result.advance(ItemState.APPLIED)
            self._retire([orphan.path], final, result)
            return result
        return self._install(entry, [orphan.path])

    def _install(self, entry: CatalogEntry, superseded: Iterable[Path]) -> ExecutionResult:
        result = ExecutionResult(model=entry.model)
        self.results.append(result)
        final = self.target_dir / entry.file_name

        if self.dry_run:
            action = f"Would download {entry.download_url} -> {final}"
            result.actions.append(action)
            self.logger.info(f"[DRY RUN] {action}")
            self.summary.updated += 1
            self.added.append(LocalFile(model=entry.model, version=entry.version, path=final))
            self._retire(superseded, final, result)
            return result

        result.advance(ItemState.DOWNLOADING)
        try:
            temp_path = self._download(entry.download_url, final)
        except DownloadFailure as e:
            return self._fail(result, ItemState.FAILED, e.message)

        if entry.has_hash:
            try:
                algorithm = verify_file_hash(temp_path, entry.hash_md5, entry.hash_sha1)
            except HashMismatch as e:
                self._discard(temp_path)
                return self._fail(result, ItemState.HASH_MISMATCH, e.message)
            result.advance(ItemState.VERIFIED)
            self.logger.info(f"✓ {algorithm.upper()} verified for {entry.file_name}")

        try:
            os.replace(temp_path, final)
        except OSError as e:
            self._discard(temp_path)
            return self._fail(result, ItemState.FAILED, f"Cannot move download into place: {e}")

        result.advance(ItemState.APPLIED)
        result.actions.append(f"Downloaded {entry.download_url} -> {final}")
        self.summary.updated += 1
        self.added.append(LocalFile(model=entry.model, version=entry.version, path=final))
        self.logger.info(f"✓ Downloaded {entry.file_name}")

        self._retire(superseded, final, result)
        return result

    def _download(self, url: str, final: Path) -> Path:
        temp_path = final.with_name(final.name + PARTIAL_SUFFIX)
        self.logger.info(f"Downloading {url}")
        try:
            response = self.session.get(url, stream=True, timeout=self.timeout)
            response.raise_for_status()
            with open(temp_path, "wb") as f:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    if chunk:
                        f.write(chunk)
        except (requests.exceptions.RequestException, OSError) as e:
            self._discard(temp_path)
            raise DownloadFailure(url, str(e)) from e
        return temp_path

    def _retire(self, paths: Iterable[Path], keep: Path, result: ExecutionResult):
        """Archive or delete superseded files, never the file just installed."""
        for path in paths:
            if path == keep:
                continue

            if self.archive_dir:
                destination = self.archive_dir / path.name
                action = f"archive {path} -> {destination}"
            else:
                destination = None
                action = f"delete {path}"

            if self.dry_run:
                result.actions.append(f"Would {action}")
                self.logger.info(f"[DRY RUN] Would {action}")
                self._count_removal()
                self.removed.append(path)
                continue

            try:
                if destination is not None:
                    self.archive_dir.mkdir(parents=True, exist_ok=True)
                    if destination.exists():
                        destination.unlink()
                    shutil.move(str(path), str(destination))
                else:
                    path.unlink()
            except OSError as e:
                self.summary.failed += 1
                result.actions.append(f"Failed to {action}: {e}")
                self.logger.warning(f"Failed to {action}: {e}")
                continue

            result.actions.append(action[0].upper() + action[1:])
            self.logger.info(f"✓ {action[0].upper() + action[1:]}")
            self._count_removal()
            self.removed.append(path)

    def _count_removal(self):
        if self.archive_dir:
            self.summary.archived += 1
        else:
            self.summary.deleted += 1

    def _fail(self, result: ExecutionResult, state: ItemState, message: str) -> ExecutionResult:
        result.advance(state)
        result.error = message
        self.summary.failed += 1
        self.failed_models.add(result.model)
        self.logger.warning(f"✗ {result.model}: {message}")
        return result

    def _discard(self, path: Path):
        try:
            if path.exists():
                path.unlink()
        except OSError as e:
            self.logger.warning(f"Could not remove partial download {path}: {e}")
