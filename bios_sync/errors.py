"""
BIOS Sync Error Types

Exception hierarchy for the catalog synchronizer plus a small table of
error codes and user-friendly messages. Fatal failures (fetch, extract)
abort a run; per-record and per-candidate failures are counted and skipped.
"""

from typing import Optional


class BiosSyncError(Exception):
    """Base exception for catalog sync operations"""

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


class FetchFailure(BiosSyncError):
    """Raised when the remote catalog manifest cannot be retrieved"""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Failed to fetch catalog from {url}: {reason}", error_code="FETCH")
        self.url = url


class ExtractFailure(BiosSyncError):
    """Raised when the catalog container cannot be unpacked"""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Failed to extract catalog {path}: {reason}", error_code="EXTRACT")
        self.path = path


class ParseFailure(BiosSyncError):
    """Raised when a catalog or local record cannot be parsed"""

    def __init__(self, source: str, reason: str):
        super().__init__(f"Cannot parse {source}: {reason}", error_code="PARSE")
        self.source = source


class DownloadFailure(BiosSyncError):
    """Raised when an update package download fails"""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Download failed for {url}: {reason}", error_code="DOWNLOAD")
        self.url = url


class HashMismatch(BiosSyncError):
    """Raised when a downloaded package does not match its catalog hash"""

    def __init__(self, path: str, algorithm: str, expected: str, actual: str):
        super().__init__(
            f"{algorithm.upper()} mismatch for {path}: expected {expected}, got {actual}",
            error_code="HASH_MISMATCH",
        )
        self.path = path
        self.algorithm = algorithm
        self.expected = expected
        self.actual = actual


class SyncErrorCodes:
    """
    Error codes raised by the synchronizer.
    """

    FETCH = {
        "code": "FETCH",
        "message": "Catalog could not be downloaded. Check network access to the catalog URL.",
    }

    EXTRACT = {
        "code": "EXTRACT",
        "message": "Catalog archive could not be unpacked. Check that expand.exe or cabextract is available.",
    }

    PARSE = {
        "code": "PARSE",
        "message": "A catalog or local record could not be parsed and was skipped.",
    }

    DOWNLOAD = {
        "code": "DOWNLOAD",
        "message": "Update package download failed. Existing files were left untouched.",
    }

    HASH_MISMATCH = {
        "code": "HASH_MISMATCH",
        "message": "Downloaded package failed hash verification and was discarded.",
    }


def get_user_friendly_message(error_code: str) -> str:
    """
    Get user-friendly message for a sync error code.

    Args:
        error_code: Error code (e.g., "FETCH")

    Returns:
        User-friendly error message
    """
    for attr_name in dir(SyncErrorCodes):
        if not attr_name.startswith("_"):
            error_info = getattr(SyncErrorCodes, attr_name)
            if isinstance(error_info, dict) and error_info.get("code") == error_code:
                return error_info.get("message", "Unknown error")

    return f"BIOS sync error: {error_code}"

