"""
Configuration for BIOS Sync.

Reads from environment variables (prefix BIOS_SYNC_) with sensible defaults.
Command-line arguments override these values per run.
"""

import os
import tempfile
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Directory holding <model>_<version>.exe files (required, may come from CLI)
    target_dir: Optional[str] = None

    # Dell PC catalog (cab container around CatalogPC.xml)
    catalog_url: str = "http://downloads.dell.com/catalog/CatalogPC.cab"
    # Pre-downloaded catalog (.cab, .zip or .xml) for offline media
    catalog_path: Optional[str] = None
    # Overrides http://<Manifest baseLocation> when building download URLs
    download_base_url: Optional[str] = None
    cache_dir: str = os.path.join(tempfile.gettempdir(), "bios-sync")

    # Superseded files are moved here instead of deleted when set
    archive_dir: Optional[str] = None
    log_file: Optional[str] = None
    log_level: str = "INFO"

    # fnmatch-style model key filters
    include: List[str] = []
    exclude: List[str] = []

    file_extensions: List[str] = ["exe"]
    component_type: str = "BIOS"

    # HTTP
    connect_timeout: int = 10
    read_timeout: int = 300
    chunk_size: int = 1024 * 1024
    verify_ssl: bool = True

    # Seconds to wait for Enter before the automatic flow starts (0 disables)
    prompt_timeout: int = 0

    class Config:
        env_prefix = "BIOS_SYNC_"


settings = Settings()
