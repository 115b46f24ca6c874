"""
Dell Catalog Fetching and Indexing

Downloads the Dell PC catalog, unpacks it to CatalogPC.xml, reads the BIOS
SoftwareComponent records and reduces them to the newest package per model.

Catalog layout (namespace omitted):

    <Manifest baseLocation="downloads.dell.com" ...>
      <SoftwareComponent path="FOLDER01234567M/1/Latitude_7440_1.6.0.exe"
                         hashMD5="..." releaseDate="..." dellVersion="1.6.0">
        <Name><Display lang="en">Dell Latitude 7440 System BIOS</Display></Name>
        <ComponentType value="BIOS">...</ComponentType>
        <Cryptography><Hash algorithm="SHA1">...</Hash></Cryptography>
        <SupportedSystems><Brand><Model><Display>Latitude 7440</Display></Model></Brand></SupportedSystems>
      </SoftwareComponent>
    </Manifest>
"""

import fnmatch
import logging
import os
import shutil
import subprocess
import xml.etree.ElementTree as ET
import zipfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import requests

from .errors import ExtractFailure, FetchFailure, ParseFailure
from .models import CatalogEntry, CatalogRecord
from .naming import parse_package_name
from .versions import compare_versions


def _local_name(tag: str) -> str:
    """Strip the '{namespace}' prefix ElementTree puts on tags."""
    return tag.rsplit("}", 1)[-1]


def _children(element: ET.Element, name: str) -> List[ET.Element]:
    return [child for child in element if _local_name(child.tag) == name]


def _first_display(element: Optional[ET.Element]) -> Optional[str]:
    if element is None:
        return None
    for display in _children(element, "Display"):
        if display.text and display.text.strip():
            return display.text.strip()
    return None


class CatalogFetcher:
    """Retrieves the catalog container and extracts the XML manifest"""

    def __init__(
        self,
        session: requests.Session,
        cache_dir: str,
        logger: logging.Logger,
        timeout: Tuple[int, int] = (10, 300),
        chunk_size: int = 1024 * 1024,
    ):
        """
        Args:
            session: requests.Session used for the catalog download
            cache_dir: Directory the container and extracted XML are written to
            logger: Logger instance for operation logging
            timeout: Tuple of (connect_timeout, read_timeout)
            chunk_size: Streaming chunk size in bytes
        """
        self.session = session
        self.cache_dir = Path(cache_dir)
        self.logger = logger
        self.timeout = timeout
        self.chunk_size = chunk_size

    def fetch(self, url: Optional[str] = None, local_path: Optional[str] = None) -> Path:
        """
        Produce a path to the catalog XML, downloading it first unless a
        local container is given.

        Raises:
            FetchFailure: Catalog could not be downloaded or local file is missing
            ExtractFailure: Container could not be unpacked
        """
        if local_path:
            source = Path(local_path)
            if not source.is_file():
                raise FetchFailure(str(source), "file not found")
            self.logger.info(f"Using local catalog: {source}")
        else:
            if not url:
                raise FetchFailure("<none>", "no catalog URL configured")
            source = self.download(url)
        return self.extract(source)

    def download(self, url: str) -> Path:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        file_name = url.rstrip("/").rsplit("/", 1)[-1] or "Catalog.cab"
        destination = self.cache_dir / file_name

        self.logger.info(f"Downloading catalog: {url}")
        try:
            response = self.session.get(url, stream=True, timeout=self.timeout)
            response.raise_for_status()
            with open(destination, "wb") as f:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    if chunk:
                        f.write(chunk)
        except requests.exceptions.RequestException as e:
            raise FetchFailure(url, str(e)) from e
        except OSError as e:
            raise FetchFailure(url, f"cannot write {destination}: {e}") from e

        self.logger.info(f"Catalog saved: {destination} ({destination.stat().st_size / 1024:.0f} KB)")
        return destination

    def extract(self, source: Path) -> Path:
        suffix = source.suffix.lower()
        if suffix == ".xml":
            return source

        extract_dir = self.cache_dir / f"{source.stem}_extracted"
        try:
            extract_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ExtractFailure(str(source), str(e)) from e

        if suffix == ".zip" or zipfile.is_zipfile(source):
            try:
                with zipfile.ZipFile(source) as archive:
                    archive.extractall(extract_dir)
            except (zipfile.BadZipFile, OSError) as e:
                raise ExtractFailure(str(source), str(e)) from e
        elif suffix == ".cab":
            self._expand_cab(source, extract_dir)
        else:
            raise ExtractFailure(str(source), f"unsupported container type '{suffix or 'none'}'")

        xml_files = sorted(extract_dir.rglob("*.xml"))
        if not xml_files:
            raise ExtractFailure(str(source), "no XML manifest inside container")

        self.logger.info(f"Catalog extracted: {xml_files[0]}")
        return xml_files[0]

    def _expand_cab(self, source: Path, extract_dir: Path):
        if os.name == "nt":
            command = ["expand.exe", str(source), "-F:*", str(extract_dir)]
        else:
            tool = shutil.which("cabextract")
            if not tool:
                raise ExtractFailure(str(source), "cabextract not found on PATH")
            command = [tool, "-q", "-d", str(extract_dir), str(source)]

        try:
            proc = subprocess.run(command, capture_output=True, text=True, timeout=300)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ExtractFailure(str(source), str(e)) from e

        if proc.returncode != 0:
            detail = (proc.stderr or proc.stdout or "").strip()
            raise ExtractFailure(str(source), f"{command[0]} exited {proc.returncode}: {detail}")


def parse_catalog(
    xml_path: Path,
    component_type: str = "BIOS",
    download_base_url: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> List[CatalogRecord]:
    """
    Read SoftwareComponent records of one component type from a catalog.

    Args:
        xml_path: Extracted catalog XML
        component_type: ComponentType value to keep (case-insensitive)
        download_base_url: Base for download URLs; defaults to http://<baseLocation>
        logger: Optional logger for skipped records

    Returns:
        Records in manifest order

    Raises:
        ParseFailure: The document is not valid XML
    """
    logger = logger or logging.getLogger("bios_sync.catalog")
    try:
        root = ET.parse(str(xml_path)).getroot()
    except (ET.ParseError, OSError) as e:
        raise ParseFailure(str(xml_path), str(e)) from e

    base = download_base_url
    if not base:
        base_location = root.get("baseLocation", "downloads.dell.com")
        base = base_location if "://" in base_location else f"http://{base_location}"
    base = base.rstrip("/")

    records = []
    wanted = component_type.lower()
    for component in root.iter():
        if _local_name(component.tag) != "SoftwareComponent":
            continue

        type_elements = _children(component, "ComponentType")
        if not type_elements or type_elements[0].get("value", "").lower() != wanted:
            continue

        path = component.get("path")
        if not path:
            logger.debug("Skipping SoftwareComponent without path attribute")
            continue

        hash_sha1 = None
        for crypto in _children(component, "Cryptography"):
            for hash_element in _children(crypto, "Hash"):
                if hash_element.get("algorithm", "").upper() == "SHA1" and hash_element.text:
                    hash_sha1 = hash_element.text.strip().lower()

        names = _children(component, "Name")
        systems = []
        for supported in _children(component, "SupportedSystems"):
            for brand in _children(supported, "Brand"):
                for model in _children(brand, "Model"):
                    display = _first_display(model)
                    if display:
                        systems.append(display)

        records.append(CatalogRecord(
            path=path,
            download_url=f"{base}/{path.lstrip('/')}",
            hash_md5=(component.get("hashMD5") or "").lower() or None,
            hash_sha1=hash_sha1,
            display_name=_first_display(names[0]) if names else None,
            release_date=component.get("releaseDate"),
            systems=systems,
        ))

    logger.info(f"Catalog lists {len(records)} {component_type} packages")
    return records


def build_catalog_index(
    records: Iterable[CatalogRecord],
    logger: Optional[logging.Logger] = None,
) -> Dict[str, CatalogEntry]:
    """
    Reduce catalog records to the newest entry per model key.

    Records whose file name has no parseable _<version> suffix are skipped.
    On equal versions the first record seen is kept.
    """
    logger = logger or logging.getLogger("bios_sync.catalog")
    index: Dict[str, CatalogEntry] = {}

    for record in records:
        try:
            model, version = parse_package_name(record.path)
        except ParseFailure as e:
            logger.debug(f"Skipping catalog record: {e.message}")
            continue

        existing = index.get(model)
        if existing is not None and compare_versions(version, existing.version) <= 0:
            continue

        index[model] = CatalogEntry(
            model=model,
            version=version,
            file_name=record.path.replace("\\", "/").rsplit("/", 1)[-1],
            download_url=record.download_url,
            hash_md5=record.hash_md5,
            hash_sha1=record.hash_sha1,
            display_name=record.display_name,
            release_date=record.release_date,
            systems=record.systems,
        )

    return index


def matches_filters(model: str, include: Iterable[str] = (), exclude: Iterable[str] = ()) -> bool:
    """Case-insensitive wildcard match of a model key against include/exclude lists."""
    key = model.lower()
    include = [pattern.lower() for pattern in include]
    if include and not any(fnmatch.fnmatchcase(key, pattern) for pattern in include):
        return False
    return not any(fnmatch.fnmatchcase(key, pattern.lower()) for pattern in exclude)


def filter_index(
    index: Dict[str, CatalogEntry],
    include: Iterable[str] = (),
    exclude: Iterable[str] = (),
) -> Dict[str, CatalogEntry]:
    include, exclude = list(include), list(exclude)
    if not include and not exclude:
        return dict(index)
    return {model: entry for model, entry in index.items() if matches_filters(model, include, exclude)}
