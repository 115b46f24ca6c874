import logging
import subprocess
import tempfile
import unittest
import zipfile
from pathlib import Path
from unittest import mock

import requests

from bios_sync import catalog
from bios_sync.catalog import (
    CatalogFetcher,
    build_catalog_index,
    filter_index,
    matches_filters,
    parse_catalog,
)
from bios_sync.errors import ExtractFailure, FetchFailure, ParseFailure
from bios_sync.models import CatalogRecord

CATALOG_XML = """<?xml version="1.0" encoding="utf-8"?>
<Manifest xmlns="openmanage/cm/dm" baseLocation="downloads.dell.com" version="2024.01">
  <SoftwareComponent path="FOLDER01/1/Latitude_7440_1.6.0.exe" hashMD5="AABBCC" releaseDate="January 10, 2024" dellVersion="1.6.0">
    <Name><Display lang="en"><![CDATA[Dell Latitude 7440 System BIOS]]></Display></Name>
    <ComponentType value="BIOS"><Display lang="en">BIOS</Display></ComponentType>
    <SupportedSystems><Brand><Model systemID="0BE1"><Display lang="en">Latitude 7440</Display></Model></Brand></SupportedSystems>
    <Cryptography><Hash algorithm="SHA1">DDEEFF</Hash><Hash algorithm="SHA256">112233</Hash></Cryptography>
  </SoftwareComponent>
  <SoftwareComponent path="FOLDER02/1/Latitude_7440_1.10.0.exe">
    <ComponentType value="BIOS" />
  </SoftwareComponent>
  <SoftwareComponent path="FOLDER03/1/OptiPlex_7010_A29.exe" hashMD5="0011">
    <ComponentType value="BIOS" />
  </SoftwareComponent>
  <SoftwareComponent path="FOLDER04/1/OptiPlex_7010_A31.exe">
    <ComponentType value="BIOS" />
  </SoftwareComponent>
  <SoftwareComponent path="FOLDER05/1/Network_Driver_X1.exe">
    <ComponentType value="DRVR" />
  </SoftwareComponent>
  <SoftwareComponent path="FOLDER06/1/O9020A25.exe">
    <ComponentType value="BIOS" />
  </SoftwareComponent>
</Manifest>
"""

LOGGER = logging.getLogger("bios_sync.tests")


def _record(path, url=None):
    return CatalogRecord(path=path, download_url=url or f"http://downloads.dell.com/{path}")


class FailingSession:
    def get(self, url, **kwargs):
        raise requests.exceptions.ConnectionError("network unreachable")


class FakeResponse:
    def __init__(self, content: bytes):
        self.content = content

    def raise_for_status(self):
        pass

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]


class StaticSession:
    def __init__(self, content: bytes):
        self.content = content
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append(url)
        return FakeResponse(self.content)


class ParseCatalogTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.xml_path = Path(self.tmp.name) / "CatalogPC.xml"
        self.xml_path.write_text(CATALOG_XML, encoding="utf-8")

    def tearDown(self):
        self.tmp.cleanup()

    def test_only_bios_components_are_read(self):
        records = parse_catalog(self.xml_path)
        paths = [r.path for r in records]
        self.assertEqual(len(records), 5)
        self.assertNotIn("FOLDER05/1/Network_Driver_X1.exe", paths)

    def test_record_fields(self):
        first = parse_catalog(self.xml_path)[0]
        self.assertEqual(first.download_url, "http://downloads.dell.com/FOLDER01/1/Latitude_7440_1.6.0.exe")
        self.assertEqual(first.hash_md5, "aabbcc")
        self.assertEqual(first.hash_sha1, "ddeeff")
        self.assertEqual(first.display_name, "Dell Latitude 7440 System BIOS")
        self.assertEqual(first.systems, ["Latitude 7440"])
        self.assertEqual(first.release_date, "January 10, 2024")

    def test_download_base_override(self):
        first = parse_catalog(self.xml_path, download_base_url="https://mirror.local/dell/")[0]
        self.assertEqual(first.download_url, "https://mirror.local/dell/FOLDER01/1/Latitude_7440_1.6.0.exe")

    def test_invalid_xml_raises_parse_failure(self):
        self.xml_path.write_text("<Manifest><SoftwareComponent", encoding="utf-8")
        with self.assertRaises(ParseFailure):
            parse_catalog(self.xml_path)


class CatalogIndexTests(unittest.TestCase):
    def test_highest_version_per_model_wins(self):
        records = [
            _record("F1/Latitude_7440_1.6.0.exe"),
            _record("F2/Latitude_7440_1.10.0.exe"),
            _record("F3/OptiPlex_7010_A31.exe"),
            _record("F4/OptiPlex_7010_A29.exe"),
        ]
        index = build_catalog_index(records)
        self.assertEqual(set(index), {"Latitude_7440", "OptiPlex_7010"})
        self.assertEqual(index["Latitude_7440"].version, "1.10.0")
        self.assertEqual(index["Latitude_7440"].file_name, "Latitude_7440_1.10.0.exe")
        self.assertEqual(index["OptiPlex_7010"].version, "A31")

    def test_malformed_records_are_skipped(self):
        index = build_catalog_index([_record("F1/O9020A25.exe"), _record("F2/ModelX_A12.exe")])
        self.assertEqual(list(index), ["ModelX"])

    def test_equal_versions_keep_first_seen(self):
        records = [
            _record("F1/ModelX_A12.exe", "http://first/ModelX_A12.exe"),
            _record("F2/ModelX_A12.exe", "http://second/ModelX_A12.exe"),
        ]
        index = build_catalog_index(records)
        self.assertEqual(index["ModelX"].download_url, "http://first/ModelX_A12.exe")

    def test_index_from_parsed_catalog(self):
        with tempfile.TemporaryDirectory() as tmp:
            xml_path = Path(tmp) / "CatalogPC.xml"
            xml_path.write_text(CATALOG_XML, encoding="utf-8")
            index = build_catalog_index(parse_catalog(xml_path))
        self.assertEqual(index["Latitude_7440"].version, "1.10.0")
        self.assertFalse(index["Latitude_7440"].has_hash)
        self.assertEqual(index["OptiPlex_7010"].version, "A31")


class FilterTests(unittest.TestCase):
    def setUp(self):
        self.index = build_catalog_index([
            _record("F1/Latitude_7440_1.6.0.exe"),
            _record("F2/OptiPlex_7010_A31.exe"),
        ])

    def test_no_filters_keeps_everything(self):
        self.assertEqual(set(filter_index(self.index)), {"Latitude_7440", "OptiPlex_7010"})

    def test_include_is_case_insensitive(self):
        self.assertEqual(list(filter_index(self.index, include=["latitude*"])), ["Latitude_7440"])

    def test_exclude_wins_over_include(self):
        self.assertFalse(matches_filters("OptiPlex_7010", include=["*"], exclude=["*7010"]))
        self.assertEqual(list(filter_index(self.index, exclude=["*7010"])), ["Latitude_7440"])


class CatalogFetcherTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)
        self.cache = self.root / "cache"

    def tearDown(self):
        self.tmp.cleanup()

    def test_local_xml_is_used_as_is(self):
        xml_path = self.root / "CatalogPC.xml"
        xml_path.write_text(CATALOG_XML, encoding="utf-8")
        fetcher = CatalogFetcher(FailingSession(), str(self.cache), LOGGER)
        self.assertEqual(fetcher.fetch(local_path=str(xml_path)), xml_path)

    def test_missing_local_catalog_is_fetch_failure(self):
        fetcher = CatalogFetcher(FailingSession(), str(self.cache), LOGGER)
        with self.assertRaises(FetchFailure):
            fetcher.fetch(local_path=str(self.root / "nope.cab"))

    def test_network_error_is_fetch_failure(self):
        fetcher = CatalogFetcher(FailingSession(), str(self.cache), LOGGER)
        with self.assertRaises(FetchFailure):
            fetcher.fetch(url="http://downloads.dell.com/catalog/CatalogPC.cab")

    def test_zip_container_is_extracted(self):
        archive = self.root / "CatalogPC.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("CatalogPC.xml", CATALOG_XML)
        fetcher = CatalogFetcher(FailingSession(), str(self.cache), LOGGER)
        xml_path = fetcher.fetch(local_path=str(archive))
        self.assertEqual(xml_path.name, "CatalogPC.xml")
        self.assertEqual(len(parse_catalog(xml_path)), 5)

    def test_downloaded_catalog_lands_in_cache(self):
        session = StaticSession(CATALOG_XML.encode("utf-8"))
        fetcher = CatalogFetcher(session, str(self.cache), LOGGER)
        xml_path = fetcher.fetch(url="http://mirror.local/catalog/CatalogPC.xml")
        self.assertEqual(xml_path, self.cache / "CatalogPC.xml")
        self.assertEqual(session.calls, ["http://mirror.local/catalog/CatalogPC.xml"])

    def test_unknown_container_is_extract_failure(self):
        blob = self.root / "catalog.bin"
        blob.write_bytes(b"\x00\x01")
        fetcher = CatalogFetcher(FailingSession(), str(self.cache), LOGGER)
        with self.assertRaises(ExtractFailure):
            fetcher.fetch(local_path=str(blob))

    def test_zip_without_xml_is_extract_failure(self):
        archive = self.root / "empty.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("readme.txt", "nothing here")
        fetcher = CatalogFetcher(FailingSession(), str(self.cache), LOGGER)
        with self.assertRaises(ExtractFailure):
            fetcher.fetch(local_path=str(archive))


class CabExtractionTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)
        self.cache = self.root / "cache"
        self.cab = self.root / "CatalogPC.cab"
        self.cab.write_bytes(b"MSCF")
        self.fetcher = CatalogFetcher(FailingSession(), str(self.cache), LOGGER)

    def tearDown(self):
        self.tmp.cleanup()

    def test_cabextract_unpacks_manifest(self):
        def fake_run(command, **kwargs):
            out_dir = Path(command[command.index("-d") + 1])
            (out_dir / "CatalogPC.xml").write_text(CATALOG_XML, encoding="utf-8")
            return subprocess.CompletedProcess(command, 0, "", "")

        with mock.patch.object(catalog.os, "name", "posix"), \
                mock.patch.object(catalog.shutil, "which", return_value="/usr/bin/cabextract"), \
                mock.patch.object(catalog.subprocess, "run", side_effect=fake_run) as run:
            xml_path = self.fetcher.fetch(local_path=str(self.cab))

        extract_dir = self.cache / "CatalogPC_extracted"
        self.assertEqual(xml_path, extract_dir / "CatalogPC.xml")
        self.assertEqual(
            run.call_args.args[0],
            ["/usr/bin/cabextract", "-q", "-d", str(extract_dir), str(self.cab)],
        )

    def test_expand_exe_command_on_windows(self):
        extract_dir = self.cache / "out"
        done = subprocess.CompletedProcess([], 0, "", "")
        with mock.patch.object(catalog.subprocess, "run", return_value=done) as run:
            with mock.patch.object(catalog.os, "name", "nt"):
                self.fetcher._expand_cab(self.cab, extract_dir)

        self.assertEqual(run.call_args.args[0], ["expand.exe", str(self.cab), "-F:*", str(extract_dir)])

    def test_nonzero_exit_is_extract_failure(self):
        failed = subprocess.CompletedProcess([], 1, "", "corrupt cabinet")
        with mock.patch.object(catalog.os, "name", "posix"), \
                mock.patch.object(catalog.shutil, "which", return_value="/usr/bin/cabextract"), \
                mock.patch.object(catalog.subprocess, "run", return_value=failed):
            with self.assertRaises(ExtractFailure) as ctx:
                self.fetcher.fetch(local_path=str(self.cab))
        self.assertIn("corrupt cabinet", ctx.exception.message)

    def test_missing_cabextract_is_extract_failure(self):
        with mock.patch.object(catalog.os, "name", "posix"), \
                mock.patch.object(catalog.shutil, "which", return_value=None), \
                mock.patch.object(catalog.subprocess, "run") as run:
            with self.assertRaises(ExtractFailure) as ctx:
                self.fetcher.fetch(local_path=str(self.cab))
        self.assertIn("cabextract not found", ctx.exception.message)
        run.assert_not_called()


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
