from __future__ import annotations

import io
import os
import tempfile
import unittest
import zipfile
from pathlib import Path
from unittest import mock

import requests

import update_chromedriver
from update_chromedriver import (
    ArchiveError,
    DownloadError,
    FilesystemError,
    install_driver,
)

URL = "https://cdn.example/120.0.6099.109/linux64/chromedriver-linux64.zip"


def zip_bytes(files: dict) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as z:
        for name, data in files.items():
            z.writestr(name, data)
    return buf.getvalue()


def fake_response(content: bytes = b"", status_error: Exception | None = None):
    resp = mock.Mock()
    resp.content = content
    resp.raise_for_status.side_effect = status_error
    return resp


class InstallDriverTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.dest = Path(self._tmp.name) / "bin"
        self.created = []
        real = tempfile.TemporaryDirectory

        def tracking(*args, **kwargs):
            td = real(*args, **kwargs)
            self.created.append(td.name)
            return td

        patcher = mock.patch.object(update_chromedriver.tempfile, "TemporaryDirectory", side_effect=tracking)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.addCleanup(self._tmp.cleanup)

    def assertWorkDirRemoved(self) -> None:
        self.assertEqual(len(self.created), 1)
        self.assertFalse(os.path.exists(self.created[0]))

    def test_installs_nested_binary(self) -> None:
        archive = zip_bytes({
            "chromedriver-linux64/LICENSE.chromedriver": "license",
            "chromedriver-linux64/chromedriver": "#!/bin/sh\n",
        })
        with mock.patch.object(update_chromedriver.requests, "get", return_value=fake_response(archive)):
            path = install_driver(URL, dest_dir=self.dest, platform_key="linux64")

        self.assertEqual(path, self.dest / "chromedriver")
        self.assertTrue(path.is_file())
        self.assertTrue(os.access(path, os.X_OK))
        self.assertWorkDirRemoved()

    def test_replaces_existing_binary(self) -> None:
        self.dest.mkdir()
        (self.dest / "chromedriver").write_text("old")
        archive = zip_bytes({"chromedriver-linux64/chromedriver": "new"})
        with mock.patch.object(update_chromedriver.requests, "get", return_value=fake_response(archive)):
            path = install_driver(URL, dest_dir=self.dest, platform_key="linux64")
        self.assertEqual(path.read_text(), "new")

    def test_local_bin_destination(self) -> None:
        archive = zip_bytes({"chromedriver-linux64/chromedriver": "bin"})
        with mock.patch.object(update_chromedriver, "LOCAL_BIN_DIR", self.dest), \
                mock.patch.object(update_chromedriver.requests, "get", return_value=fake_response(archive)):
            path = install_driver(URL, use_local_bin=True, platform_key="linux64")
        self.assertEqual(path, self.dest / "chromedriver")

    def test_mac_clears_quarantine(self) -> None:
        archive = zip_bytes({"chromedriver-mac-arm64/chromedriver": "bin"})
        with mock.patch.object(update_chromedriver.requests, "get", return_value=fake_response(archive)), \
                mock.patch.object(update_chromedriver.subprocess, "run") as run:
            install_driver(URL, dest_dir=self.dest, platform_key="mac-arm64")
        cmd = run.call_args[0][0]
        self.assertEqual(cmd[:3], ["xattr", "-d", "com.apple.quarantine"])

    def test_missing_xattr_is_not_fatal(self) -> None:
        archive = zip_bytes({"chromedriver-mac-x64/chromedriver": "bin"})
        with mock.patch.object(update_chromedriver.requests, "get", return_value=fake_response(archive)), \
                mock.patch.object(update_chromedriver.subprocess, "run", side_effect=FileNotFoundError("xattr")):
            path = install_driver(URL, dest_dir=self.dest, platform_key="mac-x64")
        self.assertTrue(path.is_file())

    def test_download_failure(self) -> None:
        resp = fake_response(status_error=requests.HTTPError("404 Client Error"))
        with mock.patch.object(update_chromedriver.requests, "get", return_value=resp):
            with self.assertRaises(DownloadError):
                install_driver(URL, dest_dir=self.dest, platform_key="linux64")
        self.assertWorkDirRemoved()

    def test_connection_failure(self) -> None:
        with mock.patch.object(update_chromedriver.requests, "get", side_effect=requests.ConnectionError("down")):
            with self.assertRaises(DownloadError):
                install_driver(URL, dest_dir=self.dest, platform_key="linux64")
        self.assertWorkDirRemoved()

    def test_binary_missing_from_archive(self) -> None:
        archive = zip_bytes({"chromedriver-linux64/LICENSE.chromedriver": "license"})
        with mock.patch.object(update_chromedriver.requests, "get", return_value=fake_response(archive)):
            with self.assertRaises(ArchiveError):
                install_driver(URL, dest_dir=self.dest, platform_key="linux64")
        self.assertWorkDirRemoved()
        self.assertFalse(self.dest.exists())

    def test_corrupt_archive(self) -> None:
        with mock.patch.object(update_chromedriver.requests, "get", return_value=fake_response(b"<html>nope</html>")):
            with self.assertRaises(ArchiveError):
                install_driver(URL, dest_dir=self.dest, platform_key="linux64")
        self.assertWorkDirRemoved()

    def test_unsupported_compression(self) -> None:
        archive = zip_bytes({"chromedriver-linux64/chromedriver": "bin"})
        err = NotImplementedError("That compression method is not supported")
        with mock.patch.object(update_chromedriver.requests, "get", return_value=fake_response(archive)), \
                mock.patch.object(zipfile.ZipFile, "extractall", side_effect=err):
            with self.assertRaises(ArchiveError):
                install_driver(URL, dest_dir=self.dest, platform_key="linux64")
        self.assertWorkDirRemoved()

    def test_encrypted_member(self) -> None:
        archive = zip_bytes({"chromedriver-linux64/chromedriver": "bin"})
        err = RuntimeError("File <ZipInfo> is encrypted, password required for extraction")
        with mock.patch.object(update_chromedriver.requests, "get", return_value=fake_response(archive)), \
                mock.patch.object(zipfile.ZipFile, "extractall", side_effect=err):
            with self.assertRaises(ArchiveError):
                install_driver(URL, dest_dir=self.dest, platform_key="linux64")

    def test_unwritable_destination(self) -> None:
        blocker = Path(self._tmp.name) / "not-a-dir"
        blocker.write_text("file in the way")
        archive = zip_bytes({"chromedriver-linux64/chromedriver": "bin"})
        with mock.patch.object(update_chromedriver.requests, "get", return_value=fake_response(archive)):
            with self.assertRaises(FilesystemError):
                install_driver(URL, dest_dir=blocker / "bin", platform_key="linux64")
        self.assertWorkDirRemoved()

    def test_system_dir_falls_back_to_sudo(self) -> None:
        archive = zip_bytes({"chromedriver-linux64/chromedriver": "bin"})
        with mock.patch.object(update_chromedriver, "SYSTEM_BIN_DIR", self.dest), \
                mock.patch.object(update_chromedriver.shutil, "move", side_effect=PermissionError("denied")), \
                mock.patch.object(update_chromedriver.requests, "get", return_value=fake_response(archive)), \
                mock.patch.object(update_chromedriver.subprocess, "run") as run:
            path = install_driver(URL, platform_key="linux64")
        self.assertEqual(path, self.dest / "chromedriver")
        commands = [c[0][0] for c in run.call_args_list]
        self.assertEqual(commands[-1][:2], ["sudo", "mv"])

    def test_sudo_failure_is_filesystem_error(self) -> None:
        archive = zip_bytes({"chromedriver-linux64/chromedriver": "bin"})
        with mock.patch.object(update_chromedriver, "SYSTEM_BIN_DIR", self.dest), \
                mock.patch.object(update_chromedriver.shutil, "move", side_effect=PermissionError("denied")), \
                mock.patch.object(update_chromedriver.requests, "get", return_value=fake_response(archive)), \
                mock.patch.object(update_chromedriver.subprocess, "run", side_effect=FileNotFoundError("sudo")):
            with self.assertRaises(FilesystemError):
                install_driver(URL, platform_key="linux64")
        self.assertWorkDirRemoved()


if __name__ == "__main__":
    unittest.main()
