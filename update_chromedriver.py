"""Find, download and install the ChromeDriver matching the local Chrome.

The Chrome for Testing catalog lists every known-good Chrome release with
per-platform download URLs. We pick the driver closest to the installed
browser (exact match, else the nearest same-major release not newer than
the browser, else the oldest newer one), download the zip and move the
binary into a bin directory.
"""

from __future__ import annotations

import argparse
import os
import shutil
import stat
import subprocess
import tempfile
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, NamedTuple

import requests

from utils import (
    LOCAL_BIN_DIR,
    dir_on_path,
    find_chromedriver_binary,
    get_chrome_version,
    get_platform_key,
    is_mac_platform,
    load_env_file,
    print_info,
    print_status,
    print_warning,
)

load_env_file()

CATALOG_URL = os.getenv(
    "CHROMEDRIVER_CATALOG_URL",
    "https://googlechromelabs.github.io/chrome-for-testing/known-good-versions-with-downloads.json",
)
MANUAL_URL = "https://googlechromelabs.github.io/chrome-for-testing/"
SYSTEM_BIN_DIR = Path("/usr/local/bin")
DRIVER_KIND = "chromedriver"

CATALOG_TIMEOUT = 30
DOWNLOAD_TIMEOUT = 120


# ----------------------
# Errors
# ----------------------
class DriverSetupError(Exception):
    kind = "driver_setup"


class NetworkError(DriverSetupError):
    kind = "network"


class NoCandidateVersion(DriverSetupError):
    kind = "no_candidate_version"


class NoPlatformUrl(DriverSetupError):
    kind = "no_platform_url"


class DownloadError(DriverSetupError):
    kind = "download"


class ArchiveError(DriverSetupError):
    kind = "archive"


class FilesystemError(DriverSetupError):
    kind = "filesystem"


# ----------------------
# Data model
# ----------------------
class VersionTriple(NamedTuple):
    """Chrome version ``major.minor.build.patch``; compares as a tuple."""

    major: int
    minor: int
    build: int
    patch: int

    @classmethod
    def parse(cls, text: str) -> "VersionTriple":
        parts = text.strip().split(".")
        if len(parts) != 4 or not all(p.isdigit() for p in parts):
            raise ValueError(f"Not a four-part version: {text!r}")
        return cls(*(int(p) for p in parts))

    def __str__(self) -> str:
        return ".".join(str(p) for p in self)


@dataclass(frozen=True)
class CatalogEntry:
    version: VersionTriple
    raw_version: str
    downloads: Mapping[str, tuple] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def has_driver(self) -> bool:
        return bool(self.downloads.get(DRIVER_KIND))

    def url_for(self, platform_key: str, kind: str = DRIVER_KIND) -> str | None:
        for platform_name, url in self.downloads.get(kind, ()):
            if platform_name == platform_key:
                return url
        return None


@dataclass
class InstallOutcome:
    ok: bool
    path: Path | None = None
    version: str | None = None
    error_kind: str | None = None
    message: str = ""


# ----------------------
# Catalog
# ----------------------
def parse_catalog(data: dict) -> list[CatalogEntry]:
    """Build catalog entries from the decoded JSON document, keeping order."""
    versions = data.get("versions") if isinstance(data, dict) else None
    if not isinstance(versions, list):
        raise NetworkError("Catalog has no 'versions' array")

    entries = []
    for item in versions:
        try:
            raw = item["version"]
            version = VersionTriple.parse(raw)
        except (AttributeError, KeyError, TypeError, ValueError):
            continue
        raw_downloads = item.get("downloads")
        if not isinstance(raw_downloads, dict):
            raw_downloads = {}
        downloads = {}
        for kind, items in raw_downloads.items():
            if not isinstance(items, list):
                continue
            downloads[kind] = tuple(
                (d["platform"], d["url"])
                for d in items
                if isinstance(d, dict) and "platform" in d and "url" in d
            )
        entries.append(CatalogEntry(version=version, raw_version=raw, downloads=MappingProxyType(downloads)))
    return entries


def fetch_catalog(url: str = CATALOG_URL) -> list[CatalogEntry]:
    try:
        response = requests.get(url, timeout=CATALOG_TIMEOUT)
        response.raise_for_status()
        data = response.json()
    except requests.RequestException as e:
        raise NetworkError(f"Could not fetch {url}: {e}") from e
    except ValueError as e:
        raise NetworkError(f"Catalog at {url} is not valid JSON: {e}") from e
    return parse_catalog(data)


# ----------------------
# Resolution
# ----------------------
def resolve_version(target: VersionTriple, catalog: list[CatalogEntry]) -> VersionTriple | None:
    """Return the driver version to install for browser version *target*.

    An exact match wins. Otherwise, among same-major releases that ship a
    driver, take the newest one not newer than *target*; if they are all
    newer, take the oldest. ``None`` when the major line has no driver.
    Duplicate versions resolve to their first catalog occurrence.
    """
    for entry in catalog:
        if entry.version == target and entry.has_driver:
            return entry.version

    candidates = [e.version for e in catalog if e.has_driver and e.version.major == target.major]
    if not candidates:
        return None

    # sorted() is stable, so equal versions keep catalog order
    candidates = sorted(candidates, reverse=True)
    for version in candidates:
        if version <= target:
            return version
    return candidates[-1]


def resolve_download_url(version: VersionTriple, platform_key: str, catalog: list[CatalogEntry]) -> str | None:
    for entry in catalog:
        if entry.version != version:
            continue
        url = entry.url_for(platform_key)
        if url:
            return url
    return None


# ----------------------
# Install
# ----------------------
def driver_binary_name(platform_key: str | None) -> str:
    return "chromedriver.exe" if platform_key and platform_key.startswith("win") else "chromedriver"


def find_binary(root: Path, name: str) -> Path | None:
    """Return the first file called *name* anywhere below *root*."""
    for candidate in sorted(root.rglob(name)):
        if candidate.is_file():
            return candidate
    return None


def clear_quarantine(path: Path) -> None:
    # Gatekeeper refuses to run downloads still flagged as quarantined
    try:
        subprocess.run(
            ["xattr", "-d", "com.apple.quarantine", str(path)],
            capture_output=True,
            check=False,
        )
    except OSError:
        pass


def move_binary(binary: Path, dest_dir: Path, use_sudo: bool = False) -> Path:
    target = dest_dir / binary.name
    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
        shutil.move(str(binary), str(target))
        return target
    except OSError as e:
        if not use_sudo:
            raise FilesystemError(f"Could not move driver to {target}: {e}") from e

    print_info(f"Elevated privileges needed for {dest_dir}, using sudo...")
    try:
        subprocess.run(["sudo", "mkdir", "-p", str(dest_dir)], check=True)
        subprocess.run(["sudo", "mv", str(binary), str(target)], check=True)
    except (OSError, subprocess.CalledProcessError) as e:
        raise FilesystemError(f"sudo mv to {target} failed: {e}") from e
    return target


def install_driver(
    url: str,
    use_local_bin: bool = False,
    dest_dir: Path | None = None,
    platform_key: str | None = None,
) -> Path:
    """Download the driver zip at *url* and install its binary.

    The binary goes to *dest_dir* when given, otherwise ``~/.local/bin`` if
    *use_local_bin* is set, otherwise ``/usr/local/bin``. The download and
    extraction happen in a temporary directory that is always removed.
    Returns the installed path.
    """
    platform_key = platform_key or get_platform_key()
    name = driver_binary_name(platform_key)
    if dest_dir is None:
        dest_dir = LOCAL_BIN_DIR if use_local_bin else SYSTEM_BIN_DIR
    dest_dir = Path(dest_dir)

    with tempfile.TemporaryDirectory(prefix="chromedriver-") as tmp:
        tmp_path = Path(tmp)
        archive = tmp_path / "chromedriver.zip"

        print(f"⬇️ Downloading: {url}")
        try:
            response = requests.get(url, timeout=DOWNLOAD_TIMEOUT)
            response.raise_for_status()
        except requests.RequestException as e:
            raise DownloadError(f"Download failed: {e}") from e
        archive.write_bytes(response.content)

        extract_to = tmp_path / "extracted"
        try:
            with zipfile.ZipFile(archive) as z:
                z.extractall(extract_to)
        except zipfile.BadZipFile as e:
            raise ArchiveError(f"Downloaded file is not a valid zip: {e}") from e
        except (zipfile.LargeZipFile, NotImplementedError, RuntimeError) as e:
            # unsupported compression, zip64 or encrypted members
            raise ArchiveError(f"Could not extract downloaded archive: {e}") from e

        binary = find_binary(extract_to, name)
        if binary is None:
            raise ArchiveError(f"Could not find {name} in downloaded archive")

        # zipfile does not restore permission bits
        binary.chmod(binary.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        if is_mac_platform(platform_key):
            clear_quarantine(binary)

        return move_binary(binary, dest_dir, use_sudo=(dest_dir == SYSTEM_BIN_DIR))


# ----------------------
# Boundary
# ----------------------
def print_manual_instructions(error_kind: str, chrome_version: str | None = None, url: str | None = None) -> None:
    if error_kind == "no_chrome":
        print_info("Please install ChromeDriver manually:")
        print_info("1. Check your Chrome version at chrome://version/")
        print_info(f"2. Download from: {MANUAL_URL}")
        print_info(f"3. Move to {SYSTEM_BIN_DIR / 'chromedriver'}")
    elif error_kind == NoCandidateVersion.kind:
        major = chrome_version.split(".")[0] if chrome_version else "?"
        print_info("Please install ChromeDriver manually:")
        print_info(f"1. Visit: {MANUAL_URL}")
        print_info(f"2. Download chromedriver for Chrome {major}.x")
        print_info(f"3. Move to {SYSTEM_BIN_DIR / 'chromedriver'}")
    elif error_kind == DownloadError.kind and url:
        print_info("Please install manually.")
        print_info(f"URL: {url}")
    else:
        print_info("Please install ChromeDriver manually from:")
        print_info(MANUAL_URL)


def setup_chromedriver(
    chrome_version: str,
    platform_key: str,
    use_local_bin: bool = False,
    dest_dir: Path | None = None,
    catalog_url: str = CATALOG_URL,
) -> InstallOutcome:
    """Resolve and install a driver for *chrome_version*; never raises."""
    try:
        target = VersionTriple.parse(chrome_version)
    except ValueError as e:
        print_warning(f"Unrecognised Chrome version: {e}")
        print_manual_instructions(NoCandidateVersion.kind, chrome_version)
        return InstallOutcome(ok=False, error_kind=NoCandidateVersion.kind, message=str(e))

    url = None
    try:
        catalog = fetch_catalog(catalog_url)

        print_info("Finding matching ChromeDriver version...")
        version = resolve_version(target, catalog)
        if version is None:
            raise NoCandidateVersion(f"No ChromeDriver release for Chrome {target.major}")
        print_info(f"Found matching ChromeDriver: {version}")

        url = resolve_download_url(version, platform_key, catalog)
        if url is None:
            raise NoPlatformUrl(f"No {platform_key} download for ChromeDriver {version}")

        path = install_driver(url, use_local_bin=use_local_bin, dest_dir=dest_dir, platform_key=platform_key)
    except DriverSetupError as e:
        print_warning(str(e))
        print_manual_instructions(e.kind, chrome_version, url)
        return InstallOutcome(ok=False, error_kind=e.kind, message=str(e))
    except OSError as e:
        print_warning(f"ChromeDriver install failed: {e}")
        print_manual_instructions(FilesystemError.kind)
        return InstallOutcome(ok=False, error_kind=FilesystemError.kind, message=str(e))

    print_status(f"ChromeDriver {version} installed to {path.parent}")
    return InstallOutcome(ok=True, path=path, version=str(version))


def chromedriver_step(use_local_bin: bool = False) -> InstallOutcome:
    """Install ChromeDriver unless one is already available."""
    existing = find_chromedriver_binary()
    if existing:
        print_status(f"ChromeDriver already installed: {existing}")
        return InstallOutcome(ok=True, path=Path(existing))

    chrome_version = get_chrome_version()
    if not chrome_version:
        print_warning("Could not detect Chrome version")
        print_manual_instructions("no_chrome")
        return InstallOutcome(ok=False, error_kind="no_chrome", message="Chrome not detected")

    print_info(f"Detected Chrome version: {chrome_version}")
    try:
        platform_key = get_platform_key()
    except RuntimeError as e:
        print_warning(str(e))
        print_manual_instructions(NoPlatformUrl.kind)
        return InstallOutcome(ok=False, error_kind=NoPlatformUrl.kind, message=str(e))
    outcome = setup_chromedriver(chrome_version, platform_key, use_local_bin=use_local_bin)
    if outcome.ok and use_local_bin and not dir_on_path(LOCAL_BIN_DIR):
        print_warning("Add ~/.local/bin to your PATH:")
        print_info("echo 'export PATH=\"$HOME/.local/bin:$PATH\"' >> ~/.bashrc")
    return outcome


def main():
    parser = argparse.ArgumentParser(description="Install the ChromeDriver matching your Chrome")
    parser.add_argument("--local", action="store_true", help="Install to ~/.local/bin (no sudo)")
    args = parser.parse_args()
    outcome = chromedriver_step(use_local_bin=args.local)
    return 0 if outcome.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
