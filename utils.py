from __future__ import annotations

import os
import platform
import re
import subprocess
import sys
from pathlib import Path
from shutil import which

LOCAL_BIN_DIR = Path.home() / ".local" / "bin"

MAC_CHROME_BINARY = "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"
LINUX_CHROME_COMMANDS = ("google-chrome", "chromium-browser")

_VERSION_RE = re.compile(r"\d+\.\d+\.\d+\.\d+")


def load_env_file(path: str = ".env") -> None:
    """Load simple KEY=VALUE pairs from *path* into ``os.environ``.

    Existing variables are preserved. Lines starting with ``#`` or without an
    ``=`` are ignored.
    """
    if not os.path.isfile(path):
        return
    with open(path, "r", encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, val = line.split("=", 1)
            os.environ.setdefault(key.strip(), val.strip())


# ----------------------
# Status output
# ----------------------
def print_status(msg: str) -> None:
    print(f"✅ {msg}")


def print_warning(msg: str) -> None:
    print(f"⚠️  {msg}")


def print_error(msg: str) -> None:
    print(f"❌ {msg}")


def print_info(msg: str) -> None:
    print(f"    {msg}")


# ----------------------
# Platform & Chrome detection
# ----------------------
def get_platform_key() -> str:
    """Return the Chrome for Testing platform name of this machine."""
    system = platform.system()
    machine = platform.machine().lower()
    if system == "Windows":
        return "win64" if "64" in machine else "win32"
    elif system == "Linux":
        return "linux64"
    elif system == "Darwin":
        # arm64 for Apple Silicon, mac-x64 for Intel
        return "mac-arm64" if "arm" in machine or "aarch" in machine else "mac-x64"
    else:
        raise RuntimeError(f"Unsupported OS: {system} ({machine})")


def is_mac_platform(platform_key: str) -> bool:
    return platform_key.startswith("mac")


def extract_version(text: str) -> str | None:
    """Return the first dotted four-part version found in *text*."""
    match = _VERSION_RE.search(text or "")
    return match.group(0) if match else None


def chrome_candidates() -> list[str]:
    """Return Chrome executables worth asking for ``--version``, in order."""
    env_bin = os.getenv("CHROME_BINARY")
    if env_bin:
        return [env_bin]
    if sys.platform == "darwin":
        return [MAC_CHROME_BINARY] if os.path.isfile(MAC_CHROME_BINARY) else []
    found = []
    for name in LINUX_CHROME_COMMANDS:
        path_bin = which(name)
        if path_bin:
            found.append(path_bin)
    return found


def get_chrome_version() -> str | None:
    """Return the installed Chrome version, e.g. ``"120.0.6099.109"``.

    ``CHROME_VERSION`` in the environment short-circuits detection. Otherwise
    the first candidate executable that reports a parsable ``--version`` wins.
    """
    env_version = os.getenv("CHROME_VERSION")
    if env_version:
        return extract_version(env_version)
    for binary in chrome_candidates():
        try:
            proc = subprocess.run(
                [binary, "--version"], capture_output=True, text=True, timeout=15
            )
        except (OSError, subprocess.SubprocessError) as e:
            print_warning(f"Could not run {binary} --version: {e}")
            continue
        version = extract_version(proc.stdout)
        if version:
            return version
    return None


# ----------------------
# Existing installs
# ----------------------
def find_chromedriver_binary() -> str | None:
    """Return path to chromedriver if found in common locations or PATH.

    Checks environment hints, the system PATH and ``~/.local/bin`` for a
    ChromeDriver executable. Returns an absolute path if found, otherwise
    ``None``.
    """
    # Environment variables sometimes specify an explicit path
    env_path = os.getenv("CHROMEDRIVER") or os.getenv("CHROMEDRIVER_PATH")
    if env_path and os.path.isfile(env_path):
        return os.path.abspath(env_path)

    path_bin = which("chromedriver")
    if path_bin:
        return os.path.abspath(path_bin)

    for name in ("chromedriver", "chromedriver.exe"):
        local = LOCAL_BIN_DIR / name
        if local.is_file() and os.access(local, os.X_OK):
            return str(local)
    return None


def dir_on_path(directory: Path, path_env: str | None = None) -> bool:
    """Return True when *directory* is one of the entries of ``$PATH``."""
    if path_env is None:
        path_env = os.getenv("PATH", "")
    target = os.path.normpath(str(directory))
    return any(
        os.path.normpath(os.path.expanduser(p)) == target
        for p in path_env.split(os.pathsep)
        if p
    )
