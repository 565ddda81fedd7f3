"""Bootstrap steps around the ChromeDriver install.

Every step prints its own status and returns a :class:`StepResult`; only
the Python check is meant to stop the pipeline.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from shutil import which

import requests

from utils import LOCAL_BIN_DIR, load_env_file, print_error, print_info, print_status, print_warning

load_env_file()

MIN_PYTHON = (3, 9)
UV_INSTALL_URL = "https://astral.sh/uv/install.sh"

GITLAB_SSH_HOST = "ssh.gitlab.aws.dev"
SSH_KEY_NAME = "id_ecdsa"
SSH_CONFIG_BLOCK = f"""
Host {GITLAB_SSH_HOST}
  User git
  IdentityFile ~/.ssh/id_ecdsa
  CertificateFile ~/.ssh/id_ecdsa-cert.pub
  IdentitiesOnly yes
  ProxyCommand none
  ProxyJump none
"""

MCP_SERVER_NAME = "aws_highspot_mcp"
HIGHSPOT_MCP_REPO = os.getenv(
    "HIGHSPOT_MCP_REPO", "git+ssh://git@ssh.gitlab.aws.dev/yunqic/aws-highspot-mcp.git@main"
)
MWINIT_HINT = "mwinit -f -k ~/.ssh/id_ecdsa.pub"


@dataclass
class StepResult:
    ok: bool
    message: str = ""
    next_steps: list[str] = field(default_factory=list)


def default_ssh_dir() -> Path:
    return Path.home() / ".ssh"


def default_kiro_dir() -> Path:
    return Path.home() / ".kiro" / "settings"


# ----------------------
# Step 1: Python
# ----------------------
def python_install_hints(os_name: str) -> list[str]:
    if os_name == "darwin":
        return [
            "Mac: brew install python@3.12",
            "  or download from https://www.python.org/downloads/",
        ]
    return [
        "Ubuntu/Debian: sudo apt update && sudo apt install python3.12",
        "Amazon Linux/RHEL: sudo yum install python3.12",
        "  or download from https://www.python.org/downloads/",
    ]


def check_python(version_info=None, os_name: str | None = None) -> StepResult:
    version_info = version_info or sys.version_info
    os_name = os_name or sys.platform
    found = f"{version_info[0]}.{version_info[1]}"
    if tuple(version_info[:2]) >= MIN_PYTHON:
        print_status(f"Python {found} found")
        return StepResult(ok=True, message=found)

    print_error(f"Python {MIN_PYTHON[0]}.{MIN_PYTHON[1]}+ required, found {found}")
    print_info("Please upgrade Python and run this again.")
    for hint in python_install_hints(os_name):
        print_info(hint)
    return StepResult(ok=False, message=f"Python {found} is too old")


# ----------------------
# Step 2: uv
# ----------------------
def ensure_uv() -> StepResult:
    uv = which("uv")
    if uv:
        try:
            proc = subprocess.run([uv, "--version"], capture_output=True, text=True, check=False)
            version = proc.stdout.strip()
        except OSError:
            version = uv
        print_status(f"uv already installed: {version}")
        return StepResult(ok=True, message=version)

    print_warning("uv not found, installing...")
    try:
        resp = requests.get(UV_INSTALL_URL, timeout=60)
        resp.raise_for_status()
        subprocess.run(["sh"], input=resp.text, text=True, check=True)
    except requests.RequestException as e:
        print_error(f"Could not download the uv installer: {e}")
        return StepResult(ok=False, message=str(e), next_steps=[f"Install uv: curl -LsSf {UV_INSTALL_URL} | sh"])
    except (OSError, subprocess.CalledProcessError) as e:
        print_error(f"uv installer failed: {e}")
        return StepResult(ok=False, message=str(e), next_steps=[f"Install uv: curl -LsSf {UV_INSTALL_URL} | sh"])

    # the installer drops uv into ~/.local/bin
    os.environ["PATH"] = f"{LOCAL_BIN_DIR}{os.pathsep}{os.environ.get('PATH', '')}"
    print_status("uv installed")
    return StepResult(ok=True, message="installed")


# ----------------------
# Step 4: GitLab SSH
# ----------------------
def ensure_ssh_key(ssh_dir: Path) -> bool:
    """Generate the ECDSA key if missing. Returns True when a key was created."""
    key = ssh_dir / SSH_KEY_NAME
    if key.is_file():
        print_status("SSH key already exists")
        return False
    print_info("Generating SSH key...")
    ssh_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    subprocess.run(["ssh-keygen", "-t", "ecdsa", "-f", str(key), "-N", "", "-q"], check=True)
    print_status("SSH key generated")
    return True


def ensure_ssh_config(ssh_dir: Path) -> bool:
    """Append the GitLab host block unless present. Returns True when written."""
    config = ssh_dir / "config"
    existing = config.read_text(encoding="utf-8") if config.is_file() else ""
    if GITLAB_SSH_HOST in existing:
        print_status("GitLab SSH config already exists")
        return False
    print_info("Adding GitLab config to ~/.ssh/config...")
    ssh_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    with open(config, "a", encoding="utf-8") as f:
        f.write(SSH_CONFIG_BLOCK)
    print_status("GitLab SSH config added")
    return True


def configure_ssh(ssh_dir: Path | None = None) -> StepResult:
    ssh_dir = Path(ssh_dir) if ssh_dir else default_ssh_dir()
    try:
        ensure_ssh_key(ssh_dir)
        ensure_ssh_config(ssh_dir)
    except (OSError, subprocess.CalledProcessError) as e:
        print_error(f"SSH setup failed: {e}")
        return StepResult(ok=False, message=str(e))
    return StepResult(ok=True)


# ----------------------
# Step 5: Midway
# ----------------------
def run_mwinit(skip: bool = False, interactive: bool | None = None, ssh_dir: Path | None = None) -> StepResult:
    if interactive is None:
        interactive = sys.stdin.isatty()
    if skip:
        print_warning("Skipping mwinit (--no-mwinit specified)")
        print_info(f"Run manually: {MWINIT_HINT}")
        return StepResult(ok=True, message="skipped", next_steps=[f"Run: {MWINIT_HINT}"])

    mwinit = which("mwinit")
    if not mwinit:
        print_warning("mwinit not found - please run manually after installing")
        return StepResult(ok=False, message="mwinit not found", next_steps=[f"Run: {MWINIT_HINT}"])

    if not interactive:
        print_warning("Skipping mwinit (stdin not interactive)")
        print_info(f"Run manually: {MWINIT_HINT}")
        return StepResult(ok=True, message="skipped", next_steps=[f"Run: {MWINIT_HINT}"])

    pub = str((Path(ssh_dir) if ssh_dir else default_ssh_dir()) / f"{SSH_KEY_NAME}.pub")
    print_info("Running mwinit (follow the prompts)...")
    try:
        code = subprocess.run([mwinit, "-f", "-k", pub], check=False).returncode
        if code != 0:
            code = subprocess.run([mwinit, "-k", pub], check=False).returncode
    except OSError as e:
        print_error(f"mwinit failed: {e}")
        return StepResult(ok=False, message=str(e), next_steps=[f"Run: {MWINIT_HINT}"])
    if code != 0:
        print_error(f"mwinit exited with {code}")
        return StepResult(ok=False, message=f"exit {code}", next_steps=[f"Run: {MWINIT_HINT}"])
    print_status("Midway authentication complete")
    return StepResult(ok=True)


# ----------------------
# Step 6: MCP config
# ----------------------
def mcp_server_config(repo: str = HIGHSPOT_MCP_REPO) -> dict:
    return {
        "type": "stdio",
        "command": "uvx",
        "args": ["--from", repo, "highspot-mcp"],
        "TIMEOUT": 120000,
        "disabled": False,
    }


def write_mcp_config(kiro_dir: Path | None = None, repo: str = HIGHSPOT_MCP_REPO) -> StepResult:
    """Add the Highspot server to Kiro's ``mcp.json``, keeping other servers."""
    kiro_dir = Path(kiro_dir) if kiro_dir else default_kiro_dir()
    if not kiro_dir.parent.is_dir():
        print_info("Kiro not detected, creating config anyway...")
    config_path = kiro_dir / "mcp.json"

    data = {}
    if config_path.is_file():
        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            print_warning(f"Replacing unreadable {config_path}: {e}")
            data = {}
        if not isinstance(data, dict):
            data = {}
    servers = data.get("mcpServers")
    if not isinstance(servers, dict):
        servers = {}
    servers[MCP_SERVER_NAME] = mcp_server_config(repo)
    data["mcpServers"] = servers

    try:
        kiro_dir.mkdir(parents=True, exist_ok=True)
        config_path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    except OSError as e:
        print_error(f"Could not write {config_path}: {e}")
        return StepResult(ok=False, message=str(e))
    print_status(f"Kiro MCP config created at {config_path}")
    return StepResult(ok=True, message=str(config_path))
