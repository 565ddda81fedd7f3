#!/usr/bin/env python3
"""
Set up a workstation for the AWS Highspot MCP server, step by step.

Steps:
 1) Check Python 3.9+
 2) Install the uv package manager
 3) Install ChromeDriver matching the local Chrome
 4) Configure GitLab SSH access
 5) Run Midway authentication (mwinit)
 6) Write the MCP config for Kiro

Usage examples:
  python run_pipeline.py
  python run_pipeline.py --local --no-mwinit
  python run_pipeline.py --from-step 3 --to-step 3 --verify
  python run_pipeline.py --skip 5
  python run_pipeline.py --dry-run
"""

from __future__ import annotations

import argparse
import sys
from datetime import datetime

from setup_steps import (
    MWINIT_HINT,
    StepResult,
    check_python,
    configure_ssh,
    ensure_uv,
    run_mwinit,
    write_mcp_config,
)
from update_chromedriver import chromedriver_step
from utils import LOCAL_BIN_DIR, dir_on_path, print_info, print_status
from verify_chromedriver import verify_driver


def chromedriver(args) -> StepResult:
    outcome = chromedriver_step(use_local_bin=args.local)
    next_steps = []
    if outcome.ok and args.local and not dir_on_path(LOCAL_BIN_DIR):
        next_steps.append('Add to PATH: export PATH="$HOME/.local/bin:$PATH"')
    if outcome.ok and args.verify and outcome.path:
        if not verify_driver(str(outcome.path)):
            return StepResult(ok=False, message="ChromeDriver could not start Chrome", next_steps=next_steps)
    return StepResult(ok=outcome.ok, message=outcome.message, next_steps=next_steps)


# (description, callable, fatal)
STEPS = [
    ("Checking Python", lambda args: check_python(), True),
    ("Checking uv package manager", lambda args: ensure_uv(), False),
    ("Setting up ChromeDriver", chromedriver, False),
    ("Configuring GitLab SSH access", lambda args: configure_ssh(), False),
    ("Midway Authentication", lambda args: run_mwinit(skip=args.no_mwinit), False),
    ("Configuring MCP client", lambda args: write_mcp_config(), False),
]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="AWS Highspot MCP setup")
    parser.add_argument("--no-mwinit", action="store_true", help="Skip Midway authentication (run mwinit manually later)")
    parser.add_argument("--local", action="store_true", help="Install ChromeDriver to ~/.local/bin (no sudo required)")
    parser.add_argument("--verify", action="store_true", help="Start headless Chrome with the installed ChromeDriver")
    parser.add_argument("--from-step", type=int, default=1, help=f"Start at step N (1..{len(STEPS)})")
    parser.add_argument("--to-step", type=int, default=len(STEPS), help=f"Stop after step N (1..{len(STEPS)})")
    parser.add_argument("--skip", type=int, action="append", default=[], help="Step(s) to skip (repeatable)")
    parser.add_argument("--dry-run", action="store_true", help="Print the plan without running anything")
    return parser


def build_plan(from_step: int, to_step: int, skip: list[int]) -> list[tuple] | None:
    """Return ``(index, description, fn, fatal)`` tuples, or None for a bad range."""
    if from_step < 1 or to_step > len(STEPS) or from_step > to_step:
        return None
    plan = []
    for idx in range(from_step, to_step + 1):
        if idx in skip:
            continue
        plan.append((idx, *STEPS[idx - 1]))
    return plan


def run_step(idx: int, desc: str, fn, args) -> StepResult:
    print(f"\n=== ▶ Step {idx}: {desc}... ===")
    start = datetime.now()
    result = fn(args)
    dur = (datetime.now() - start).total_seconds()
    status = "✅ OK" if result.ok else "⚠️ Incomplete"
    print(f"--- {status} ({dur:.1f}s) ---")
    return result


def print_summary(next_steps: list[str]) -> None:
    print("")
    print("========================================")
    print("  Setup Complete!")
    print("========================================")
    if next_steps:
        print("\nNext steps:")
        for step in dict.fromkeys(next_steps):
            print_info(f"→ {step}")
    print("")
    print_info(f"Daily reminder: Run '{MWINIT_HINT}'")
    print_info("to refresh your Midway authentication token.")
    print("")
    print_status("You can now use AWS Highspot MCP in Kiro!")


def main(argv=None):
    args = build_parser().parse_args(argv)

    plan = build_plan(args.from_step, args.to_step, args.skip)
    if plan is None:
        print("❌ Invalid step range.")
        return 2
    if not plan:
        print("Nothing to run.")
        return 0

    print("Execution plan:")
    for idx, desc, _fn, _fatal in plan:
        print(f"  {idx}) {desc}")

    if args.dry_run:
        return 0

    next_steps = []
    for idx, desc, fn, fatal in plan:
        result = run_step(idx, desc, fn, args)
        next_steps.extend(result.next_steps)
        if not result.ok and fatal:
            print(f"Stopped on failure at step {idx}.")
            return 1

    print_summary(next_steps)
    return 0


if __name__ == "__main__":
    sys.exit(main())
