#!/usr/bin/env python3
"""
Schedule the daily harvest in the user's crontab.
Run once (again after changing HARVEST_RUN_HOUR in .env): python setup_cron.py
"""
from __future__ import annotations

import os
import subprocess
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parent
load_dotenv(ROOT / ".env")

MARKER = "run_harvester.py"


def build_entry(root: Path, hour: int, python: Path) -> str:
    run_script = root / MARKER
    log_file = root / "logs" / "cron.log"
    return f"0 {hour} * * * cd {root} && {python} {run_script} >> {log_file} 2>&1"


def merge_crontab(existing: str, entry: str, root: Path) -> str:
    """Crontab text with this checkout's harvester line set to *entry*.

    Lines for other jobs (and for harvesters in other checkouts) are kept.
    """
    own_script = str(root / MARKER)
    kept = [line for line in existing.splitlines() if own_script not in line]
    return "\n".join([*kept, entry]).strip() + "\n"


def _read_crontab() -> str:
    out = subprocess.run(["crontab", "-l"], capture_output=True, text=True, timeout=5)
    # "no crontab for <user>" exits non-zero; treat as empty.
    return out.stdout if out.returncode == 0 else ""


def _fallback(content: str, reason: str) -> int:
    path = ROOT / "crontab.txt"
    path.write_text(content, encoding="utf-8")
    print(f"{reason}. Wrote {path}; install it with:")
    print(f"  crontab {path}")
    return 1


def main() -> int:
    hour = int(os.environ.get("HARVEST_RUN_HOUR", "7"))
    if not 0 <= hour <= 23:
        print(f"HARVEST_RUN_HOUR must be 0-23, got {hour}")
        return 1
    python = ROOT / ".venv" / "bin" / "python"
    if not python.exists():
        print("No .venv found. Create it first: python -m venv .venv && .venv/bin/pip install -e .")
        return 1

    entry = build_entry(ROOT, hour, python)
    try:
        existing = _read_crontab()
    except FileNotFoundError:
        return _fallback(entry + "\n", "crontab is not available on this system")
    except subprocess.TimeoutExpired:
        return _fallback(entry + "\n", "Reading the crontab timed out")

    updated = merge_crontab(existing, entry, ROOT)
    if updated.strip() == existing.strip():
        print("Harvest already scheduled; crontab unchanged.")
        return 0
    try:
        proc = subprocess.run(["crontab", "-"], input=updated, capture_output=True, text=True, timeout=5)
    except subprocess.TimeoutExpired:
        return _fallback(updated, "Writing the crontab timed out")
    if proc.returncode != 0:
        return _fallback(updated, f"crontab rejected the update ({proc.stderr.strip()})")

    print(f"Harvest scheduled daily at {hour:02d}:00")
    print(f"  {entry}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
