#!/usr/bin/env python3
"""Entry point: one harvest run. Exit code 0 on normal completion, 1 on abort."""
from __future__ import annotations

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from src.errors import HarvestAbort
from src.log import get_logger

log = get_logger(__name__)


def main() -> int:
    from src.harvester import run

    try:
        summary = asyncio.run(run())
    except HarvestAbort as exc:
        log.error("Run aborted (%s): %s — store left untouched", type(exc).__name__, exc)
        return 1
    except ValueError as exc:
        log.error("Configuration error: %s", exc)
        return 1

    log.info("  Pages crawled: %d (stopped: %s)", summary.pages, summary.termination)
    log.info("  Listings seen: %d", summary.seen)
    log.info("  New records: %d", summary.new)
    log.info("  Excluded: %d", summary.excluded)
    for label, count in sorted(summary.categories.items()):
        log.info("    %s: %d", label, count)
    log.info("  Store size: %d", summary.stored)
    return 0


if __name__ == "__main__":
    sys.exit(main())
