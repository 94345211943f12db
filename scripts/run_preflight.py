#!/usr/bin/env python3
"""Standalone script for running Azure Arc prerequisite checks.

Equivalent to ``arc-onboarding check`` for use without installing the
package, e.g. from a management server's scheduled task.

Usage:
    python scripts/run_preflight.py --devices-file servers.txt [options]

Exit Codes:
    0   Ready or ready with minor items
    1   Partially ready, not ready or no results
    2   Invalid arguments or internal error
"""

import asyncio
import sys
from pathlib import Path

# Add the parent directory to the path for imports
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from arc_onboarding.cli import async_main  # noqa: E402


def main() -> int:
    """Main entry point."""
    return asyncio.run(async_main(["check", *sys.argv[1:]]))


if __name__ == "__main__":
    sys.exit(main())
