"""
Mimic command line

Usage:
    mimic run <test-file> [--troubleshoot] [--headed] [--base-url URL] [--verbose]
    mimic show <test-file>

Examples:
    mimic run tests/login.mimic.txt --base-url https://www.saucedemo.com
    MIMIC_TROUBLESHOOT=1 mimic run tests/login.mimic.txt
    mimic show tests/login.mimic.txt
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from playwright.async_api import async_playwright

from .config import MimicConfig
from .errors import MimicError
from .runner import create_brain, load_test_file, run_mimic
from .snapshot.store import SnapshotStore

# Configure logging
logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False):
    level_name = "DEBUG" if verbose else os.getenv("MIMIC_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


async def run_file(
    test_file: Path,
    config: MimicConfig,
    headed: bool = False,
    base_url: Optional[str] = None
) -> int:
    """Run every test in a file, each on a fresh page. Returns the number of failures."""
    tests = load_test_file(test_file)
    if not tests:
        print(f"No tests found in {test_file}")
        return 0

    brain = create_brain(config)
    failures = 0

    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=not headed)
        try:
            for test in tests:
                context = await browser.new_context()
                page = await context.new_page()
                try:
                    result = await run_mimic(
                        page,
                        test.text,
                        test_file_path=test_file,
                        brain=brain,
                        config=config,
                        test_name=test.name,
                        base_url=base_url
                    )
                    source = "snapshot" if result.snapshot_used else "regenerated"
                    print(f"PASS  {test.name} ({result.steps_executed} steps, {source}, "
                          f"{result.model_calls} model calls)")
                except (MimicError, AssertionError) as e:
                    failures += 1
                    print(f"FAIL  {test.name}\n{e}")
                finally:
                    await context.close()
        finally:
            await browser.close()

    print(f"\n{len(tests) - failures} passed, {failures} failed")
    print(f"Tokens: {json.dumps(brain.token_usage)}")
    return failures


async def show_file(test_file: Path, config: MimicConfig) -> int:
    store = SnapshotStore(test_file, config.snapshot_dir_name)
    snapshots = await store.list_snapshots()
    if not snapshots:
        print(f"No snapshots for {test_file} ({store.file_path})")
        return 0

    for snapshot in snapshots:
        flags = snapshot.flags
        print(f"{snapshot.test_name or snapshot.test_fingerprint} [{snapshot.test_fingerprint}]")
        print(f"  created {flags.created_at}, last passed {flags.last_passed_at}, "
              f"last failed {flags.last_failed_at}")
        if flags.failure_details:
            print(f"  failure: {flags.failure_details.error}")
        for step in snapshot.ordered_steps():
            print(f"  {step.step_index + 1}. [{step.action_kind}] {step.step_text}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mimic",
        description="Run natural-language browser tests with snapshot replay"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Debug logging (overrides MIMIC_LOG_LEVEL)"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run the tests in a file")
    run_parser.add_argument("test_file", type=Path, help="Test file, one step per line")
    run_parser.add_argument(
        "--troubleshoot",
        action="store_true",
        help="Troubleshoot mode (also MIMIC_TROUBLESHOOT=true)"
    )
    run_parser.add_argument("--headed", action="store_true", help="Show the browser window")
    run_parser.add_argument("--base-url", help="Prefix for relative URLs in navigation steps")

    show_parser = subparsers.add_parser("show", help="Print stored snapshots for a test file")
    show_parser.add_argument("test_file", type=Path, help="Test file")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    config = MimicConfig.from_env()
    if args.command == "run" and args.troubleshoot:
        config.troubleshoot_mode = True

    if not args.test_file.exists():
        print(f"Test file not found: {args.test_file}", file=sys.stderr)
        return 2

    if args.command == "show":
        return asyncio.run(show_file(args.test_file, config))

    failures = asyncio.run(run_file(args.test_file, config, headed=args.headed, base_url=args.base_url))
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
