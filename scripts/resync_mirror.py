#!/usr/bin/env python3
"""
Key Hub Mirror Resync

Pushes every API key that has no realtime mirror id (a create whose mirror
push or link failed) and stores the returned id.

Usage:
    # Resync all unlinked keys
    python3 scripts/resync_mirror.py

    # Only list what would be pushed
    python3 scripts/resync_mirror.py --dry-run

    # Verbose logging
    python3 scripts/resync_mirror.py --verbose
"""

import argparse
import asyncio
import logging
import sys

from app.db.session import close_engine, get_session
from app.observability import get_logger, setup_logging
from app.services.key_registry import KeyRegistry
from app.services.mirror import close_mirror_sync, get_mirror_sync

logger = get_logger("resync_mirror")


async def resync(dry_run: bool) -> bool:
    """Run one resync pass; True when every unlinked key was linked."""
    mirror = get_mirror_sync()
    if not mirror.enabled:
        logger.error("mirror_not_configured", hint="set MIRROR_URL")
        return False

    try:
        async with get_session() as session:
            registry = KeyRegistry(session)

            if dry_run:
                records = await registry.list_unlinked()
                for record in records:
                    logger.info(
                        "would_push", key_id=str(record.id), tool_name=record.tool_name
                    )
                logger.info("dry_run_complete", unlinked=len(records))
                return True

            report = await mirror.resync(registry)
            return report.failed == 0
    finally:
        await close_mirror_sync()
        await close_engine()


def main():
    parser = argparse.ArgumentParser(
        description="Push unlinked API keys to the realtime mirror",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Resync all unlinked keys
  python3 scripts/resync_mirror.py

  # Show what would be pushed
  python3 scripts/resync_mirror.py --dry-run --verbose
        """,
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="Don't push, just list unlinked keys"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    setup_logging()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    success = asyncio.run(resync(dry_run=args.dry_run))

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
