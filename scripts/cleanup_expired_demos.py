"""
Delete demo accounts whose demo period has ended.

Removes each account's Vapi assistants and phone numbers, then the account
and all of its rows. Meant to run from cron.

Usage:
  python scripts/cleanup_expired_demos.py
  python scripts/cleanup_expired_demos.py --dry-run
"""

from __future__ import annotations

import argparse
import asyncio
from datetime import datetime, timezone

from voicematrix.config import get_settings
from voicematrix.utils.logging import mask_account_id, setup_logging

from app.dependencies import build_container


async def run(dry_run: bool) -> int:
    settings = get_settings()
    container = await build_container(settings)
    try:
        if dry_run:
            now = datetime.now(timezone.utc)
            expired = await container.storage.list_expired_demo_accounts(now)
            for account in expired:
                print(f"would purge {mask_account_id(account.id)}")
            print(f"{len(expired)} expired demo account(s)")
            return 0

        purged = await container.demo_accounts.purge_expired_accounts()
        print(f"purged {len(purged)} expired demo account(s)")
        return 0
    finally:
        await container.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Purge expired demo accounts")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List expired accounts without deleting anything",
    )
    args = parser.parse_args()

    setup_logging(service_name="voice-matrix-cleanup")
    return asyncio.run(run(args.dry_run))


if __name__ == "__main__":
    raise SystemExit(main())
