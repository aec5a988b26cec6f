"""Process the email queue once, outside the ARQ schedule.

Usage examples:
  ENV_FILE=.env.prod python scripts/email/process_queue.py

  # Show counts only
  ENV_FILE=.env.prod python scripts/email/process_queue.py --status
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(PROJECT_ROOT))


def _load_env_file() -> None:
    env_file = os.environ.get("ENV_FILE", ".env")
    env_path = (PROJECT_ROOT / env_file).resolve()
    if not env_path.exists():
        if os.environ.get("DATABASE_URL"):
            print(f"Env file not found at {env_path}; using existing environment vars.")
            return
        raise FileNotFoundError(f"Env file not found: {env_path}")
    load_dotenv(env_path, override=True)


async def _print_status() -> None:
    from libs.db.config import AsyncSessionLocal
    from services.communications_service.queue import get_queue_status

    async with AsyncSessionLocal() as session:
        status = await get_queue_status(session)
    print(f"Pending:    {status.pending}")
    print(f"Sent:       {status.sent} ({status.sent_today} today)")
    print(f"Failed:     {status.failed}")
    print(f"Remaining:  {status.remaining_today} of {status.daily_limit} today")


async def _process(daily_limit: int | None) -> None:
    from libs.common.logging import configure_logging
    from services.communications_service.tasks import process_queue_once

    configure_logging()
    result = await process_queue_once(daily_limit=daily_limit)
    print(
        f"Sent {len(result.sent)}, failed {len(result.failed)} "
        f"(allowance before run: {result.remaining_before})"
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the email dispatch queue once.")
    parser.add_argument(
        "--status", action="store_true", help="Print queue counts and exit."
    )
    parser.add_argument(
        "--daily-limit",
        type=int,
        default=None,
        help="Override EMAIL_DAILY_LIMIT for this run.",
    )
    args = parser.parse_args()

    _load_env_file()
    if args.status:
        asyncio.run(_print_status())
        return
    asyncio.run(_process(args.daily_limit))


if __name__ == "__main__":
    main()
