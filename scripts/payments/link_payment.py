"""Link an orphan gateway payment to the pending players it paid for.

Runs the same reconciliation as the admin endpoint, against the database in
the selected env file.

Usage examples:
  # Payment recorded by a callback that lost its enrollment data
  ENV_FILE=.env.prod python scripts/payments/link_payment.py --reference PF-123456

  # Payment never recorded: create it from the gateway dashboard values
  ENV_FILE=.env.prod python scripts/payments/link_payment.py \
      --reference 9F8E7D --amount 160 --method yappy

  # Re-run against a known payment row
  ENV_FILE=.env.prod python scripts/payments/link_payment.py --payment-id <uuid>
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
import uuid
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


async def _run(args: argparse.Namespace) -> int:
    from libs.common.logging import configure_logging
    from libs.db.config import AsyncSessionLocal
    from services.payments_service.models import PaymentMethod
    from services.payments_service.reconciliation import (
        ReconciliationOutcome,
        reconcile_payment,
    )

    configure_logging()

    async with AsyncSessionLocal() as session:
        result = await reconcile_payment(
            session,
            operation_reference=args.reference,
            amount=args.amount,
            payment_id=args.payment_id,
            method=PaymentMethod(args.method),
        )

    print(f"Outcome:         {result.outcome.value}")
    print(f"Payment:         {result.payment_id or '-'}")
    if result.payment_created:
        print("                 (payment row created)")
    if result.strategy:
        print(f"Strategy:        {result.strategy.value}")
    for player_id in result.pending_player_ids:
        print(f"Pending player:  {player_id}")
    if result.diagnostic:
        print(f"Note:            {result.diagnostic}")

    if result.outcome in (
        ReconciliationOutcome.LINKED,
        ReconciliationOutcome.ALREADY_LINKED,
    ):
        return 0
    return 1


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Link an unlinked payment to recently created pending players."
    )
    parser.add_argument("--reference", help="Gateway operation reference.")
    parser.add_argument("--amount", type=float, help="Confirmed amount.")
    parser.add_argument("--payment-id", type=uuid.UUID, help="Existing payment id.")
    parser.add_argument(
        "--method",
        default="paguelofacil",
        choices=["paguelofacil", "yappy"],
        help="Gateway used when a payment row has to be created.",
    )
    args = parser.parse_args()
    if not (args.reference or args.amount is not None or args.payment_id):
        parser.error("give --reference, --amount or --payment-id")

    _load_env_file()
    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
