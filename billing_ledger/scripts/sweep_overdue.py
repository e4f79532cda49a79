"""
Mark pending billing records as overdue for every active billing config whose end_date has passed.

Run daily (idempotent): records already overdue, partial or completed are left alone.
Usage: python -m billing_ledger.scripts.sweep_overdue [--date YYYY-MM-DD]
"""

import argparse
import asyncio
from datetime import date
from typing import Optional

# Ensure all models are loaded so ORM relationships resolve
from billing_ledger.core import models  # noqa: F401
from billing_ledger.api.v1.billing.service import sweep_all_expired
from billing_ledger.core.config import settings
from billing_ledger.core.logging_config import configure_logging
from billing_ledger.db.session import AsyncSessionLocal


async def run_sweep(today: Optional[date] = None) -> int:
    """Sweep all expired configs. Returns the number of records moved to overdue."""
    async with AsyncSessionLocal() as session:
        result = await sweep_all_expired(session, today=today)

    if not result.swept_configs:
        print("No expired billing configs found. Exiting.")
        return 0

    for r in result.results:
        if r.updated_count:
            print(f"  config {r.billing_config_id}: {r.updated_count} record(s) -> overdue")
    print(f"Done. Checked {result.swept_configs} config(s), marked {result.updated_count} record(s) overdue.")
    return result.updated_count


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Mark expired pending billing records as overdue.")
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Evaluate as of this date (YYYY-MM-DD). Defaults to today.",
    )
    args = parser.parse_args(argv)
    configure_logging(settings.log_level, settings.log_json)
    asyncio.run(run_sweep(args.date))


if __name__ == "__main__":
    main()
