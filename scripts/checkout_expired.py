"""Close expired attendance sessions; meant to run from cron."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from src.clockin.clockin.core.constants import DEFAULT_CHECKOUT_BATCH_LIMIT
from src.clockin.clockin.main import create_app, get_container


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Auto check-out sessions whose expected check-out time has passed",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/checkout_expired.py                      # default tenant, every model
  python scripts/checkout_expired.py --tenant gym-1 --target-model Member
  python scripts/checkout_expired.py --dry-run            # report what would be closed
        """,
    )
    parser.add_argument("--tenant", "-t", type=str, help="Tenant id (default: DEFAULT_TENANT_ID)")
    parser.add_argument("--target-model", "-m", type=str, help="Only sweep this target model")
    parser.add_argument("--dry-run", "-n", action="store_true", help="Only count expired sessions, close nothing")
    parser.add_argument(
        "--limit",
        "-l",
        type=int,
        default=DEFAULT_CHECKOUT_BATCH_LIMIT,
        help=f"Max sessions per run (default: {DEFAULT_CHECKOUT_BATCH_LIMIT})",
    )
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        container = get_container(app)
        result = container.session_tracker.checkout_expired(
            args.tenant or app.config["DEFAULT_TENANT_ID"],
            target_model=args.target_model,
            limit=args.limit,
            dry_run=args.dry_run,
        )
        container.dispatcher.drain()
    print(json.dumps(result.to_dict(), indent=2))
    return 1 if result.failed else 0


if __name__ == "__main__":
    sys.exit(main())
