from __future__ import annotations

import argparse

from sqlmodel import Session

from app.db.base import get_engine, init_db
from app.services.guest_cleanup import cleanup_guest_sessions, find_stale_guest_sessions, guest_session_stats


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Delete guest study sessions that have not been touched within the retention window."
    )
    parser.add_argument("--retention-days", type=int, help="Override the configured retention window")
    parser.add_argument("--dry-run", action="store_true", help="Only list stale sessions, do not delete")
    parser.add_argument("--stats", action="store_true", help="Print guest session statistics and exit")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    init_db()
    with Session(get_engine()) as session:
        if args.stats:
            stats = guest_session_stats(session)
            print(
                f"Guest sessions: total={stats.total} active={stats.active} "
                f"abandoned={stats.abandoned} migrated={stats.migrated}"
            )
            return
        if args.dry_run:
            stale = find_stale_guest_sessions(session, retention_days=args.retention_days)
            if not stale:
                print("No stale guest sessions.")
                return
            for item in stale:
                print(f"[DRY RUN] Would delete guest session #{item.id} (last activity {item.last_activity_at})")
            return
        deleted = cleanup_guest_sessions(session, retention_days=args.retention_days)
        print(f"Deleted {deleted} stale guest session(s).")


if __name__ == "__main__":
    main()
