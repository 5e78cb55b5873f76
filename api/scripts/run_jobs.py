import argparse
import logging
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from lonetown.config import LOG_LEVEL
from lonetown.database import SessionLocal, init_db
from lonetown.services.jobs import cleanup_expired_states, process_daily_matches


def main() -> None:
    parser = argparse.ArgumentParser(description="Run Lone Town scheduled match jobs")
    parser.add_argument("job", choices=["daily", "cleanup", "all"])
    parser.add_argument("--init-db", action="store_true", help="create missing tables first")
    args = parser.parse_args()

    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    if args.init_db:
        init_db()

    summaries = {}
    with SessionLocal() as db:
        # Cleanup first so freshly unfrozen users and expired pairs join the daily run.
        if args.job in {"cleanup", "all"}:
            summaries["cleanup"] = cleanup_expired_states(db)
        if args.job in {"daily", "all"}:
            summaries["daily"] = process_daily_matches(db)

    for job, summary in summaries.items():
        print(f"{job} completed")
        for k, v in summary.items():
            print(f"- {k}: {v}")


if __name__ == "__main__":
    main()
