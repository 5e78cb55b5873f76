import argparse
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from lonetown.database import SessionLocal, init_db
from lonetown.services.seeding import seed_dummy_data


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed dummy Lone Town users")
    parser.add_argument("--n-users", type=int, default=100)
    parser.add_argument("--reset", action="store_true")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--clustered", action="store_true")
    parser.add_argument("--unassessed-ratio", type=float, default=0.0)
    parser.add_argument("--init-db", action="store_true", help="create missing tables first")
    args = parser.parse_args()

    if args.init_db:
        init_db()
    with SessionLocal() as db:
        summary = seed_dummy_data(
            db=db,
            n_users=args.n_users,
            reset=args.reset,
            seed=args.seed,
            clustered=args.clustered,
            unassessed_ratio=args.unassessed_ratio,
        )

    print("Seed completed")
    for k, v in summary.items():
        print(f"- {k}: {v}")


if __name__ == "__main__":
    main()
