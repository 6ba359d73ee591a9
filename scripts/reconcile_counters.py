"""
Recount like/save/comment counters from the ledger tables.
Run after restoring a backup or whenever counters look off.
"""
import logging

from cinelog.database import SessionLocal, init_db
from cinelog.maintenance import reconcile_counters

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(message)s')


def main():
    print("Reconciling engagement counters...")
    init_db()
    db = SessionLocal()
    try:
        fixed = reconcile_counters(db)
        for key, count in fixed.items():
            print(f"  {key}: {count} rows fixed")
        print("Done.")
    except Exception as e:
        print(f"Error during reconciliation: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
