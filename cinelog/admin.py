"""
Admin counters and snapshot deltas.

Each operator keeps exactly one previous snapshot. ``SnapshotStore.refresh``
computes the current counters, diffs them against that snapshot, then
overwrites it.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import func
from sqlalchemy.orm import Session

from .errors import write_op
from .models import Activity, Comment, Connection, LogEntry, MovieList, Review, StatsSnapshot, User
from .schemas import MetricChange, SnapshotReport

# counter prefix -> (model, creation timestamp column)
TRACKED = {
    "Users": (User, User.created_at),
    "Logs": (LogEntry, LogEntry.created_at),
    "Reviews": (Review, Review.created_at),
    "Lists": (MovieList, MovieList.created_at),
    "Comments": (Comment, Comment.created_at),
    "Connections": (Connection, Connection.created_at),
    "Activities": (Activity, Activity.created_at),
}


def compute_admin_counters(db: Session, now: datetime) -> dict:
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    start_of_week = start_of_day - timedelta(days=7)

    counters = {}
    for name, (model, created) in TRACKED.items():
        counters[f"total{name}"] = db.query(func.count()).select_from(model).scalar()
        counters[f"new{name}Today"] = db.query(func.count()).select_from(model).filter(created >= start_of_day).scalar()
        counters[f"new{name}ThisWeek"] = db.query(func.count()).select_from(model).filter(created >= start_of_week).scalar()
    return counters


def calculate_change(current: float, previous: float = None) -> MetricChange:
    if not previous:
        return MetricChange(
            value=current,
            percentage=100 if current > 0 else 0,
            trend="up" if current > 0 else "neutral",
        )
    change = current - previous
    return MetricChange(
        value=change,
        percentage=abs(change / previous * 100),
        trend="up" if change > 0 else "down" if change < 0 else "neutral",
    )


class SnapshotStore:
    def __init__(self, db: Session, clock: Callable[[], datetime] = datetime.utcnow):
        self.db = db
        self.clock = clock

    def load(self, operator_id: str):
        return self.db.get(StatsSnapshot, operator_id)

    def refresh(self, operator_id: str) -> SnapshotReport:
        return _refresh(self.db, operator_id, self.clock)


@write_op
def _refresh(db: Session, operator_id: str, clock) -> SnapshotReport:
    now = clock()
    current = compute_admin_counters(db, now)

    snapshot = db.get(StatsSnapshot, operator_id)
    previous = dict(snapshot.counters or {}) if snapshot else {}
    previous_at = snapshot.captured_at if snapshot else None

    changes = {}
    if snapshot:
        # Counters added since the last capture have nothing to compare against
        changes = {
            key: calculate_change(value, previous[key])
            for key, value in current.items() if key in previous
        }

    if snapshot is None:
        snapshot = StatsSnapshot(operator_id=operator_id)
        db.add(snapshot)
    snapshot.counters = current
    snapshot.captured_at = now

    logging.info(f"Admin snapshot for {operator_id} captured at {now.isoformat()}")
    return SnapshotReport(
        counters=current,
        captured_at=now,
        previous_captured_at=previous_at,
        changes=changes,
    )
