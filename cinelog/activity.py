"""
Activity aggregation across many per-user streams.

Two sources feed the read side:

* ``log_entries`` rows, one stream per owner. The connection feed queries the
  peers in batches of ``FEED_BATCH_SIZE`` ids, each batch already ordered by
  watched date, and merges the batches itself.
* ``activities`` rows, an append-only event index written alongside every
  diary write (fan-out on write). The public feed reads only this table.

Ordering is watched date (or creation time for activities) descending, ties
broken by creation time then id, both descending, so truncation at ``limit``
is stable.
"""
import heapq
import logging
from datetime import datetime
from itertools import islice
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from . import config
from .errors import read_op
from .models import Activity, Connection, LogEntry, User, pair_id
from .schemas import FeedItem, LogOut

PUBLIC_LEVELS = ("public",)
CONNECTION_LEVELS = ("public", "followers")


def visible_levels(viewer_id: Optional[str], owner_id: str, is_connection: bool):
    """Visibility values a viewer may see on the owner's logs; None means all."""
    if viewer_id and viewer_id == owner_id:
        return None
    return CONNECTION_LEVELS if is_connection else PUBLIC_LEVELS


def append_activity(db: Session, owner: User, type: str, movie: dict = None, **fields) -> Activity:
    # Joins the caller's transaction; no commit here
    activity = Activity(
        user_id=owner.id,
        user_name=owner.display_name or "",
        user_photo=owner.photo_url or "",
        type=type,
        movie_id=(movie or {}).get("id"),
        movie=movie,
        **fields,
    )
    db.add(activity)
    return activity


def _feed_key(log: LogEntry):
    return (log.watched_date, log.created_at or datetime.min, log.id)


def _batches(items: list, size: int) -> Iterable[list]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


def _query_batch(db: Session, uids: list, limit: int) -> list:
    return db.query(LogEntry).filter(
        LogEntry.user_id.in_(uids),
        LogEntry.visibility.in_(CONNECTION_LEVELS),
    ).order_by(
        LogEntry.watched_date.desc(),
        LogEntry.created_at.desc(),
        LogEntry.id.desc(),
    ).limit(limit).all()


@read_op(default=list)
def get_connection_activity(db: Session, connection_uids: list, limit: int = 20,
                            batch_size: int = None) -> list[FeedItem]:
    """Merge the peers' logs into one feed, newest watched first."""
    uids = list(dict.fromkeys(connection_uids))
    if not uids or limit <= 0:
        return []
    batch_size = batch_size or config.FEED_BATCH_SIZE

    # Each batch is sorted the same way, so a k-way merge keeps the order
    streams = [_query_batch(db, batch, limit) for batch in _batches(uids, batch_size)]
    merged = list(islice(heapq.merge(*streams, key=_feed_key, reverse=True), limit))

    feed = []
    for log in merged:
        owner = db.get(User, log.user_id)
        feed.append(FeedItem(
            log=LogOut.model_validate(log),
            user_name=owner.display_name if owner else "",
            user_photo=(owner.photo_url or "") if owner else "",
            username=owner.username if owner else None,
        ))
    return feed


@read_op(default=list)
def get_recent_activities(db: Session, limit: int = 20) -> list[Activity]:
    return db.query(Activity).order_by(
        Activity.created_at.desc(), Activity.id.desc()
    ).limit(limit).all()


@read_op(default=list)
def get_user_activities(db: Session, user_id: str, limit: int = 20) -> list[Activity]:
    return db.query(Activity).filter(Activity.user_id == user_id).order_by(
        Activity.created_at.desc(), Activity.id.desc()
    ).limit(limit).all()


@read_op(default=list)
def get_user_logs(db: Session, owner_id: str, viewer_id: Optional[str] = None, limit: Optional[int] = 50) -> list[LogEntry]:
    """The owner's logs the viewer may see, newest watched first. ``limit=None`` returns all."""
    is_connection = bool(viewer_id) and db.get(Connection, pair_id(owner_id, viewer_id)) is not None
    levels = visible_levels(viewer_id, owner_id, is_connection)

    query = db.query(LogEntry).filter(LogEntry.user_id == owner_id)
    if levels is not None:
        query = query.filter(LogEntry.visibility.in_(levels))
    query = query.order_by(LogEntry.watched_date.desc(), LogEntry.created_at.desc())
    if limit:
        query = query.limit(limit)
    logs = query.all()
    logging.debug(f"Listed {len(logs)} logs of {owner_id} for viewer {viewer_id}")
    return logs
