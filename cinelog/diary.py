"""Diary writes. Every write also appends to the activity index."""
import logging

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .activity import append_activity
from .errors import NotFoundError, read_op, write_op
from .models import LogEntry, SavedMovie, User
from .schemas import LogRequest

SAVED_KINDS = ("favorite", "watchlist")


@write_op
def record_log(db: Session, user_id: str, request: LogRequest, movie: dict = None) -> LogEntry:
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError(f"User {user_id} not found")

    snapshot = dict(movie or request.movie or {})
    snapshot.setdefault("id", request.movie_id)

    entry = LogEntry(
        user_id=user_id,
        movie_id=request.movie_id,
        media_type=request.media_type,
        movie=snapshot,
        watched_date=request.watched_date,
        rating=request.rating,
        review=request.review,
        tags=list(request.tags),
        visibility=request.visibility,
        is_rewatch=request.is_rewatch,
    )
    db.add(entry)

    # The event index is readable by anyone, so only public entries go in
    if request.visibility == "public":
        append_activity(
            db, user, "review" if request.review.strip() else "log",
            movie=snapshot,
            rating=request.rating or None,
            review_text=request.review or None,
        )
    db.flush()
    logging.info(f"User {user_id} logged '{snapshot.get('title', request.movie_id)}'")
    return entry


@write_op
def toggle_saved_movie(db: Session, user_id: str, kind: str, movie: dict) -> bool:
    """Add or remove a movie from favorites/watchlist. Returns the new state."""
    if kind not in SAVED_KINDS:
        raise ValueError(f"Unknown kind '{kind}'")
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError(f"User {user_id} not found")

    movie_id = movie["id"]
    saved_id = f"{kind}_{user_id}_{movie_id}"
    removed = db.execute(delete(SavedMovie).where(SavedMovie.id == saved_id)).rowcount
    if removed:
        return False

    try:
        db.add(SavedMovie(id=saved_id, kind=kind, user_id=user_id, movie_id=movie_id, movie=movie))
        append_activity(db, user, kind, movie=movie)
        db.flush()
    except IntegrityError:
        db.rollback()
        return True
    return True


@read_op(default=list)
def list_saved_movies(db: Session, user_id: str, kind: str) -> list[dict]:
    rows = db.query(SavedMovie).filter(
        SavedMovie.user_id == user_id, SavedMovie.kind == kind
    ).order_by(SavedMovie.added_at.desc()).all()
    return [r.movie for r in rows]


def toggle_favorite(db: Session, user_id: str, movie: dict) -> bool:
    return toggle_saved_movie(db, user_id, "favorite", movie)


def toggle_watchlist(db: Session, user_id: str, movie: dict) -> bool:
    return toggle_saved_movie(db, user_id, "watchlist", movie)
