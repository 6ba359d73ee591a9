"""
Viewing statistics derived from already-fetched log entries. No I/O.

Logs only need ``watched_date``, ``rating`` and a ``movie`` snapshot dict
(``runtime``, ``genres``, ``director``, ``countries``), so ORM rows and plain
objects work alike.
"""
import math
from collections import Counter
from datetime import date, datetime
from typing import Iterable, Optional

from .schemas import MonthCount, NamedCount, Stats

MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def _as_date(value) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value)).date()


def _top(counter: Counter, n: int) -> list:
    # most_common is a stable sort: equal counts keep first-seen order
    return [NamedCount(name=name, count=count) for name, count in counter.most_common(n)]


def compute_stats(logs: Iterable, lists_count: int = 0, today: date = None) -> Stats:
    logs = list(logs)
    today = today or date.today()

    watched_dates = [_as_date(log.watched_date) for log in logs]
    this_year = [d for d in watched_dates if d and d.year == today.year]

    ratings = [log.rating for log in logs if (log.rating or 0) > 0]
    # Half up, not round-half-even
    avg_rating = math.floor(sum(ratings) / len(ratings) * 10 + 0.5) / 10 if ratings else 0

    genre_counts = Counter()
    director_counts = Counter()
    country_counts = Counter()
    total_minutes = 0

    for log in logs:
        movie = log.movie or {}
        total_minutes += movie.get("runtime") or 0
        for g in movie.get("genres") or []:
            genre_counts[g] += 1
        if movie.get("director"):
            director_counts[movie["director"]] += 1
        for c in movie.get("countries") or []:
            country_counts[c] += 1

    films_per_month = [0] * 12
    for d in this_year:
        films_per_month[d.month - 1] += 1

    return Stats(
        total_watched=len(logs),
        this_year_watched=len(this_year),
        avg_rating=avg_rating,
        # Half rounds up
        total_hours=math.floor(total_minutes / 60 + 0.5),
        top_genres=_top(genre_counts, 5),
        top_directors=_top(director_counts, 5),
        top_countries=_top(country_counts, 10),
        films_per_month=[MonthCount(month=m, films=n) for m, n in zip(MONTHS, films_per_month)],
        lists=lists_count,
        streak=compute_streak(logs, today=today),
    )


def compute_streak(logs: Iterable, today: date = None) -> int:
    """
    Consecutive days with at least one log, counting back from today.

    Strict: the streak is 0 unless something was logged today, and the first
    missing day ends it. Several logs on one day count once. Logs dated in
    the future are ignored.
    """
    today = today or date.today()
    days = sorted({_as_date(log.watched_date) for log in logs if log.watched_date}, reverse=True)

    streak = 0
    for day in days:
        offset = (today - day).days
        if offset < 0:
            continue
        if offset != streak:
            break
        streak += 1
    return streak
