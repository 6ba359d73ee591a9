import uuid
from datetime import datetime

from sqlalchemy import Column, Integer, Float, String, DateTime, Boolean, ForeignKey, JSON, Index

from .database import Base


def new_id():
    return uuid.uuid4().hex


def pair_id(uid_a, uid_b):
    """Deterministic id for an unordered pair of users."""
    return "_".join(sorted([uid_a, uid_b]))


def ledger_id(entity_id, user_id):
    return f"{entity_id}_{user_id}"


class User(Base):
    __tablename__ = "users"
    id = Column(String, primary_key=True)  # auth provider uid
    email = Column(String, index=True)
    display_name = Column(String, default="")
    username = Column(String, unique=True, index=True, nullable=True)  # always lowercase
    photo_url = Column(String, default="")
    bio = Column(String, default="")
    is_public = Column(Boolean, default=True)
    top5 = Column(JSON, default=list)  # movie snapshots
    created_at = Column(DateTime, default=datetime.utcnow)


class UsernameReservation(Base):
    __tablename__ = "usernames"
    username = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class ConnectionRequest(Base):
    __tablename__ = "connection_requests"
    id = Column(String, primary_key=True)  # pair_id(from, to)
    from_user_id = Column(String, ForeignKey("users.id"), index=True)
    to_user_id = Column(String, ForeignKey("users.id"), index=True)
    status = Column(String, default="pending")
    created_at = Column(DateTime, default=datetime.utcnow)


class Connection(Base):
    __tablename__ = "connections"
    id = Column(String, primary_key=True)  # pair_id(a, b)
    user_a = Column(String, ForeignKey("users.id"), index=True)
    user_b = Column(String, ForeignKey("users.id"), index=True)
    status = Column(String, default="accepted")
    created_at = Column(DateTime, default=datetime.utcnow)


class LogEntry(Base):
    __tablename__ = "log_entries"
    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id"), index=True)
    movie_id = Column(Integer, index=True)  # external catalog id
    media_type = Column(String, default="movie")  # 'movie' or 'tv'
    movie = Column(JSON, default=dict)  # title, year, posterUrl, runtime, genres, director, countries
    watched_date = Column(DateTime, index=True)
    rating = Column(Float, default=0)  # 0 = unrated, half stars allowed
    review = Column(String, default="")
    tags = Column(JSON, default=list)
    visibility = Column(String, default="public")  # 'private', 'followers', 'public'
    is_rewatch = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_log_entries_owner_watched", "user_id", "watched_date"),
    )


class Review(Base):
    __tablename__ = "reviews"
    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id"), index=True)
    movie_id = Column(Integer, index=True)
    movie_title = Column(String, default="")
    media_type = Column(String, default="movie")
    rating = Column(Float, default=0)
    text = Column(String, default="")
    spoiler = Column(Boolean, default=False)
    like_count = Column(Integer, default=0, nullable=False)
    comment_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class MovieList(Base):
    __tablename__ = "lists"
    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id"), index=True)
    name = Column(String)
    description = Column(String, default="")
    visibility = Column(String, default="public")
    movies = Column(JSON, default=list)
    like_count = Column(Integer, default=0, nullable=False)
    save_count = Column(Integer, default=0, nullable=False)
    comment_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Comment(Base):
    __tablename__ = "comments"
    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id"), index=True)
    parent_type = Column(String)  # 'review' or 'list'
    parent_id = Column(String, index=True)
    text = Column(String)
    spoiler = Column(Boolean, default=False)
    like_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class LikeRecord(Base):
    __tablename__ = "likes"
    id = Column(String, primary_key=True)  # ledger_id(entity, user)
    entity_type = Column(String)  # 'review', 'comment', 'list'
    entity_id = Column(String, index=True)
    user_id = Column(String, ForeignKey("users.id"), index=True)
    owner_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class ListSave(Base):
    __tablename__ = "list_saves"
    id = Column(String, primary_key=True)  # ledger_id(list, user)
    list_id = Column(String, index=True)
    user_id = Column(String, ForeignKey("users.id"), index=True)
    owner_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class SavedMovie(Base):
    """Favorites and watchlist, keyed by the external movie id per user."""
    __tablename__ = "saved_movies"
    id = Column(String, primary_key=True)  # "{kind}_{user}_{movie}"
    kind = Column(String)  # 'favorite' or 'watchlist'
    user_id = Column(String, ForeignKey("users.id"), index=True)
    movie_id = Column(Integer)
    movie = Column(JSON, default=dict)
    added_at = Column(DateTime, default=datetime.utcnow)


class Activity(Base):
    __tablename__ = "activities"
    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id"), index=True)
    user_name = Column(String, default="")
    user_photo = Column(String, default="")
    type = Column(String)  # 'log', 'review', 'watchlist', 'favorite', 'connection'
    movie_id = Column(Integer, nullable=True)
    movie = Column(JSON, nullable=True)
    rating = Column(Float, nullable=True)
    review_text = Column(String, nullable=True)
    connected_user_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


class Notification(Base):
    __tablename__ = "notifications"
    id = Column(String, primary_key=True, default=new_id)
    recipient_id = Column(String, ForeignKey("users.id"), index=True)
    sender_id = Column(String)
    sender_name = Column(String, default="")
    type = Column(String)  # 'like_review', 'save_list', 'connection_request', ...
    ref_id = Column(String, nullable=True)
    text = Column(String, nullable=True)
    read = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class StatsSnapshot(Base):
    __tablename__ = "stats_snapshots"
    operator_id = Column(String, primary_key=True)
    counters = Column(JSON, default=dict)
    captured_at = Column(DateTime)
