"""
Request payloads and result shapes.

ORM rows are converted with ``model_validate(row)`` (``from_attributes``).
"""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Visibility = Literal["private", "followers", "public"]
EntityType = Literal["review", "comment", "list"]


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# --- Identity ---
class UserOut(ORMModel):
    id: str
    display_name: str = ""
    username: Optional[str] = None
    photo_url: Optional[str] = ""
    bio: Optional[str] = ""
    is_public: bool = True
    top5: Optional[list] = Field(default_factory=list)


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = None
    bio: Optional[str] = None
    photo_url: Optional[str] = None
    is_public: Optional[bool] = None
    top5: Optional[list[dict]] = Field(None, max_length=5)


class UsernameRequest(BaseModel):
    username: str


class GoogleAuthRequest(BaseModel):
    credential: str  # Google ID Token


# --- Connections ---
class ConnectionStatus(BaseModel):
    status: Literal["none", "pending", "incoming", "accepted"]
    request_id: Optional[str] = None


class IncomingRequest(BaseModel):
    request_id: str
    from_user: UserOut
    created_at: datetime


# --- Diary ---
class LogRequest(BaseModel):
    movie_id: int
    media_type: Literal["movie", "tv"] = "movie"
    movie: Optional[dict] = None  # snapshot; fetched from the catalog when missing
    watched_date: datetime
    rating: float = Field(0, ge=0, le=5)  # half stars allowed
    review: str = ""
    tags: list[str] = Field(default_factory=list)
    visibility: Visibility = "public"
    is_rewatch: bool = False


class LogOut(ORMModel):
    id: str
    user_id: str
    movie_id: Optional[int] = None
    media_type: str = "movie"
    movie: Optional[dict] = Field(default_factory=dict)
    watched_date: datetime
    rating: float = 0
    review: Optional[str] = ""
    visibility: str = "public"
    is_rewatch: bool = False


class FeedItem(BaseModel):
    log: LogOut
    user_name: str = ""
    user_photo: str = ""
    username: Optional[str] = None


class ActivityOut(ORMModel):
    id: str
    user_id: str
    user_name: Optional[str] = ""
    user_photo: Optional[str] = ""
    type: str
    movie_id: Optional[int] = None
    movie: Optional[dict] = None
    rating: Optional[float] = None
    review_text: Optional[str] = None
    connected_user_id: Optional[str] = None
    created_at: datetime


# --- Engagement ---
class ReviewRequest(BaseModel):
    movie_id: int
    movie_title: str = ""
    media_type: Literal["movie", "tv"] = "movie"
    rating: float = Field(0, ge=0, le=5)  # half stars allowed
    text: str
    spoiler: bool = False


class ListRequest(BaseModel):
    name: str
    description: str = ""
    visibility: Visibility = "public"
    movies: list[dict] = Field(default_factory=list)


class CommentRequest(BaseModel):
    text: str
    spoiler: bool = False


class CommentOut(ORMModel):
    id: str
    user_id: str
    parent_type: str
    parent_id: str
    text: str
    like_count: int = 0
    created_at: datetime


class ToggleResult(BaseModel):
    active: bool
    count: int


class NotificationOut(ORMModel):
    id: str
    sender_id: Optional[str] = None
    sender_name: Optional[str] = ""
    type: str
    ref_id: Optional[str] = None
    text: Optional[str] = None
    read: bool = False
    created_at: datetime


# --- Stats ---
class NamedCount(BaseModel):
    name: str
    count: int


class MonthCount(BaseModel):
    month: str
    films: int


class Stats(BaseModel):
    total_watched: int = 0
    this_year_watched: int = 0
    avg_rating: float = 0
    total_hours: int = 0
    top_genres: list[NamedCount] = Field(default_factory=list)
    top_directors: list[NamedCount] = Field(default_factory=list)
    top_countries: list[NamedCount] = Field(default_factory=list)
    films_per_month: list[MonthCount] = Field(default_factory=list)
    lists: int = 0
    streak: int = 0


# --- Admin ---
class MetricChange(BaseModel):
    value: float
    percentage: float
    trend: Literal["up", "down", "neutral"]


class SnapshotReport(BaseModel):
    counters: dict[str, int]
    captured_at: datetime
    previous_captured_at: Optional[datetime] = None
    changes: dict[str, MetricChange] = Field(default_factory=dict)
