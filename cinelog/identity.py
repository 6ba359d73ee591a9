"""
Identity directory: unique lowercase usernames mapped to user ids.

Reservation is a single conditional insert keyed by the normalized name, so
two users racing for the same name cannot both win; the loser gets a
ConflictError from the primary key collision.
"""
import logging
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import ConflictError, NotFoundError, read_op, write_op
from .models import User, UsernameReservation


def normalize_username(username: str) -> str:
    name = (username or "").strip().lower()
    if not name:
        raise ValueError("Username must not be empty")
    return name


@write_op
def reserve_username(db: Session, uid: str, username: str) -> str:
    name = normalize_username(username)

    user = db.get(User, uid)
    if not user:
        raise NotFoundError(f"User {uid} not found")

    existing = db.get(UsernameReservation, name)
    if existing:
        if existing.user_id == uid:
            return name
        raise ConflictError(f"Username '{name}' is already taken")

    try:
        db.add(UsernameReservation(username=name, user_id=uid))
        db.flush()
    except IntegrityError:
        db.rollback()
        raise ConflictError(f"Username '{name}' is already taken")

    # Release the old name so every reservation points back at a matching user
    if user.username and user.username != name:
        db.execute(
            delete(UsernameReservation).where(
                UsernameReservation.username == user.username,
                UsernameReservation.user_id == uid,
            )
        )
    user.username = name
    logging.info(f"User {uid} reserved username '{name}'")
    return name


@read_op(default=lambda: False)
def is_username_available(db: Session, username: str) -> bool:
    return db.get(UsernameReservation, normalize_username(username)) is None


def resolve_user(db: Session, username: str) -> User:
    """Case-insensitive exact lookup by the user's stored username."""
    name = normalize_username(username)
    user = db.query(User).filter(User.username == name).first()
    if not user:
        raise NotFoundError(f"User '{name}' not found")
    return user


@read_op(default=lambda: None)
def find_user(db: Session, username: str) -> Optional[User]:
    try:
        return resolve_user(db, username)
    except NotFoundError:
        return None


@write_op
def get_or_create_user(db: Session, uid: str, email: str = "", display_name: str = "", photo_url: str = "") -> User:
    """First sign-in creates the user; later sign-ins refresh name and photo."""
    user = db.get(User, uid)
    if not user:
        user = User(id=uid, email=email, display_name=display_name, photo_url=photo_url)
        db.add(user)
        logging.info(f"Created user {uid} on first sign-in")
    else:
        user.display_name = display_name or user.display_name
        user.photo_url = photo_url or user.photo_url
    db.flush()
    return user


@write_op
def update_profile(db: Session, uid: str, display_name=None, bio=None, photo_url=None, is_public=None, top5=None) -> User:
    user = db.get(User, uid)
    if not user:
        raise NotFoundError(f"User {uid} not found")

    if display_name is not None:
        user.display_name = display_name
    if bio is not None:
        user.bio = bio
    if photo_url is not None:
        user.photo_url = photo_url
    if is_public is not None:
        user.is_public = is_public
    if top5 is not None:
        if len(top5) > 5:
            raise ValueError("Top 5 holds at most 5 movies")
        user.top5 = list(top5)
    return user
