"""
Engagement ledger: likes, list saves and comments with cached counters.

The ledger rows (``likes``, ``list_saves``, ``comments``) are the truth. The
counters on the parent rows are derived and must equal the ledger count once
in-flight operations settle. Two rules keep them equal under concurrent
writers:

1. Counters change only through ``UPDATE ... SET n = n + delta`` evaluated by
   the database, never by writing back a value read earlier.
2. A counter moves only when this transaction actually inserted (primary key
   insert succeeded) or actually deleted (``rowcount == 1``) the ledger row.
"""
import logging

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .activity import append_activity
from .errors import NotFoundError, PermissionDeniedError, read_op, write_op
from .models import Comment, LikeRecord, ListSave, MovieList, Review, User, ledger_id
from .notifications import create_notification
from .schemas import ListRequest, ReviewRequest, ToggleResult

LIKEABLE = {
    "review": Review,
    "comment": Comment,
    "list": MovieList,
}

COMMENTABLE = {
    "review": Review,
    "list": MovieList,
}


def _model_for(entity_type: str, table: dict):
    model = table.get(entity_type)
    if model is None:
        raise ValueError(f"Unsupported entity type '{entity_type}'")
    return model


def bump_counter(db: Session, model, entity_id: str, field: str, delta: int) -> None:
    column = getattr(model, field)
    db.execute(
        update(model)
        .where(model.id == entity_id)
        .values({field: column + delta})
        .execution_options(synchronize_session=False)
    )


def read_counter(db: Session, model, entity_id: str, field: str) -> int:
    return db.execute(select(getattr(model, field)).where(model.id == entity_id)).scalar_one()


def _toggle(db: Session, record, entity_model, entity_id: str, field: str) -> tuple[bool, bool]:
    """Delete the ledger row if present, else insert it.

    Returns ``(active, changed)``. ``changed`` is False when a concurrent
    toggle inserted the same row first.
    """
    ledger = type(record)
    removed = db.execute(delete(ledger).where(ledger.id == record.id)).rowcount
    if removed:
        bump_counter(db, entity_model, entity_id, field, -1)
        return False, True

    try:
        db.add(record)
        db.flush()
    except IntegrityError:
        # A concurrent toggle inserted the same row; it owns the increment
        db.rollback()
        return True, False
    bump_counter(db, entity_model, entity_id, field, +1)
    return True, True


@write_op
def toggle_like(db: Session, user_id: str, entity_id: str, entity_type: str) -> ToggleResult:
    model = _model_for(entity_type, LIKEABLE)
    entity = db.get(model, entity_id)
    if not entity:
        raise NotFoundError(f"{entity_type} {entity_id} not found")
    owner_id = entity.user_id

    record = LikeRecord(
        id=ledger_id(entity_id, user_id),
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        owner_id=owner_id,
    )
    liked, changed = _toggle(db, record, model, entity_id, "like_count")

    if liked and changed:
        sender = db.get(User, user_id)
        if sender:
            create_notification(db, owner_id, sender, f"like_{entity_type}", ref_id=entity_id)

    count = read_counter(db, model, entity_id, "like_count")
    logging.info(f"User {user_id} {'liked' if liked else 'unliked'} {entity_type} {entity_id} ({count})")
    return ToggleResult(active=liked, count=count)


@write_op
def toggle_save(db: Session, user_id: str, owner_id: str, list_id: str) -> ToggleResult:
    movie_list = db.get(MovieList, list_id)
    if not movie_list or movie_list.user_id != owner_id:
        raise NotFoundError(f"List {list_id} not found")

    record = ListSave(
        id=ledger_id(list_id, user_id),
        list_id=list_id,
        user_id=user_id,
        owner_id=owner_id,
    )
    saved, changed = _toggle(db, record, MovieList, list_id, "save_count")

    if saved and changed:
        sender = db.get(User, user_id)
        if sender:
            create_notification(db, owner_id, sender, "save_list", ref_id=list_id, text=movie_list.name)

    count = read_counter(db, MovieList, list_id, "save_count")
    logging.info(f"User {user_id} {'saved' if saved else 'unsaved'} list {list_id} ({count})")
    return ToggleResult(active=saved, count=count)


@read_op(default=lambda: False)
def has_liked(db: Session, user_id: str, entity_id: str) -> bool:
    return db.get(LikeRecord, ledger_id(entity_id, user_id)) is not None


@read_op(default=lambda: False)
def has_saved(db: Session, user_id: str, list_id: str) -> bool:
    return db.get(ListSave, ledger_id(list_id, user_id)) is not None


@write_op
def add_comment(db: Session, user_id: str, parent_type: str, parent_id: str, text: str, spoiler: bool = False) -> Comment:
    model = _model_for(parent_type, COMMENTABLE)
    parent = db.get(model, parent_id)
    if not parent:
        raise NotFoundError(f"{parent_type} {parent_id} not found")
    author = db.get(User, user_id)
    if not author:
        raise NotFoundError(f"User {user_id} not found")
    if not text or not text.strip():
        raise ValueError("Comment must not be empty")

    comment = Comment(user_id=user_id, parent_type=parent_type, parent_id=parent_id, text=text.strip(), spoiler=spoiler)
    db.add(comment)
    db.flush()
    bump_counter(db, model, parent_id, "comment_count", +1)

    create_notification(db, parent.user_id, author, f"comment_{parent_type}", ref_id=parent_id, text=comment.text)
    logging.info(f"User {user_id} commented on {parent_type} {parent_id}")
    return comment


@write_op
def delete_comment(db: Session, user_id: str, comment_id: str) -> None:
    comment = db.get(Comment, comment_id)
    if not comment:
        raise NotFoundError(f"Comment {comment_id} not found")
    if comment.user_id != user_id:
        raise PermissionDeniedError("Only the author can delete a comment")

    model = _model_for(comment.parent_type, COMMENTABLE)
    parent_id = comment.parent_id
    removed = db.execute(delete(Comment).where(Comment.id == comment_id)).rowcount
    if removed:
        bump_counter(db, model, parent_id, "comment_count", -1)
        db.execute(delete(LikeRecord).where(LikeRecord.entity_type == "comment", LikeRecord.entity_id == comment_id))


@read_op(default=list)
def list_comments(db: Session, parent_type: str, parent_id: str) -> list[Comment]:
    return db.query(Comment).filter(
        Comment.parent_type == parent_type, Comment.parent_id == parent_id
    ).order_by(Comment.created_at.asc(), Comment.id.asc()).all()


@write_op
def create_review(db: Session, user_id: str, request: ReviewRequest) -> Review:
    author = db.get(User, user_id)
    if not author:
        raise NotFoundError(f"User {user_id} not found")
    review = Review(user_id=user_id, **request.model_dump())
    db.add(review)
    append_activity(
        db, author, "review",
        movie={"id": request.movie_id, "title": request.movie_title, "mediaType": request.media_type},
        rating=request.rating or None,
        review_text=request.text,
    )
    db.flush()
    return review


@write_op
def create_list(db: Session, user_id: str, request: ListRequest) -> MovieList:
    if not db.get(User, user_id):
        raise NotFoundError(f"User {user_id} not found")
    movie_list = MovieList(user_id=user_id, **request.model_dump())
    db.add(movie_list)
    db.flush()
    return movie_list


@read_op(default=lambda: 0)
def count_lists(db: Session, user_id: str) -> int:
    return db.query(MovieList).filter(MovieList.user_id == user_id).count()
