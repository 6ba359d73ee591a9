import logging

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from .errors import write_op
from .models import Comment, LikeRecord, ListSave, MovieList, Review


def _ledger_counts():
    """(model, counter, correlated count of ledger rows) for every cached counter."""
    def likes(model, entity_type):
        return select(func.count()).select_from(LikeRecord).where(
            LikeRecord.entity_type == entity_type, LikeRecord.entity_id == model.id
        ).correlate(model).scalar_subquery()

    def comments(model, parent_type):
        return select(func.count()).select_from(Comment).where(
            Comment.parent_type == parent_type, Comment.parent_id == model.id
        ).correlate(model).scalar_subquery()

    saves = select(func.count()).select_from(ListSave).where(
        ListSave.list_id == MovieList.id
    ).correlate(MovieList).scalar_subquery()

    return [
        (Review, "like_count", likes(Review, "review")),
        (Review, "comment_count", comments(Review, "review")),
        (Comment, "like_count", likes(Comment, "comment")),
        (MovieList, "like_count", likes(MovieList, "list")),
        (MovieList, "comment_count", comments(MovieList, "list")),
        (MovieList, "save_count", saves),
    ]


@write_op
def reconcile_counters(db: Session) -> dict:
    """Recount every cached counter from its ledger and repair drift."""
    fixed = {}
    for model, field, actual in _ledger_counts():
        column = getattr(model, field)
        result = db.execute(
            update(model)
            .where(column != actual)
            .values({field: actual})
            .execution_options(synchronize_session=False)
        )
        key = f"{model.__tablename__}.{field}"
        fixed[key] = result.rowcount
        if result.rowcount:
            logging.info(f"Reconciled {result.rowcount} rows of {key}")
    return fixed
