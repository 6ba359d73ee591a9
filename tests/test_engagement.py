import pytest
from sqlalchemy import create_engine, delete, false, func
from sqlalchemy.orm import sessionmaker

from cinelog import engagement
from cinelog.database import init_db
from cinelog.errors import NotFoundError, PermissionDeniedError
from cinelog.maintenance import reconcile_counters
from cinelog.models import Comment, LikeRecord, ListSave, MovieList, Notification, Review, User
from cinelog.schemas import ListRequest, ReviewRequest


def like_records(db, entity_id):
    return db.query(func.count(LikeRecord.id)).filter(LikeRecord.entity_id == entity_id).scalar()


@pytest.fixture
def review(db, make_user):
    make_user("author")
    return engagement.create_review(db, "author", ReviewRequest(movie_id=550, movie_title="Fight Club", rating=4, text="Loud."))


@pytest.fixture
def movie_list(db, make_user):
    make_user("curator")
    return engagement.create_list(db, "curator", ListRequest(name="Slow cinema"))


class TestToggleLike:

    def test_like_then_unlike_restores_state(self, db, review, make_user):
        make_user("fan")
        before = (db.get(Review, review.id).like_count, like_records(db, review.id))

        liked = engagement.toggle_like(db, "fan", review.id, "review")
        assert liked.active is True
        assert liked.count == 1

        unliked = engagement.toggle_like(db, "fan", review.id, "review")
        assert unliked.active is False

        db.expire_all()
        assert (db.get(Review, review.id).like_count, like_records(db, review.id)) == before

    def test_counter_matches_ledger(self, db, review, make_user):
        fans = [make_user(f"fan{i}").id for i in range(6)]
        for uid in fans:
            engagement.toggle_like(db, uid, review.id, "review")
        for uid in fans[:2]:
            engagement.toggle_like(db, uid, review.id, "review")

        db.expire_all()
        assert db.get(Review, review.id).like_count == like_records(db, review.id) == 4
        assert engagement.has_liked(db, fans[3], review.id) is True
        assert engagement.has_liked(db, fans[0], review.id) is False

    def test_like_comment_and_list(self, db, review, movie_list, make_user):
        make_user("fan")
        comment = engagement.add_comment(db, "fan", "review", review.id, "Agreed")

        assert engagement.toggle_like(db, "author", comment.id, "comment").count == 1
        assert engagement.toggle_like(db, "fan", movie_list.id, "list").count == 1

    def test_like_notifies_owner_but_not_self(self, db, review, make_user):
        make_user("fan")
        engagement.toggle_like(db, "fan", review.id, "review")
        engagement.toggle_like(db, "author", review.id, "review")

        notes = db.query(Notification).filter(Notification.recipient_id == "author").all()
        assert [(n.sender_id, n.type) for n in notes] == [("fan", "like_review")]

    def test_missing_entity(self, db, make_user):
        make_user("fan")
        with pytest.raises(NotFoundError):
            engagement.toggle_like(db, "fan", "nope", "review")

    def test_unknown_entity_type(self, db, review, make_user):
        make_user("fan")
        with pytest.raises(ValueError):
            engagement.toggle_like(db, "fan", review.id, "poll")


class TestConcurrentCounters:

    def test_stale_reader_does_not_lose_increment(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
        init_db(engine)
        Session = sessionmaker(bind=engine)

        setup = Session()
        setup.add_all([User(id="author"), User(id="u1"), User(id="u2")])
        setup.add(Review(id="r1", user_id="author", text="x", like_count=0, comment_count=0))
        setup.commit()
        setup.close()

        first, second = Session(), Session()
        # First session holds a stale copy of the review
        assert first.get(Review, "r1").like_count == 0

        engagement.toggle_like(second, "u1", "r1", "review")
        result = engagement.toggle_like(first, "u2", "r1", "review")

        assert result.count == 2
        check = Session()
        assert check.get(Review, "r1").like_count == 2
        for s in (first, second, check):
            s.close()
        engine.dispose()

    def test_lost_insert_race_does_not_double_count_or_notify(self, db, review, movie_list, make_user, monkeypatch):
        make_user("fan")
        review_id, list_id = review.id, movie_list.id
        engagement.toggle_like(db, "fan", review_id, "review")
        engagement.toggle_save(db, "fan", "curator", list_id)
        db.expunge_all()

        # The delete runs before the other writer's row is visible, so the insert collides
        monkeypatch.setattr(engagement, "delete", lambda ledger: delete(ledger).where(false()))
        liked = engagement.toggle_like(db, "fan", review_id, "review")
        saved = engagement.toggle_save(db, "fan", "curator", list_id)

        assert (liked.active, liked.count) == (True, 1)
        assert (saved.active, saved.count) == (True, 1)
        assert like_records(db, review_id) == 1
        assert db.query(ListSave).count() == 1
        notes = db.query(Notification).order_by(Notification.type).all()
        assert [(n.recipient_id, n.type) for n in notes] == [("author", "like_review"), ("curator", "save_list")]


class TestToggleSave:

    def test_save_and_unsave(self, db, movie_list, make_user):
        make_user("fan")
        saved = engagement.toggle_save(db, "fan", "curator", movie_list.id)
        assert saved.active is True and saved.count == 1
        assert engagement.has_saved(db, "fan", movie_list.id) is True

        unsaved = engagement.toggle_save(db, "fan", "curator", movie_list.id)
        assert unsaved.active is False and unsaved.count == 0
        assert db.query(ListSave).count() == 0

    def test_wrong_owner_not_found(self, db, movie_list, make_user):
        make_user("fan")
        with pytest.raises(NotFoundError):
            engagement.toggle_save(db, "fan", "fan", movie_list.id)


class TestComments:

    def test_comment_increments_parent(self, db, review, movie_list, make_user):
        make_user("fan")
        engagement.add_comment(db, "fan", "review", review.id, "First")
        engagement.add_comment(db, "fan", "review", review.id, "Second")
        engagement.add_comment(db, "fan", "list", movie_list.id, "Nice list")

        db.expire_all()
        assert db.get(Review, review.id).comment_count == 2
        assert db.get(MovieList, movie_list.id).comment_count == 1
        assert [c.text for c in engagement.list_comments(db, "review", review.id)] == ["First", "Second"]

    def test_delete_comment_decrements_and_drops_likes(self, db, review, make_user):
        make_user("fan")
        comment = engagement.add_comment(db, "fan", "review", review.id, "Hot take")
        engagement.toggle_like(db, "author", comment.id, "comment")

        engagement.delete_comment(db, "fan", comment.id)

        db.expire_all()
        assert db.get(Review, review.id).comment_count == 0
        assert like_records(db, comment.id) == 0

    def test_only_author_deletes(self, db, review, make_user):
        make_user("fan")
        comment = engagement.add_comment(db, "fan", "review", review.id, "Mine")
        with pytest.raises(PermissionDeniedError):
            engagement.delete_comment(db, "author", comment.id)

    def test_empty_comment_rejected(self, db, review, make_user):
        make_user("fan")
        with pytest.raises(ValueError):
            engagement.add_comment(db, "fan", "review", review.id, "   ")
        assert db.query(Comment).count() == 0


class TestReconcile:

    def test_repairs_drifted_counters(self, db, review, movie_list, make_user):
        make_user("fan")
        engagement.toggle_like(db, "fan", review.id, "review")
        engagement.toggle_save(db, "fan", "curator", movie_list.id)
        engagement.add_comment(db, "fan", "list", movie_list.id, "Hi")

        # Simulate drift left by an older client
        db.get(Review, review.id).like_count = 7
        db.get(MovieList, movie_list.id).save_count = 0
        db.commit()

        fixed = reconcile_counters(db)

        db.expire_all()
        assert db.get(Review, review.id).like_count == 1
        assert db.get(MovieList, movie_list.id).save_count == 1
        assert db.get(MovieList, movie_list.id).comment_count == 1
        assert fixed["reviews.like_count"] == 1
        assert fixed["lists.save_count"] == 1
        assert fixed["lists.comment_count"] == 0
