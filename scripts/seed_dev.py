from datetime import datetime, timedelta
import random

from cinelog import connections, diary, identity
from cinelog.database import SessionLocal, init_db
from cinelog.errors import ConflictError
from cinelog.models import LogEntry
from cinelog.schemas import LogRequest

MOVIES = [
    (27205, "Inception", ["Science Fiction", "Action"], "Christopher Nolan", ["US", "GB"], 148),
    (157336, "Interstellar", ["Science Fiction", "Drama"], "Christopher Nolan", ["US", "GB"], 169),
    (496243, "Parasite", ["Thriller", "Drama"], "Bong Joon-ho", ["KR"], 133),
    (680, "Pulp Fiction", ["Crime", "Thriller"], "Quentin Tarantino", ["US"], 154),
    (129, "Spirited Away", ["Animation", "Fantasy"], "Hayao Miyazaki", ["JP"], 125),
]


def seed():
    print("Seeding dev data...")
    init_db()
    db = SessionLocal()
    try:
        dev = identity.get_or_create_user(db, "dev", email="dev@example.com", display_name="Dev User")
        try:
            identity.reserve_username(db, dev.id, "dev")
        except ConflictError:
            pass

        for name in ["Alice", "Bob", "Charlie"]:
            friend = identity.get_or_create_user(db, name.lower(), email=f"{name.lower()}@example.com", display_name=name)
            try:
                identity.reserve_username(db, friend.id, name)
                connections.send_request(db, friend.id, dev.id)
            except ConflictError:
                pass

            # Give each friend a few diary entries
            if db.query(LogEntry).filter(LogEntry.user_id == friend.id).count():
                continue
            for tmdb_id, title, genres, director, countries, runtime in random.sample(MOVIES, 3):
                diary.record_log(db, friend.id, LogRequest(
                    movie_id=tmdb_id,
                    movie={"id": tmdb_id, "title": title, "genres": genres, "director": director,
                           "countries": countries, "runtime": runtime},
                    watched_date=datetime.utcnow() - timedelta(days=random.randint(0, 30)),
                    rating=random.randint(3, 5),
                    visibility=random.choice(["public", "followers"]),
                ))

        for req in connections.list_incoming(db, dev.id):
            connections.accept(db, req.request_id, req.from_user.id, dev.id)
        print(f"Dev user {dev.id} has {len(connections.list_connection_uids(db, dev.id))} connections")
    finally:
        db.close()


if __name__ == "__main__":
    seed()
