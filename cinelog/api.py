import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from . import activity, admin, catalog, config, connections, diary, engagement, identity, maintenance, notifications, stats
from .auth import create_access_token, get_current_user, require_admin, verify_google_token
from .database import get_db, init_db
from .errors import ConflictError, NotFoundError, PermissionDeniedError, TransientNetworkError
from .models import User
from .schemas import (
    ActivityOut, CommentOut, CommentRequest, ConnectionStatus, FeedItem, GoogleAuthRequest, IncomingRequest,
    ListRequest, LogOut, LogRequest, NotificationOut, ProfileUpdate, ReviewRequest, SnapshotReport, Stats,
    ToggleResult, UsernameRequest, UserOut,
)

config.setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title="Cinelog", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- ERROR MAPPING ---
def _error_handler(status_code):
    async def handler(request: Request, exc: Exception):
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})
    return handler


app.add_exception_handler(NotFoundError, _error_handler(404))
app.add_exception_handler(ConflictError, _error_handler(409))
app.add_exception_handler(PermissionDeniedError, _error_handler(403))
app.add_exception_handler(TransientNetworkError, _error_handler(503))
app.add_exception_handler(ValueError, _error_handler(400))


# --- AUTH ---
@app.post("/api/auth/google")
def google_login(request: GoogleAuthRequest, db: Session = Depends(get_db)):
    try:
        id_info = verify_google_token(request.credential)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid Google Token")

    user = identity.get_or_create_user(
        db,
        id_info['sub'],
        email=id_info.get('email', ''),
        display_name=id_info.get('name', 'Unknown'),
        photo_url=id_info.get('picture', ''),
    )
    access_token = create_access_token(data={"sub": user.id})
    return {"access_token": access_token, "user": UserOut.model_validate(user)}


# --- IDENTITY ---
@app.get("/api/users/me", response_model=UserOut)
def read_users_me(current_user: User = Depends(get_current_user)):
    return current_user


@app.put("/api/users/me", response_model=UserOut)
def update_profile(request: ProfileUpdate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return identity.update_profile(db, current_user.id, **request.model_dump())


@app.put("/api/users/me/username")
def set_username(request: UsernameRequest, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    name = identity.reserve_username(db, current_user.id, request.username)
    return {"status": "reserved", "username": name}


@app.get("/api/usernames/{username}/available")
def username_available(username: str, db: Session = Depends(get_db)):
    return {"username": username.lower(), "available": identity.is_username_available(db, username)}


@app.get("/api/users/{username}", response_model=UserOut)
def read_user(username: str, db: Session = Depends(get_db)):
    return identity.resolve_user(db, username)


@app.get("/api/users/{username}/logs", response_model=list[LogOut])
def read_user_logs(username: str, limit: int = 50, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    owner = identity.resolve_user(db, username)
    return activity.get_user_logs(db, owner.id, current_user.id, limit)


@app.get("/api/users/{username}/stats", response_model=Stats)
def read_user_stats(username: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    owner = identity.resolve_user(db, username)
    logs = activity.get_user_logs(db, owner.id, current_user.id, limit=None)
    return stats.compute_stats(logs, engagement.count_lists(db, owner.id))


# --- CONNECTIONS ---
@app.get("/api/connections", response_model=list[UserOut])
def get_connections(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return connections.list_connections(db, current_user.id)


@app.get("/api/connections/incoming", response_model=list[IncomingRequest])
def get_incoming(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return connections.list_incoming(db, current_user.id)


@app.get("/api/connections/outgoing")
def get_outgoing(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return [
        {"request_id": r.id, "to_user_id": r.to_user_id, "created_at": r.created_at}
        for r in connections.list_outgoing(db, current_user.id)
    ]


@app.get("/api/connections/status/{target_id}", response_model=ConnectionStatus)
def get_connection_status(target_id: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return connections.get_status(db, current_user.id, target_id)


@app.post("/api/connections/request/{target_id}", response_model=ConnectionStatus)
def send_connection_request(target_id: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return connections.send_request(db, current_user.id, target_id)


@app.post("/api/connections/{request_id}/accept", response_model=ConnectionStatus)
def accept_connection(request_id: str, from_id: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return connections.accept(db, request_id, from_id, current_user.id)


@app.post("/api/connections/{request_id}/reject")
def reject_connection(request_id: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    connections.reject(db, request_id, current_user.id)
    return {"status": "rejected"}


@app.delete("/api/connections/{user_id}")
def remove_connection(user_id: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    connections.remove_connection(db, current_user.id, user_id)
    return {"status": "removed"}


# --- DIARY ---
@app.post("/api/log", response_model=LogOut)
async def log_content(request: LogRequest, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    movie = request.movie
    if not movie:
        movie = await catalog.get_details(request.movie_id, request.media_type)
    return diary.record_log(db, current_user.id, request, movie)


@app.post("/api/movies/{kind}")
def toggle_saved_movie(kind: str, movie: dict, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    if "id" not in movie:
        raise HTTPException(status_code=400, detail="Movie id required")
    return {"kind": kind, "active": diary.toggle_saved_movie(db, current_user.id, kind, movie)}


@app.get("/api/movies/{kind}")
def get_saved_movies(kind: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return diary.list_saved_movies(db, current_user.id, kind)


# --- FEED ---
@app.get("/api/feed", response_model=list[FeedItem])
def get_feed(limit: int = 20, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    uids = connections.list_connection_uids(db, current_user.id)
    return activity.get_connection_activity(db, uids, limit)


@app.get("/api/activity/recent", response_model=list[ActivityOut])
def get_recent_activity(limit: int = 20, db: Session = Depends(get_db)):
    return activity.get_recent_activities(db, limit)


# --- ENGAGEMENT ---
@app.post("/api/reviews")
def create_review(request: ReviewRequest, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    review = engagement.create_review(db, current_user.id, request)
    return {"status": "created", "id": review.id}


@app.post("/api/lists")
def create_list(request: ListRequest, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    movie_list = engagement.create_list(db, current_user.id, request)
    return {"status": "created", "id": movie_list.id}


@app.post("/api/like/{entity_type}/{entity_id}", response_model=ToggleResult)
def toggle_like(entity_type: str, entity_id: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return engagement.toggle_like(db, current_user.id, entity_id, entity_type)


@app.post("/api/lists/{owner_id}/{list_id}/save", response_model=ToggleResult)
def toggle_save(owner_id: str, list_id: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return engagement.toggle_save(db, current_user.id, owner_id, list_id)


@app.post("/api/comments/{parent_type}/{parent_id}", response_model=CommentOut)
def add_comment(parent_type: str, parent_id: str, request: CommentRequest, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return engagement.add_comment(db, current_user.id, parent_type, parent_id, request.text, request.spoiler)


@app.get("/api/comments/{parent_type}/{parent_id}", response_model=list[CommentOut])
def get_comments(parent_type: str, parent_id: str, db: Session = Depends(get_db)):
    return engagement.list_comments(db, parent_type, parent_id)


@app.delete("/api/comments/{comment_id}")
def delete_comment(comment_id: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    engagement.delete_comment(db, current_user.id, comment_id)
    return {"status": "deleted"}


# --- NOTIFICATIONS ---
@app.get("/api/notifications", response_model=list[NotificationOut])
def get_notifications(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return notifications.list_notifications(db, current_user.id)


@app.post("/api/notifications/clear")
def clear_notifications(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    notifications.mark_all_read(db, current_user.id)
    return {"status": "cleared"}


# --- ADMIN ---
@app.get("/api/admin/stats", response_model=SnapshotReport)
def get_admin_stats(db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    return admin.SnapshotStore(db).refresh(current_user.id)


@app.post("/api/admin/reconcile")
def reconcile(db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    fixed = maintenance.reconcile_counters(db)
    logging.info(f"Admin {current_user.id} reconciled counters: {fixed}")
    return {"status": "reconciled", "fixed": fixed}


if __name__ == "__main__":
    import uvicorn
    import os

    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", 8000)))
