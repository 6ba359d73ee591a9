"""
Connection state machine.

Per ordered pair (viewer, target) the state is one of ``none``, ``pending``
(viewer asked, unanswered), ``incoming`` (target asked viewer) or ``accepted``.

Both Connection and ConnectionRequest rows are keyed by the sorted pair id, so
at most one of each can exist per pair. A request from B to A while A to B is
pending is taken as mutual acceptance.
"""
import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .activity import append_activity
from .errors import ConflictError, NotFoundError, read_op, write_op
from .models import Connection, ConnectionRequest, User, pair_id
from .notifications import create_notification
from .schemas import ConnectionStatus, IncomingRequest, UserOut


@read_op(default=lambda: ConnectionStatus(status="none"))
def get_status(db: Session, viewer_id: str, target_id: str) -> ConnectionStatus:
    # Accepted wins over any stale request left behind
    if db.get(Connection, pair_id(viewer_id, target_id)):
        return ConnectionStatus(status="accepted")

    outgoing = db.query(ConnectionRequest).filter(
        ConnectionRequest.from_user_id == viewer_id,
        ConnectionRequest.to_user_id == target_id,
        ConnectionRequest.status == "pending",
    ).first()
    if outgoing:
        return ConnectionStatus(status="pending", request_id=outgoing.id)

    incoming = db.query(ConnectionRequest).filter(
        ConnectionRequest.from_user_id == target_id,
        ConnectionRequest.to_user_id == viewer_id,
        ConnectionRequest.status == "pending",
    ).first()
    if incoming:
        return ConnectionStatus(status="incoming", request_id=incoming.id)

    return ConnectionStatus(status="none")


@read_op(default=lambda: False)
def are_connected(db: Session, uid_a: str, uid_b: str) -> bool:
    return db.get(Connection, pair_id(uid_a, uid_b)) is not None


def _connect(db: Session, request: ConnectionRequest) -> Connection:
    from_user = db.get(User, request.from_user_id)
    to_user = db.get(User, request.to_user_id)

    conn_id = pair_id(request.from_user_id, request.to_user_id)
    connection = db.get(Connection, conn_id)
    if not connection:
        a, b = sorted([request.from_user_id, request.to_user_id])
        connection = Connection(id=conn_id, user_a=a, user_b=b, status="accepted")
        db.add(connection)
    db.delete(request)

    # Both timelines get a connection event
    for owner, other in ((from_user, to_user), (to_user, from_user)):
        if owner and other:
            append_activity(db, owner, "connection", connected_user_id=other.id)

    logging.info(f"Connected {request.from_user_id} and {request.to_user_id}")
    return connection


@write_op
def send_request(db: Session, from_id: str, to_id: str) -> ConnectionStatus:
    if from_id == to_id:
        raise ConflictError("Cannot connect with yourself")

    sender = db.get(User, from_id)
    target = db.get(User, to_id)
    if not sender or not target:
        raise NotFoundError("User not found")

    request_id = pair_id(from_id, to_id)
    if db.get(Connection, request_id):
        raise ConflictError("Already connected")

    existing = db.get(ConnectionRequest, request_id)
    if existing is None:
        try:
            db.add(ConnectionRequest(id=request_id, from_user_id=from_id, to_user_id=to_id, status="pending"))
            db.flush()
        except IntegrityError:
            # Lost the insert race; look at what the other side wrote
            db.rollback()
            existing = db.get(ConnectionRequest, request_id)
            if existing is None:
                raise ConflictError("Connection request changed concurrently, retry")
            sender = db.get(User, from_id)
        else:
            create_notification(db, to_id, sender, "connection_request", ref_id=request_id)
            logging.info(f"User {from_id} requested to connect with {to_id}")
            return ConnectionStatus(status="pending", request_id=request_id)

    if existing.from_user_id == from_id:
        raise ConflictError("Connection request already pending")

    # The target already asked us: treat as mutual acceptance
    _connect(db, existing)
    return ConnectionStatus(status="accepted")


@write_op
def accept(db: Session, request_id: str, from_id: str, to_id: str) -> ConnectionStatus:
    request = db.get(ConnectionRequest, request_id)
    if not request or request.from_user_id != from_id or request.to_user_id != to_id:
        raise NotFoundError("Connection request not found")
    _connect(db, request)
    return ConnectionStatus(status="accepted")


@write_op
def reject(db: Session, request_id: str, user_id: str = None) -> None:
    request = db.get(ConnectionRequest, request_id)
    # Either side may drop the request: the recipient rejects, the sender cancels
    if not request or (user_id and user_id not in (request.from_user_id, request.to_user_id)):
        raise NotFoundError("Connection request not found")
    db.delete(request)


@write_op
def remove_connection(db: Session, uid_a: str, uid_b: str) -> None:
    connection = db.get(Connection, pair_id(uid_a, uid_b))
    if not connection:
        raise NotFoundError("Not connected")
    db.delete(connection)
    logging.info(f"Disconnected {uid_a} and {uid_b}")


@read_op(default=list)
def list_incoming(db: Session, user_id: str) -> list[IncomingRequest]:
    requests = db.query(ConnectionRequest).filter(
        ConnectionRequest.to_user_id == user_id,
        ConnectionRequest.status == "pending",
    ).order_by(ConnectionRequest.created_at.desc()).all()

    results = []
    for r in requests:
        # Skip stale requests left behind by an already accepted pair
        if db.get(Connection, r.id):
            continue
        requester = db.get(User, r.from_user_id)
        if not requester:
            continue
        results.append(IncomingRequest(
            request_id=r.id,
            from_user=UserOut.model_validate(requester),
            created_at=r.created_at,
        ))
    return results


@read_op(default=list)
def list_outgoing(db: Session, user_id: str) -> list[ConnectionRequest]:
    return db.query(ConnectionRequest).filter(
        ConnectionRequest.from_user_id == user_id,
        ConnectionRequest.status == "pending",
    ).order_by(ConnectionRequest.created_at.desc()).all()


@read_op(default=list)
def list_connection_uids(db: Session, user_id: str) -> list[str]:
    rows = db.query(Connection).filter(
        or_(Connection.user_a == user_id, Connection.user_b == user_id)
    ).order_by(Connection.created_at.asc()).all()
    return [c.user_b if c.user_a == user_id else c.user_a for c in rows]


@read_op(default=list)
def list_connections(db: Session, user_id: str) -> list[User]:
    uids = list_connection_uids(db, user_id)
    if not uids:
        return []
    return db.query(User).filter(User.id.in_(uids)).order_by(User.display_name).all()
