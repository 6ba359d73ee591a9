"""
Error taxonomy shared by every service module.

Read paths log and degrade to an empty result; write paths raise one of these
so the caller can show an explicit failure.
"""
import logging
from functools import wraps

from sqlalchemy.exc import OperationalError, SQLAlchemyError


class CinelogError(Exception):
    pass


class NotFoundError(CinelogError):
    """Username, user, request or entity absent."""


class ConflictError(CinelogError):
    """Duplicate request, taken username, already connected."""


class TransientNetworkError(CinelogError):
    """Store unreachable or timed out."""


class PermissionDeniedError(CinelogError):
    pass


def write_op(func):
    """Commit on success; roll back and re-raise on failure."""
    @wraps(func)
    def wrapper(db, *args, **kwargs):
        try:
            result = func(db, *args, **kwargs)
            db.commit()
            return result
        except CinelogError:
            db.rollback()
            raise
        except OperationalError as e:
            db.rollback()
            logging.error(f"{func.__name__} failed, store unavailable: {e}")
            raise TransientNetworkError(str(e)) from e
        except SQLAlchemyError as e:
            db.rollback()
            logging.error(f"{func.__name__} failed: {e}")
            raise
        except Exception:
            db.rollback()
            raise
    return wrapper


def read_op(default):
    """Log store failures and return ``default()`` instead of raising."""
    def decorator(func):
        @wraps(func)
        def wrapper(db, *args, **kwargs):
            try:
                return func(db, *args, **kwargs)
            except SQLAlchemyError as e:
                db.rollback()
                logging.error(f"{func.__name__} failed, returning default: {e}")
                return default()
        return wrapper
    return decorator
