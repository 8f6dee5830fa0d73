import functools

from sqlalchemy.exc import IntegrityError

from groupvote import db
from .errors import ConflictError


def atomic(fn):
    """Commit once when ``fn`` returns; roll back and re-raise otherwise."""
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            result = fn(*args, **kwargs)
            db.session.commit()
            return result
        except Exception:
            db.session.rollback()
            raise
    return wrapper


def flush_unique(message: str) -> None:
    """Flush pending inserts, reporting a uniqueness violation as a conflict."""
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise ConflictError(message) from exc
