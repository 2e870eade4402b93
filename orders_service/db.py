import logging

from flask_sqlalchemy import SQLAlchemy

log = logging.getLogger(__name__)

db = SQLAlchemy()


def commit_or_rollback(label: str = "commit"):
    """Commit the request session; on failure roll back, log and re-raise."""
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        log.exception("%s failed, session rolled back", label)
        raise
