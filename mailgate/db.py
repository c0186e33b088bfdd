# mailgate/db.py
import datetime
from contextlib import contextmanager
from typing import Optional, Dict, Any, Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from sqlalchemy.exc import SQLAlchemyError

from mailgate import monitoring

Base = declarative_base()


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp; SQLite DateTime columns do not keep tzinfo."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def _make_engine(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


class Database:
    """Owns the engine and session factory for one database URL."""

    def __init__(self, url: str):
        self.url = url
        self.engine = _make_engine(url)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False,
                                         expire_on_commit=False, bind=self.engine)

    def init_db(self):
        # import models so Base metadata has the tables
        import mailgate.models as models  # noqa: F401
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Session scope: commit on success, rollback and re-raise on error."""
        db: Session = self.SessionLocal()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def dispose(self):
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Request log recorder (append-only)
    # ------------------------------------------------------------------
    def save_request_log(self, input_text: str, output_text: str, success: bool,
                         error_message: Optional[str] = None,
                         client_info: Optional[str] = None) -> Dict[str, Any]:
        """
        Append one request log row and return it as a dict.
        Raises SQLAlchemyError if the write fails; callers decide whether that is fatal.
        """
        from mailgate.models import RequestLog
        entry = RequestLog(
            input=input_text,
            output=output_text or "",
            success=success,
            error_message=error_message,
            client_info=client_info,
            created_at=utcnow(),
        )
        try:
            with self.session() as db:
                db.add(entry)
                db.flush()
                db.refresh(entry)
        except SQLAlchemyError:
            monitoring.logger.exception("Request log write failed", extra={"success": success})
            raise
        return entry.to_dict()

    def get_request_log(self, log_id: int) -> Optional[Dict[str, Any]]:
        from mailgate.models import RequestLog
        with self.session() as db:
            entry = db.get(RequestLog, log_id)
            return entry.to_dict() if entry else None
