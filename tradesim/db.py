import logging
from contextlib import contextmanager

from sqlalchemy import create_engine, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from tradesim.config import settings
from tradesim.errors import ConflictError
from tradesim.models import Base

logger = logging.getLogger(__name__)


def build_engine(url, statement_timeout_ms=None):
    connect_args = {}
    if url.startswith("sqlite"):
        # sessions are handed between FastAPI worker threads
        connect_args["check_same_thread"] = False
    elif url.startswith("postgresql") and statement_timeout_ms:
        connect_args["options"] = (
            f"-c statement_timeout={statement_timeout_ms} "
            f"-c lock_timeout={statement_timeout_ms}"
        )
    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)


def build_session_factory(bind):
    return sessionmaker(autoflush=False, expire_on_commit=False, bind=bind)


engine = build_engine(settings.database_url, settings.db_statement_timeout_ms)
SessionLocal = build_session_factory(engine)


@contextmanager
def unit_of_work(session_factory=SessionLocal):
    """Yield a session whose changes commit together or not at all.

    Any exception rolls the transaction back and propagates. A uniqueness
    violation surfacing at commit time becomes a ConflictError.
    """
    with session_factory() as session:
        try:
            yield session
            session.commit()
        except IntegrityError as e:
            session.rollback()
            logger.warning("Unit of work rejected by a constraint: %s", e.orig)
            raise ConflictError("The change conflicts with concurrent data") from e
        except BaseException:
            session.rollback()
            raise


def init_db(bind=None) -> None:
    Base.metadata.create_all(bind=bind or engine)


def check_connection(bind=None) -> bool:
    try:
        with (bind or engine).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        logger.exception("Database connection failed")
        return False
