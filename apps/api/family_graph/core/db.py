from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from family_graph.core.config import Settings, settings
from family_graph.core.errors import ConflictError, InternalError
from family_graph.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class StoreConfig:
    url: str
    echo: bool = False

    @classmethod
    def from_settings(cls, source: Settings) -> StoreConfig:
        return cls(url=source.database_url, echo=source.sql_echo)

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")


def build_engine(config: StoreConfig) -> Engine:
    if not config.is_sqlite:
        return create_engine(config.url, echo=config.echo, pool_pre_ping=True)

    kwargs: dict = {"connect_args": {"check_same_thread": False}}
    if config.url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    engine = create_engine(config.url, echo=config.echo, **kwargs)

    # pysqlite defers BEGIN until the first DML statement, which breaks SAVEPOINT
    # scoping; take over transaction demarcation so nested transactions behave.
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def build_sessionmaker(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


engine = build_engine(StoreConfig.from_settings(settings))
SessionLocal = build_sessionmaker(engine)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def commit_or_raise(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("store.integrity_error", error=str(exc.orig))
        raise ConflictError("record conflicts with existing data") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("store.commit_failed")
        raise InternalError("store unavailable") from exc
