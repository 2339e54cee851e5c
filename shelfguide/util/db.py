import pathlib

from sqlalchemy import Engine, create_engine, event
import structlog

logger = structlog.stdlib.get_logger()


def create_cover_engine(sqlite_path: str, echo: bool = False) -> Engine:
    """Engine for the embedded cover cache database."""
    if sqlite_path != ":memory:":
        pathlib.Path(sqlite_path).parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(
        f"sqlite+pysqlite:///{sqlite_path}",
        connect_args={"check_same_thread": False},
        echo=echo,
    )

    @event.listens_for(engine, "connect")
    def receive_connect(dbapi_conn, connection_record):
        # concurrent readers while a worker rewrites an entry
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    logger.info("Cover cache database configured", database_type="SQLite", path=sqlite_path)
    return engine
