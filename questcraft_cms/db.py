# questcraft_cms/db.py
from __future__ import annotations
import logging
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

# WICHTIG: die gemeinsame Base der Modelle verwenden, nicht neu definieren!
from questcraft_cms.models.base import Base
from questcraft_cms.config import DEFAULT_DB_PATH

logger = logging.getLogger(__name__)

DATABASE_URL = f"sqlite:///{DEFAULT_DB_PATH}"


def _make_engine(url: str):
    is_sqlite = url.startswith("sqlite")
    connect_args = {"check_same_thread": False} if is_sqlite else {}
    eng = create_engine(url, echo=False, future=True, connect_args=connect_args)
    if is_sqlite:
        # SQLite prüft Foreign Keys nur mit PRAGMA (nötig für ON DELETE CASCADE)
        @event.listens_for(eng, "connect")
        def _fk_on(dbapi_conn, _record):
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.close()
    return eng


engine = None
SessionLocal = sessionmaker(autoflush=False, autocommit=False, future=True)

# --------------------------------------------------------------------
# Sessions
# --------------------------------------------------------------------
def get_session():
    """Neue Session auf der aktuell gebundenen Engine; Handler schließen sie im finally."""
    return SessionLocal()


@contextmanager
def session_scope():
    """Commit am Ende, Rollback bei Fehlern (CLI-Befehle, Tests)."""
    db = get_session()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

# --------------------------------------------------------------------
# Init DB (auf App-Start)
# --------------------------------------------------------------------
def init_db(url: str | None = None):
    """
    Initialisiert die Datenbank.
    - URL aus der AppConfig (Tests übergeben eine eigene).
    - Registriert Modelle, legt fehlende Tabellen an.
    """
    global engine

    url = url or DATABASE_URL
    if url.startswith("sqlite:///") and url != "sqlite:///:memory:":
        # Ordner für die Datei sicher anlegen
        from pathlib import Path
        Path(url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)

    if engine is not None:
        engine.dispose()
    engine = _make_engine(url)
    SessionLocal.configure(bind=engine)

    # Modelle importieren, damit ihre Tabellen bei Base registriert werden
    from questcraft_cms.models import collection, reward, tag  # noqa: F401

    # Tabellen erstellen (nur fehlende)
    Base.metadata.create_all(bind=engine)
    logger.info("Datenbank bereit: %s", engine.url.render_as_string(hide_password=True))
    return engine
