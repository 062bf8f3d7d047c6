"""Database models and migrations."""

import logging
import os

from sqlalchemy.engine import Engine

from qrorder.db.models import Base

logger = logging.getLogger(__name__)


def init_db(engine: Engine, use_alembic: bool = True) -> None:
    """
    Initialize database schema using Alembic or create_all fallback.

    Args:
        engine: SQLAlchemy engine instance
        use_alembic: If True, run Alembic migrations; else use Base.metadata.create_all()
                    Useful for development: False gives instant schema, True tracks migrations

    Raises:
        RuntimeError: If Alembic migration fails or alembic.ini is not found
    """
    if use_alembic:
        from alembic import command
        from alembic.config import Config

        # backend/qrorder/db/__init__.py -> backend/
        backend_dir = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
        alembic_ini = os.path.join(backend_dir, "alembic.ini")

        if not os.path.exists(alembic_ini):
            raise RuntimeError(f"alembic.ini not found at {alembic_ini}")

        config = Config(alembic_ini)
        config.set_main_option("script_location", os.path.join(backend_dir, "alembic"))
        try:
            with engine.begin() as connection:
                config.attributes["connection"] = connection
                command.upgrade(config, "head")
        except Exception as e:
            raise RuntimeError(f"Alembic migration failed: {e}") from e
        logger.info("[init_db] Alembic migrations applied")
    else:
        # create only missing tables, existing data is preserved
        Base.metadata.create_all(engine)
        logger.info("[init_db] Schema synchronized with create_all")


__all__ = ["Base", "init_db"]
