"""Create or upgrade the database schema: ``python -m app.database.init_db``."""

import logging
from datetime import datetime, timezone
from pathlib import Path

from alembic import command
from alembic.config import Config as AlembicConfig
from sqlalchemy import inspect, text

import app.database.db as db_module
from app.core.logging_config import configure_logging
from app.core.startup import validate_startup_config

PROJECT_ROOT = Path(__file__).resolve().parents[2]

logger = logging.getLogger(__name__)
BASELINE_REVISION = "20261019_0001"
CORE_TABLES = {"accounts", "leads", "communications", "webhooks"}


def _build_alembic_config(database_url: str) -> AlembicConfig:
    cfg = AlembicConfig(str(PROJECT_ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", database_url)
    return cfg


def _requires_baseline_stamp() -> bool:
    """True for schemas created by ``init_schema`` (create_all) that alembic has never seen."""
    inspector = inspect(db_module.get_engine())
    table_names = set(inspector.get_table_names())
    if not CORE_TABLES.issubset(table_names):
        return False
    if "alembic_version" not in table_names:
        return True
    with db_module.get_engine().connect() as conn:
        version_rows = conn.execute(text("SELECT COUNT(*) FROM alembic_version")).scalar() or 0
    return version_rows == 0


def _sqlite_db_path(database_url: str) -> Path | None:
    prefix = "sqlite:///"
    if not database_url.startswith(prefix):
        return None
    raw = database_url[len(prefix) :]
    if raw in {":memory:", ""}:
        return None
    path = Path(raw)
    if not path.is_absolute():
        path = (PROJECT_ROOT / path).resolve()
    return path


def _reset_sqlite_db(database_url: str) -> Path | None:
    db_path = _sqlite_db_path(database_url)
    if not db_path or not db_path.exists():
        db_module.reset_engine(database_url)
        return None

    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    backup_path = db_path.with_name(f"{db_path.stem}.backup_{timestamp}{db_path.suffix}")
    db_module.get_engine().dispose()
    db_path.replace(backup_path)
    db_module.reset_engine(database_url)
    return backup_path


def init_db() -> None:
    """Run migrations to head; a local SQLite file that cannot migrate is backed up and recreated."""
    configure_logging()
    validate_startup_config()
    active_url = db_module.get_active_database_url()
    try:
        alembic_cfg = _build_alembic_config(active_url)
        if _requires_baseline_stamp():
            command.stamp(alembic_cfg, BASELINE_REVISION)
            logger.info(
                "database.existing_schema.stamped",
                extra={"event": "database.existing_schema.stamped", "revision": BASELINE_REVISION},
            )
        command.upgrade(alembic_cfg, "head")
    except Exception as exc:
        if not active_url.startswith("sqlite:///"):
            raise
        backup_path = _reset_sqlite_db(active_url)
        logger.warning(
            "database.sqlite.reset_for_schema_mismatch",
            extra={
                "event": "database.sqlite.reset_for_schema_mismatch",
                "database_url": active_url,
                "backup_path": str(backup_path) if backup_path else None,
                "reason": str(exc),
            },
        )
        command.upgrade(_build_alembic_config(active_url), "head")

    logger.info(
        "database.migrations.applied",
        extra={"event": "database.migrations.applied", "database_url": active_url},
    )


if __name__ == "__main__":
    init_db()
