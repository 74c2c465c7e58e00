# app/db/bootstrap.py
import os

import structlog
from alembic import command
from alembic.config import Config

log = structlog.get_logger(__name__)

BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))


def run_migrations(database_url: str) -> None:
    # point explicitly at alembic.ini and migrations/
    cfg = Config(os.path.join(BASE_DIR, "alembic.ini"))
    cfg.set_main_option("script_location", os.path.join(BASE_DIR, "migrations"))
    cfg.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))

    command.upgrade(cfg, "head")
    log.info("migrations_applied")
