# payroll_api/extensions.py
import os
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from sqlalchemy import event
from sqlalchemy.engine import Engine, make_url

db = SQLAlchemy()
migrate = Migrate()

# server databases only; sqlite keeps Flask-SQLAlchemy's defaults
SERVER_POOL_OPTIONS = {
    "pool_pre_ping": True,
    "pool_recycle": 270,
    "pool_size": 5,
    "max_overflow": 2,
    "pool_timeout": 30,
}


def normalize_db_url(url: str) -> str:
    """postgres:// and postgresql:// → the psycopg 3 driver."""
    if not url:
        return url
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg://", 1)
    elif url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def masked_db_url(url: str) -> str:
    try:
        return make_url(url).render_as_string(hide_password=True)
    except Exception:
        return "<unparseable database url>"


@event.listens_for(Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, _record):
    # payroll rows, repayments and remittances rely on FKs; sqlite needs them switched on
    if dbapi_conn.__class__.__module__.startswith("sqlite3"):
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()


def init_db(app):
    url = normalize_db_url(os.getenv("DATABASE_URL", app.config.get("SQLALCHEMY_DATABASE_URI", "")) or "")
    app.config["SQLALCHEMY_DATABASE_URI"] = url
    if not url.startswith("sqlite"):
        app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", dict(SERVER_POOL_OPTIONS))

    db.init_app(app)
    app.logger.debug("database: %s", masked_db_url(url))
